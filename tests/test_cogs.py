from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from automod.bot.cogs import automod_cmds, events_listener, message_listener, warning_cmds
from automod.datatypes.action_datatypes import (
    ActionType,
    EscalationDecision,
    ModerationOutcome,
    NextThresholdPreview,
    PunishmentResult,
    WarningOutcome,
)
from automod.datatypes.policy_datatypes import Thresholds
from automod.datatypes.warning_datatypes import ActorRef, WarningRecord
from automod.errors import RecordNotFound, ThresholdOrderError

ISSUED = datetime(2025, 1, 1, tzinfo=timezone.utc)


class Ctx:
    def __init__(self, guild_id=10, user_id=1, **permissions):
        self.guild_id = guild_id
        self.guild = SimpleNamespace(id=guild_id, name="Test Guild")
        self.user = SimpleNamespace(
            id=user_id,
            name="mod",
            display_name="mod",
            guild_permissions=SimpleNamespace(**permissions),
        )
        self.respond = AsyncMock()
        self.defer = AsyncMock()
        self.followup = SimpleNamespace(send=AsyncMock())


def make_member(user_id=2, bot=False):
    member = MagicMock(spec=discord.Member)
    member.id = user_id
    member.bot = bot
    member.name = "alice"
    member.display_name = "alice"
    member.send = AsyncMock()
    return member


def make_record(record_id, reason, active=True):
    return WarningRecord(
        id=record_id,
        guild_id=10,
        user_id=2,
        reason=reason,
        issued_by=ActorRef(1, "mod"),
        issued_at=ISSUED,
        active=active,
    )


def make_orchestrator():
    orchestrator = MagicMock()
    orchestrator.issue_warning = AsyncMock()
    orchestrator.audit = AsyncMock(return_value=True)
    orchestrator.ledger = MagicMock()
    orchestrator.ledger.list_warnings = AsyncMock(return_value=[])
    orchestrator.ledger.clear_one = AsyncMock()
    orchestrator.ledger.clear_all = AsyncMock(return_value=0)
    orchestrator.ledger.count_active = AsyncMock(return_value=0)
    orchestrator.settings = MagicMock()
    return orchestrator


def test_setup_functions_add_cogs():
    added = []
    fake_bot = SimpleNamespace(add_cog=added.append)
    orchestrator = make_orchestrator()

    automod_cmds.setup(fake_bot, orchestrator.settings)
    warning_cmds.setup(fake_bot, orchestrator)
    message_listener.setup(fake_bot, orchestrator)
    events_listener.setup(fake_bot, orchestrator)

    assert [type(cog) for cog in added] == [
        automod_cmds.AutomodCog,
        warning_cmds.WarningCog,
        message_listener.MessageListenerCog,
        events_listener.EventsListenerCog,
    ]


class TestAutomodCommands:
    def test_parse_setting_value(self):
        assert automod_cmds.parse_setting_value("filter_links", "Yes") is True
        assert automod_cmds.parse_setting_value("filter_links", "off") is False
        assert automod_cmds.parse_setting_value("max_mentions", " 4 ") == 4
        with pytest.raises(ValueError):
            automod_cmds.parse_setting_value("max_mentions", "four")

    @pytest.mark.asyncio
    async def test_enable_requires_manage_guild(self):
        settings = MagicMock()
        cog = automod_cmds.AutomodCog(SimpleNamespace(), settings)
        ctx = Ctx(manage_guild=False)

        await automod_cmds.AutomodCog.enable.callback(cog, ctx)

        settings.set_enabled.assert_not_called()
        ctx.respond.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_enable(self):
        settings = MagicMock()
        cog = automod_cmds.AutomodCog(SimpleNamespace(), settings)
        ctx = Ctx(manage_guild=True)

        await automod_cmds.AutomodCog.enable.callback(cog, ctx)

        settings.set_enabled.assert_called_once_with(10, True)

    @pytest.mark.asyncio
    async def test_set_rejects_invalid_value(self):
        settings = MagicMock()
        settings.update_automod.side_effect = ValueError("max_mentions must be a positive number greater than zero.")
        cog = automod_cmds.AutomodCog(SimpleNamespace(), settings)
        ctx = Ctx(manage_guild=True)

        await automod_cmds.AutomodCog.set_setting.callback(cog, ctx, "max_mentions", "0")

        message = ctx.respond.await_args.args[0]
        assert message.startswith("Invalid value:")


class TestWarnCommand:
    @pytest.mark.asyncio
    async def test_warn_records_and_audits(self):
        orchestrator = make_orchestrator()
        orchestrator.issue_warning.return_value = WarningOutcome(
            "abc", 1, EscalationDecision(ActionType.NONE, NextThresholdPreview(ActionType.MUTE, 2))
        )
        cog = warning_cmds.WarningCog(SimpleNamespace(), orchestrator)
        ctx = Ctx(moderate_members=True)
        member = make_member()

        await warning_cmds.WarningCog.warn.callback(cog, ctx, member, "rude")

        kwargs = orchestrator.issue_warning.await_args
        assert kwargs.args[:3] == (10, 2, "rude")
        embed = ctx.followup.send.await_args.kwargs["embed"]
        fields = {f.name: f.value for f in embed.fields}
        assert fields["Next Threshold"] == "mute at 3 warnings (2 more)"
        entry = orchestrator.audit.await_args.args[1]
        assert entry.action == "warn"
        assert entry.extra["Warning Count"] == "1"

    @pytest.mark.asyncio
    async def test_warn_rejects_self_and_bots(self):
        orchestrator = make_orchestrator()
        cog = warning_cmds.WarningCog(SimpleNamespace(), orchestrator)

        ctx = Ctx(moderate_members=True, user_id=2)
        await warning_cmds.WarningCog.warn.callback(cog, ctx, make_member(user_id=2), "x")
        ctx = Ctx(moderate_members=True)
        await warning_cmds.WarningCog.warn.callback(cog, ctx, make_member(bot=True), "x")

        orchestrator.issue_warning.assert_not_awaited()

    def test_warn_embed_reports_punishment(self):
        outcome = WarningOutcome(
            "abc", 3, EscalationDecision(ActionType.MUTE), PunishmentResult(ActionType.MUTE, True)
        )

        embed = warning_cmds.build_warn_embed(make_member(), SimpleNamespace(), "rude", outcome, dm_sent=False)

        fields = {f.name: f.value for f in embed.fields}
        assert "muted" in fields["⚠️ Auto-Punishment"]
        assert fields["DM Sent"] == "No"


class TestWarningsListing:
    def test_inactive_warnings_hidden_by_default(self):
        records = [make_record("1", "old", active=False), make_record("2", "new")]

        embed = warning_cmds.build_warnings_embed(SimpleNamespace(id=2), records, show_inactive=False)

        names = [f.name for f in embed.fields]
        assert names[0] == "Warning #1"
        assert "Hidden Warnings" in names

    def test_cleared_warnings_are_struck_through(self):
        records = [make_record("1", "old", active=False), make_record("2", "new")]

        embed = warning_cmds.build_warnings_embed(SimpleNamespace(id=2), records, show_inactive=True)

        assert embed.fields[0].name == "Warning #2"
        assert embed.fields[1].name == "~~Warning #1 [CLEARED]~~"

    def test_only_ten_most_recent_listed(self):
        records = [make_record(str(i), f"r{i}") for i in range(15)]

        embed = warning_cmds.build_warnings_embed(SimpleNamespace(id=2), records, show_inactive=False)

        warning_fields = [f for f in embed.fields if f.name.startswith("Warning #")]
        assert len(warning_fields) == 10
        assert warning_fields[0].name == "Warning #15"
        assert embed.fields[-1].name == "Note"


class TestClearWarnings:
    @pytest.mark.asyncio
    async def test_unknown_warning_id(self):
        orchestrator = make_orchestrator()
        orchestrator.ledger.clear_one.side_effect = RecordNotFound(10, 2, "nope")
        cog = warning_cmds.WarningCog(SimpleNamespace(), orchestrator)
        ctx = Ctx(moderate_members=True)

        await warning_cmds.WarningCog.clearwarnings.callback(cog, ctx, make_member(), "nope", "No reason provided")

        assert "Could not find warning" in ctx.respond.await_args.args[0]
        orchestrator.audit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_clear_all_audits_counts(self):
        orchestrator = make_orchestrator()
        orchestrator.ledger.clear_all.return_value = 3
        cog = warning_cmds.WarningCog(SimpleNamespace(), orchestrator)
        ctx = Ctx(moderate_members=True)

        await warning_cmds.WarningCog.clearwarnings.callback(cog, ctx, make_member(), None, "appeal")

        entry = orchestrator.audit.await_args.args[1]
        assert entry.action == "clearwarnings"
        assert entry.extra == {"Warnings Cleared": "3", "Warning ID": "All active", "Remaining": "0"}

    @pytest.mark.asyncio
    async def test_clear_all_without_active_warnings(self):
        orchestrator = make_orchestrator()
        cog = warning_cmds.WarningCog(SimpleNamespace(), orchestrator)
        ctx = Ctx(moderate_members=True)

        await warning_cmds.WarningCog.clearwarnings.callback(cog, ctx, make_member(), None, "appeal")

        assert "no active warnings" in ctx.respond.await_args.args[0]


class TestWarnConfig:
    @pytest.mark.asyncio
    async def test_set_reports_order_error(self):
        orchestrator = make_orchestrator()
        orchestrator.settings.set_threshold.side_effect = ThresholdOrderError("mute", "kick")
        cog = warning_cmds.WarningCog(SimpleNamespace(), orchestrator)
        ctx = Ctx(manage_guild=True)

        await warning_cmds.WarningCog.warnconfig_set.callback(cog, ctx, "mute", 9)

        assert "Mute threshold must be less than kick threshold." in ctx.respond.await_args.args[0]

    @pytest.mark.asyncio
    async def test_set_zero_disables(self):
        orchestrator = make_orchestrator()
        orchestrator.settings.set_threshold.return_value = Thresholds(mute=None, kick=5, ban=7)
        cog = warning_cmds.WarningCog(SimpleNamespace(), orchestrator)
        ctx = Ctx(manage_guild=True)

        await warning_cmds.WarningCog.warnconfig_set.callback(cog, ctx, "mute", 0)

        orchestrator.settings.set_threshold.assert_called_once_with(10, ActionType.MUTE, 0)
        assert "disabled" in ctx.respond.await_args.args[0]

    @pytest.mark.asyncio
    async def test_setmuteduration_rejects_bad_format(self):
        orchestrator = make_orchestrator()
        cog = warning_cmds.WarningCog(SimpleNamespace(), orchestrator)
        ctx = Ctx(manage_guild=True)

        await warning_cmds.WarningCog.warnconfig_setmuteduration.callback(cog, ctx, "soon")

        orchestrator.settings.set_mute_duration.assert_not_called()
        assert ctx.respond.await_args.kwargs["ephemeral"] is True

    @pytest.mark.asyncio
    async def test_setmuteduration(self):
        orchestrator = make_orchestrator()
        cog = warning_cmds.WarningCog(SimpleNamespace(), orchestrator)
        ctx = Ctx(manage_guild=True)

        await warning_cmds.WarningCog.warnconfig_setmuteduration.callback(cog, ctx, "2h")

        orchestrator.settings.set_mute_duration.assert_called_once_with(10, 7_200_000)
        assert "2 hour(s)" in ctx.respond.await_args.args[0]


@pytest.mark.asyncio
async def test_message_listener_forwards_guild_messages(monkeypatch):
    orchestrator = make_orchestrator()
    orchestrator.handle_message = AsyncMock(return_value=ModerationOutcome())
    cog = message_listener.MessageListenerCog(SimpleNamespace(), orchestrator)
    converted = object()
    monkeypatch.setattr(message_listener.discord_utils, "build_automod_message", lambda message: converted)

    await message_listener.MessageListenerCog.on_message(cog, SimpleNamespace(id=1))

    assert orchestrator.handle_message.await_args.args[0] is converted
    assert callable(orchestrator.handle_message.await_args.kwargs["delete_message"])


@pytest.mark.asyncio
async def test_message_listener_ignores_direct_messages(monkeypatch):
    orchestrator = make_orchestrator()
    orchestrator.handle_message = AsyncMock()
    cog = message_listener.MessageListenerCog(SimpleNamespace(), orchestrator)
    monkeypatch.setattr(message_listener.discord_utils, "build_automod_message", lambda message: None)

    await message_listener.MessageListenerCog.on_message(cog, SimpleNamespace(id=1))

    orchestrator.handle_message.assert_not_awaited()
