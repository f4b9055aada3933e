from pathlib import Path

import pytest
import yaml

from automod.configuration.app_configuration import AppConfig, BUILTIN_MUTE_DURATION_MS
from automod.configuration.guild_settings import GuildSettingsManager, check_threshold_order, validate_setting
from automod.database.database import Database
from automod.datatypes.action_datatypes import ActionType
from automod.datatypes.discord_datatypes import ChannelID, RoleID
from automod.datatypes.policy_datatypes import Thresholds
from automod.errors import ThresholdOrderError

GUILD = 4242


@pytest.fixture()
def config(tmp_path: Path) -> AppConfig:
    path = tmp_path / "app_config.yml"
    path.write_text(yaml.safe_dump({
        "automod": {
            "enabled": False,
            "max_mentions": 5,
        },
        "warnings": {
            "thresholds": {"mute": 3, "kick": 5, "ban": 7},
            "mute_duration_ms": 600_000,
        },
    }), encoding="utf-8")
    return AppConfig(path)


@pytest.fixture()
def manager(config: AppConfig, tmp_path: Path) -> GuildSettingsManager:
    return GuildSettingsManager(config=config, database=Database(tmp_path / "settings.db"))


class TestValidateSetting:
    def test_booleans_are_coerced(self):
        assert validate_setting("filter_links", 1) is True

    def test_unknown_setting(self):
        with pytest.raises(ValueError):
            validate_setting("nonsense", 1)

    def test_positive_numbers_required(self):
        with pytest.raises(ValueError, match="positive number greater than zero"):
            validate_setting("max_mentions", 0)
        assert validate_setting("max_mentions", "4") == 4

    def test_caps_percent_range(self):
        assert validate_setting("max_caps_percent", 0) == 0
        assert validate_setting("max_caps_percent", 100) == 100
        with pytest.raises(ValueError):
            validate_setting("max_caps_percent", 101)

    def test_account_age_accepts_zero(self):
        assert validate_setting("min_account_age_days", 0) == 0
        with pytest.raises(ValueError):
            validate_setting("min_account_age_days", -1)


def test_check_threshold_order_ignores_disabled_rungs():
    check_threshold_order(Thresholds(mute=None, kick=4, ban=6))
    with pytest.raises(ThresholdOrderError, match="Mute threshold must be less than kick threshold."):
        check_threshold_order(Thresholds(mute=5, kick=5, ban=None))
    with pytest.raises(ThresholdOrderError):
        check_threshold_order(Thresholds(mute=8, kick=None, ban=7))


class TestEffectivePolicy:
    def test_defaults_apply_without_overrides(self, manager):
        policy = manager.get_effective_policy(GUILD)

        assert policy.enabled is False
        assert policy.max_mentions == 5
        assert policy.max_caps_percent == 70
        assert policy.banned_words == ()
        assert policy.thresholds == Thresholds(3, 5, 7)
        assert policy.mute_duration_ms == 600_000

    def test_overrides_win(self, manager):
        manager.update_automod(GUILD, enabled=True, max_mentions=2)
        manager.add_banned_word(GUILD, "  Rude ")

        policy = manager.get_effective_policy(GUILD)

        assert policy.enabled is True
        assert policy.max_mentions == 2
        assert policy.banned_words == ("rude",)
        assert policy.filter_invites is True

    def test_banned_words_come_only_from_the_guild(self, tmp_path):
        path = tmp_path / "words.yml"
        path.write_text(yaml.safe_dump({"automod": {"banned_words": ["globalword"]}}), encoding="utf-8")
        manager = GuildSettingsManager(config=AppConfig(path), database=Database(tmp_path / "words.db"))

        assert manager.get_effective_policy(GUILD).banned_words == ()

        assert manager.add_banned_word(GUILD, "guildword") is True
        assert manager.get_effective_policy(GUILD).banned_words == ("guildword",)

        assert manager.remove_banned_word(GUILD, "guildword") is True
        assert manager.get_effective_policy(GUILD).banned_words == ()

    def test_invalid_stored_values_are_clamped(self, manager):
        overrides = manager.ensure_guild(GUILD)
        overrides.max_mentions = -3
        overrides.max_caps_percent = 250
        overrides.mute_duration_ms = 0
        overrides.thresholds = Thresholds(mute=-1, kick=5, ban=7)

        policy = manager.get_effective_policy(GUILD)

        assert policy.max_mentions == 0
        assert policy.max_caps_percent == 100
        assert policy.mute_duration_ms == BUILTIN_MUTE_DURATION_MS
        assert policy.thresholds == Thresholds(mute=None, kick=5, ban=7)

    def test_exemptions(self, manager):
        assert manager.set_exempt_channel(GUILD, 10, True) is True
        assert manager.set_exempt_channel(GUILD, 10, True) is False
        assert manager.set_exempt_role(GUILD, 20, True) is True

        policy = manager.get_effective_policy(GUILD)

        assert policy.is_channel_exempt(ChannelID(10))
        assert policy.has_exempt_role([RoleID(5), RoleID(20)])
        assert manager.set_exempt_channel(GUILD, 10, False) is True
        assert not manager.get_effective_policy(GUILD).is_channel_exempt(ChannelID(10))


class TestBannedWords:
    def test_add_and_remove(self, manager):
        assert manager.add_banned_word(GUILD, "Spam") is True
        assert manager.add_banned_word(GUILD, "spam") is False
        assert manager.remove_banned_word(GUILD, "SPAM") is True
        assert manager.remove_banned_word(GUILD, "spam") is False

    def test_empty_word_rejected(self, manager):
        with pytest.raises(ValueError):
            manager.add_banned_word(GUILD, "   ")


class TestWarningConfig:
    def test_set_threshold_starts_from_global(self, manager):
        thresholds = manager.set_threshold(GUILD, ActionType.MUTE, 2)

        assert thresholds == Thresholds(mute=2, kick=5, ban=7)
        assert manager.get_effective_policy(GUILD).thresholds == thresholds

    def test_zero_disables(self, manager):
        assert manager.set_threshold(GUILD, ActionType.KICK, 0).kick is None

    def test_order_violation_is_rejected_and_not_stored(self, manager):
        with pytest.raises(ThresholdOrderError):
            manager.set_threshold(GUILD, ActionType.MUTE, 6)
        assert manager.get_thresholds(GUILD) == Thresholds(3, 5, 7)

    def test_none_action_rejected(self, manager):
        with pytest.raises(ValueError):
            manager.set_threshold(GUILD, ActionType.NONE, 1)

    def test_mute_duration_and_reset(self, manager):
        manager.set_mute_duration(GUILD, 120_000)
        manager.set_threshold(GUILD, ActionType.BAN, 0)
        assert manager.get_effective_policy(GUILD).mute_duration_ms == 120_000

        manager.reset_warning_config(GUILD)

        policy = manager.get_effective_policy(GUILD)
        assert policy.mute_duration_ms == 600_000
        assert policy.thresholds == Thresholds(3, 5, 7)

    def test_mute_duration_must_be_positive(self, manager):
        with pytest.raises(ValueError):
            manager.set_mute_duration(GUILD, 0)


@pytest.mark.asyncio
async def test_settings_persist_across_managers(config, tmp_path):
    db_path = tmp_path / "persist.db"
    first = GuildSettingsManager(config=config, database=Database(db_path))
    await first.async_init()

    first.update_automod(GUILD, enabled=True, spam_threshold=8)
    first.add_banned_word(GUILD, "alpha")
    first.add_banned_word(GUILD, "beta")
    first.set_exempt_channel(GUILD, 11, True)
    first.set_exempt_role(GUILD, 22, True)
    first.set_threshold(GUILD, ActionType.KICK, 0)
    first.set_mute_duration(GUILD, 300_000)
    await first.shutdown()
    await first.database.shutdown()

    second = GuildSettingsManager(config=config, database=Database(db_path))
    await second.async_init()
    try:
        policy = second.get_effective_policy(GUILD)
        assert policy.enabled is True
        assert policy.spam_threshold == 8
        assert policy.banned_words == ("alpha", "beta")
        assert policy.is_channel_exempt(ChannelID(11))
        assert policy.has_exempt_role([RoleID(22)])
        assert policy.thresholds == Thresholds(mute=3, kick=None, ban=7)
        assert policy.mute_duration_ms == 300_000
    finally:
        await second.shutdown()
        await second.database.shutdown()


@pytest.mark.asyncio
async def test_reset_persists_inherited_thresholds(config, tmp_path):
    db_path = tmp_path / "reset.db"
    first = GuildSettingsManager(config=config, database=Database(db_path))
    await first.async_init()
    first.set_threshold(GUILD, ActionType.MUTE, 1)
    first.reset_warning_config(GUILD)
    await first.shutdown()
    await first.database.shutdown()

    second = GuildSettingsManager(config=config, database=Database(db_path))
    await second.async_init()
    try:
        assert second.get_overrides(GUILD).thresholds is None
        assert second.get_thresholds(GUILD) == Thresholds(3, 5, 7)
    finally:
        await second.shutdown()
        await second.database.shutdown()


@pytest.mark.asyncio
async def test_persist_guild_unknown_guild(manager):
    assert await manager.persist_guild(999) is False
