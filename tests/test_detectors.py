from datetime import datetime, timedelta, timezone

import pytest

from automod.datatypes.discord_datatypes import ChannelID, GuildID, RoleID, UserID
from automod.datatypes.policy_datatypes import EffectivePolicy, Thresholds
from automod.datatypes.violation_datatypes import AutomodMessage, ViolationKind
from automod.moderation import detectors

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_policy(**overrides) -> EffectivePolicy:
    values = dict(
        enabled=True,
        banned_words=(),
        filter_invites=True,
        filter_links=False,
        max_mentions=5,
        max_caps_percent=70,
        min_caps_length=10,
        min_account_age_days=0,
        spam_threshold=5,
        spam_interval_ms=5000,
        exempt_channel_ids=frozenset(),
        exempt_role_ids=frozenset(),
        thresholds=Thresholds(3, 5, 7),
        mute_duration_ms=3_600_000,
    )
    values.update(overrides)
    return EffectivePolicy(**values)


def make_message(content: str = "", **overrides) -> AutomodMessage:
    values = dict(
        guild_id=GuildID(1),
        channel_id=ChannelID(2),
        message_id=None,
        author_id=UserID(3),
        author_display_name="alice",
        content=content,
        author_created_at=NOW - timedelta(days=365),
    )
    values.update(overrides)
    return AutomodMessage(**values)


class TestBannedWords:
    def test_whole_word_match_is_case_insensitive(self):
        assert detectors.check_banned_words("this is BAD", ["bad"]) == "bad"

    def test_substring_does_not_match(self):
        assert detectors.check_banned_words("badword here", ["bad"]) is None

    def test_first_match_in_list_order(self):
        assert detectors.check_banned_words("foo and bar", ["bar", "foo"]) == "bar"

    def test_empty_inputs(self):
        assert detectors.check_banned_words("", ["bad"]) is None
        assert detectors.check_banned_words("bad", []) is None

    def test_regex_characters_are_escaped(self):
        assert detectors.check_banned_words("what is c.t", ["c.t"]) == "c.t"
        assert detectors.check_banned_words("what is cat", ["c.t"]) is None


class TestLinks:
    @pytest.mark.parametrize("content", [
        "join discord.gg/abc123",
        "https://discordapp.com/invite/xyz",
        "DISCORD.COM/INVITE/Code9",
    ])
    def test_invites_detected(self, content):
        assert detectors.check_invites(content) is True

    def test_bare_invite_domain_is_not_an_invite(self):
        assert detectors.check_invites("visit discord.gg/") is False
        assert detectors.check_invites("discord.gg") is False

    def test_links_need_scheme(self):
        assert detectors.check_links("see https://example.com/page") is True
        assert detectors.check_links("see http://x") is True
        assert detectors.check_links("see example.com") is False
        assert detectors.check_links("https:// nothing") is False


class TestMentions:
    def test_distinct_counting(self):
        assert detectors.count_mentions([1, 1, 2], [5], True) == 4

    def test_strictly_greater_than_max(self):
        assert detectors.check_mention_spam([1, 2, 3], [], False, 3) is False
        assert detectors.check_mention_spam([1, 2, 3], [], True, 3) is True


class TestCaps:
    def test_short_messages_ignored(self):
        assert detectors.check_caps_spam("HELLO", 70) is False

    def test_too_few_letters_ignored(self):
        assert detectors.check_caps_spam("AAAA 1234567890 !!!", 70) is False

    def test_shouting_detected(self):
        assert detectors.check_caps_spam("THIS IS VERY LOUD TEXT", 70) is True

    def test_exactly_at_limit_is_allowed(self):
        # 7 of 10 letters uppercase is exactly 70%
        assert detectors.check_caps_spam("ABCDEFGhij", 70) is False
        assert detectors.check_caps_spam("ABCDEFGHij", 70) is True

    def test_caps_percentage_without_letters(self):
        assert detectors.caps_percentage("1234 !!") is None
        assert detectors.caps_percentage("Ab") == pytest.approx(50.0)


class TestAccountAge:
    def test_disabled_when_zero(self):
        assert detectors.check_account_age(NOW, 0, NOW) is False

    def test_young_account(self):
        assert detectors.check_account_age(NOW - timedelta(days=2), 7, NOW) is True

    def test_exactly_at_threshold_is_old_enough(self):
        assert detectors.check_account_age(NOW - timedelta(days=7), 7, NOW) is False

    def test_naive_creation_time_treated_as_utc(self):
        created = (NOW - timedelta(days=1)).replace(tzinfo=None)
        assert detectors.check_account_age(created, 3, NOW) is True

    def test_missing_creation_time(self):
        assert detectors.check_account_age(None, 3, NOW) is False


def test_censor_word():
    assert detectors.censor_word("badword") == "b*****d"
    assert detectors.censor_word("ab") == "**"
    assert detectors.censor_word("abc") == "a*c"


class TestDetectContent:
    def test_banned_word_wins_over_invite(self):
        policy = make_policy(banned_words=("bad",))
        violation = detectors.detect_content(make_message("bad discord.gg/abc"), policy)
        assert violation.kind is ViolationKind.BANNED_WORD
        assert violation.reason == "Used banned word"
        assert violation.detail["word"] == "bad"

    def test_invite_wins_over_link(self):
        policy = make_policy(filter_links=True)
        violation = detectors.detect_content(make_message("https://discord.gg/abc"), policy)
        assert violation.kind is ViolationKind.INVITE_LINK

    def test_links_only_when_enabled(self):
        message = make_message("https://example.com")
        assert detectors.detect_content(message, make_policy()) is None
        violation = detectors.detect_content(message, make_policy(filter_links=True))
        assert violation.kind is ViolationKind.EXTERNAL_LINK
        assert violation.reason == "Posted external link"

    def test_mention_spam(self):
        message = make_message(
            "hi",
            mentioned_user_ids=tuple(UserID(i) for i in range(10, 14)),
            mentioned_role_ids=(RoleID(99),),
            mentions_everyone=True,
        )
        violation = detectors.detect_content(message, make_policy(max_mentions=5))
        assert violation.kind is ViolationKind.MENTION_SPAM
        assert violation.reason == "Exceeded 5 mentions"
        assert violation.detail["mentions"] == 6

    def test_mention_limit_zero_disables(self):
        message = make_message("hi", mentioned_user_ids=tuple(UserID(i) for i in range(10, 30)))
        assert detectors.detect_content(message, make_policy(max_mentions=0)) is None

    def test_caps_spam(self):
        violation = detectors.detect_content(make_message("STOP SHOUTING AT ME"), make_policy())
        assert violation.kind is ViolationKind.CAPS_SPAM
        assert violation.reason == "Message exceeded 70% caps"

    def test_caps_limit_of_100_disables(self):
        assert detectors.detect_content(make_message("STOP SHOUTING AT ME"), make_policy(max_caps_percent=100)) is None

    def test_clean_message(self):
        assert detectors.detect_content(make_message("hello there friends"), make_policy()) is None

    def test_empty_content(self):
        assert detectors.detect_content(make_message(""), make_policy(banned_words=("bad",))) is None


class TestDetectAccountAge:
    def test_reports_young_account(self):
        message = make_message("hi", author_created_at=NOW - timedelta(days=1))
        violation = detectors.detect_account_age(message, make_policy(min_account_age_days=7), NOW)
        assert violation.kind is ViolationKind.NEW_ACCOUNT
        assert violation.reason == "Account is less than 7 days old"
        assert not violation.kind.deletes_message

    def test_disabled(self):
        message = make_message("hi", author_created_at=NOW - timedelta(days=1))
        assert detectors.detect_account_age(message, make_policy(), NOW) is None
