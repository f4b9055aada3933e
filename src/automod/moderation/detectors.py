"""
Stateless violation detectors.

Every function here is pure: it looks at message content or author metadata
plus the relevant policy parameters and returns a verdict. Nothing here touches
the rate tracker, the ledger or the network, and nothing raises on odd input;
empty content or missing metadata simply yields "no violation".
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional, Sequence

from automod.datatypes.policy_datatypes import EffectivePolicy
from automod.datatypes.violation_datatypes import AutomodMessage, Violation, ViolationKind

# discord.gg/<code>, discordapp.com/invite/<code>, discord.com/invite/<code>
INVITE_PATTERN = re.compile(r"(discord\.gg|discordapp\.com/invite|discord\.com/invite)/[a-zA-Z0-9]+", re.IGNORECASE)
LINK_PATTERN = re.compile(r"https?://[^\s]+", re.IGNORECASE)
UPPER_PATTERN = re.compile(r"[A-Z]")
LETTER_PATTERN = re.compile(r"[a-zA-Z]")

DEFAULT_MIN_CAPS_LENGTH = 10


def check_banned_words(content: str, banned_words: Sequence[str]) -> Optional[str]:
    """Return the first banned word (in list order) that appears as a whole word.

    Matching is case-insensitive and bounded by ``\\b`` so ``"bad"`` does not
    match inside ``"badword"``. The returned value is always a member of
    ``banned_words``.
    """
    if not content or not banned_words:
        return None

    for word in banned_words:
        if not word:
            continue
        if re.search(rf"\b{re.escape(word)}\b", content, re.IGNORECASE):
            return word
    return None


def check_invites(content: str) -> bool:
    """True when the content holds a Discord invite link with an invite code."""
    return bool(content) and INVITE_PATTERN.search(content) is not None


def check_links(content: str) -> bool:
    """True when the content holds an ``http://`` or ``https://`` URL."""
    return bool(content) and LINK_PATTERN.search(content) is not None


def count_mentions(user_ids: Iterable, role_ids: Iterable, mentions_everyone: bool) -> int:
    """Distinct users + distinct roles + 1 for @everyone/@here."""
    return len(set(user_ids)) + len(set(role_ids)) + (1 if mentions_everyone else 0)


def check_mention_spam(user_ids: Iterable, role_ids: Iterable, mentions_everyone: bool, max_mentions: int) -> bool:
    """True when the mention count is strictly greater than ``max_mentions``."""
    return count_mentions(user_ids, role_ids, mentions_everyone) > max_mentions


def caps_percentage(content: str) -> Optional[float]:
    """Percentage of ASCII letters that are uppercase, or None without letters."""
    letters = len(LETTER_PATTERN.findall(content or ""))
    if letters == 0:
        return None
    return len(UPPER_PATTERN.findall(content)) / letters * 100


def check_caps_spam(content: str, max_percent: int, min_length: int = DEFAULT_MIN_CAPS_LENGTH) -> bool:
    """True when a long enough message is shouted.

    Messages shorter than ``min_length`` are ignored, as are messages whose
    letter count is below ``min_length``. Non-letters count towards neither
    side of the ratio.
    """
    if not content or len(content) < min_length:
        return False

    letters = len(LETTER_PATTERN.findall(content))
    if letters < min_length or letters == 0:
        return False

    return len(UPPER_PATTERN.findall(content)) / letters * 100 > max_percent


def check_account_age(created_at: Optional[datetime], min_days: int, now: Optional[datetime] = None) -> bool:
    """True when the account is younger than ``min_days``.

    An account exactly ``min_days`` old is old enough. ``min_days <= 0``
    disables the check.
    """
    if min_days <= 0 or created_at is None:
        return False

    now = now or datetime.now(timezone.utc)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return now - created_at < timedelta(days=min_days)


def censor_word(word: str) -> str:
    """Mask a banned word for display, keeping its first and last letter."""
    if len(word) <= 2:
        return "*" * len(word)
    return word[0] + "*" * (len(word) - 2) + word[-1]


# ==========================================
# Policy-level wrappers used by the orchestrator
# ==========================================

def detect_account_age(message: AutomodMessage, policy: EffectivePolicy, now: datetime) -> Optional[Violation]:
    if policy.min_account_age_days <= 0:
        return None
    if not check_account_age(message.author_created_at, policy.min_account_age_days, now):
        return None
    return Violation(
        ViolationKind.NEW_ACCOUNT,
        f"Account is less than {policy.min_account_age_days} days old",
        {"min_days": policy.min_account_age_days},
    )


def detect_content(message: AutomodMessage, policy: EffectivePolicy) -> Optional[Violation]:
    """Run the content detectors in priority order and return the first hit.

    Rate spam is not included; it needs the stateful rate tracker.
    """
    content = message.content or ""

    if policy.banned_words:
        matched = check_banned_words(content, policy.banned_words)
        if matched:
            return Violation(ViolationKind.BANNED_WORD, "Used banned word", {"word": matched})

    if policy.filter_invites and check_invites(content):
        return Violation(ViolationKind.INVITE_LINK, "Posted Discord invite link")

    if policy.filter_links and check_links(content):
        return Violation(ViolationKind.EXTERNAL_LINK, "Posted external link")

    if policy.max_mentions > 0:
        mentions = count_mentions(message.mentioned_user_ids, message.mentioned_role_ids, message.mentions_everyone)
        if mentions > policy.max_mentions:
            return Violation(
                ViolationKind.MENTION_SPAM,
                f"Exceeded {policy.max_mentions} mentions",
                {"mentions": mentions},
            )

    if policy.max_caps_percent < 100:
        min_length = policy.min_caps_length or DEFAULT_MIN_CAPS_LENGTH
        if check_caps_spam(content, policy.max_caps_percent, min_length):
            return Violation(
                ViolationKind.CAPS_SPAM,
                f"Message exceeded {policy.max_caps_percent}% caps",
                {"percent": round(caps_percentage(content) or 0.0, 1)},
            )

    return None
