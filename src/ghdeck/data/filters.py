"""Parse notification search strings.

Notification sections accept ``repo:owner/name``, ``reason:<reason>`` and
``is:unread|read|all|done`` qualifiers.
"""

import re
from dataclasses import dataclass, field
from enum import Enum

REPO_FILTER_RE = re.compile(r"repo:(\S+)")
STATE_FILTER_RE = re.compile(r"is:(unread|read|done|all)\b")
REASON_FILTER_RE = re.compile(r"reason:(\S+)")

# Reasons the "participating" meta-reason stands for
PARTICIPATING_REASONS = (
    "author",
    "comment",
    "mention",
    "review_requested",
    "assign",
    "state_change",
)

# Hyphenated spellings accepted in search strings
REASON_ALIASES = {
    "review-requested": "review_requested",
    "team-mention": "team_mention",
    "ci-activity": "ci_activity",
    "security-alert": "security_alert",
    "state-change": "state_change",
}


class ReadState(str, Enum):
    UNREAD = "unread"
    READ = "read"
    ALL = "all"


@dataclass
class NotificationFilters:
    repos: list[str] = field(default_factory=list)
    reasons: list[str] = field(default_factory=list)
    read_state: ReadState = ReadState.UNREAD
    is_done: bool = False
    # Default view: bookmarked threads stay visible once read
    include_bookmarked: bool = True

    def include(self, unread: bool, bookmarked: bool = False) -> bool:
        """Whether a non-done thread with this read state belongs in the list."""
        if self.include_bookmarked and bookmarked:
            return True
        if self.read_state == ReadState.UNREAD:
            return unread
        if self.read_state == ReadState.READ:
            return not unread
        return True

    def matches_reason(self, reason: str) -> bool:
        return not self.reasons or reason in self.reasons


def parse_reasons(search: str) -> list[str]:
    reasons: list[str] = []
    for reason in REASON_FILTER_RE.findall(search):
        if reason == "participating":
            reasons.extend(PARTICIPATING_REASONS)
        else:
            reasons.append(REASON_ALIASES.get(reason, reason))
    return reasons


def parse_notification_filters(search: str) -> NotificationFilters:
    states = set(STATE_FILTER_RE.findall(search))
    filters = NotificationFilters(
        repos=REPO_FILTER_RE.findall(search),
        reasons=parse_reasons(search),
        is_done="done" in states,
    )

    if "all" in states or {"read", "unread"} <= states:
        filters.read_state = ReadState.ALL
        filters.include_bookmarked = False
    elif "read" in states:
        filters.read_state = ReadState.READ
        filters.include_bookmarked = False
    elif "unread" in states:
        # Explicit is:unread hides read bookmarks
        filters.include_bookmarked = False

    return filters
