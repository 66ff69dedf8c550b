"""Data models for ghdeck."""

from .rows import (
    Assignee,
    BranchRow,
    Comment,
    IssueRow,
    ItemState,
    Label,
    NotificationRow,
    PageInfo,
    PullRequestRow,
    Row,
    RowBase,
    RowIdentity,
    RowKind,
    utcnow,
)
from .schemas import Bookmark, DoneNotification

__all__ = [
    "Assignee",
    "Bookmark",
    "BranchRow",
    "Comment",
    "DoneNotification",
    "IssueRow",
    "ItemState",
    "Label",
    "NotificationRow",
    "PageInfo",
    "PullRequestRow",
    "Row",
    "RowBase",
    "RowIdentity",
    "RowKind",
    "utcnow",
]
