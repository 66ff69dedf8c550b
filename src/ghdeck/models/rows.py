"""Row models shown in dashboard sections.

Rows are immutable pydantic models. Reconciliation replaces a row with an
updated copy (``model_copy(update=...)``) so rows that are not patched stay
the very same objects.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar, NamedTuple, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    """Get current UTC time."""
    return datetime.now(timezone.utc)


class RowKind(str, Enum):
    """The closed set of row kinds."""

    PULL_REQUEST = "pr"
    ISSUE = "issue"
    NOTIFICATION = "notification"
    BRANCH = "branch"


class ItemState(str, Enum):
    """State of a pull request or issue as reported by GitHub."""

    OPEN = "OPEN"
    CLOSED = "CLOSED"
    MERGED = "MERGED"


class RowIdentity(NamedTuple):
    """Key used to find a row when reconciling a patch.

    Pull requests and issues use (repo, number); notifications use their
    remote thread id and branches their name, both stored in ``key``.
    """

    repo: str = ""
    number: int = 0
    key: str = ""


class PageInfo(BaseModel):
    """Continuation cursor for a paginated fetch."""

    model_config = ConfigDict(frozen=True)

    has_next_page: bool = False
    start_cursor: str = ""
    end_cursor: str = ""


class Assignee(BaseModel):
    model_config = ConfigDict(frozen=True)

    login: str


class Label(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    color: str = ""


class Comment(BaseModel):
    model_config = ConfigDict(frozen=True)

    author: str = ""
    body: str = ""
    created_at: datetime = Field(default_factory=utcnow)


class RowBase(BaseModel):
    """Fields every row exposes to sections, the sidebar and the footer."""

    model_config = ConfigDict(frozen=True)

    kind: ClassVar[RowKind]

    title: str = ""
    repo_name_with_owner: str = ""
    number: int = 0
    url: str = ""
    updated_at: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def identity(self) -> RowIdentity:
        return RowIdentity(repo=self.repo_name_with_owner, number=self.number)


class PullRequestRow(RowBase):
    """A pull request returned by a search."""

    kind: ClassVar[RowKind] = RowKind.PULL_REQUEST

    body: str = ""
    author: str = ""
    state: ItemState = ItemState.OPEN
    is_draft: bool = False
    mergeable: str = ""
    review_decision: str = ""
    additions: int = 0
    deletions: int = 0
    head_ref_name: str = ""
    base_ref_name: str = ""
    assignees: tuple[Assignee, ...] = ()
    labels: tuple[Label, ...] = ()
    comments: tuple[Comment, ...] = ()
    comment_count: int = 0

    @property
    def is_closed(self) -> bool:
        return self.state != ItemState.OPEN


class IssueRow(RowBase):
    """An issue returned by a search."""

    kind: ClassVar[RowKind] = RowKind.ISSUE

    body: str = ""
    author: str = ""
    state: ItemState = ItemState.OPEN
    assignees: tuple[Assignee, ...] = ()
    labels: tuple[Label, ...] = ()
    comments: tuple[Comment, ...] = ()
    comment_count: int = 0

    @property
    def is_closed(self) -> bool:
        return self.state != ItemState.OPEN


class NotificationRow(RowBase):
    """A notification thread. ``number`` is parsed from the subject URL when present."""

    kind: ClassVar[RowKind] = RowKind.NOTIFICATION

    id: str
    reason: str = ""
    subject_type: str = ""
    subject_url: str = ""
    latest_comment_url: str = ""
    unread: bool = True
    last_read_at: Optional[datetime] = None
    is_done: bool = False
    is_bookmarked: bool = False

    @property
    def identity(self) -> RowIdentity:
        return RowIdentity(key=self.id)


class BranchRow(RowBase):
    """A local branch of the current clone. ``title`` is the branch name."""

    kind: ClassVar[RowKind] = RowKind.BRANCH

    last_commit_message: str = ""
    is_current: bool = False
    upstream: str = ""
    ahead: int = 0
    behind: int = 0
    pr_number: Optional[int] = None
    is_deleted: bool = False

    @property
    def name(self) -> str:
        return self.title

    @property
    def identity(self) -> RowIdentity:
        return RowIdentity(key=self.title)


Row = Union[PullRequestRow, IssueRow, NotificationRow, BranchRow]
