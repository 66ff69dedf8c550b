"""Messages exchanged between the section host and background work.

Every command produces exactly one ``CompletionMessage``. Its payload is one
of a closed set: a fetched page or a field-level patch for a single row.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence, Union

from ghdeck.engine.tasks import Task
from ghdeck.exceptions import FetchError, TaskError
from ghdeck.models import (
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
    RowIdentity,
)

logger = logging.getLogger(__name__)


class SectionType(str, Enum):
    PRS = "prs"
    ISSUES = "issues"
    NOTIFICATIONS = "notifications"
    BRANCHES = "branches"


@dataclass(frozen=True)
class PageFetched:
    """Result of one page fetch."""

    rows: Sequence[Row]
    total_count: int
    page_info: Optional[PageInfo] = None


def _merge_assignees(current: tuple[Assignee, ...], added: tuple[str, ...], removed: tuple[str, ...]) -> tuple[Assignee, ...]:
    """Set union with ``added`` then difference with ``removed``, keeping order."""
    logins = [a.login for a in current]
    for login in added:
        if login not in logins:
            logins.append(login)
    return tuple(Assignee(login=login) for login in logins if login not in removed)


@dataclass(frozen=True)
class IssuePatch:
    """Field changes for one issue. ``None`` means unchanged."""

    identity: RowIdentity
    is_closed: Optional[bool] = None
    new_comment: Optional[Comment] = None
    added_assignees: tuple[str, ...] = ()
    removed_assignees: tuple[str, ...] = ()
    labels: Optional[tuple[Label, ...]] = None

    row_type = IssueRow

    def _common_updates(self, row: Union[IssueRow, PullRequestRow]) -> dict:
        update: dict = {}
        if self.is_closed is not None:
            update["state"] = ItemState.CLOSED if self.is_closed else ItemState.OPEN
        if self.new_comment is not None:
            update["comments"] = row.comments + (self.new_comment,)
            update["comment_count"] = row.comment_count + 1
        if self.added_assignees or self.removed_assignees:
            update["assignees"] = _merge_assignees(row.assignees, self.added_assignees, self.removed_assignees)
        if self.labels is not None:
            update["labels"] = self.labels
        return update

    def apply(self, row: Row) -> Row:
        return row.model_copy(update=self._common_updates(row))


@dataclass(frozen=True)
class PullRequestPatch(IssuePatch):
    """Field changes for one pull request."""

    is_merged: Optional[bool] = None
    ready_for_review: Optional[bool] = None

    row_type = PullRequestRow

    def apply(self, row: Row) -> Row:
        update = self._common_updates(row)
        if self.is_merged:
            update["state"] = ItemState.MERGED
            update["mergeable"] = ""
        if self.ready_for_review is not None:
            update["is_draft"] = not self.ready_for_review
        return row.model_copy(update=update)


@dataclass(frozen=True)
class NotificationPatch:
    identity: RowIdentity
    unread: Optional[bool] = None
    is_done: Optional[bool] = None
    is_bookmarked: Optional[bool] = None

    row_type = NotificationRow

    def apply(self, row: Row) -> Row:
        update = {
            name: value
            for name, value in (("unread", self.unread), ("is_done", self.is_done), ("is_bookmarked", self.is_bookmarked))
            if value is not None
        }
        return row.model_copy(update=update)


@dataclass(frozen=True)
class AllNotificationsRead:
    """Every loaded notification is now read."""


@dataclass(frozen=True)
class BranchPatch:
    identity: RowIdentity
    is_deleted: Optional[bool] = None
    pr_number: Optional[int] = None

    row_type = BranchRow

    def apply(self, row: Row) -> Row:
        update: dict = {}
        if self.is_deleted is not None:
            update["is_deleted"] = self.is_deleted
        if self.pr_number is not None:
            update["pr_number"] = self.pr_number
            update["number"] = self.pr_number
        return row.model_copy(update=update)


RowPatch = Union[IssuePatch, PullRequestPatch, NotificationPatch, BranchPatch]
Payload = Union[PageFetched, RowPatch, AllNotificationsRead, None]


@dataclass(frozen=True)
class CompletionMessage:
    """The single result of a command, routed to a section by id."""

    section_id: int
    section_type: SectionType
    task_id: str
    error: Optional[TaskError] = None
    payload: Payload = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class Command:
    """A unit of background work: run ``fn`` and wrap its result or failure.

    ``execute()`` never raises; failures become a completion message whose
    ``error`` is an instance of ``error_cls`` carrying the task id.
    """

    task: Task
    section_id: int
    section_type: SectionType
    fn: Callable[[], Payload]
    error_cls: type[TaskError] = FetchError

    def execute(self) -> CompletionMessage:
        try:
            payload = self.fn()
        except Exception as e:
            logger.warning("command %s failed: %s", self.task.id, e)
            return CompletionMessage(
                section_id=self.section_id,
                section_type=self.section_type,
                task_id=self.task.id,
                error=self.error_cls(str(e) or type(e).__name__, task_id=self.task.id, cause=e),
            )
        return CompletionMessage(
            section_id=self.section_id,
            section_type=self.section_type,
            task_id=self.task.id,
            payload=payload,
        )
