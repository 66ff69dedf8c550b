"""Sections: one filtered, paginated list of rows with its cursor.

A section owns the fetch-more-pages state machine and reconciles mutation
patches into its rows. It never performs I/O itself: every fetch is returned
as a ``Command`` for the host to run, and results come back through
``update()``.
"""

import logging
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, ClassVar, Optional, Protocol

from ghdeck.config import SectionConfig
from ghdeck.engine.cursor import Cursor
from ghdeck.engine.messages import (
    AllNotificationsRead,
    Command,
    CompletionMessage,
    PageFetched,
    SectionType,
)
from ghdeck.engine.tasks import Task
from ghdeck.exceptions import FetchError
from ghdeck.models import (
    BranchRow,
    IssueRow,
    NotificationRow,
    PageInfo,
    PullRequestRow,
    Row,
    RowIdentity,
)

logger = logging.getLogger(__name__)

SEARCH_SECTION_ID = 0
FETCH_TASK_PREFIX = "fetching_"


class UpdateOutcome(str, Enum):
    """What ``Section.update()`` did with a completion message."""

    APPLIED = "applied"
    STALE = "stale"  # fetch result for a task the section no longer waits for
    NOT_FOUND = "not_found"  # patch for a row identity not in the section
    FAILED = "failed"
    IGNORED = "ignored"


class Fetcher(Protocol):
    """Fetch collaborator. Runs on a worker; may raise."""

    def fetch_page(
        self,
        section_type: SectionType,
        filters: str,
        limit: int,
        page_info: Optional[PageInfo],
    ) -> PageFetched: ...


def has_repo_qualifier(filters: str) -> bool:
    return any(token.startswith("repo:") for token in filters.split())


class Section(ABC):
    """Base class for every section kind."""

    section_type: ClassVar[SectionType]
    row_type: ClassVar[type]
    noun: ClassVar[str]
    columns: ClassVar[tuple[str, ...]]
    supports_smart_filtering: ClassVar[bool] = False

    def __init__(
        self,
        id: int,
        config: SectionConfig,
        fetcher: Fetcher,
        limit: int = 20,
        viewport_height: int = 20,
        item_height: int = 1,
        repo: Optional[str] = None,
        smart_filtering: bool = False,
        clock: Callable[[], float] = time.time,
    ):
        self.id = id
        self.config = config
        self.title = config.title
        self.filters = config.filters
        self.limit = limit
        self.fetcher = fetcher
        self.repo = repo
        self.smart_filtering = smart_filtering
        self.clock = clock

        self.rows: list[Row] = []
        self.total_count = 0
        self.page_info: Optional[PageInfo] = None
        self.last_fetch_task_id: Optional[str] = None
        self.is_loading = False
        self.cursor = Cursor(viewport_height=viewport_height, item_height=item_height)
        self._awaiting_task_id: Optional[str] = None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id} title={self.title!r} rows={len(self.rows)}>"

    @property
    def is_search(self) -> bool:
        return self.id == SEARCH_SECTION_ID

    @property
    def effective_filters(self) -> str:
        """Filters sent to the fetcher, with the clone's repo prepended when smart filtering is on."""
        if (
            self.supports_smart_filtering
            and self.smart_filtering
            and self.repo
            and not has_repo_qualifier(self.filters)
        ):
            return f"repo:{self.repo} {self.filters}".strip()
        return self.filters

    # Fetching

    def _fetch_task(self, task_id: str) -> Task:
        return Task(
            id=task_id,
            start_text=f'Fetching {self.noun} for "{self.title}"',
            finished_text=f'{self.noun} for "{self.title}" have been fetched',
            section_id=self.id,
        )

    def fetch_next_page(self) -> list[Command]:
        """Commands to load the next page, or none when nothing is left to load.

        Issuing the same page twice while the first request is in flight
        yields no second command.
        """
        if self.page_info is not None and not self.page_info.has_next_page:
            return []

        cursor_key = self.page_info.start_cursor if self.page_info is not None else f"{self.clock():.6f}"
        task_id = f"{FETCH_TASK_PREFIX}{self.section_type.value}_{self.id}_{cursor_key}"
        if task_id == self._awaiting_task_id:
            return []

        self.last_fetch_task_id = task_id
        self._awaiting_task_id = task_id
        self.is_loading = True

        fetcher = self.fetcher
        section_type = self.section_type
        filters = self.effective_filters
        limit = self.limit
        page_info = self.page_info

        def fetch() -> PageFetched:
            return fetcher.fetch_page(section_type, filters, limit, page_info)

        logger.debug("section %s fetching %r after %s", self.id, filters, page_info)
        return [Command(self._fetch_task(task_id), self.id, section_type, fetch, FetchError)]

    def reset(self) -> list[Command]:
        """Drop all rows and fetch the first page again."""
        self.rows = []
        self.total_count = 0
        self.page_info = None
        self.cursor.set_num_items(0)
        self.cursor.reset()
        self._awaiting_task_id = None
        return self.fetch_next_page()

    def set_filters(self, filters: str) -> list[Command]:
        self.filters = filters
        return self.reset()

    def toggle_smart_filtering(self) -> list[Command]:
        """Flip smart filtering; refetch only when the effective filters change."""
        before = self.effective_filters
        self.smart_filtering = not self.smart_filtering
        if self.effective_filters == before:
            return []
        return self.reset()

    # Completions

    def update(self, msg: CompletionMessage) -> UpdateOutcome:
        """Apply a completion routed to this section."""
        if msg.task_id == self._awaiting_task_id:
            return self._on_page(msg)

        if isinstance(msg.payload, PageFetched) or msg.task_id.startswith(FETCH_TASK_PREFIX):
            logger.debug("section %s discarding stale fetch %s", self.id, msg.task_id)
            return UpdateOutcome.STALE

        if msg.error is not None:
            return UpdateOutcome.FAILED

        if msg.payload is None:
            return UpdateOutcome.IGNORED

        outcome = self._apply_patch(msg.payload)
        if outcome == UpdateOutcome.NOT_FOUND:
            logger.debug("section %s dropped patch for missing row: %s", self.id, msg.task_id)
        return outcome

    def _on_page(self, msg: CompletionMessage) -> UpdateOutcome:
        self._awaiting_task_id = None
        self.is_loading = False

        if msg.error is not None:
            return UpdateOutcome.FAILED

        page = msg.payload
        if not isinstance(page, PageFetched):
            return UpdateOutcome.IGNORED

        if self.page_info is None:
            self.rows = list(page.rows)
        else:
            self.rows.extend(page.rows)
        self.total_count = page.total_count
        self.page_info = page.page_info or PageInfo(has_next_page=False)
        self.cursor.set_num_items(len(self.rows))
        self.cursor.clamp()
        logger.debug("section %s now has %d/%d rows", self.id, len(self.rows), self.total_count)
        return UpdateOutcome.APPLIED

    def _apply_patch(self, patch) -> UpdateOutcome:
        index = self.find_row(patch.identity, patch.row_type)
        if index is None:
            return UpdateOutcome.NOT_FOUND
        self.rows[index] = patch.apply(self.rows[index])
        self.is_loading = False
        return UpdateOutcome.APPLIED

    def find_row(self, identity: RowIdentity, row_type: Optional[type] = None) -> Optional[int]:
        for index, row in enumerate(self.rows):
            if row_type is not None and type(row) is not row_type:
                continue
            if row.identity == identity:
                return index
        return None

    # Selection and display

    def current_row(self) -> Optional[Row]:
        index = self.cursor.current_index
        if 0 <= index < len(self.rows):
            return self.rows[index]
        return None

    def display_rows(self) -> list[tuple[str, ...]]:
        """Table cells for every row, rebuilt from ``rows`` on each call."""
        return [self.render_row(row) for row in self.rows]

    def visible_display_rows(self) -> list[tuple[str, ...]]:
        """Table cells for the rows inside the cursor window."""
        return [self.render_row(self.rows[index]) for index in self.cursor.visible_range()]

    @abstractmethod
    def render_row(self, row: Row) -> tuple[str, ...]:
        """Table cells for one row, matching ``columns``."""

    def pager_text(self) -> str:
        if not self.rows:
            return ""
        return f"{self.noun} {self.cursor.current_index + 1}/{self.total_count or len(self.rows)}"


def _age(row: Row) -> str:
    return row.updated_at.strftime("%Y-%m-%d")


class PullRequestSection(Section):
    section_type = SectionType.PRS
    row_type = PullRequestRow
    noun = "PRs"
    columns = ("State", "Repo", "Title", "Author", "Comments", "Updated")
    supports_smart_filtering = True

    def render_row(self, row: PullRequestRow) -> tuple[str, ...]:
        state = "draft" if row.is_draft and not row.is_closed else row.state.value.lower()
        return (
            state,
            row.repo_name_with_owner,
            f"#{row.number} {row.title}",
            row.author,
            str(row.comment_count),
            _age(row),
        )


class IssueSection(Section):
    section_type = SectionType.ISSUES
    row_type = IssueRow
    noun = "Issues"
    columns = ("State", "Repo", "Title", "Author", "Comments", "Updated")
    supports_smart_filtering = True

    def render_row(self, row: IssueRow) -> tuple[str, ...]:
        return (
            row.state.value.lower(),
            row.repo_name_with_owner,
            f"#{row.number} {row.title}",
            row.author,
            str(row.comment_count),
            _age(row),
        )


class NotificationSection(Section):
    section_type = SectionType.NOTIFICATIONS
    row_type = NotificationRow
    noun = "Notifications"
    columns = ("", "Repo", "Title", "Reason", "Updated")

    def update(self, msg: CompletionMessage) -> UpdateOutcome:
        if isinstance(msg.payload, AllNotificationsRead) and msg.error is None:
            self.rows = [
                row.model_copy(update={"unread": False}) if row.unread else row
                for row in self.rows
            ]
            self.is_loading = False
            return UpdateOutcome.APPLIED
        return super().update(msg)

    def _on_page(self, msg: CompletionMessage) -> UpdateOutcome:
        outcome = super()._on_page(msg)
        # The REST endpoint has no remote total; count what is loaded
        if outcome == UpdateOutcome.APPLIED:
            self.total_count = len(self.rows)
        return outcome

    def render_row(self, row: NotificationRow) -> tuple[str, ...]:
        if row.is_done:
            marker = "done"
        elif row.is_bookmarked:
            marker = "*"
        elif row.unread:
            marker = "o"
        else:
            marker = ""
        title = f"#{row.number} {row.title}" if row.number else row.title
        return (marker, row.repo_name_with_owner, title, row.reason, _age(row))


class BranchSection(Section):
    """Local branches of the current clone; always a single page."""

    section_type = SectionType.BRANCHES
    row_type = BranchRow
    noun = "Branches"
    columns = ("", "Branch", "PR", "Ahead/Behind", "Last commit", "Updated")

    def render_row(self, row: BranchRow) -> tuple[str, ...]:
        marker = "x" if row.is_deleted else ("*" if row.is_current else "")
        return (
            marker,
            row.name,
            f"#{row.pr_number}" if row.pr_number else "",
            f"{row.ahead}/{row.behind}",
            row.last_commit_message,
            _age(row),
        )


SECTION_CLASSES: dict[SectionType, type[Section]] = {
    SectionType.PRS: PullRequestSection,
    SectionType.ISSUES: IssueSection,
    SectionType.NOTIFICATIONS: NotificationSection,
    SectionType.BRANCHES: BranchSection,
}
