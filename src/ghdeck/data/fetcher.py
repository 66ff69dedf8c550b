"""Adapt the GitHub client, git and the state store to the section fetch contract."""

import logging
from typing import Optional

import httpx

from ghdeck.data.filters import NotificationFilters, ReadState, parse_notification_filters
from ghdeck.data.git import Git
from ghdeck.data.github import GitHubClient, SearchPage
from ghdeck.data.store import StateStore
from ghdeck.engine.messages import PageFetched, SectionType
from ghdeck.exceptions import FetchError
from ghdeck.models import NotificationRow, PageInfo

logger = logging.getLogger(__name__)

DONE_NOT_RETRIEVABLE = "done notifications cannot be retrieved"


class GitHubFetcher:
    """Fetch one page of rows for any section type. Called from worker threads."""

    def __init__(self, client: GitHubClient, store: StateStore, git: Optional[Git] = None):
        self.client = client
        self.store = store
        self.git = git

    def fetch_page(
        self,
        section_type: SectionType,
        filters: str,
        limit: int,
        page_info: Optional[PageInfo],
    ) -> PageFetched:
        end_cursor = page_info.end_cursor if page_info is not None else None
        if section_type == SectionType.PRS:
            return self._to_page(self.client.search_pull_requests(filters, limit, end_cursor))
        if section_type == SectionType.ISSUES:
            return self._to_page(self.client.search_issues(filters, limit, end_cursor))
        if section_type == SectionType.NOTIFICATIONS:
            return self.fetch_notifications(filters, limit, page_info)
        return self.fetch_branches(filters)

    @staticmethod
    def _to_page(page: SearchPage) -> PageFetched:
        return PageFetched(rows=page.rows, total_count=page.total_count, page_info=page.page_info)

    def fetch_branches(self, filters: str = "") -> PageFetched:
        if self.git is None:
            raise FetchError("not inside a git repository")
        repo = self.git.remote_repo() or ""
        rows = self.git.list_branches(repo)
        needle = filters.strip().lower()
        if needle:
            rows = [row for row in rows if needle in row.name.lower()]
        return PageFetched(rows=rows, total_count=len(rows), page_info=PageInfo(has_next_page=False))

    def fetch_notifications(self, search: str, limit: int, page_info: Optional[PageInfo]) -> PageFetched:
        """Fetch notifications, reading further pages while local filtering leaves fewer than ``limit``.

        Raises:
            FetchError: When the search asks for ``is:done``.
        """
        filters = parse_notification_filters(search)
        if filters.is_done:
            raise FetchError(DONE_NOT_RETRIEVABLE)

        bookmarked = set(self.store.bookmarked_ids()) if filters.include_bookmarked else set()
        page = int(page_info.end_cursor) if page_info is not None and page_info.end_cursor else 1
        first_page = page
        rows: list[NotificationRow] = []
        seen: set[str] = set()

        while True:
            raw, last_info = self._notification_page(filters, limit, page)
            if page == first_page and page_info is None:
                raw.extend(self._missing_bookmarks(filters, bookmarked, {n.id for n in raw}))

            for row in raw:
                if row.id in seen or self.store.is_done(row.id, row.updated_at):
                    continue
                seen.add(row.id)
                is_bookmarked = row.id in bookmarked
                if not filters.include(row.unread, is_bookmarked) or not filters.matches_reason(row.reason):
                    continue
                rows.append(row.model_copy(update={"is_bookmarked": is_bookmarked}) if is_bookmarked else row)

            if len(rows) >= limit or not last_info.has_next_page:
                break
            page += 1
            logger.debug("notifications: %d after filtering, reading page %d", len(rows), page)

        result_info = PageInfo(
            has_next_page=last_info.has_next_page,
            start_cursor=str(first_page),
            end_cursor=str(page + 1),
        )
        return PageFetched(rows=rows, total_count=len(rows), page_info=result_info)

    def _notification_page(self, filters: NotificationFilters, limit: int, page: int) -> tuple[list[NotificationRow], PageInfo]:
        include_read = filters.read_state != ReadState.UNREAD
        if not filters.repos:
            result = self.client.list_notifications(limit, page, include_read)
            return list(result.rows), result.page_info

        rows: list[NotificationRow] = []
        has_next = False
        for repo in filters.repos:
            result = self.client.list_notifications(limit, page, include_read, repo=repo)
            rows.extend(result.rows)
            has_next = has_next or result.page_info.has_next_page
        return rows, PageInfo(has_next_page=has_next, start_cursor=str(page), end_cursor=str(page + 1))

    def _missing_bookmarks(self, filters: NotificationFilters, bookmarked: set[str], fetched: set[str]) -> list[NotificationRow]:
        """Bookmarked threads that aged out of the first page (for example once read)."""
        rows = []
        for thread_id in sorted(bookmarked - fetched):
            try:
                row = self.client.get_notification(thread_id)
            except httpx.HTTPError as e:
                logger.debug("could not load bookmarked thread %s: %s", thread_id, e)
                continue
            if filters.repos and row.repo_name_with_owner not in filters.repos:
                continue
            rows.append(row)
        return rows
