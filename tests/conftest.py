"""Shared fixtures for ghdeck tests."""

from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

import pytest

from ghdeck.config import DashConfig, SectionConfig
from ghdeck.data.gh import CommandFailed
from ghdeck.engine.messages import PageFetched, SectionType
from ghdeck.models import (
    BranchRow,
    IssueRow,
    NotificationRow,
    PageInfo,
    PullRequestRow,
)

BASE_TIME = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_pr(number: int, repo: str = "o/r", **kwargs) -> PullRequestRow:
    return PullRequestRow(
        title=kwargs.pop("title", f"PR {number}"),
        repo_name_with_owner=repo,
        number=number,
        url=f"https://github.com/{repo}/pull/{number}",
        updated_at=BASE_TIME - timedelta(hours=number),
        **kwargs,
    )


def make_issue(number: int, repo: str = "o/r", **kwargs) -> IssueRow:
    return IssueRow(
        title=kwargs.pop("title", f"Issue {number}"),
        repo_name_with_owner=repo,
        number=number,
        url=f"https://github.com/{repo}/issues/{number}",
        updated_at=BASE_TIME - timedelta(hours=number),
        **kwargs,
    )


def make_notification(thread_id: str, repo: str = "o/r", **kwargs) -> NotificationRow:
    return NotificationRow(
        id=thread_id,
        title=kwargs.pop("title", f"Thread {thread_id}"),
        repo_name_with_owner=repo,
        reason=kwargs.pop("reason", "subscribed"),
        updated_at=kwargs.pop("updated_at", BASE_TIME),
        **kwargs,
    )


def make_branch(name: str, **kwargs) -> BranchRow:
    return BranchRow(title=name, repo_name_with_owner=kwargs.pop("repo", "o/r"), updated_at=BASE_TIME, **kwargs)


class FakeFetcher:
    """Serves queued pages and records every call."""

    def __init__(self, pages: Optional[list] = None):
        self.pages = list(pages or [])
        self.calls: list[tuple] = []

    def queue(self, rows: Sequence, has_next: bool = False, cursor: str = "c1", total: Optional[int] = None) -> None:
        self.pages.append(
            PageFetched(
                rows=list(rows),
                total_count=total if total is not None else len(rows),
                page_info=PageInfo(has_next_page=has_next, start_cursor=cursor, end_cursor=cursor),
            )
        )

    def fetch_page(self, section_type: SectionType, filters: str, limit: int, page_info: Optional[PageInfo]) -> PageFetched:
        self.calls.append((section_type, filters, limit, page_info))
        if not self.pages:
            return PageFetched(rows=[], total_count=0, page_info=PageInfo(has_next_page=False))
        page = self.pages.pop(0)
        if isinstance(page, Exception):
            raise page
        return page


class FakeRunner:
    """Records commands and returns canned output."""

    def __init__(self, outputs: Optional[dict] = None, fail: bool = False):
        self.outputs = outputs or {}
        self.fail = fail
        self.commands: list[list[str]] = []

    def run(self, args: Sequence[str], input: Optional[str] = None) -> str:
        args = list(args)
        self.commands.append(args)
        if self.fail:
            raise CommandFailed(args, 1, "boom")
        return self.outputs.get(" ".join(args[:3]), "")


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        self.now += 1.0
        return self.now


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def config() -> DashConfig:
    """Small config with two PR sections and one of each other kind."""
    return DashConfig(
        pr_sections=[
            SectionConfig(title="Mine", filters="is:open author:@me"),
            SectionConfig(title="Review", filters="is:open review-requested:@me"),
        ],
        issue_sections=[SectionConfig(title="Assigned", filters="is:open assignee:@me")],
        notification_sections=[SectionConfig(title="All", filters="")],
    )
