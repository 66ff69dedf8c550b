"""GitHub API client for ghdeck.

This module provides:
- GraphQL search for pull requests and issues, paginated by cursor
- REST notifications, paginated by page number
- Repo labels and the authenticated user's login
- Retry with exponential backoff and rate limit handling
"""

import logging
import os
import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

import httpx

from ghdeck.data.gh import gh_auth_token
from ghdeck.exceptions import GhDeckError
from ghdeck.models import (
    Assignee,
    Comment,
    IssueRow,
    ItemState,
    Label,
    NotificationRow,
    PageInfo,
    PullRequestRow,
    utcnow,
)

logger = logging.getLogger(__name__)

_LINK_NEXT_RE = re.compile(r'<[^>]*[?&]page=(\d+)[^>]*>;\s*rel="next"')
_SUBJECT_NUMBER_RE = re.compile(r"/(?:pulls|issues)/(\d+)$")

_ASSIGNEES = "assignees(first: 10) { nodes { login } }"
_LABELS = "labels(first: 20) { nodes { name color } }"
_COMMENTS = "comments(last: 10) { totalCount nodes { author { login } body createdAt } }"

PULL_REQUESTS_QUERY = f"""
query SearchPullRequests($query: String!, $limit: Int!, $endCursor: String) {{
  search(type: ISSUE, first: $limit, after: $endCursor, query: $query) {{
    issueCount
    pageInfo {{ hasNextPage startCursor endCursor }}
    nodes {{
      ... on PullRequest {{
        number title body url state isDraft mergeable reviewDecision
        additions deletions headRefName baseRefName createdAt updatedAt
        author {{ login }}
        repository {{ nameWithOwner isArchived }}
        {_ASSIGNEES}
        {_LABELS}
        {_COMMENTS}
      }}
    }}
  }}
}}
"""

ISSUES_QUERY = f"""
query SearchIssues($query: String!, $limit: Int!, $endCursor: String) {{
  search(type: ISSUE, first: $limit, after: $endCursor, query: $query) {{
    issueCount
    pageInfo {{ hasNextPage startCursor endCursor }}
    nodes {{
      ... on Issue {{
        number title body url state createdAt updatedAt
        author {{ login }}
        repository {{ nameWithOwner isArchived }}
        {_ASSIGNEES}
        {_LABELS}
        {_COMMENTS}
      }}
    }}
  }}
}}
"""


class GitHubAPIError(GhDeckError):
    """GraphQL returned errors or the response had an unexpected shape."""


@dataclass
class RateLimitInfo:
    """GitHub API rate limit information."""

    limit: int = 5000
    remaining: int = 5000
    reset_at: float = 0.0

    @classmethod
    def from_headers(cls, headers: httpx.Headers) -> "RateLimitInfo":
        """Parse rate limit info from response headers."""
        return cls(
            limit=int(headers.get("x-ratelimit-limit", 5000)),
            remaining=int(headers.get("x-ratelimit-remaining", 5000)),
            reset_at=float(headers.get("x-ratelimit-reset", 0)),
        )

    @property
    def is_exhausted(self) -> bool:
        return self.remaining <= 0

    @property
    def seconds_until_reset(self) -> float:
        return max(0, self.reset_at - time.time())


@dataclass
class SearchPage:
    """One page of search or notification results."""

    rows: list = field(default_factory=list)
    total_count: int = 0
    page_info: PageInfo = field(default_factory=PageInfo)


def _parse_time(value: Optional[str]) -> datetime:
    if not value:
        return utcnow()
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _logins(node: dict, key: str) -> tuple[Assignee, ...]:
    return tuple(Assignee(login=n["login"]) for n in (node.get(key) or {}).get("nodes", []) if n)


def _labels(node: dict) -> tuple[Label, ...]:
    return tuple(Label(name=n["name"], color=n.get("color", "")) for n in (node.get("labels") or {}).get("nodes", []) if n)


def _comments(node: dict) -> tuple[Comment, ...]:
    return tuple(
        Comment(
            author=(n.get("author") or {}).get("login", ""),
            body=n.get("body", ""),
            created_at=_parse_time(n.get("createdAt")),
        )
        for n in (node.get("comments") or {}).get("nodes", [])
        if n
    )


def _common_fields(node: dict) -> dict[str, Any]:
    return {
        "number": node["number"],
        "title": node.get("title", ""),
        "body": node.get("body") or "",
        "url": node.get("url", ""),
        "state": ItemState(node.get("state", "OPEN")),
        "author": (node.get("author") or {}).get("login", ""),
        "repo_name_with_owner": node["repository"]["nameWithOwner"],
        "created_at": _parse_time(node.get("createdAt")),
        "updated_at": _parse_time(node.get("updatedAt")),
        "assignees": _logins(node, "assignees"),
        "labels": _labels(node),
        "comments": _comments(node),
        "comment_count": (node.get("comments") or {}).get("totalCount", 0),
    }


def pull_request_from_node(node: dict) -> PullRequestRow:
    return PullRequestRow(
        **_common_fields(node),
        is_draft=node.get("isDraft", False),
        mergeable=node.get("mergeable") or "",
        review_decision=node.get("reviewDecision") or "",
        additions=node.get("additions", 0),
        deletions=node.get("deletions", 0),
        head_ref_name=node.get("headRefName", ""),
        base_ref_name=node.get("baseRefName", ""),
    )


def issue_from_node(node: dict) -> IssueRow:
    return IssueRow(**_common_fields(node))


def subject_html_url(repo: str, subject: dict) -> str:
    """Browser URL for a notification subject; falls back to the repo page."""
    match = _SUBJECT_NUMBER_RE.search(subject.get("url") or "")
    if match and subject.get("type") == "PullRequest":
        return f"https://github.com/{repo}/pull/{match.group(1)}"
    if match:
        return f"https://github.com/{repo}/issues/{match.group(1)}"
    return f"https://github.com/{repo}"


def notification_from_json(data: dict) -> NotificationRow:
    subject = data.get("subject") or {}
    repo = (data.get("repository") or {}).get("full_name", "")
    match = _SUBJECT_NUMBER_RE.search(subject.get("url") or "")
    updated_at = _parse_time(data.get("updated_at"))
    last_read = data.get("last_read_at")
    return NotificationRow(
        id=str(data["id"]),
        title=subject.get("title", ""),
        repo_name_with_owner=repo,
        number=int(match.group(1)) if match else 0,
        url=subject_html_url(repo, subject),
        updated_at=updated_at,
        created_at=updated_at,
        reason=data.get("reason", ""),
        subject_type=subject.get("type", ""),
        subject_url=subject.get("url") or "",
        latest_comment_url=subject.get("latest_comment_url") or "",
        unread=data.get("unread", True),
        last_read_at=_parse_time(last_read) if last_read else None,
    )


def next_page_from_link(link_header: str) -> Optional[int]:
    """Page number of the ``rel="next"`` link, if any."""
    match = _LINK_NEXT_RE.search(link_header or "")
    return int(match.group(1)) if match else None


def resolve_token() -> Optional[str]:
    """Token from GITHUB_TOKEN / GH_TOKEN, else from ``gh auth token``."""
    return os.environ.get("GITHUB_TOKEN") or os.environ.get("GH_TOKEN") or gh_auth_token()


class GitHubClient:
    """Client for the GitHub REST and GraphQL APIs with rate limit handling."""

    BASE_URL = "https://api.github.com"

    def __init__(
        self,
        token: Optional[str] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        respect_rate_limit: bool = True,
    ):
        """Initialize GitHub client.

        Args:
            token: GitHub token. Searching notifications requires one.
            max_retries: Maximum number of retries for failed requests.
            retry_delay: Base delay between retries (exponential backoff).
            respect_rate_limit: If True, wait when rate limited instead of failing.
        """
        self.token = token
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.respect_rate_limit = respect_rate_limit
        self._client: Optional[httpx.Client] = None
        self._rate_limit = RateLimitInfo()

    @property
    def client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._client is None:
            headers = {
                "Accept": "application/vnd.github+json",
                "User-Agent": "ghdeck",
            }
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.Client(
                base_url=self.BASE_URL,
                headers=headers,
                timeout=30.0,
                follow_redirects=True,
            )
        return self._client

    @property
    def rate_limit(self) -> RateLimitInfo:
        return self._rate_limit

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            self._client.close()
            self._client = None

    def __enter__(self) -> "GitHubClient":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def _wait_for_reset(self) -> bool:
        wait_time = self._rate_limit.seconds_until_reset + 1
        if 0 < wait_time < 900:  # Max 15 min wait
            logger.info("rate limited, sleeping %.0fs", wait_time)
            time.sleep(wait_time)
            return True
        return False

    def _request_with_retry(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Make a request with retry and rate limit handling.

        Raises:
            httpx.HTTPStatusError: If the request still fails after retries.
        """
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries + 1):
            try:
                if self._rate_limit.is_exhausted and self.respect_rate_limit:
                    self._wait_for_reset()

                response = self.client.request(method, url, **kwargs)
                self._rate_limit = RateLimitInfo.from_headers(response.headers)

                if response.status_code == 403 and "rate limit" in response.text.lower():
                    if self.respect_rate_limit and self._wait_for_reset():
                        continue
                    raise httpx.HTTPStatusError(
                        f"Rate limit exceeded. Resets in {self._rate_limit.seconds_until_reset:.0f}s",
                        request=response.request,
                        response=response,
                    )

                if response.status_code >= 500:
                    response.raise_for_status()

                return response

            except (httpx.ConnectError, httpx.ReadTimeout, httpx.HTTPStatusError) as e:
                last_error = e
                if attempt < self.max_retries:
                    delay = self.retry_delay * (2**attempt)
                    logger.debug("%s %s failed (%s), retrying in %.1fs", method, url, e, delay)
                    time.sleep(delay)
                    continue
                raise

        if last_error:
            raise last_error
        raise RuntimeError("Request failed without error")

    def get(self, url: str, **kwargs) -> httpx.Response:
        """Make GET request with retry handling."""
        response = self._request_with_retry("GET", url, **kwargs)
        response.raise_for_status()
        return response

    def graphql(self, query: str, variables: dict[str, Any]) -> dict:
        """Run a GraphQL query and return its ``data``.

        Raises:
            GitHubAPIError: If the response carries GraphQL errors.
        """
        response = self._request_with_retry("POST", "/graphql", json={"query": query, "variables": variables})
        response.raise_for_status()
        payload = response.json()
        if payload.get("errors"):
            message = "; ".join(e.get("message", "unknown error") for e in payload["errors"])
            raise GitHubAPIError(message)
        return payload.get("data") or {}

    def _search(self, query: str, search: str, limit: int, end_cursor: Optional[str]) -> tuple[list[dict], int, PageInfo]:
        data = self.graphql(query, {"query": search, "limit": limit, "endCursor": end_cursor})
        result = data.get("search")
        if result is None:
            raise GitHubAPIError("search returned no data")
        info = result.get("pageInfo") or {}
        page_info = PageInfo(
            has_next_page=info.get("hasNextPage", False),
            start_cursor=info.get("startCursor") or "",
            end_cursor=info.get("endCursor") or "",
        )
        nodes = [n for n in result.get("nodes", []) if n and not n["repository"].get("isArchived")]
        return nodes, result.get("issueCount", 0), page_info

    def search_pull_requests(self, filters: str, limit: int, end_cursor: Optional[str] = None) -> SearchPage:
        search = " ".join(p for p in ("is:pr", filters.strip(), "sort:updated") if p)
        logger.debug("searching PRs: %r after %s", search, end_cursor)
        nodes, total, page_info = self._search(PULL_REQUESTS_QUERY, search, limit, end_cursor)
        return SearchPage([pull_request_from_node(n) for n in nodes], total, page_info)

    def search_issues(self, filters: str, limit: int, end_cursor: Optional[str] = None) -> SearchPage:
        search = " ".join(p for p in ("is:issue archived:false", filters.strip(), "sort:updated") if p)
        logger.debug("searching issues: %r after %s", search, end_cursor)
        nodes, total, page_info = self._search(ISSUES_QUERY, search, limit, end_cursor)
        return SearchPage([issue_from_node(n) for n in nodes], total, page_info)

    def list_notifications(
        self,
        limit: int,
        page: int = 1,
        include_read: bool = False,
        repo: Optional[str] = None,
    ) -> SearchPage:
        """One page of notification threads.

        The page cursor is the page number: ``start_cursor`` is this page,
        ``end_cursor`` the next one.
        """
        path = f"/repos/{repo}/notifications" if repo else "/notifications"
        params: dict[str, Any] = {"per_page": limit, "page": page}
        if include_read:
            params["all"] = "true"
        response = self.get(path, params=params)
        items = response.json()

        next_page = next_page_from_link(response.headers.get("link", ""))
        has_next = next_page is not None if "link" in response.headers else len(items) >= limit
        rows = [notification_from_json(item) for item in items]
        return SearchPage(
            rows,
            len(rows),
            PageInfo(has_next_page=has_next, start_cursor=str(page), end_cursor=str(next_page or page + 1)),
        )

    def get_notification(self, thread_id: str) -> NotificationRow:
        return notification_from_json(self.get(f"/notifications/threads/{thread_id}").json())

    def get_repo_labels(self, repo: str) -> list[Label]:
        response = self.get(f"/repos/{repo}/labels", params={"per_page": 100})
        return [Label(name=item["name"], color=item.get("color", "")) for item in response.json()]

    def get_current_login(self) -> str:
        return self.get("/user").json()["login"]
