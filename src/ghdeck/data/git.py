"""Read local branch information from a git clone."""

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from ghdeck.data.gh import CommandFailed, CommandRunner, Runner
from ghdeck.models import BranchRow, utcnow

logger = logging.getLogger(__name__)

_FIELD_SEP = "\x00"
_BRANCH_FORMAT = _FIELD_SEP.join(
    [
        "%(refname:short)",
        "%(committerdate:iso-strict)",
        "%(subject)",
        "%(HEAD)",
        "%(upstream:short)",
        "%(upstream:track,nobracket)",
    ]
)
_TRACK_RE = re.compile(r"(ahead|behind) (\d+)")


def parse_remote_url(url: str) -> str:
    """Turn a GitHub remote URL into ``owner/name``.

    Handles ``https://github.com/owner/repo(.git)``, ``git@github.com:owner/repo.git``
    and ``ssh://git@github.com/owner/repo``.

    Raises:
        ValueError: If the URL does not name a repository.
    """
    url = url.strip()
    if url.startswith("git@"):
        match = re.match(r"git@[^:]+:([^/]+)/(.+?)(?:\.git)?/?$", url)
        if match:
            return f"{match.group(1)}/{match.group(2)}"
    else:
        parsed = urlparse(url)
        parts = parsed.path.strip("/").split("/")
        if len(parts) >= 2 and parts[0] and parts[1]:
            name = parts[1][:-4] if parts[1].endswith(".git") else parts[1]
            return f"{parts[0]}/{name}"

    raise ValueError(f"Unable to parse GitHub remote URL: {url}")


def parse_track(track: str) -> tuple[int, int]:
    """``"ahead 2, behind 1"`` -> ``(2, 1)``."""
    counts = {"ahead": 0, "behind": 0}
    for kind, count in _TRACK_RE.findall(track):
        counts[kind] = int(count)
    return counts["ahead"], counts["behind"]


def parse_branch_line(line: str, repo: str = "") -> Optional[BranchRow]:
    fields = line.split(_FIELD_SEP)
    if len(fields) < 6 or not fields[0]:
        return None
    name, committed, subject, head, upstream, track = fields[:6]
    try:
        updated_at = datetime.fromisoformat(committed) if committed else utcnow()
    except ValueError:
        updated_at = utcnow()
    ahead, behind = parse_track(track)
    return BranchRow(
        title=name,
        repo_name_with_owner=repo,
        updated_at=updated_at,
        created_at=updated_at,
        last_commit_message=subject,
        is_current=head.strip() == "*",
        upstream=upstream,
        ahead=ahead,
        behind=behind,
    )


class Git:
    """Thin wrapper over ``git`` for one working directory."""

    def __init__(self, path: Optional[Path] = None, runner: Optional[Runner] = None):
        self.path = path or Path.cwd()
        self.runner = runner or CommandRunner(cwd=self.path)

    def is_repo(self) -> bool:
        try:
            return self.runner.run(["git", "rev-parse", "--is-inside-work-tree"]).strip() == "true"
        except CommandFailed:
            return False

    def origin_url(self) -> Optional[str]:
        try:
            return self.runner.run(["git", "remote", "get-url", "origin"]).strip() or None
        except CommandFailed:
            return None

    def remote_repo(self) -> Optional[str]:
        """``owner/name`` of the origin remote, or None outside a GitHub clone."""
        url = self.origin_url()
        if not url:
            return None
        try:
            return parse_remote_url(url)
        except ValueError:
            logger.debug("origin is not a GitHub URL: %s", url)
            return None

    def list_branches(self, repo: str = "") -> list[BranchRow]:
        """Local branches, most recently committed first."""
        output = self.runner.run(
            ["git", "for-each-ref", "--sort=-committerdate", f"--format={_BRANCH_FORMAT}", "refs/heads"]
        )
        rows = []
        for line in output.splitlines():
            row = parse_branch_line(line, repo)
            if row is not None:
                rows.append(row)
        return rows
