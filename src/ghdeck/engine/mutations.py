"""Mutations run through ``gh``/``git``, each producing a row patch on success.

Task ids are derived from the operation and the row key (``pr_close_482``,
``notification_done_123``), so repeating an operation replaces its status
entry instead of adding a new one.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional, Protocol, Sequence

from ghdeck.data.gh import CommandRunner, Runner
from ghdeck.engine.cache import Caches
from ghdeck.engine.messages import (
    AllNotificationsRead,
    BranchPatch,
    Command,
    IssuePatch,
    NotificationPatch,
    Payload,
    PullRequestPatch,
    SectionType,
)
from ghdeck.engine.tasks import Task
from ghdeck.exceptions import GhDeckError, MutationError
from ghdeck.models import (
    BranchRow,
    Comment,
    IssueRow,
    Label,
    NotificationRow,
    PullRequestRow,
    Row,
    utcnow,
)

logger = logging.getLogger(__name__)

_PR_URL_RE = re.compile(r"/pull/(\d+)\s*$")


class MutationKind(str, Enum):
    CLOSE = "close"
    REOPEN = "reopen"
    READY = "ready"
    MERGE = "merge"
    COMMENT = "comment"
    ASSIGN = "assign"
    UNASSIGN = "unassign"
    LABEL = "label"
    MARK_DONE = "done"
    MARK_READ = "read"
    MARK_ALL_READ = "read_all"
    UNSUBSCRIBE = "unsubscribe"
    BOOKMARK = "bookmark"
    DELETE_BRANCH = "delete_branch"
    CREATE_PR = "create_pr"


ISSUE_LIKE_KINDS = {
    MutationKind.CLOSE,
    MutationKind.REOPEN,
    MutationKind.COMMENT,
    MutationKind.ASSIGN,
    MutationKind.UNASSIGN,
    MutationKind.LABEL,
}
PR_ONLY_KINDS = {MutationKind.READY, MutationKind.MERGE}
NOTIFICATION_KINDS = {
    MutationKind.MARK_DONE,
    MutationKind.MARK_READ,
    MutationKind.MARK_ALL_READ,
    MutationKind.UNSUBSCRIBE,
    MutationKind.BOOKMARK,
}
BRANCH_KINDS = {MutationKind.DELETE_BRANCH, MutationKind.CREATE_PR}


class UnsupportedMutation(GhDeckError):
    """The operation does not apply to the selected row."""


class NotificationState(Protocol):
    def mark_done(self, thread_id: str, updated_at: Optional[datetime] = None) -> None: ...

    def toggle_bookmark(self, thread_id: str) -> bool: ...


@dataclass
class MutationContext:
    """Collaborators mutations need. ``git_runner`` runs inside the clone."""

    runner: Runner = field(default_factory=CommandRunner)
    git_runner: Optional[Runner] = None
    store: Optional[NotificationState] = None
    caches: Caches = field(default_factory=Caches)
    label_loader: Optional[Callable[[str], list[Label]]] = None
    login_loader: Optional[Callable[[], str]] = None

    def repo_labels(self, repo: str) -> list[Label]:
        if self.label_loader is None:
            return self.caches.labels.get(repo) or []
        return self.caches.labels.get_or_load(repo, self.label_loader)

    def resolve_user(self, name: str) -> str:
        """Login for a username; ``@me`` resolves to the viewer when a loader is set."""
        name = name.strip()
        if name == "@me" and self.login_loader is not None:
            loader = self.login_loader
            return self.caches.users.get_or_load(name, lambda _: loader())
        return name.lstrip("@")


def supports(kind: MutationKind, row: Optional[Row]) -> bool:
    """Whether ``kind`` applies to ``row``. Mark-all-read needs no row."""
    if kind == MutationKind.MARK_ALL_READ:
        return True
    if isinstance(row, PullRequestRow):
        return kind in ISSUE_LIKE_KINDS or kind in PR_ONLY_KINDS
    if isinstance(row, IssueRow):
        return kind in ISSUE_LIKE_KINDS
    if isinstance(row, NotificationRow):
        return kind in NOTIFICATION_KINDS
    if isinstance(row, BranchRow):
        return kind in BRANCH_KINDS
    return False


def _usernames(args: dict[str, Any]) -> tuple[str, ...]:
    names = args.get("usernames") or ()
    if isinstance(names, str):
        names = names.replace(",", " ").split()
    return tuple(n.strip() for n in names if n.strip())


def _describe(names: Sequence[str]) -> str:
    return ", ".join(names)


def _issue_like(kind: MutationKind, row: Row, args: dict[str, Any], ctx: MutationContext) -> tuple[Task, Callable[[], Payload]]:
    is_pr = isinstance(row, PullRequestRow)
    cli_noun = "pr" if is_pr else "issue"
    label = "PR" if is_pr else "Issue"
    patch_cls = PullRequestPatch if is_pr else IssuePatch
    number = row.number
    repo = row.repo_name_with_owner
    base = [cli_noun]
    target = [str(number), "-R", repo]
    identity = row.identity

    def task(prefix: str, start: str, finished: str) -> Task:
        return Task(id=f"{cli_noun}_{prefix}_{number}", start_text=start, finished_text=finished)

    if kind in (MutationKind.CLOSE, MutationKind.REOPEN):
        closing = kind == MutationKind.CLOSE
        verb = "close" if closing else "reopen"
        t = task(
            verb,
            f"{'Closing' if closing else 'Reopening'} {label} #{number}",
            f"{label} #{number} has been {'closed' if closing else 'reopened'}",
        )

        def run() -> Payload:
            ctx.runner.run(["gh", *base, verb, *target])
            return patch_cls(identity=identity, is_closed=closing)

        return t, run

    if kind == MutationKind.READY:
        t = task("ready", f"Marking PR #{number} as ready for review", f"PR #{number} has been marked as ready for review")

        def run() -> Payload:
            ctx.runner.run(["gh", "pr", "ready", *target])
            return PullRequestPatch(identity=identity, ready_for_review=True)

        return t, run

    if kind == MutationKind.MERGE:
        t = Task(id=f"merge_{number}", start_text=f"Merging PR #{number}", finished_text=f"PR #{number} has been merged")
        method = args.get("method", "merge")

        def run() -> Payload:
            ctx.runner.run(["gh", "pr", "merge", *target, f"--{method}"])
            return PullRequestPatch(identity=identity, is_merged=True)

        return t, run

    if kind == MutationKind.COMMENT:
        body = (args.get("body") or "").strip()
        if not body:
            raise UnsupportedMutation("comment body is empty")
        t = task("comment", f"Commenting on {label} #{number}", f"Commented on {label} #{number}")

        def run() -> Payload:
            ctx.runner.run(["gh", *base, "comment", *target, "--body", body])
            comment = Comment(author=args.get("author", ""), body=body, created_at=utcnow())
            return patch_cls(identity=identity, new_comment=comment)

        return t, run

    if kind in (MutationKind.ASSIGN, MutationKind.UNASSIGN):
        names = _usernames(args)
        if not names:
            raise UnsupportedMutation("no usernames given")
        assigning = kind == MutationKind.ASSIGN
        flag = "--add-assignee" if assigning else "--remove-assignee"
        if assigning:
            t = task("assign", f"Assigning {cli_noun} #{number} to {_describe(names)}", f"{cli_noun} #{number} has been assigned to {_describe(names)}")
        else:
            t = task("unassign", f"Unassigning {_describe(names)} from {cli_noun} #{number}", f"{_describe(names)} unassigned from {cli_noun} #{number}")

        def run() -> Payload:
            logins = tuple(ctx.resolve_user(name) for name in names)
            cmd = ["gh", *base, "edit", *target]
            for login in logins:
                cmd += [flag, login]
            ctx.runner.run(cmd)
            if assigning:
                return patch_cls(identity=identity, added_assignees=logins)
            return patch_cls(identity=identity, removed_assignees=logins)

        return t, run

    if kind == MutationKind.LABEL:
        wanted = [name for name in (args.get("labels") or []) if name]
        current = [lbl.name for lbl in row.labels]
        added = [name for name in wanted if name not in current]
        removed = [name for name in current if name not in wanted]
        t = task("label", f"Updating labels on {label} #{number}", f"Labels on {label} #{number} have been updated")

        def run() -> Payload:
            if added or removed:
                cmd = ["gh", *base, "edit", *target]
                for name in added:
                    cmd += ["--add-label", name]
                for name in removed:
                    cmd += ["--remove-label", name]
                ctx.runner.run(cmd)
            colors = {lbl.name: lbl.color for lbl in ctx.repo_labels(repo)}
            colors.update({lbl.name: lbl.color for lbl in row.labels if lbl.color})
            labels = tuple(Label(name=name, color=colors.get(name, "")) for name in wanted)
            return patch_cls(identity=identity, labels=labels)

        return t, run

    raise UnsupportedMutation(f"{kind.value} does not apply to {label.lower()}s")


def _notification(kind: MutationKind, row: Optional[NotificationRow], ctx: MutationContext) -> tuple[Task, Callable[[], Payload]]:
    if kind == MutationKind.MARK_ALL_READ:
        t = Task(
            id="notification_read_all",
            start_text="Marking all notifications as read",
            finished_text="All notifications have been marked as read",
        )

        def run_all() -> Payload:
            ctx.runner.run(["gh", "api", "-X", "PUT", "notifications"])
            return AllNotificationsRead()

        return t, run_all

    if row is None:
        raise UnsupportedMutation(f"{kind.value} needs a selected notification")
    thread = row.id
    identity = row.identity
    updated_at = row.updated_at

    if kind == MutationKind.MARK_DONE:
        t = Task(id=f"notification_done_{thread}", start_text="Marking notification as done", finished_text="Notification marked as done")

        def run() -> Payload:
            ctx.runner.run(["gh", "api", "-X", "DELETE", f"notifications/threads/{thread}"])
            if ctx.store is not None:
                ctx.store.mark_done(thread, updated_at)
            return NotificationPatch(identity=identity, is_done=True, unread=False)

        return t, run

    if kind == MutationKind.MARK_READ:
        t = Task(id=f"notification_read_{thread}", start_text="Marking notification as read", finished_text="Notification marked as read")

        def run() -> Payload:
            ctx.runner.run(["gh", "api", "-X", "PATCH", f"notifications/threads/{thread}"])
            return NotificationPatch(identity=identity, unread=False)

        return t, run

    if kind == MutationKind.UNSUBSCRIBE:
        t = Task(id=f"notification_unsubscribe_{thread}", start_text="Unsubscribing from thread", finished_text="Unsubscribed from thread")

        def run() -> Payload:
            ctx.runner.run(["gh", "api", "-X", "DELETE", f"notifications/threads/{thread}/subscription"])
            return None

        return t, run

    if kind == MutationKind.BOOKMARK:
        t = Task(id=f"notification_bookmark_{thread}", start_text="Updating bookmark", finished_text="Bookmark updated")

        def run() -> Payload:
            if ctx.store is None:
                raise MutationError("bookmarks need a state store")
            return NotificationPatch(identity=identity, is_bookmarked=ctx.store.toggle_bookmark(thread))

        return t, run

    raise UnsupportedMutation(f"{kind.value} does not apply to notifications")


def _branch(kind: MutationKind, row: BranchRow, args: dict[str, Any], ctx: MutationContext) -> tuple[Task, Callable[[], Payload]]:
    name = row.name
    identity = row.identity
    git_runner = ctx.git_runner or ctx.runner

    if kind == MutationKind.DELETE_BRANCH:
        if row.is_current:
            raise UnsupportedMutation("cannot delete the checked out branch")
        t = Task(id=f"branch_delete_{name}", start_text=f"Deleting branch {name}", finished_text=f"Branch {name} has been deleted")

        def run() -> Payload:
            git_runner.run(["git", "branch", "-D", name])
            return BranchPatch(identity=identity, is_deleted=True)

        return t, run

    if kind == MutationKind.CREATE_PR:
        title = (args.get("title") or row.last_commit_message or name).strip()
        body = args.get("body", "")
        t = Task(id=f"branch_create_pr_{name}", start_text=f'Creating PR "{title}"', finished_text=f'PR "{title}" has been created')

        def run() -> Payload:
            cmd = ["gh", "pr", "create", "--title", title, "--body", body, "--head", name]
            if row.repo_name_with_owner:
                cmd += ["-R", row.repo_name_with_owner]
            output = git_runner.run(cmd)
            match = _PR_URL_RE.search(output.strip())
            if match is None:
                raise MutationError(f"could not read the new PR number from: {output.strip()!r}")
            return BranchPatch(identity=identity, pr_number=int(match.group(1)))

        return t, run

    raise UnsupportedMutation(f"{kind.value} does not apply to branches")


def build_mutation(
    kind: MutationKind,
    row: Optional[Row],
    section_id: int,
    section_type: SectionType,
    ctx: MutationContext,
    **args: Any,
) -> Command:
    """Command that runs ``kind`` against ``row`` and reports a patch for it.

    Raises:
        UnsupportedMutation: If ``kind`` does not apply to ``row`` or its
            arguments are missing.
    """
    if not supports(kind, row):
        raise UnsupportedMutation(f"{kind.value} does not apply here")

    if kind in NOTIFICATION_KINDS:
        task, run = _notification(kind, row, ctx)
    elif isinstance(row, BranchRow):
        task, run = _branch(kind, row, args, ctx)
    else:
        task, run = _issue_like(kind, row, args, ctx)

    task.section_id = section_id
    logger.debug("built mutation %s", task.id)
    return Command(task, section_id, section_type, run, MutationError)
