"""Main ghdeck TUI application."""

import logging
import webbrowser
from typing import Optional

from textual import events, on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, VerticalScroll
from textual.css.query import NoMatches
from textual.widgets import DataTable, Footer, Header, Input, Markdown, Static

from ghdeck.config import DashConfig
from ghdeck.engine.host import SectionHost
from ghdeck.engine.messages import Command, CompletionMessage
from ghdeck.engine.mutations import MutationKind, UnsupportedMutation
from ghdeck.engine.tasks import TaskState, TaskStatusEvent
from ghdeck.models import BranchRow, IssueRow, NotificationRow, PullRequestRow, Row

logger = logging.getLogger(__name__)

# Seconds between status line refreshes (expires success banners)
TICK_SECONDS = 0.5

VIEW_TITLES = {
    "prs": "Pull Requests",
    "issues": "Issues",
    "notifications": "Notifications",
    "repo": "Repo",
}


def _labels_line(row) -> str:
    if not row.labels:
        return ""
    return "🏷️ " + ", ".join(label.name for label in row.labels)


def _assignees_line(row) -> str:
    if not row.assignees:
        return ""
    return "👤 " + ", ".join(f"@{a.login}" for a in row.assignees)


def render_preview(row: Optional[Row]) -> str:
    """Markdown shown in the preview sidebar for the selected row."""
    if row is None:
        return "*Nothing selected*"

    if isinstance(row, (PullRequestRow, IssueRow)):
        lines = [f"# {row.title}", "", f"**{row.repo_name_with_owner}#{row.number}** · {row.state.value.lower()} · by @{row.author}"]
        if isinstance(row, PullRequestRow):
            draft = " · draft" if row.is_draft else ""
            lines += ["", f"`{row.head_ref_name}` → `{row.base_ref_name}` · +{row.additions} -{row.deletions}{draft}"]
            if row.review_decision:
                lines.append(f"Review: {row.review_decision.lower().replace('_', ' ')}")
        for extra in (_labels_line(row), _assignees_line(row)):
            if extra:
                lines += ["", extra]
        lines += ["", "---", "", row.body or "*No description provided.*"]
        if row.comments:
            lines += ["", f"## Comments ({row.comment_count})"]
            for comment in row.comments:
                lines += ["", f"**@{comment.author}** · {comment.created_at:%Y-%m-%d}", "", comment.body]
        return "\n".join(lines)

    if isinstance(row, NotificationRow):
        state = "done" if row.is_done else ("unread" if row.unread else "read")
        lines = [
            f"# {row.title}",
            "",
            f"**{row.repo_name_with_owner}** · {row.subject_type} · {row.reason.replace('_', ' ')}",
            "",
            f"State: {state}" + (" · bookmarked" if row.is_bookmarked else ""),
            "",
            f"Updated {row.updated_at:%Y-%m-%d %H:%M}",
            "",
            row.url,
        ]
        return "\n".join(lines)

    if isinstance(row, BranchRow):
        lines = [f"# {row.name}", ""]
        if row.is_deleted:
            lines += ["**deleted**", ""]
        lines += [
            f"Last commit: {row.last_commit_message}",
            "",
            f"Upstream: {row.upstream or 'none'} · ahead {row.ahead} · behind {row.behind}",
        ]
        if row.pr_number:
            lines += ["", f"PR #{row.pr_number}"]
        return "\n".join(lines)

    return f"# {row.title}"


def status_text(event: Optional[TaskStatusEvent], running: int = 0) -> str:
    if event is None:
        return ""
    if event.state == TaskState.START:
        text = f"⏳ {event.text}"
    elif event.state == TaskState.ERROR:
        text = f"❌ {event.text}  (e to dismiss)"
    else:
        text = f"✅ {event.text}"
    if running > 1:
        text += f"  ({running} tasks running)"
    return text


class DashApp(App):
    """Dashboard of GitHub sections driven by a ``SectionHost``."""

    TITLE = "ghdeck"

    CSS = """
    Screen {
        layout: vertical;
    }

    #tabs {
        height: 1;
        padding: 0 1;
        background: $primary-darken-2;
    }

    #main {
        height: 1fr;
    }

    #rows {
        width: 2fr;
        height: 1fr;
    }

    #sidebar {
        width: 1fr;
        height: 1fr;
        border-left: solid $primary;
        padding: 0 1;
    }

    #prompt {
        dock: bottom;
        margin-bottom: 2;
    }

    #pager {
        height: 1;
        padding: 0 1;
        color: $text-muted;
    }

    #status {
        height: 1;
        padding: 0 1;
        background: $surface-darken-1;
    }
    """

    BINDINGS = [
        Binding("q", "quit_app", "Quit", show=True),
        Binding("j,down", "next_row", "Down", show=False),
        Binding("k,up", "prev_row", "Up", show=False),
        Binding("g", "first_row", "First", show=False),
        Binding("G", "last_row", "Last", show=False),
        Binding("l,right", "next_section", "Next Section", show=False),
        Binding("h,left", "prev_section", "Prev Section", show=False),
        Binding("s", "switch_view", "Switch View", show=True),
        Binding("/", "search", "Search", show=True),
        Binding("r", "refresh", "Refresh", show=True),
        Binding("R", "refresh_all", "Refresh All", show=False),
        Binding("p", "toggle_preview", "Preview", show=True),
        Binding("t", "toggle_smart_filter", "Smart Filter", show=False),
        Binding("o", "open_browser", "Open", show=True),
        Binding("x", "close_item", "Close", show=False),
        Binding("X", "reopen_item", "Reopen", show=False),
        Binding("m", "merge", "Merge", show=False),
        Binding("W", "ready", "Ready", show=False),
        Binding("c", "comment", "Comment", show=False),
        Binding("a", "assign", "Assign", show=False),
        Binding("A", "unassign", "Unassign", show=False),
        Binding("L", "label", "Label", show=False),
        Binding("d", "mark_done", "Done", show=False),
        Binding("u", "mark_read", "Read", show=False),
        Binding("U", "mark_all_read", "Read All", show=False),
        Binding("b", "bookmark", "Bookmark", show=False),
        Binding("N", "unsubscribe", "Unsubscribe", show=False),
        Binding("D", "delete_branch", "Delete Branch", show=False),
        Binding("P", "create_pr", "Create PR", show=False),
        Binding("e", "dismiss_error", "Dismiss Error", show=False),
        Binding("escape", "cancel_prompt", "Cancel", show=False),
    ]

    def __init__(self, host: SectionHost, config: Optional[DashConfig] = None):
        super().__init__()
        self.host = host
        self._config = config or host.config
        self.theme = self._config.theme
        self._prompt_kind: Optional[str] = None
        self._quit_armed = False
        self.host.registry.subscribe(self._on_task_status)

    def compose(self) -> ComposeResult:
        yield Header()
        yield Static("", id="tabs", markup=True)
        with Horizontal(id="main"):
            yield DataTable(id="rows", cursor_type="row", zebra_stripes=True)
            with VerticalScroll(id="sidebar"):
                yield Markdown("", id="preview")
        yield Input(placeholder="", id="prompt")
        yield Static("", id="pager")
        yield Static("", id="status", markup=False)
        yield Footer()

    def on_mount(self) -> None:
        table = self.query_one("#rows", DataTable)
        table.can_focus = False
        self.set_focus(None)
        self.query_one("#prompt", Input).display = False
        self.query_one("#sidebar").display = self._config.defaults.preview_open

        self.dispatch(self.host.load())
        self.call_after_refresh(self.sync_viewport)
        self.set_interval(TICK_SECONDS, self._tick)
        minutes = self._config.defaults.refetch_interval_minutes
        if minutes > 0:
            self.set_interval(minutes * 60, self.action_refresh_all)
        self.refresh_view()

    # Background work

    def dispatch(self, commands: list[Command]) -> None:
        for command in commands:
            self.run_command(command)
        if commands:
            self.refresh_view()

    @work(thread=True, group="commands")
    def run_command(self, command: Command) -> None:
        """Run one command off the UI thread and post its completion back."""
        msg = command.execute()
        self.call_from_thread(self.on_completion, msg)

    def on_completion(self, msg: CompletionMessage) -> None:
        self.host.handle(msg)
        self.refresh_view()

    def _on_task_status(self, event: TaskStatusEvent) -> None:
        self._render_status()

    def _tick(self) -> None:
        if self.host.tick():
            self._render_status()

    def _render_status(self) -> None:
        registry = self.host.registry
        task = registry.current()
        event = None
        if task is not None:
            event = TaskStatusEvent(task_id=task.id, section_id=task.section_id, state=task.state, text=task.text)
        if registry.last_error is not None and (event is None or event.state == TaskState.FINISHED):
            error = registry.last_error
            event = TaskStatusEvent(task_id=error.id, section_id=error.section_id, state=error.state, text=error.text)
        try:
            self.query_one("#status", Static).update(status_text(event, registry.running))
        except NoMatches:
            # Not mounted yet
            return

    # Rendering

    def on_resize(self, event: events.Resize) -> None:
        self.call_after_refresh(self.sync_viewport)

    def sync_viewport(self) -> None:
        """Size every section's cursor window to the rows the table can show."""
        try:
            table = self.query_one("#rows", DataTable)
        except NoMatches:
            return
        # One line for the column header
        height = table.size.height - 1
        if height < 1 or height == self.host.viewport_height:
            return
        self.host.set_viewport_height(height)
        self.refresh_view()

    def refresh_view(self) -> None:
        host = self.host
        section = host.current_section()

        tabs = []
        for s in host.sections:
            title = s.title if not s.is_search else f"🔍 {s.filters or 'Search'}"
            count = f" ({len(s.rows)})" if s.rows else (" …" if s.is_loading else "")
            label = f"{title}{count}".replace("[", r"\[")
            tabs.append(f"[reverse] {label} [/]" if s.id == host.focused_section_id else f" {label} ")
        view_title = VIEW_TITLES.get(host.view.value, host.view.value)
        self.query_one("#tabs", Static).update(f"[b]{view_title}[/] │" + "│".join(tabs))

        table = self.query_one("#rows", DataTable)
        table.clear(columns=True)
        if section is not None:
            table.add_columns(*section.columns)
            table.add_rows(section.visible_display_rows())
            if section.rows:
                cursor = section.cursor
                table.move_cursor(row=cursor.current_index - cursor.top_bound_index)
            pager = section.pager_text()
            if section.is_loading:
                pager = f"{pager} loading…".strip()
            elif not section.rows:
                pager = "No results"
            self.query_one("#pager", Static).update(pager)

        self.query_one("#preview", Markdown).update(render_preview(host.current_row()))
        self._render_status()

    # Navigation actions

    def action_next_row(self) -> None:
        self.dispatch(self.host.next_row())
        self.refresh_view()

    def action_prev_row(self) -> None:
        self.host.prev_row()
        self.refresh_view()

    def action_first_row(self) -> None:
        self.host.first_row()
        self.refresh_view()

    def action_last_row(self) -> None:
        self.dispatch(self.host.last_row())
        self.refresh_view()

    def action_next_section(self) -> None:
        self.host.next_section()
        self.refresh_view()

    def action_prev_section(self) -> None:
        self.host.prev_section()
        self.refresh_view()

    def action_switch_view(self) -> None:
        self.dispatch(self.host.switch_view())
        self.refresh_view()

    def action_refresh(self) -> None:
        self.dispatch(self.host.refresh_current())

    def action_refresh_all(self) -> None:
        self.dispatch(self.host.refresh_all())

    def action_toggle_preview(self) -> None:
        sidebar = self.query_one("#sidebar")
        sidebar.display = not sidebar.display

    def action_toggle_smart_filter(self) -> None:
        section = self.host.current_section()
        commands = self.host.toggle_smart_filtering()
        if section is not None:
            state = "on" if section.smart_filtering else "off"
            self.notify(f"Smart filtering {state}")
        self.dispatch(commands)

    def action_open_browser(self) -> None:
        row = self.host.current_row()
        if row is not None and row.url:
            webbrowser.open(row.url)
            self.notify(f"Opening {row.url[:50]}...")
        else:
            self.notify("No URL available", severity="warning")

    def action_dismiss_error(self) -> None:
        self.host.registry.dismiss_error()
        self._render_status()

    def action_quit_app(self) -> None:
        if self._config.confirm_quit and not self._quit_armed:
            self._quit_armed = True
            self.notify("Press q again to quit")
            return
        self.exit()

    # Mutations

    def _mutate(self, kind: MutationKind, **args) -> None:
        try:
            commands = self.host.run_mutation(kind, **args)
        except UnsupportedMutation as e:
            self.notify(str(e), severity="warning")
            return
        self.dispatch(commands)

    def action_close_item(self) -> None:
        self._mutate(MutationKind.CLOSE)

    def action_reopen_item(self) -> None:
        self._mutate(MutationKind.REOPEN)

    def action_merge(self) -> None:
        self._mutate(MutationKind.MERGE)

    def action_ready(self) -> None:
        self._mutate(MutationKind.READY)

    def action_mark_done(self) -> None:
        self._mutate(MutationKind.MARK_DONE)

    def action_mark_read(self) -> None:
        self._mutate(MutationKind.MARK_READ)

    def action_mark_all_read(self) -> None:
        self._mutate(MutationKind.MARK_ALL_READ)

    def action_bookmark(self) -> None:
        self._mutate(MutationKind.BOOKMARK)

    def action_unsubscribe(self) -> None:
        self._mutate(MutationKind.UNSUBSCRIBE)

    def action_delete_branch(self) -> None:
        self._mutate(MutationKind.DELETE_BRANCH)

    # Prompts

    def _prompt(self, kind: str, placeholder: str, value: str = "") -> None:
        prompt = self.query_one("#prompt", Input)
        self._prompt_kind = kind
        prompt.placeholder = placeholder
        prompt.value = value
        prompt.display = True
        prompt.focus()

    def action_search(self) -> None:
        search = self.host.get_section(0)
        self._prompt("search", "Search filters (e.g. is:open author:@me)", search.filters if search else "")

    def action_comment(self) -> None:
        self._prompt("comment", "Comment")

    def action_assign(self) -> None:
        self._prompt("assign", "Usernames to assign", "@me")

    def action_unassign(self) -> None:
        row = self.host.current_row()
        current = " ".join(a.login for a in getattr(row, "assignees", ()))
        self._prompt("unassign", "Usernames to unassign", current)

    def action_label(self) -> None:
        row = self.host.current_row()
        current = ", ".join(label.name for label in getattr(row, "labels", ()))
        self._prompt("label", "Labels, comma separated", current)

    def action_create_pr(self) -> None:
        row = self.host.current_row()
        if not isinstance(row, BranchRow):
            self.notify("Select a branch first", severity="warning")
            return
        self._prompt("create_pr", "Pull request title", row.last_commit_message)

    def action_cancel_prompt(self) -> None:
        prompt = self.query_one("#prompt", Input)
        if prompt.display:
            prompt.display = False
            self._prompt_kind = None
            self.set_focus(None)

    @on(Input.Submitted, "#prompt")
    def on_prompt_submitted(self, event: Input.Submitted) -> None:
        kind = self._prompt_kind
        value = event.value
        self.action_cancel_prompt()

        if kind == "search":
            self.dispatch(self.host.search(value))
        elif kind == "comment":
            self._mutate(MutationKind.COMMENT, body=value)
        elif kind == "assign":
            self._mutate(MutationKind.ASSIGN, usernames=value)
        elif kind == "unassign":
            self._mutate(MutationKind.UNASSIGN, usernames=value)
        elif kind == "label":
            self._mutate(MutationKind.LABEL, labels=[name.strip() for name in value.split(",") if name.strip()])
        elif kind == "create_pr":
            self._mutate(MutationKind.CREATE_PR, title=value)
        self.refresh_view()
