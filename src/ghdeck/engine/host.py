"""The section host: owns every view's sections and routes completions to them."""

import logging
import time
from typing import Any, Callable, Iterable, Optional

from ghdeck.config import DashConfig, SectionConfig, ViewType
from ghdeck.engine.cache import Caches
from ghdeck.engine.messages import Command, CompletionMessage, SectionType
from ghdeck.engine.mutations import (
    MutationContext,
    MutationKind,
    UnsupportedMutation,
    build_mutation,
)
from ghdeck.engine.section import (
    SEARCH_SECTION_ID,
    SECTION_CLASSES,
    Fetcher,
    Section,
    UpdateOutcome,
)
from ghdeck.engine.tasks import TaskRegistry
from ghdeck.models import Row

logger = logging.getLogger(__name__)

VIEW_CYCLE = (ViewType.NOTIFICATIONS, ViewType.PRS, ViewType.ISSUES, ViewType.REPO)

VIEW_SECTION_TYPES = {
    ViewType.PRS: SectionType.PRS,
    ViewType.ISSUES: SectionType.ISSUES,
    ViewType.NOTIFICATIONS: SectionType.NOTIFICATIONS,
    ViewType.REPO: SectionType.BRANCHES,
}
SECTION_TYPE_VIEWS = {v: k for k, v in VIEW_SECTION_TYPES.items()}


class SectionHost:
    """Sections for each view, the focused section, and task bookkeeping.

    Every method that starts work returns the commands it created, already
    registered with the task registry. The caller runs them (on asyncio or
    Textual workers) and feeds each resulting ``CompletionMessage`` back
    through ``handle()``.
    """

    def __init__(
        self,
        config: DashConfig,
        fetcher: Fetcher,
        mutation_context: Optional[MutationContext] = None,
        registry: Optional[TaskRegistry] = None,
        caches: Optional[Caches] = None,
        repo: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.fetcher = fetcher
        self.caches = caches or (mutation_context.caches if mutation_context else Caches())
        self.mutation_context = mutation_context or MutationContext(caches=self.caches)
        self.mutation_context.caches = self.caches
        self.registry = registry or TaskRegistry()
        self.repo = repo
        self.clock = clock
        self.viewport_height = config.defaults.viewport_height

        self.view = ViewType(config.defaults.view)
        self.focused_section_id = SEARCH_SECTION_ID
        self._views: dict[ViewType, list[Section]] = {}

    # Sections

    def _make_section(self, view: ViewType, section_id: int, section_config: SectionConfig) -> Section:
        section_type = VIEW_SECTION_TYPES[view]
        cls = SECTION_CLASSES[section_type]
        return cls(
            id=section_id,
            config=section_config,
            fetcher=self.fetcher,
            limit=self.config.limit_for(view, section_config),
            viewport_height=self.viewport_height,
            repo=self.repo,
            smart_filtering=self.config.smart_filtering_at_launch and bool(self.repo),
            clock=self.clock,
        )

    def build_sections(self, view: ViewType) -> list[Section]:
        """The search section (id 0) followed by the configured sections (ids 1..n)."""
        sections = [self._make_section(view, SEARCH_SECTION_ID, SectionConfig(title="Search"))]
        for index, section_config in enumerate(self.config.sections_for(view), start=1):
            sections.append(self._make_section(view, index, section_config))
        return sections

    @property
    def sections(self) -> list[Section]:
        return self._views.get(self.view, [])

    def sections_for(self, view: ViewType) -> list[Section]:
        return self._views.get(view, [])

    def get_section(self, section_id: int, view: Optional[ViewType] = None) -> Optional[Section]:
        for section in self.sections_for(view or self.view):
            if section.id == section_id:
                return section
        return None

    def current_section(self) -> Optional[Section]:
        return self.get_section(self.focused_section_id)

    def current_row(self) -> Optional[Row]:
        section = self.current_section()
        return section.current_row() if section else None

    # Views

    def _ensure_view(self, view: ViewType, fetch: bool = True) -> list[Command]:
        """Build a view's sections on first use and fetch their first pages."""
        if view in self._views:
            return []
        sections = self.build_sections(view)
        self._views[view] = sections
        commands: list[Command] = []
        if fetch:
            for section in sections:
                if not section.is_search:
                    commands.extend(section.fetch_next_page())
        return commands

    def open_section(self, view: ViewType, section_id: int) -> list[Command]:
        """Show ``view`` focused on one section and fetch only that section."""
        self.view = view
        self._ensure_view(view, fetch=False)
        section = self.get_section(section_id)
        if section is None:
            return []
        self.focused_section_id = section_id
        return self.start(section.reset())

    def load(self, view: Optional[ViewType] = None) -> list[Command]:
        """Show ``view`` (the configured default when omitted) focused on its first section."""
        self.view = view or self.view
        commands = self._ensure_view(self.view)
        self.focused_section_id = 1 if len(self.sections) > 1 else SEARCH_SECTION_ID
        return self.start(commands)

    def switch_view(self, view: Optional[ViewType] = None) -> list[Command]:
        """Show ``view``, or the next one in the cycle.

        Focus moves to the first non-search section that has rows, else to
        the search section.
        """
        if view is None:
            view = VIEW_CYCLE[(VIEW_CYCLE.index(self.view) + 1) % len(VIEW_CYCLE)]
        self.view = view
        commands = self._ensure_view(view)
        self.focused_section_id = next(
            (s.id for s in self.sections if not s.is_search and s.rows),
            SEARCH_SECTION_ID,
        )
        logger.debug("switched to %s, focus %s", view.value, self.focused_section_id)
        return self.start(commands)

    # Commands and completions

    def start(self, commands: Iterable[Command]) -> list[Command]:
        started = []
        for command in commands:
            self.registry.start(command.task)
            started.append(command)
        return started

    def route(self, section_id: int, section_type: SectionType, msg: CompletionMessage) -> UpdateOutcome:
        """Deliver ``msg`` to its section, in whichever view that section lives."""
        section = self.get_section(section_id, SECTION_TYPE_VIEWS[section_type])
        if section is None:
            logger.debug("no section %s/%s for %s", section_type.value, section_id, msg.task_id)
            return UpdateOutcome.NOT_FOUND
        return section.update(msg)

    def handle(self, msg: CompletionMessage) -> UpdateOutcome:
        """Finish the message's task, then route it."""
        self.registry.finish(msg.task_id, msg.error)
        outcome = self.route(msg.section_id, msg.section_type, msg)
        logger.debug("completion %s -> %s", msg.task_id, outcome.value)
        return outcome

    # Navigation

    def _after_move(self, section: Section) -> list[Command]:
        if section.cursor.is_at_last():
            return self.start(section.fetch_next_page())
        return []

    def next_row(self) -> list[Command]:
        """Move down; landing on the last loaded row fetches the next page."""
        section = self.current_section()
        if section is None or not section.rows:
            return []
        section.cursor.next()
        return self._after_move(section)

    def prev_row(self) -> None:
        section = self.current_section()
        if section is not None:
            section.cursor.prev()

    def first_row(self) -> None:
        section = self.current_section()
        if section is not None:
            section.cursor.first()

    def last_row(self) -> list[Command]:
        section = self.current_section()
        if section is None or not section.rows:
            return []
        section.cursor.last()
        return self._after_move(section)

    def _move_section(self, step: int) -> None:
        ids = [s.id for s in self.sections]
        if not ids:
            return
        index = ids.index(self.focused_section_id) if self.focused_section_id in ids else 0
        self.focused_section_id = ids[(index + step) % len(ids)]

    def next_section(self) -> None:
        self._move_section(1)

    def prev_section(self) -> None:
        self._move_section(-1)

    # Refresh and filters

    def refresh_current(self) -> list[Command]:
        section = self.current_section()
        if section is None:
            return []
        if section.repo:
            self.caches.clear_for(section.repo)
        return self.start(section.reset())

    def refresh_all(self) -> list[Command]:
        self.caches.clear()
        commands: list[Command] = []
        for section in self.sections:
            if not section.is_search or section.filters:
                commands.extend(section.reset())
        return self.start(commands)

    def search(self, filters: str) -> list[Command]:
        """Run ``filters`` in the search section and focus it."""
        section = self.get_section(SEARCH_SECTION_ID)
        if section is None:
            return []
        self.focused_section_id = SEARCH_SECTION_ID
        return self.start(section.set_filters(filters.strip()))

    def toggle_smart_filtering(self) -> list[Command]:
        section = self.current_section()
        if section is None:
            return []
        return self.start(section.toggle_smart_filtering())

    # Mutations

    def run_mutation(self, kind: MutationKind, **args: Any) -> list[Command]:
        """Start ``kind`` against the current row.

        Raises:
            UnsupportedMutation: If the operation does not apply to the row.
        """
        section = self.current_section()
        if section is None:
            return []
        if kind == MutationKind.MARK_ALL_READ and section.section_type != SectionType.NOTIFICATIONS:
            raise UnsupportedMutation("mark all read applies to notifications")
        command = build_mutation(
            kind,
            self.current_row(),
            section.id,
            section.section_type,
            self.mutation_context,
            **args,
        )
        return self.start([command])

    def set_viewport_height(self, height: int) -> None:
        """Resize the cursor window of every built section to ``height`` rows."""
        self.viewport_height = max(1, height)
        for sections in self._views.values():
            for section in sections:
                section.cursor.set_viewport_height(self.viewport_height)

    def tick(self) -> list[str]:
        """Expire finished task banners."""
        return self.registry.expire()
