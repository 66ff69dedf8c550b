"""Headless asyncio update loop for the section host.

Commands run in threads (``asyncio.to_thread``) and post their completion
messages to a queue. Only the loop touches section state.
"""

import asyncio
import logging
from typing import Callable, Iterable, Optional

from ghdeck.engine.host import SectionHost
from ghdeck.engine.messages import Command, CompletionMessage
from ghdeck.engine.section import UpdateOutcome

logger = logging.getLogger(__name__)


class UpdateLoop:
    """Run commands concurrently and apply their completions in arrival order.

    Args:
        host: The section host completions are delivered to.
        on_update: Called after each completion is handled, with the
            message and the outcome; may return follow-up commands.
    """

    def __init__(
        self,
        host: SectionHost,
        on_update: Optional[Callable[[CompletionMessage, UpdateOutcome], Iterable[Command]]] = None,
    ):
        self.host = host
        self.on_update = on_update
        self.queue: asyncio.Queue[CompletionMessage] = asyncio.Queue()
        self._pending: set[asyncio.Task] = set()
        self._outstanding = 0
        self.handled = 0

    async def _run(self, command: Command) -> None:
        msg = await asyncio.to_thread(command.execute)
        await self.queue.put(msg)

    def dispatch(self, commands: Iterable[Command]) -> None:
        """Fire each command as an independent task."""
        for command in commands:
            self._outstanding += 1
            task = asyncio.create_task(self._run(command), name=command.task.id)
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    @property
    def in_flight(self) -> int:
        """Commands dispatched whose completion has not been handled yet."""
        return self._outstanding

    async def step(self) -> UpdateOutcome:
        """Wait for one completion and apply it."""
        msg = await self.queue.get()
        self._outstanding -= 1
        outcome = self.host.handle(msg)
        self.handled += 1
        if self.on_update is not None:
            self.dispatch(self.on_update(msg, outcome) or ())
        self.queue.task_done()
        return outcome

    async def run_until_idle(self, commands: Iterable[Command] = ()) -> int:
        """Dispatch ``commands`` and apply completions until nothing is in flight.

        Returns:
            Number of completions handled.
        """
        self.dispatch(commands)
        handled = 0
        while self.in_flight:
            await self.step()
            handled += 1
        return handled
