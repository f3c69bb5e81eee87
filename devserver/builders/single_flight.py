"""Single-flight execution of builds keyed by target."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from devserver.builders.make import BuildError

logger = logging.getLogger(__name__)


class BuildSuperseded(BuildError):
    """Raised to the caller of a build that a newer request for the same target replaced."""

    def __init__(self, target: str) -> None:
        super().__init__(target, f"make {target} was superseded by a newer build")


class SingleFlightBuilder:
    """
    Runs at most one build per target.

    A request for a target that is already building cancels the stale build
    and starts a fresh one once the stale build has finished unwinding (its
    subprocess killed). The stale caller gets ``BuildSuperseded``; the newest
    caller gets the build result.
    """

    def __init__(self, build: Callable[[str], Awaitable[str | None]]) -> None:
        self._build = build
        self._tasks: dict[str, asyncio.Task[str | None]] = {}
        self._superseded: set[asyncio.Task[str | None]] = set()
        # Every unfinished task per target, including superseded ones still unwinding
        self._active: dict[str, set[asyncio.Task[str | None]]] = {}

    async def _build_after(self, stale: set[asyncio.Task[str | None]], target: str) -> str | None:
        if stale:
            await asyncio.wait(stale)
        return await self._build(target)

    async def run(self, target: str) -> str | None:
        """Build a target, superseding any in-flight build of it."""
        existing = self._tasks.get(target)
        if existing is not None and not existing.done():
            logger.info(f"Cancelling stale build of {target}")
            self._superseded.add(existing)
            existing.cancel()

        active = self._active.setdefault(target, set())
        stale = {t for t in active if not t.done()}

        task: asyncio.Task[str | None] = asyncio.create_task(self._build_after(stale, target))
        self._tasks[target] = task
        active.add(task)
        task.add_done_callback(active.discard)

        try:
            return await task
        except asyncio.CancelledError:
            if task in self._superseded:
                raise BuildSuperseded(target) from None
            raise
        finally:
            self._superseded.discard(task)
            if self._tasks.get(target) is task:
                del self._tasks[target]

    def in_flight(self) -> list[str]:
        """Targets with a build currently running or waiting to start."""
        return sorted(target for target, task in self._tasks.items() if not task.done())

    def cancel_all(self) -> None:
        """Cancel all in-flight builds."""
        for task in self._tasks.values():
            task.cancel()
        self._tasks.clear()
