"""
Watch coordinator for specification sources.

In development mode it subscribes two watchers on the live-reload service:

- a broad watcher over content and asset files that reloads browsers on change
- a source watcher over the Bikeshed documents that rebuilds the matching
  HTML with ``make`` and reloads once the build succeeds
"""

import logging
import re
from enum import Enum
from functools import partial
from typing import Any

from devserver.builders.make import BuildError, SettlePolicy, run_make
from devserver.builders.single_flight import BuildSuperseded, SingleFlightBuilder
from devserver.services.live_reload import LiveReloadService

logger = logging.getLogger(__name__)

CONTENT_PATTERNS: tuple[str, ...] = ("archive/**", "charter/**", "spec/**", "*.html", "*.css", "*.js")
SOURCE_PATTERNS: tuple[str, ...] = ("spec/{latest,1.1}/index.bs",)

SOURCE_SUFFIX = re.compile(r"\.bs$")
OUTPUT_SUFFIX = ".html"


class WatchState(Enum):
    """Coordinator lifecycle. There is no transition back to IDLE."""

    IDLE = "idle"
    WATCHING = "watching"


def derive_output_path(source: str) -> str:
    """Map a Bikeshed source path to the HTML file ``make`` produces for it."""
    return SOURCE_SUFFIX.sub(OUTPUT_SUFFIX, source)


def make_builder(
    policy: SettlePolicy = SettlePolicy.ON_EXIT, timeout: float | None = None, silent: bool = False
) -> SingleFlightBuilder:
    """Create a single-flight builder that runs ``make`` in the current directory."""
    return SingleFlightBuilder(partial(run_make, policy=policy, timeout=timeout, silent=silent))


class WatchCoordinator:
    """Registers the development watchers and turns source changes into builds."""

    def __init__(
        self,
        service: LiveReloadService,
        builder: SingleFlightBuilder | None = None,
        content_patterns: tuple[str, ...] = CONTENT_PATTERNS,
        source_patterns: tuple[str, ...] = SOURCE_PATTERNS,
    ) -> None:
        self.service = service
        self.builder = builder or make_builder()
        self.content_patterns = content_patterns
        self.source_patterns = source_patterns
        self.state = WatchState.IDLE
        self.stats = {
            "builds_started": 0,
            "builds_succeeded": 0,
            "builds_failed": 0,
            "builds_superseded": 0,
            "reloads": 0,
        }

    def register(self, dev_mode: bool) -> WatchState:
        """
        Subscribe the watchers when ``dev_mode`` is set.

        Registration happens at most once; later calls return the current state.
        """
        if self.state is WatchState.WATCHING:
            return self.state

        if not dev_mode:
            logger.info("Development watchers disabled (NODE_ENV is not 'development')")
            return self.state

        self.service.watch(self.content_patterns).on("change", self.service.reload)
        self.service.watch(self.source_patterns, self.on_source_change)

        self.state = WatchState.WATCHING
        logger.info(f"👀 Watching sources {list(self.source_patterns)} and content {list(self.content_patterns)}")
        return self.state

    async def on_source_change(self, event: str, path: str) -> bool:
        """
        Rebuild the HTML for a changed source document and reload.

        Only ``change`` events trigger a build. Build failures are logged and
        never raised.

        Returns:
            True when a reload was requested
        """
        if event != "change":
            return False

        target = derive_output_path(path)

        logger.info(f"Detected change in `{path}`")
        logger.info(f"Rewriting to `{target}` …")

        self.stats["builds_started"] += 1
        try:
            await self.builder.run(target)
        except BuildSuperseded:
            self.stats["builds_superseded"] += 1
            logger.info(f"Build of `{target}` superseded by a newer change")
            return False
        except BuildError as e:
            self.stats["builds_failed"] += 1
            logger.warning(f"Encountered error running `make {target}`: {e}")
            await self.service.notify(f"Build failed: make {target}", level="error")
            return False

        self.stats["builds_succeeded"] += 1
        self.stats["reloads"] += 1
        logger.info(f"Reloading `{target}`")
        await self.service.reload()
        return True

    def get_status(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "content_patterns": list(self.content_patterns),
            "source_patterns": list(self.source_patterns),
            "builds_in_flight": self.builder.in_flight(),
            "statistics": self.stats.copy(),
        }
