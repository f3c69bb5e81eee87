"""
Build invoker for the development server.

Runs ``make <target>`` as a subprocess and settles exactly once: with the
captured standard output on success, or by raising ``BuildError`` with the
captured standard error on failure.

Two settlement policies are supported:

- ``FIRST_EVENT``: settle on the first observed event. Standard error wins
  over standard output within one event; a bare exit code resolves with
  whatever output was captured so far. Later events are drained and ignored.
- ``ON_EXIT``: aggregate every chunk until the process exits and classify on
  the exit code.
"""

import asyncio
import logging
import subprocess
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)

MAKE_COMMAND: tuple[str, ...] = ("make",)
READ_CHUNK_SIZE = 4096

# Output consumers that outlive the call that settled them
_background_tasks: set[asyncio.Task[None]] = set()


class SettlePolicy(Enum):
    """How a build invocation decides its outcome."""

    FIRST_EVENT = "first"
    ON_EXIT = "exit"


class BuildError(Exception):
    """Raised when a build fails."""

    def __init__(self, target: str, stderr: str | None, exit_code: int | None = None) -> None:
        self.target = target
        self.stderr = stderr
        self.exit_code = exit_code
        super().__init__(stderr or f"make {target} failed with exit code {exit_code}")


class BuildTimeoutError(BuildError):
    """Raised when a build does not settle within its timeout."""

    def __init__(self, target: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(target, f"make {target} did not finish within {timeout}s")


@dataclass(frozen=True)
class OutputEvent:
    """A single observation of the build subprocess."""

    stdout: str | None = None
    stderr: str | None = None
    exit_code: int | None = None


class BuildSettler:
    """Reduces a sequence of output events to one build outcome."""

    def __init__(self, target: str, policy: SettlePolicy = SettlePolicy.FIRST_EVENT, silent: bool = False) -> None:
        self.target = target
        self.policy = policy
        self.silent = silent
        self.done = False
        self.output: str | None = None
        self.error: BuildError | None = None
        self._stdout: list[str] = []
        self._stderr: list[str] = []

    @property
    def captured_stdout(self) -> str | None:
        return "".join(self._stdout) if self._stdout else None

    def feed(self, event: OutputEvent) -> bool:
        """
        Observe one event.

        Returns:
            True once the outcome is decided; later events are ignored
        """
        if self.done:
            return True

        if self.policy is SettlePolicy.FIRST_EVENT:
            self._feed_first_event(event)
        else:
            self._feed_on_exit(event)

        return self.done

    def result(self) -> str | None:
        """Return the captured output or raise the captured error."""
        if not self.done:
            raise RuntimeError(f"Build of {self.target} has not settled")
        if self.error is not None:
            raise self.error
        return self.output

    def _feed_first_event(self, event: OutputEvent) -> None:
        if event.stderr is not None:
            if not self.silent:
                logger.error(f"Program stderr:\n{event.stderr}")
            self._reject(event.stderr, event.exit_code)
        elif event.stdout is not None:
            self._stdout.append(event.stdout)
            if not self.silent:
                logger.info(f"Program output:\n{event.stdout}")
            self._resolve(event.stdout)
        elif event.exit_code is not None:
            if not self.silent:
                logger.info(f"Exit code: {event.exit_code}")
            self._resolve(self.captured_stdout)

    def _feed_on_exit(self, event: OutputEvent) -> None:
        if event.stdout is not None:
            self._stdout.append(event.stdout)
        if event.stderr is not None:
            self._stderr.append(event.stderr)
        if event.exit_code is None:
            return

        stdout = self.captured_stdout
        stderr = "".join(self._stderr) if self._stderr else None

        if not self.silent:
            if stderr:
                logger.error(f"Program stderr:\n{stderr}")
            if stdout:
                logger.info(f"Program output:\n{stdout}")
            logger.info(f"Exit code: {event.exit_code}")

        if event.exit_code != 0:
            self._reject(stderr or stdout, event.exit_code)
        else:
            self._resolve(stdout)

    def _resolve(self, output: str | None) -> None:
        self.output = output
        self.done = True

    def _reject(self, stderr: str | None, exit_code: int | None) -> None:
        self.error = BuildError(self.target, stderr, exit_code)
        self.done = True


async def stream_output(process: asyncio.subprocess.Process) -> AsyncIterator[OutputEvent]:
    """
    Yield stdout/stderr chunks in arrival order, then the exit code.

    The exit event is always last, so the sequence ends once the process exits.
    """
    queue: asyncio.Queue[OutputEvent | None] = asyncio.Queue()

    async def pump(stream: asyncio.StreamReader | None, kind: str) -> None:
        try:
            if stream is None:
                return
            while chunk := await stream.read(READ_CHUNK_SIZE):
                text = chunk.decode(errors="replace")
                await queue.put(OutputEvent(stdout=text) if kind == "stdout" else OutputEvent(stderr=text))
        finally:
            await queue.put(None)

    readers = [
        asyncio.create_task(pump(process.stdout, "stdout")),
        asyncio.create_task(pump(process.stderr, "stderr")),
    ]

    try:
        open_streams = len(readers)
        while open_streams:
            event = await queue.get()
            if event is None:
                open_streams -= 1
                continue
            yield event

        exit_code = await process.wait()
        yield OutputEvent(exit_code=exit_code)
    finally:
        for reader in readers:
            if not reader.done():
                reader.cancel()


async def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()


async def _run_make_async(
    target: str, settler: BuildSettler, command: list[str], cwd: str | Path | None, timeout: float | None
) -> str | None:
    try:
        process = await asyncio.create_subprocess_exec(
            *command, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE, cwd=cwd
        )
    except OSError as e:
        raise BuildError(target, f"Failed to start {' '.join(command)}: {e}") from e

    settled: asyncio.Future[None] = asyncio.get_running_loop().create_future()

    async def consume() -> None:
        # Keeps draining after settlement so the process never blocks on a full pipe
        try:
            async for event in stream_output(process):
                if settler.feed(event) and not settled.done():
                    settled.set_result(None)
        except Exception as e:
            if not settled.done():
                settled.set_exception(BuildError(target, f"Error reading build output: {e}"))
        finally:
            if not settled.done():
                settled.cancel()

    consumer = asyncio.create_task(consume())
    _background_tasks.add(consumer)
    consumer.add_done_callback(_background_tasks.discard)

    try:
        await asyncio.wait_for(asyncio.shield(settled), timeout=timeout)
    except asyncio.TimeoutError:
        consumer.cancel()
        await _kill(process)
        raise BuildTimeoutError(target, timeout or 0) from None
    except asyncio.CancelledError:
        consumer.cancel()
        await _kill(process)
        raise

    return settler.result()


def _run_make_blocking(
    target: str, settler: BuildSettler, command: list[str], cwd: str | Path | None, timeout: float | None
) -> str | None:
    try:
        completed = subprocess.run(command, capture_output=True, text=True, cwd=cwd, timeout=timeout)
    except subprocess.TimeoutExpired:
        raise BuildTimeoutError(target, timeout or 0) from None
    except OSError as e:
        raise BuildError(target, f"Failed to start {' '.join(command)}: {e}") from e

    settler.feed(
        OutputEvent(
            stdout=completed.stdout or None,
            stderr=completed.stderr or None,
            exit_code=completed.returncode,
        )
    )
    return settler.result()


async def run_make(
    target: str,
    *,
    silent: bool = False,
    async_: bool = True,
    policy: SettlePolicy = SettlePolicy.FIRST_EVENT,
    timeout: float | None = None,
    cwd: str | Path | None = None,
    make_command: Sequence[str] = MAKE_COMMAND,
) -> str | None:
    """
    Run ``make <target>`` and settle once.

    Args:
        target: Build target, usually an output path such as ``spec/latest/index.html``
        silent: Suppress logging of the program output, errors and exit code
        async_: Run without blocking the event loop; when False the build runs
            to completion with ``subprocess.run``
        policy: Settlement policy, see module docstring
        timeout: Seconds to wait before killing the build; None waits forever
        cwd: Working directory for the build
        make_command: Command prefix, the target is appended

    Returns:
        Captured standard output, or None when nothing was captured

    Raises:
        BuildError: If the build reports an error, fails to start or times out
    """
    command = [*make_command, target]
    settler = BuildSettler(target, policy=policy, silent=silent)

    logger.debug(f"Running {' '.join(command)} (policy={policy.value}, async={async_})")

    if async_:
        return await _run_make_async(target, settler, command, cwd, timeout)
    return _run_make_blocking(target, settler, command, cwd, timeout)
