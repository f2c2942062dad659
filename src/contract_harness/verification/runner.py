"""Async runner for the contract verification engine.

The engine is an external process whose only result signal is its textual
output. The runner streams that output, waits for a terminal marker within
bounded timeouts and always stops the process afterwards.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Optional

import structlog

from contract_harness.config import (
    DEFAULT_COMPLETION_TIMEOUT_SECONDS,
    DEFAULT_SETTLE_SECONDS,
    DEFAULT_STARTUP_TIMEOUT_SECONDS,
    DEFAULT_STOP_GRACE_SECONDS,
    Settings,
)
from contract_harness.core.errors import (
    VerificationTimeout,
    VerifierLaunchFailure,
    VerifierStartupTimeout,
)

from .classifier import TERMINAL_MARKER
from .command import VerifierCommand

logger = structlog.get_logger(__name__)

STREAM_LIMIT_BYTES = 1024 * 1024
READER_JOIN_SECONDS = 1.0
CLEANUP_TIMEOUT_SECONDS = 30.0
TAIL_LINES = 40


def output_tail(lines: list[str], count: int = TAIL_LINES) -> str:
    return "\n".join(lines[-count:])


@dataclass(frozen=True)
class VerifierCapture:
    """
    Everything the engine printed during one run.

    Attributes:
        output: Accumulated stdout and stderr lines
        terminal_marker_seen: Whether a ``Failed:``/``Success`` line appeared
        exit_code: Process exit code after it was stopped
        startup_seconds: Time until the first output line
        duration_seconds: Wall time from launch to stop
    """

    output: str
    terminal_marker_seen: bool
    exit_code: Optional[int] = None
    startup_seconds: float = 0.0
    duration_seconds: float = 0.0

    def tail(self, count: int = TAIL_LINES) -> str:
        return output_tail(self.output.splitlines(), count)


class VerificationRunner:
    """Launches the engine, waits for its verdict and tears it down."""

    def __init__(
        self,
        command: VerifierCommand,
        *,
        startup_timeout: float = DEFAULT_STARTUP_TIMEOUT_SECONDS,
        completion_timeout: float = DEFAULT_COMPLETION_TIMEOUT_SECONDS,
        settle_delay: float = DEFAULT_SETTLE_SECONDS,
        stop_grace: float = DEFAULT_STOP_GRACE_SECONDS,
    ) -> None:
        self.command = command
        self.startup_timeout = startup_timeout
        self.completion_timeout = completion_timeout
        self.settle_delay = settle_delay
        self.stop_grace = stop_grace

    @classmethod
    def from_settings(cls, command: VerifierCommand, settings: Settings) -> "VerificationRunner":
        return cls(
            command,
            startup_timeout=settings.verifier_startup_timeout_seconds,
            completion_timeout=settings.verifier_completion_timeout_seconds,
            settle_delay=settings.verifier_settle_seconds,
            stop_grace=settings.verifier_stop_grace_seconds,
        )

    async def run(self) -> VerifierCapture:
        """
        Run the engine to completion.

        Returns:
            VerifierCapture with the accumulated output. If the engine exits
            without printing a terminal marker, ``terminal_marker_seen`` is False.

        Raises:
            VerifierLaunchFailure: If the process cannot be spawned
            VerifierStartupTimeout: If no output appears within ``startup_timeout``
            VerificationTimeout: If no terminal marker appears within ``completion_timeout``
        """
        started = time.monotonic()
        process = await self._launch()
        logger.info("verifier_started", pid=process.pid, command=self.command.display())

        lines: list[str] = []
        first_output = asyncio.Event()
        terminal = asyncio.Event()
        readers = [
            asyncio.create_task(
                self._pump(process.stdout, "stdout", lines, first_output, terminal)
            ),
            asyncio.create_task(
                self._pump(process.stderr, "stderr", lines, first_output, terminal)
            ),
        ]
        exited = asyncio.create_task(self._wait_exit(process, readers))

        graceful = False
        startup_seconds = 0.0
        try:
            if not await self._wait_until(first_output, exited, self.startup_timeout):
                logger.error("verifier_startup_timeout", timeout=self.startup_timeout)
                raise VerifierStartupTimeout(self.startup_timeout, self.command.display())
            startup_seconds = time.monotonic() - started

            if not await self._wait_until(terminal, exited, self.completion_timeout):
                logger.error(
                    "verifier_completion_timeout",
                    timeout=self.completion_timeout,
                    lines=len(lines),
                )
                raise VerificationTimeout(self.completion_timeout, output_tail(lines))

            if terminal.is_set():
                logger.info("verifier_terminal_marker", line=self._terminal_line(lines))
                if self.settle_delay > 0:
                    await asyncio.sleep(self.settle_delay)
            else:
                logger.warning(
                    "verifier_exited_without_marker",
                    exit_code=process.returncode,
                    lines=len(lines),
                )
            graceful = True
        finally:
            await self._stop(process, graceful=graceful)
            await self._join(readers, exited)

        duration = time.monotonic() - started
        logger.info(
            "verifier_stopped",
            exit_code=process.returncode,
            duration_seconds=round(duration, 3),
        )
        return VerifierCapture(
            output="\n".join(lines),
            terminal_marker_seen=terminal.is_set(),
            exit_code=process.returncode,
            startup_seconds=startup_seconds,
            duration_seconds=duration,
        )

    async def _launch(self) -> asyncio.subprocess.Process:
        try:
            return await asyncio.create_subprocess_exec(
                *self.command.argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.command.cwd,
                env=self.command.process_env(),
                limit=STREAM_LIMIT_BYTES,
            )
        except OSError as exc:
            logger.error("verifier_launch_failed", command=self.command.display(), error=str(exc))
            raise VerifierLaunchFailure(self.command.display(), str(exc)) from exc

    @staticmethod
    async def _pump(
        stream: Optional[asyncio.StreamReader],
        label: str,
        lines: list[str],
        first_output: asyncio.Event,
        terminal: asyncio.Event,
    ) -> None:
        if stream is None:
            return
        while True:
            try:
                raw = await stream.readline()
            except ValueError:
                # Line longer than the stream limit; the buffer was dropped
                logger.warning("verifier_line_too_long", stream=label)
                continue
            if not raw:
                return
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            lines.append(line)
            first_output.set()
            logger.debug("verifier_output", stream=label, line=line)
            if not terminal.is_set() and TERMINAL_MARKER.search(line):
                terminal.set()

    @staticmethod
    async def _wait_exit(
        process: asyncio.subprocess.Process, readers: list[asyncio.Task]
    ) -> int:
        # Drain both streams first so no trailing line is missed
        await asyncio.gather(*readers, return_exceptions=True)
        return await process.wait()

    @staticmethod
    async def _wait_until(event: asyncio.Event, exited: asyncio.Task, timeout: float) -> bool:
        """Wait for ``event`` or process exit. Returns False on timeout."""
        if event.is_set() or exited.done():
            return True
        event_waiter = asyncio.create_task(event.wait())
        try:
            done, _ = await asyncio.wait(
                {event_waiter, exited},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            event_waiter.cancel()
        return bool(done)

    @staticmethod
    def _terminal_line(lines: list[str]) -> Optional[str]:
        for line in lines:
            if TERMINAL_MARKER.search(line):
                return line
        return None

    async def _stop(self, process: asyncio.subprocess.Process, graceful: bool) -> None:
        """Stop the engine: optional natural exit, then terminate, then kill."""
        if process.returncode is None and graceful:
            try:
                await asyncio.wait_for(process.wait(), timeout=self.stop_grace)
            except TimeoutError:
                pass

        if process.returncode is not None:
            return

        logger.info("verifier_terminating", pid=process.pid)
        try:
            process.terminate()
        except ProcessLookupError:
            pass
        try:
            await asyncio.wait_for(process.wait(), timeout=self.stop_grace)
        except TimeoutError:
            logger.warning("verifier_kill", pid=process.pid, grace=self.stop_grace)
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()

        if self.command.cleanup_argv:
            await self._run_cleanup(self.command.cleanup_argv)

    @staticmethod
    async def _run_cleanup(argv: tuple[str, ...]) -> None:
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
            await asyncio.wait_for(proc.wait(), timeout=CLEANUP_TIMEOUT_SECONDS)
        except (OSError, TimeoutError) as exc:
            logger.warning("verifier_cleanup_failed", command=" ".join(argv), error=str(exc))
            return
        logger.debug("verifier_cleanup_done", command=" ".join(argv), exit_code=proc.returncode)

    @staticmethod
    async def _join(readers: list[asyncio.Task], exited: asyncio.Task) -> None:
        _, pending = await asyncio.wait(readers, timeout=READER_JOIN_SECONDS)
        for task in (*pending, exited):
            if not task.done():
                task.cancel()
        await asyncio.gather(*readers, exited, return_exceptions=True)
