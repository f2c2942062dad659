"""Broker and service infrastructure that brackets a verification suite.

The infrastructure handle is created once per suite by ``create_infrastructure``
and passed explicitly to the orchestrator. ``lifespan()`` guarantees release on
every exit path, including a failed start.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_delay,
    wait_exponential_jitter,
)

from contract_harness.config import Settings
from contract_harness.core.errors import InfrastructureStartupFailure

logger = structlog.get_logger(__name__)

COMPOSE_UP_TIMEOUT_SECONDS = 600.0
COMPOSE_DOWN_TIMEOUT_SECONDS = 180.0
PROBE_REQUEST_TIMEOUT_SECONDS = 5.0


class ServiceNotReady(Exception):
    """Readiness endpoint answered, but not with a healthy status."""


class Infrastructure(ABC):
    """Lifecycle of the environment the service under test runs in."""

    name: str = "infrastructure"

    @abstractmethod
    async def start(self) -> None:
        """
        Bring the environment up and wait until it is usable.

        Raises:
            InfrastructureStartupFailure: If the environment did not become ready
        """

    @abstractmethod
    async def stop(self) -> None:
        """Tear the environment down. Must not raise."""

    @asynccontextmanager
    async def lifespan(self) -> AsyncIterator["Infrastructure"]:
        """Acquire the environment for a suite.

        Example:
            async with infrastructure.lifespan():
                report = await orchestrator.run(selection)
        """
        try:
            await self.start()
            yield self
        finally:
            await self.stop()


class ExternalInfrastructure(Infrastructure):
    """Environment managed outside the harness; start and stop do nothing."""

    name = "external"

    async def start(self) -> None:
        logger.info("infrastructure_external")

    async def stop(self) -> None:
        return None


class ComposeInfrastructure(Infrastructure):
    """
    Docker Compose environment.

    ``start`` runs ``docker compose up -d``, waits for the settle period and,
    when a readiness URL is configured, polls it until it answers below 500.
    """

    name = "compose"

    def __init__(
        self,
        compose_file: Path,
        *,
        settle_seconds: float = 20.0,
        readiness_url: Optional[str] = None,
        readiness_timeout_seconds: float = 60.0,
        project_name: Optional[str] = None,
        docker: str = "docker",
    ) -> None:
        self.compose_file = compose_file
        self.settle_seconds = settle_seconds
        self.readiness_url = readiness_url
        self.readiness_timeout_seconds = readiness_timeout_seconds
        self.project_name = project_name
        self.docker = docker
        self._started = False

    def compose_argv(self, *args: str) -> list[str]:
        argv = [self.docker, "compose", "-f", str(self.compose_file)]
        if self.project_name:
            argv += ["-p", self.project_name]
        argv += list(args)
        return argv

    async def start(self) -> None:
        if not self.compose_file.is_file():
            raise InfrastructureStartupFailure(
                f"compose file not found: {self.compose_file}",
                details={"compose_file": str(self.compose_file)},
            )

        logger.info("infrastructure_starting", compose_file=str(self.compose_file))
        self._started = True
        exit_code, output = await self._compose(
            self.compose_argv("up", "-d"), COMPOSE_UP_TIMEOUT_SECONDS
        )
        if exit_code != 0:
            raise InfrastructureStartupFailure(
                f"docker compose up exited with {exit_code}",
                details={"output": output[-4000:]},
            )

        if self.settle_seconds > 0:
            logger.info("infrastructure_settling", seconds=self.settle_seconds)
            await asyncio.sleep(self.settle_seconds)

        if self.readiness_url:
            await self.wait_until_ready(self.readiness_url)

        logger.info("infrastructure_started", compose_file=str(self.compose_file))

    async def stop(self) -> None:
        if not self._started:
            return
        self._started = False
        try:
            exit_code, output = await self._compose(
                self.compose_argv("down", "--remove-orphans"),
                COMPOSE_DOWN_TIMEOUT_SECONDS,
            )
        except InfrastructureStartupFailure as e:
            logger.warning("infrastructure_stop_failed", error=e.message)
            return
        if exit_code != 0:
            logger.warning(
                "infrastructure_stop_failed",
                exit_code=exit_code,
                output=output[-2000:],
            )
            return
        logger.info("infrastructure_stopped", compose_file=str(self.compose_file))

    async def wait_until_ready(self, url: str) -> None:
        """
        Poll ``url`` until it answers with a status below 500.

        Args:
            url: Readiness endpoint of the service under test

        Raises:
            InfrastructureStartupFailure: If the endpoint is not ready in time
        """
        try:
            async with httpx.AsyncClient(timeout=PROBE_REQUEST_TIMEOUT_SECONDS) as client:
                async for attempt in AsyncRetrying(
                    stop=stop_after_delay(self.readiness_timeout_seconds),
                    wait=wait_exponential_jitter(multiplier=0.5, max=5),
                    retry=retry_if_exception_type(
                        (httpx.TransportError, ServiceNotReady)
                    ),
                ):
                    with attempt:
                        await self._probe(client, url)
        except RetryError as exc:
            last = exc.last_attempt.exception()
            raise InfrastructureStartupFailure(
                f"service at {url} not ready within {self.readiness_timeout_seconds:g}s",
                details={"url": url, "last_error": str(last) if last else None},
            ) from exc
        logger.info("infrastructure_ready", url=url)

    @staticmethod
    async def _probe(client: httpx.AsyncClient, url: str) -> None:
        response = await client.get(url)
        if response.status_code >= 500:
            raise ServiceNotReady(f"{url} answered {response.status_code}")
        logger.debug("readiness_probe_ok", url=url, status_code=response.status_code)

    @staticmethod
    async def _compose(argv: list[str], timeout: float) -> tuple[int, str]:
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as exc:
            raise InfrastructureStartupFailure(
                f"could not run {argv[0]}: {exc}", details={"command": " ".join(argv)}
            ) from exc

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except TimeoutError as exc:
            proc.kill()
            await proc.communicate()
            raise InfrastructureStartupFailure(
                f"{' '.join(argv[:3])} timed out after {timeout:g}s",
                details={"command": " ".join(argv)},
            ) from exc

        output = stdout.decode("utf-8", errors="replace") if stdout else ""
        logger.debug("compose_command_done", command=" ".join(argv), exit_code=proc.returncode)
        return proc.returncode or 0, output


def create_infrastructure(settings: Settings) -> Infrastructure:
    """
    Create the infrastructure handle for a suite.

    Args:
        settings: Harness settings

    Returns:
        ComposeInfrastructure when ``infra_enabled`` is set, else ExternalInfrastructure
    """
    if not settings.infra_enabled:
        return ExternalInfrastructure()
    return ComposeInfrastructure(
        settings.compose_file,
        settle_seconds=settings.infra_settle_seconds,
        readiness_url=settings.readiness_url,
        readiness_timeout_seconds=settings.readiness_timeout_seconds,
    )
