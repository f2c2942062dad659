"""Sequences one contract verification run.

infrastructure -> protocol selection -> overlay strategy -> verification
engine -> classifier -> report. Overlay preparation strictly precedes the
engine launch, and the overlay artifacts are discarded before the report is
returned.
"""

from __future__ import annotations

import asyncio
import json
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Iterable, Optional, Protocol

import structlog

from contract_harness.config import Settings
from contract_harness.core.errors import ContractViolation, HarnessError, SpecMutationFailure
from contract_harness.infrastructure import Infrastructure
from contract_harness.overlay import (
    OverlayStrategy,
    PreparedOverlay,
    create_overlay_strategy,
    default_augmentations,
    get_overlay_profile,
)
from contract_harness.spec.models import OutcomeStatus, ProtocolSelection, VerificationOutcome
from contract_harness.verification import (
    VerificationRunner,
    VerifierCapture,
    VerifierCommand,
    build_verifier_command,
    classify_output,
)

logger = structlog.get_logger(__name__)

DEFAULT_SELECTION = ProtocolSelection(receive_protocol="amqp", send_protocol="kafka")


class EngineRunner(Protocol):
    """Anything that runs the engine once and returns its captured output."""

    async def run(self) -> VerifierCapture:
        ...


RunnerFactory = Callable[[VerifierCommand, Settings], EngineRunner]
CommandFactory = Callable[[Settings, PreparedOverlay], VerifierCommand]


def resolve_selection(settings: Settings) -> ProtocolSelection:
    """
    Read the protocol pair for a run.

    Explicit protocols win over a named profile; with neither set the run
    uses amqp for commands and kafka for events.

    Raises:
        SpecMutationFailure: If the protocol names or the profile are invalid
    """
    if settings.receive_protocol and settings.send_protocol:
        try:
            return ProtocolSelection(
                receive_protocol=settings.receive_protocol,
                send_protocol=settings.send_protocol,
            )
        except ValueError as exc:
            raise SpecMutationFailure(
                f"invalid protocol selection: {exc}",
                details={
                    "receive": settings.receive_protocol,
                    "send": settings.send_protocol,
                },
            ) from exc
    if settings.overlay_profile:
        return get_overlay_profile(settings.overlay_profile).selection
    return DEFAULT_SELECTION


@dataclass
class RunReport:
    """Result of one verification run.

    Attributes:
        run_id: Unique run identifier
        timestamp: When the run started (UTC, ISO 8601)
        selection: Protocol pair the run verified
        strategy: Overlay strategy used
        outcome: Classifier verdict
        overlay_path: Overlay artifact handed to the engine, if any
        exit_code: Engine process exit code
        durations: Seconds spent per phase
    """

    run_id: str
    timestamp: str
    selection: ProtocolSelection
    strategy: str
    outcome: VerificationOutcome
    overlay_path: Optional[Path] = None
    exit_code: Optional[int] = None
    durations: dict[str, float] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return self.outcome.is_success

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "run_id": self.run_id,
            "timestamp": self.timestamp,
            "selection": {
                "receive": self.selection.receive_protocol,
                "send": self.selection.send_protocol,
            },
            "strategy": self.strategy,
            "overlay_path": str(self.overlay_path) if self.overlay_path else None,
            "exit_code": self.exit_code,
            "durations": {k: round(v, 3) for k, v in self.durations.items()},
            "outcome": self.outcome.to_dict(),
        }

    def to_json(self, indent: int = 2) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    def save(self, directory: Path) -> Path:
        """Save the report as ``run_<run_id>.json`` under ``directory``."""
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"run_{self.run_id}.json"
        with path.open("w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)
        return path

    def summary(self) -> str:
        """Generate human-readable summary."""
        lines = [
            f"Verification Run: {self.run_id}",
            f"Protocols: {self.selection}",
            f"Strategy: {self.strategy}",
            f"Outcome: {self.outcome.status.value.upper()}",
        ]
        if self.outcome.passed is not None or self.outcome.failed is not None:
            lines.append(f"Passed: {self.outcome.passed}, Failed: {self.outcome.failed}")
        if self.outcome.detail:
            lines.append(f"Detail: {self.outcome.detail}")
        if not self.passed and self.outcome.excerpt:
            lines.append("")
            lines.append("Engine output excerpt:")
            lines.extend(f"  {line}" for line in self.outcome.excerpt.splitlines())
        return "\n".join(lines)

    def raise_for_outcome(self) -> None:
        """
        Raise unless the run succeeded.

        Raises:
            ContractViolation: On a failure or indeterminate verdict
        """
        if self.outcome.status is OutcomeStatus.SUCCESS:
            return
        detail = self.outcome.detail or self.outcome.status.value
        if self.outcome.status is OutcomeStatus.INDETERMINATE:
            detail = f"indeterminate: {detail}"
        raise ContractViolation(detail, excerpt=self.outcome.excerpt)


def _runner_from_settings(command: VerifierCommand, settings: Settings) -> EngineRunner:
    return VerificationRunner.from_settings(command, settings)


class RunOrchestrator:
    """
    Runs contract verifications against one shared infrastructure handle.

    Only one engine process runs at a time per orchestrator.
    """

    def __init__(
        self,
        settings: Settings,
        infrastructure: Infrastructure,
        *,
        runner_factory: RunnerFactory = _runner_from_settings,
        command_factory: CommandFactory = build_verifier_command,
    ) -> None:
        self.settings = settings
        self.infrastructure = infrastructure
        self._runner_factory = runner_factory
        self._command_factory = command_factory
        self._lock = asyncio.Lock()

    def strategy(self) -> OverlayStrategy:
        return create_overlay_strategy(
            self.settings.overlay_strategy,
            spec_path=self.settings.spec_path,
            overlay_path=self.settings.overlay_output_path,
            profile_name=self.settings.overlay_profile,
            augmentations=default_augmentations(
                self.settings.order_service_url,
                self.settings.descriptor_timeout_seconds,
            ),
        )

    async def run(self, selection: Optional[ProtocolSelection] = None) -> RunReport:
        """
        Verify the service for one protocol pair.

        Args:
            selection: Protocol pair; read from settings when omitted

        Returns:
            RunReport carrying the classifier verdict

        Raises:
            SpecMutationFailure: If the overlay cannot be prepared (engine not launched)
            VerifierLaunchFailure: If the engine cannot be spawned
            VerifierStartupTimeout: If the engine printed nothing in time
            VerificationTimeout: If the engine printed no verdict in time
        """
        async with self._lock:
            selection = selection or resolve_selection(self.settings)
            run_id = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")
            timestamp = datetime.now(timezone.utc).isoformat()
            log = logger.bind(run_id=run_id, pair=selection.pair_name)

            started = time.monotonic()
            try:
                prepared = self.strategy().prepare(selection)
            except HarnessError as e:
                log.error("overlay_preparation_failed", error=e.message)
                raise
            prepare_seconds = time.monotonic() - started
            log.info(
                "overlay_prepared",
                strategy=prepared.strategy.value,
                overlay_path=str(prepared.overlay_path) if prepared.overlay_path else None,
            )

            try:
                command = self._command_factory(self.settings, prepared)
                runner = self._runner_factory(command, self.settings)
                capture = await runner.run()
            except HarnessError as e:
                log.error("verification_aborted", code=e.code.value, error=e.message)
                raise
            finally:
                prepared.discard()

            outcome = classify_output(
                capture.output,
                missing_passed_policy=self.settings.missing_passed_count_policy,
                terminal_marker_seen=capture.terminal_marker_seen,
            )
            report = RunReport(
                run_id=run_id,
                timestamp=timestamp,
                selection=selection,
                strategy=prepared.strategy.value,
                outcome=outcome,
                overlay_path=prepared.overlay_path,
                exit_code=capture.exit_code,
                durations={
                    "prepare": prepare_seconds,
                    "startup": capture.startup_seconds,
                    "verify": capture.duration_seconds,
                    "total": time.monotonic() - started,
                },
            )
            log.info("verification_completed", status=outcome.status.value)
            return report

    @asynccontextmanager
    async def suite(self) -> AsyncIterator["RunOrchestrator"]:
        """Hold the infrastructure for a sequence of runs.

        Example:
            async with orchestrator.suite():
                report = await orchestrator.run()
        """
        async with self.infrastructure.lifespan():
            yield self

    async def run_suite(
        self, selections: Optional[Iterable[ProtocolSelection]] = None
    ) -> list[RunReport]:
        """
        Acquire the infrastructure, run each selection in order and release it.

        Args:
            selections: Protocol pairs to verify; the configured pair when omitted

        Returns:
            One report per selection
        """
        reports: list[RunReport] = []
        async with self.suite():
            if selections is None:
                pairs = [resolve_selection(self.settings)]
            else:
                pairs = list(selections)
            for selection in pairs:
                reports.append(await self.run(selection))
        return reports
