"""Command lines for launching the contract verification engine."""

from __future__ import annotations

import os
import shlex
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from contract_harness.config import Settings
from contract_harness.core.errors import SpecMutationFailure
from contract_harness.overlay.strategies import PreparedOverlay

# Layout expected inside the engine container
CONTAINER_WORKDIR = "/usr/src/app"
CONTAINER_OVERLAY_NAME = "overlay.yaml"


@dataclass(frozen=True)
class VerifierCommand:
    """
    A fully resolved engine invocation.

    Attributes:
        argv: Program and arguments
        cwd: Working directory for the process
        env: Extra environment variables merged over the current environment
        cleanup_argv: Command run after the engine is stopped, if any
    """

    argv: tuple[str, ...]
    cwd: Optional[Path] = None
    env: dict[str, str] = field(default_factory=dict)
    cleanup_argv: Optional[tuple[str, ...]] = None

    def display(self) -> str:
        return shlex.join(self.argv)

    def process_env(self) -> Optional[dict[str, str]]:
        if not self.env:
            return None
        merged = dict(os.environ)
        merged.update(self.env)
        return merged


def docker_command(
    prepared: PreparedOverlay,
    *,
    image: str,
    verifier_config_path: Path,
    report_dir: Path,
    env: Optional[dict[str, str]] = None,
    container_name: Optional[str] = None,
) -> VerifierCommand:
    """
    Build a ``docker run`` invocation of the engine image.

    The AsyncAPI document directory, verifier config and overlay are mounted
    read-only. Reports are mounted read-write and the container shares the
    host network.

    Args:
        prepared: Artifacts produced by an overlay strategy
        image: Engine image name
        verifier_config_path: Engine configuration file
        report_dir: Directory the engine writes reports into
        env: Environment variables passed into the container
        container_name: Container name; generated when omitted

    Returns:
        VerifierCommand for the container run
    """
    name = container_name or f"contract-harness-{uuid.uuid4().hex[:12]}"
    spec_dir = prepared.spec_path.resolve().parent
    argv = [
        "docker", "run", "--rm",
        "--name", name,
        "--network", "host",
        "-v", f"{verifier_config_path.resolve()}:{CONTAINER_WORKDIR}/specmatic.yaml:ro",
        "-v", f"{spec_dir}:{CONTAINER_WORKDIR}/spec:ro",
        "-v", f"{report_dir.resolve()}:{CONTAINER_WORKDIR}/build/reports/specmatic",
    ]
    if prepared.overlay_path is not None:
        argv += [
            "-v",
            f"{prepared.overlay_path.resolve()}:{CONTAINER_WORKDIR}/{CONTAINER_OVERLAY_NAME}:ro",
        ]
    for key, value in sorted((env or {}).items()):
        argv += ["-e", f"{key}={value}"]

    argv += [image, "test"]
    if prepared.overlay_path is not None:
        argv.append(f"--overlay={CONTAINER_OVERLAY_NAME}")

    return VerifierCommand(
        argv=tuple(argv),
        cleanup_argv=("docker", "rm", "--force", name),
    )


def jar_command(
    prepared: PreparedOverlay,
    *,
    jar_path: Path,
    verifier_config_path: Path,
    env: Optional[dict[str, str]] = None,
    java: str = "java",
) -> VerifierCommand:
    """Build a ``java -jar`` invocation run from the directory holding the verifier config."""
    argv = [java, "-jar", str(jar_path), "test"]
    if prepared.overlay_path is not None:
        argv.append(f"--overlay={prepared.overlay_path.resolve()}")
    return VerifierCommand(
        argv=tuple(argv),
        cwd=verifier_config_path.resolve().parent,
        env=dict(env or {}),
    )


def build_verifier_command(settings: Settings, prepared: PreparedOverlay) -> VerifierCommand:
    """
    Build the engine invocation for the configured verifier mode.

    Creates the report directory so the engine can write into it.

    Args:
        settings: Harness settings
        prepared: Artifacts produced by an overlay strategy

    Returns:
        VerifierCommand for docker or jar mode

    Raises:
        SpecMutationFailure: If the report directory cannot be created
    """
    try:
        settings.report_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise SpecMutationFailure(
            f"cannot create report directory {settings.report_dir}: {exc}",
            details={"path": str(settings.report_dir)},
        ) from exc
    if settings.verifier_mode == "jar":
        return jar_command(
            prepared,
            jar_path=settings.verifier_jar,
            verifier_config_path=settings.verifier_config_path,
            env=settings.verifier_env,
        )
    return docker_command(
        prepared,
        image=settings.verifier_image,
        verifier_config_path=settings.verifier_config_path,
        report_dir=settings.report_dir,
        env=settings.verifier_env,
    )
