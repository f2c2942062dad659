"""Configuration management for the contract harness."""

import os
from dataclasses import dataclass, replace
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
import structlog


# Verifier wait defaults (seconds)
DEFAULT_STARTUP_TIMEOUT_SECONDS = 300.0
DEFAULT_COMPLETION_TIMEOUT_SECONDS = 180.0
DEFAULT_SETTLE_SECONDS = 2.0
DEFAULT_STOP_GRACE_SECONDS = 10.0
DEFAULT_INFRA_SETTLE_SECONDS = 20.0

VALID_STRATEGIES = {"in_place", "overlay_document", "precomputed"}
VALID_VERIFIER_MODES = {"docker", "jar"}
VALID_MISSING_PASSED_POLICIES = {"indeterminate", "failure", "success"}

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Settings:
    """Harness settings loaded from environment variables."""

    # Protocol selection (either both protocols or a precomputed profile)
    receive_protocol: Optional[str]
    send_protocol: Optional[str]
    overlay_profile: Optional[str]
    overlay_strategy: str
    # Artifact locations
    spec_path: Path
    overlay_output_path: Path
    verifier_config_path: Path
    report_dir: Path
    # Verification engine
    verifier_mode: str
    verifier_image: str
    verifier_jar: Path
    verifier_startup_timeout_seconds: float
    verifier_completion_timeout_seconds: float
    verifier_settle_seconds: float
    verifier_stop_grace_seconds: float
    verifier_env: dict[str, str]
    # Service under test
    order_service_url: str
    descriptor_timeout_seconds: int
    # Infrastructure lifecycle
    infra_enabled: bool
    compose_file: Path
    infra_settle_seconds: float
    readiness_url: Optional[str]
    readiness_timeout_seconds: float
    # Outcome classification
    missing_passed_count_policy: str

    def with_overrides(self, **overrides: Any) -> "Settings":
        """Return a copy with the given fields replaced (None values are ignored)."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes)


def _positive_float(name: str, default: float) -> float:
    raw = os.getenv(name, str(default))
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}.") from exc
    if value <= 0:
        raise ValueError(f"{name} must be > 0.")
    return value


def _non_negative_float(name: str, default: float) -> float:
    raw = os.getenv(name, str(default))
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}.") from exc
    if value < 0:
        raise ValueError(f"{name} must be >= 0.")
    return value


def _bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _choice(name: str, default: str, valid: set[str]) -> str:
    value = os.getenv(name, default).strip().lower()
    if value not in valid:
        options = ", ".join(sorted(valid))
        raise ValueError(f"{name} must be one of: {options}. Got {value!r}.")
    return value


def _optional(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _verifier_env() -> dict[str, str]:
    """Collect ``VERIFIER_ENV_<NAME>`` variables as environment for the engine."""
    prefix = "VERIFIER_ENV_"
    return {
        key[len(prefix):]: value
        for key, value in sorted(os.environ.items())
        if key.startswith(prefix) and len(key) > len(prefix)
    }


def load_settings() -> Settings:
    """
    Load settings from environment variables.

    Returns:
        Settings instance with all configuration values

    Raises:
        ValueError: If a variable holds an invalid value
    """
    load_dotenv()

    receive_protocol = _optional("RECEIVE_PROTOCOL")
    send_protocol = _optional("SEND_PROTOCOL")
    if (receive_protocol is None) != (send_protocol is None):
        raise ValueError(
            "RECEIVE_PROTOCOL and SEND_PROTOCOL must be set together."
        )

    try:
        descriptor_timeout_seconds = int(os.getenv("DESCRIPTOR_TIMEOUT_SECONDS", "10"))
    except ValueError as exc:
        raise ValueError("DESCRIPTOR_TIMEOUT_SECONDS must be an integer.") from exc
    if descriptor_timeout_seconds < 1:
        raise ValueError("DESCRIPTOR_TIMEOUT_SECONDS must be >= 1.")

    order_service_url = os.getenv("ORDER_SERVICE_URL", "http://localhost:8080").strip()
    if not order_service_url.startswith(("http://", "https://")):
        raise ValueError("ORDER_SERVICE_URL must be an http(s) URL.")

    settings = Settings(
        receive_protocol=receive_protocol,
        send_protocol=send_protocol,
        overlay_profile=_optional("OVERLAY_PROFILE"),
        overlay_strategy=_choice("OVERLAY_STRATEGY", "overlay_document", VALID_STRATEGIES),
        spec_path=Path(os.getenv("SPEC_PATH", "./spec/spec.yaml")),
        overlay_output_path=Path(
            os.getenv("OVERLAY_OUTPUT_PATH", "./build/overlay/spec_overlay.yaml")
        ),
        verifier_config_path=Path(os.getenv("VERIFIER_CONFIG_PATH", "./specmatic.yaml")),
        report_dir=Path(os.getenv("REPORT_DIR", "./build/reports/specmatic")),
        verifier_mode=_choice("VERIFIER_MODE", "docker", VALID_VERIFIER_MODES),
        verifier_image=os.getenv("VERIFIER_IMAGE", "specmatic/specmatic-async"),
        verifier_jar=Path(
            os.path.expanduser(os.getenv("VERIFIER_JAR", "~/.specmatic/specmatic.jar"))
        ),
        verifier_startup_timeout_seconds=_positive_float(
            "VERIFIER_STARTUP_TIMEOUT_SECONDS", DEFAULT_STARTUP_TIMEOUT_SECONDS
        ),
        verifier_completion_timeout_seconds=_positive_float(
            "VERIFIER_COMPLETION_TIMEOUT_SECONDS", DEFAULT_COMPLETION_TIMEOUT_SECONDS
        ),
        verifier_settle_seconds=_non_negative_float(
            "VERIFIER_SETTLE_SECONDS", DEFAULT_SETTLE_SECONDS
        ),
        verifier_stop_grace_seconds=_positive_float(
            "VERIFIER_STOP_GRACE_SECONDS", DEFAULT_STOP_GRACE_SECONDS
        ),
        verifier_env=_verifier_env(),
        order_service_url=order_service_url,
        descriptor_timeout_seconds=descriptor_timeout_seconds,
        infra_enabled=_bool("INFRA_ENABLED", True),
        compose_file=Path(os.getenv("COMPOSE_FILE", "docker-compose.yml")),
        infra_settle_seconds=_non_negative_float(
            "INFRA_SETTLE_SECONDS", DEFAULT_INFRA_SETTLE_SECONDS
        ),
        readiness_url=_optional("READINESS_URL"),
        readiness_timeout_seconds=_positive_float("READINESS_TIMEOUT_SECONDS", 60.0),
        missing_passed_count_policy=_choice(
            "MISSING_PASSED_COUNT_POLICY", "indeterminate", VALID_MISSING_PASSED_POLICIES
        ),
    )

    if (
        settings.overlay_strategy == "precomputed"
        and settings.receive_protocol is None
        and settings.overlay_profile is None
    ):
        logger.warning(
            "precomputed_strategy_without_selection",
            hint="Set OVERLAY_PROFILE or RECEIVE_PROTOCOL/SEND_PROTOCOL",
        )

    return settings


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once
    from environment variables.

    Returns:
        Cached Settings instance
    """
    return load_settings()
