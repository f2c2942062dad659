"""Error taxonomy for contract verification runs."""

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    """Standardized error codes for the harness."""

    SPEC_MUTATION_FAILED = "spec_mutation_failed"
    INFRASTRUCTURE_STARTUP_FAILED = "infrastructure_startup_failed"
    VERIFIER_LAUNCH_FAILED = "verifier_launch_failed"
    VERIFIER_STARTUP_TIMEOUT = "verifier_startup_timeout"
    VERIFICATION_TIMEOUT = "verification_timeout"
    CONTRACT_VIOLATION = "contract_violation"


class ErrorCategory(str, Enum):
    """Who is to blame when a run fails.

    Operators use this to tell "the test tooling broke" apart from
    "the contract broke".
    """

    PREPARATION = "preparation"
    ENVIRONMENT = "environment"
    CONTRACT = "contract"


class HarnessError(Exception):
    """
    Structured harness error.

    Attributes:
        code: Error code from ErrorCode enum
        category: Failure category (preparation, environment, contract)
        message: Human-readable error message
        details: Additional error context
    """

    category: ErrorCategory = ErrorCategory.ENVIRONMENT

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert error to a report-friendly dictionary.

        Returns:
            Dictionary with code, category, message and details
        """
        problem: dict[str, Any] = {
            "code": self.code.value,
            "category": self.category.value,
            "title": self.code.value.replace("_", " ").title(),
            "detail": self.message,
        }
        if self.details:
            problem["errors"] = self.details
        return problem


class SpecMutationFailure(HarnessError):
    """Overlay preparation failed; the verifier must not be launched."""

    category = ErrorCategory.PREPARATION

    def __init__(self, reason: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            code=ErrorCode.SPEC_MUTATION_FAILED,
            message=f"Specification mutation failed: {reason}",
            details=details,
        )
        self.reason = reason


class InfrastructureStartupFailure(HarnessError):
    """Broker/provisioning layer did not become ready."""

    category = ErrorCategory.ENVIRONMENT

    def __init__(self, reason: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            code=ErrorCode.INFRASTRUCTURE_STARTUP_FAILED,
            message=f"Infrastructure failed to start: {reason}",
            details=details,
        )
        self.reason = reason


class VerifierLaunchFailure(HarnessError):
    """The verification engine process could not be started at all."""

    category = ErrorCategory.ENVIRONMENT

    def __init__(self, command: str, reason: str) -> None:
        super().__init__(
            code=ErrorCode.VERIFIER_LAUNCH_FAILED,
            message=f"Could not launch verification engine: {reason}",
            details={"command": command},
        )
        self.reason = reason


class VerifierStartupTimeout(HarnessError):
    """The verification engine produced no output within the startup timeout."""

    category = ErrorCategory.ENVIRONMENT

    def __init__(self, timeout_seconds: float, command: str) -> None:
        super().__init__(
            code=ErrorCode.VERIFIER_STARTUP_TIMEOUT,
            message=(
                f"Verification engine did not start within {timeout_seconds:g}s"
            ),
            details={"timeout_seconds": timeout_seconds, "command": command},
        )
        self.timeout_seconds = timeout_seconds


class VerificationTimeout(HarnessError):
    """No terminal marker appeared in the engine output within the completion timeout."""

    category = ErrorCategory.ENVIRONMENT

    def __init__(self, timeout_seconds: float, output_tail: str = "") -> None:
        super().__init__(
            code=ErrorCode.VERIFICATION_TIMEOUT,
            message=(
                "Verification engine did not report a result within "
                f"{timeout_seconds:g}s"
            ),
            details={"timeout_seconds": timeout_seconds, "output_tail": output_tail},
        )
        self.timeout_seconds = timeout_seconds
        self.output_tail = output_tail


class ContractViolation(HarnessError):
    """The engine ran and reported that the service diverged from its contract."""

    category = ErrorCategory.CONTRACT

    def __init__(self, detail: str, excerpt: str = "") -> None:
        super().__init__(
            code=ErrorCode.CONTRACT_VIOLATION,
            message=f"Contract verification failed: {detail}",
            details={"excerpt": excerpt} if excerpt else None,
        )
        self.detail = detail
        self.excerpt = excerpt
