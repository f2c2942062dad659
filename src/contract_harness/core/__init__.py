"""Core utilities for the contract harness."""

from .errors import (
    ContractViolation,
    ErrorCategory,
    ErrorCode,
    HarnessError,
    InfrastructureStartupFailure,
    SpecMutationFailure,
    VerificationTimeout,
    VerifierLaunchFailure,
    VerifierStartupTimeout,
)

__all__ = [
    "ContractViolation",
    "ErrorCategory",
    "ErrorCode",
    "HarnessError",
    "InfrastructureStartupFailure",
    "SpecMutationFailure",
    "VerificationTimeout",
    "VerifierLaunchFailure",
    "VerifierStartupTimeout",
]
