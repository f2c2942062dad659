"""Launching the verification engine and classifying what it printed."""

from .classifier import (
    TERMINAL_MARKER,
    MissingPassedCountPolicy,
    classify_output,
    extract_excerpt,
)
from .command import VerifierCommand, build_verifier_command, docker_command, jar_command
from .runner import VerificationRunner, VerifierCapture

__all__ = [
    "MissingPassedCountPolicy",
    "TERMINAL_MARKER",
    "VerificationRunner",
    "VerifierCapture",
    "VerifierCommand",
    "build_verifier_command",
    "classify_output",
    "docker_command",
    "extract_excerpt",
    "jar_command",
]
