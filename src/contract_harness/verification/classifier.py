"""Classify captured engine output into a verification outcome."""

from __future__ import annotations

import re
from enum import Enum
from typing import Optional

import structlog

from contract_harness.spec.models import VerificationOutcome

logger = structlog.get_logger(__name__)

TERMINAL_MARKER = re.compile(r"Failed:|Success")
FAILED_COUNT = re.compile(r"\bFailed:[ \t]*(\d+)")
PASSED_COUNT = re.compile(r"\bPassed:[ \t]*(\d+)")
# Zero counts must appear in their literal summary form
ZERO_FAILED = re.compile(r"\bFailed: 0(?!\d)")
ZERO_PASSED = re.compile(r"\bPassed: 0(?!\d)")

# Lines worth showing a human when a run fails
EXCERPT_LINE = re.compile(
    r"Passed:|Failed:|Success|Errors?:|FAILED|Exception|Scenario|Expected|[Cc]ontract",
)
EXCERPT_MAX_LINES = 40


class MissingPassedCountPolicy(str, Enum):
    """Verdict when the output reports ``Failed: 0`` but no ``Passed:`` count."""

    INDETERMINATE = "indeterminate"
    FAILURE = "failure"
    SUCCESS = "success"


def extract_excerpt(text: str, max_lines: int = EXCERPT_MAX_LINES) -> str:
    """
    Pick the summary and failure lines out of engine output.

    Falls back to the last ``max_lines`` lines when nothing matches.
    """
    lines = text.splitlines()
    relevant = [line for line in lines if EXCERPT_LINE.search(line)]
    chosen = relevant or lines
    return "\n".join(chosen[-max_lines:])


def _counts(pattern: re.Pattern[str], text: str) -> list[int]:
    return [int(match) for match in pattern.findall(text)]


def classify_output(
    text: str,
    missing_passed_policy: str = MissingPassedCountPolicy.INDETERMINATE.value,
    terminal_marker_seen: Optional[bool] = None,
) -> VerificationOutcome:
    """
    Classify engine output.

    Success requires a ``Failed: 0`` count, no ``Passed: 0`` count and no
    non-zero failure count anywhere in the text. Zero failures with zero passes
    is a failure: nothing ran.

    Args:
        text: Full captured engine output
        missing_passed_policy: Verdict when ``Failed: 0`` appears without any
            ``Passed:`` count (indeterminate, failure or success)
        terminal_marker_seen: Runner's view of whether a terminal line was
            printed; False forces an indeterminate verdict

    Returns:
        VerificationOutcome for the run

    Raises:
        ValueError: If the policy name is not recognized
    """
    policy = MissingPassedCountPolicy(missing_passed_policy)

    if terminal_marker_seen is False or not TERMINAL_MARKER.search(text):
        outcome = VerificationOutcome.indeterminate(
            "engine output contains no terminal marker", excerpt=extract_excerpt(text)
        )
        logger.warning("outcome_indeterminate", reason=outcome.detail)
        return outcome

    failed_counts = _counts(FAILED_COUNT, text)
    passed_counts = _counts(PASSED_COUNT, text)
    failed = max(failed_counts) if failed_counts else None
    passed = max(passed_counts) if passed_counts else None
    excerpt = extract_excerpt(text)

    if failed:
        outcome = VerificationOutcome.failure(
            f"{failed} scenario(s) failed", excerpt=excerpt, passed=passed, failed=failed
        )
    elif not ZERO_FAILED.search(text):
        outcome = VerificationOutcome.failure(
            "engine reported no failure count", excerpt=excerpt, passed=passed
        )
    elif ZERO_PASSED.search(text) or 0 in passed_counts:
        outcome = VerificationOutcome.failure(
            "no scenarios passed; zero failures because nothing ran",
            excerpt=excerpt,
            passed=0,
            failed=0,
        )
    elif passed is None:
        outcome = _apply_missing_passed_policy(policy, excerpt)
    else:
        outcome = VerificationOutcome.success(passed=passed, excerpt=excerpt)

    logger.info(
        "outcome_classified",
        status=outcome.status.value,
        passed=outcome.passed,
        failed=outcome.failed,
    )
    return outcome


def _apply_missing_passed_policy(
    policy: MissingPassedCountPolicy, excerpt: str
) -> VerificationOutcome:
    if policy is MissingPassedCountPolicy.SUCCESS:
        return VerificationOutcome.success(passed=None, excerpt=excerpt)
    reason = "engine reported Failed: 0 but no Passed: count"
    if policy is MissingPassedCountPolicy.FAILURE:
        return VerificationOutcome.failure(reason, excerpt=excerpt, failed=0)
    return VerificationOutcome.indeterminate(reason, excerpt=excerpt)
