"""Tests for the outcome classifier."""

import pytest

from contract_harness.spec.models import OutcomeStatus
from contract_harness.verification.classifier import (
    MissingPassedCountPolicy,
    classify_output,
    extract_excerpt,
)


class TestClassifyOutput:
    """Tests for classify_output."""

    def test_zero_failures_with_passes_is_success(self):
        outcome = classify_output("Failed: 0\nPassed: 12")
        assert outcome.status is OutcomeStatus.SUCCESS
        assert outcome.passed == 12
        assert outcome.failed == 0

    def test_nonzero_failures_is_failure(self):
        outcome = classify_output("Failed: 2")
        assert outcome.status is OutcomeStatus.FAILURE
        assert outcome.failed == 2
        assert "Failed: 2" in outcome.excerpt

    def test_zero_passes_and_zero_failures_is_failure(self):
        """Test the zero-coverage guard: nothing ran is not a pass."""
        outcome = classify_output("Passed: 0\nFailed: 0")
        assert outcome.status is OutcomeStatus.FAILURE
        assert "nothing ran" in outcome.detail

    def test_inline_summary_is_success(self):
        text = "Running scenarios...\nTests run: 8, Passed: 8, Failed: 0\nDone"
        outcome = classify_output(text)
        assert outcome.status is OutcomeStatus.SUCCESS
        assert outcome.passed == 8

    def test_no_terminal_marker_is_indeterminate(self):
        outcome = classify_output("Starting engine\nConnecting to broker")
        assert outcome.status is OutcomeStatus.INDETERMINATE
        assert not outcome.is_success

    def test_empty_output_is_indeterminate(self):
        assert classify_output("").status is OutcomeStatus.INDETERMINATE

    def test_runner_without_marker_forces_indeterminate(self):
        outcome = classify_output("Failed: 0\nPassed: 3", terminal_marker_seen=False)
        assert outcome.status is OutcomeStatus.INDETERMINATE

    def test_success_word_without_counts_is_failure(self):
        outcome = classify_output("Success")
        assert outcome.status is OutcomeStatus.FAILURE

    def test_any_nonzero_failure_count_wins(self):
        text = "Passed: 4, Failed: 0\nRetry summary\nPassed: 3, Failed: 1"
        outcome = classify_output(text)
        assert outcome.status is OutcomeStatus.FAILURE
        assert outcome.failed == 1

    def test_double_digit_counts_are_not_zero(self):
        outcome = classify_output("Passed: 10, Failed: 0")
        assert outcome.status is OutcomeStatus.SUCCESS
        outcome = classify_output("Passed: 5, Failed: 05")
        assert outcome.status is OutcomeStatus.FAILURE

    @pytest.mark.parametrize(
        "text",
        [
            "Passed: 3\nFailed:0",
            "Passed: 3\nFailed:\n0",
            "Passed: 3, Failed:  0",
        ],
    )
    def test_zero_failures_must_be_literal(self, text):
        """Only the exact ``Failed: 0`` summary counts as zero failures."""
        assert classify_output(text).status is OutcomeStatus.FAILURE

    def test_unspaced_zero_passes_is_failure(self):
        outcome = classify_output("Passed:0\nFailed: 0")
        assert outcome.status is OutcomeStatus.FAILURE
        assert outcome.passed == 0


class TestMissingPassedCountPolicy:
    """Failed: 0 without any Passed: line."""

    @pytest.mark.parametrize(
        "policy,expected",
        [
            (MissingPassedCountPolicy.INDETERMINATE, OutcomeStatus.INDETERMINATE),
            (MissingPassedCountPolicy.FAILURE, OutcomeStatus.FAILURE),
            (MissingPassedCountPolicy.SUCCESS, OutcomeStatus.SUCCESS),
        ],
    )
    def test_policy(self, policy, expected):
        outcome = classify_output("Tests finished. Failed: 0", missing_passed_policy=policy.value)
        assert outcome.status is expected

    def test_default_is_indeterminate(self):
        assert classify_output("Failed: 0").status is OutcomeStatus.INDETERMINATE

    def test_unknown_policy_raises(self):
        with pytest.raises(ValueError):
            classify_output("Failed: 0", missing_passed_policy="maybe")


class TestExtractExcerpt:
    """Tests for extract_excerpt."""

    def test_keeps_summary_and_failure_lines(self):
        text = "\n".join(
            [
                "boot",
                "Scenario: orderAccepted FAILED",
                "Expected status 200 but got 500",
                "noise",
                "Passed: 3, Failed: 1",
            ]
        )
        excerpt = extract_excerpt(text)
        assert "boot" not in excerpt
        assert "noise" not in excerpt
        assert "Expected status 200" in excerpt
        assert excerpt.endswith("Passed: 3, Failed: 1")

    def test_falls_back_to_tail(self):
        text = "\n".join(f"line {i}" for i in range(100))
        excerpt = extract_excerpt(text, max_lines=5)
        assert excerpt.splitlines() == [f"line {i}" for i in range(95, 100)]
