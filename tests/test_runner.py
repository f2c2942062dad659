"""Tests for the verification runner.

Short-lived Python subprocesses stand in for the verification engine.
"""

import asyncio
import sys
import time
from pathlib import Path
from unittest.mock import patch

import pytest

from contract_harness.core.errors import (
    VerificationTimeout,
    VerifierLaunchFailure,
    VerifierStartupTimeout,
)
from contract_harness.verification.command import VerifierCommand
from contract_harness.verification.runner import VerificationRunner, VerifierCapture


def _runner(command, **overrides) -> VerificationRunner:
    options = {
        "startup_timeout": 5.0,
        "completion_timeout": 5.0,
        "settle_delay": 0.0,
        "stop_grace": 1.0,
    }
    options.update(overrides)
    return VerificationRunner(command, **options)


class TestVerificationRunner:
    """Tests for VerificationRunner.run."""

    @pytest.mark.asyncio
    async def test_captures_output_until_marker(self, python_engine):
        engine = python_engine(
            """
            import sys
            print("Starting contract tests")
            print("Scenario orderAccepted", file=sys.stderr)
            print("Passed: 12, Failed: 0")
            """
        )
        capture = await _runner(engine).run()

        assert isinstance(capture, VerifierCapture)
        assert capture.terminal_marker_seen is True
        assert "Passed: 12, Failed: 0" in capture.output
        assert "Scenario orderAccepted" in capture.output
        assert capture.exit_code == 0

    @pytest.mark.asyncio
    async def test_lines_after_marker_collected_during_settle(self, python_engine):
        engine = python_engine(
            """
            import time
            print("Success")
            time.sleep(0.1)
            print("report written")
            """
        )
        capture = await _runner(engine, settle_delay=0.5).run()
        assert "report written" in capture.output

    @pytest.mark.asyncio
    async def test_engine_stopped_after_marker(self, python_engine):
        """Test that an engine that keeps running after its verdict is stopped."""
        engine = python_engine(
            """
            import time
            print("Passed: 1, Failed: 0")
            time.sleep(60)
            """
        )
        started = time.monotonic()
        capture = await _runner(engine, stop_grace=0.5).run()

        assert capture.terminal_marker_seen is True
        assert capture.exit_code is not None
        assert time.monotonic() - started < 10

    @pytest.mark.asyncio
    async def test_completion_timeout_tears_engine_down(self, python_engine):
        """Test the timeout scenario: output but never a marker."""
        engine = python_engine(
            """
            import time
            print("Connecting to broker")
            while True:
                time.sleep(0.05)
            """
        )
        runner = _runner(engine, completion_timeout=0.5, stop_grace=0.5)

        processes = []
        original = asyncio.create_subprocess_exec

        async def _spy(*args, **kwargs):
            process = await original(*args, **kwargs)
            processes.append(process)
            return process

        with patch("asyncio.create_subprocess_exec", side_effect=_spy):
            with pytest.raises(VerificationTimeout) as exc_info:
                await runner.run()

        assert "Connecting to broker" in exc_info.value.output_tail
        assert processes and processes[0].returncode is not None

    @pytest.mark.asyncio
    async def test_startup_timeout(self, python_engine):
        engine = python_engine(
            """
            import time
            time.sleep(60)
            """
        )
        with pytest.raises(VerifierStartupTimeout) as exc_info:
            await _runner(engine, startup_timeout=0.3, stop_grace=0.5).run()
        assert exc_info.value.timeout_seconds == 0.3

    @pytest.mark.asyncio
    async def test_early_exit_without_marker(self, python_engine):
        engine = python_engine(
            """
            import sys
            print("fatal: could not parse specification")
            sys.exit(3)
            """
        )
        capture = await _runner(engine).run()
        assert capture.terminal_marker_seen is False
        assert capture.exit_code == 3
        assert "could not parse" in capture.output

    @pytest.mark.asyncio
    async def test_silent_exit_returns_empty_capture(self, python_engine):
        capture = await _runner(python_engine("pass")).run()
        assert capture.output == ""
        assert capture.terminal_marker_seen is False

    @pytest.mark.asyncio
    async def test_missing_executable(self, tmp_path: Path):
        command = VerifierCommand(argv=(str(tmp_path / "no-such-engine"), "test"))
        with pytest.raises(VerifierLaunchFailure):
            await _runner(command).run()

    @pytest.mark.asyncio
    async def test_environment_passed_to_engine(self, python_engine):
        engine = python_engine(
            """
            import os
            print("Passed: 1, Failed: 0", os.environ["HARNESS_PROBE"])
            """
        )
        command = VerifierCommand(argv=engine.argv, env={"HARNESS_PROBE": "on"})
        capture = await _runner(command).run()
        assert "Failed: 0 on" in capture.output

    @pytest.mark.asyncio
    async def test_cleanup_command_runs_after_forced_stop(self, python_engine, tmp_path: Path):
        marker = tmp_path / "cleaned"
        engine = python_engine(
            """
            import time
            print("Passed: 1, Failed: 0")
            time.sleep(60)
            """
        )
        command = VerifierCommand(
            argv=engine.argv,
            cleanup_argv=(sys.executable, "-c", f"open({str(marker)!r}, 'w').close()"),
        )
        await _runner(command, stop_grace=0.3).run()
        assert marker.exists()


class TestVerifierCapture:
    def test_tail(self):
        capture = VerifierCapture(
            output="\n".join(str(i) for i in range(10)), terminal_marker_seen=True
        )
        assert capture.tail(3) == "7\n8\n9"
