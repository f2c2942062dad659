"""CLI entry point for contract verification runs.

Usage:
    contract-harness run --receive amqp --send kafka
    contract-harness run --profile jms-mqtt --strategy precomputed --no-infra
    contract-harness overlay --receive sqs --send kafka --output overlay.yaml
    contract-harness classify build/engine.log
    contract-harness profiles

Exit codes:
    0  verification passed
    1  contract violation or indeterminate verdict
    2  environment failure (infrastructure, engine startup, timeouts)
    3  preparation failure (configuration, specification, overlay)
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

from contract_harness.config import (
    VALID_MISSING_PASSED_POLICIES,
    VALID_STRATEGIES,
    VALID_VERIFIER_MODES,
    Settings,
    load_settings,
)
from contract_harness.core.errors import ErrorCategory, HarnessError
from contract_harness.core.log_config import configure_logging
from contract_harness.infrastructure import create_infrastructure
from contract_harness.orchestrator import RunOrchestrator
from contract_harness.overlay import (
    OVERLAY_PROFILES,
    build_overlay_actions,
    default_augmentations,
    render_overlay_document,
    write_overlay_document,
)
from contract_harness.spec.document import SpecDocument
from contract_harness.spec.models import ProtocolSelection
from contract_harness.verification import classify_output

EXIT_PASSED = 0
EXIT_CONTRACT = 1
EXIT_ENVIRONMENT = 2
EXIT_PREPARATION = 3

_EXIT_BY_CATEGORY = {
    ErrorCategory.CONTRACT: EXIT_CONTRACT,
    ErrorCategory.ENVIRONMENT: EXIT_ENVIRONMENT,
    ErrorCategory.PREPARATION: EXIT_PREPARATION,
}


def exit_code_for(error: HarnessError) -> int:
    return _EXIT_BY_CATEGORY.get(error.category, EXIT_ENVIRONMENT)


def _add_protocol_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--receive", "-r", help="Protocol for inbound command channels")
    parser.add_argument("--send", "-s", help="Protocol for outbound event channels")


def parse_args(args: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        args: Optional list of arguments (uses sys.argv if None)

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="contract-harness",
        description="Verify an event-driven order service against its async API contract",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Configuration is read from environment variables (and a .env file);
command-line options override it.

Exit codes: 0 passed, 1 contract violation, 2 environment failure,
3 preparation failure.
        """,
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    verbosity.add_argument("--quiet", "-q", action="store_true", help="Warnings and errors only")
    parser.add_argument(
        "--log-format",
        choices=["console", "json"],
        default="console",
        help="Log renderer (default: console)",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run contract verification for one protocol pair")
    _add_protocol_args(run)
    run.add_argument("--profile", "-p", help="Precomputed overlay profile name")
    run.add_argument("--strategy", choices=sorted(VALID_STRATEGIES), help="Overlay strategy")
    run.add_argument("--spec", type=Path, help="Base specification path")
    run.add_argument("--verifier-mode", choices=sorted(VALID_VERIFIER_MODES))
    run.add_argument(
        "--no-infra",
        action="store_true",
        help="Do not start or stop docker compose infrastructure",
    )
    run.add_argument("--json", action="store_true", help="Print the run report as JSON")

    overlay = sub.add_parser("overlay", help="Generate an overlay artifact only")
    _add_protocol_args(overlay)
    overlay.add_argument("--spec", type=Path, help="Validate against this specification")
    overlay.add_argument("--output", "-o", type=Path, help="Write here instead of stdout")
    overlay.add_argument("--order-service-url", help="Base URL for HTTP descriptors")

    classify = sub.add_parser("classify", help="Classify a captured engine log")
    classify.add_argument("file", help="Log file path, or - for stdin")
    classify.add_argument(
        "--policy",
        choices=sorted(VALID_MISSING_PASSED_POLICIES),
        default="indeterminate",
        help="Verdict when Failed: 0 appears without a Passed: count",
    )
    classify.add_argument("--json", action="store_true", help="Print the outcome as JSON")

    sub.add_parser("profiles", help="List precomputed overlay profiles")

    parsed = parser.parse_args(args)
    if getattr(parsed, "receive", None) or getattr(parsed, "send", None):
        if not (parsed.receive and parsed.send):
            parser.error("--receive and --send must be given together")
        if getattr(parsed, "profile", None):
            parser.error("--profile cannot be combined with --receive/--send")
    return parsed


def settings_from_args(args: argparse.Namespace, base: Settings) -> Settings:
    """Apply ``run`` options on top of environment settings."""
    settings = base.with_overrides(
        overlay_strategy=args.strategy,
        spec_path=args.spec,
        verifier_mode=args.verifier_mode,
    )
    if args.receive:
        settings = replace(
            settings,
            receive_protocol=args.receive,
            send_protocol=args.send,
            overlay_profile=None,
        )
    elif args.profile:
        settings = replace(
            settings,
            overlay_profile=args.profile,
            receive_protocol=None,
            send_protocol=None,
        )
    if args.no_infra:
        settings = replace(settings, infra_enabled=False)
    return settings


def _report_error(error: HarnessError, as_json: bool) -> int:
    if as_json:
        print(json.dumps({"error": error.to_dict()}, indent=2))
    else:
        print(f"Error [{error.category.value}]: {error.message}", file=sys.stderr)
        tail = error.details.get("output_tail") or error.details.get("excerpt")
        if tail:
            print(tail, file=sys.stderr)
    return exit_code_for(error)


async def run_verification(args: argparse.Namespace) -> int:
    """Run one verification and print its report.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code
    """
    try:
        settings = settings_from_args(args, load_settings())
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_PREPARATION

    orchestrator = RunOrchestrator(settings, create_infrastructure(settings))
    try:
        reports = await orchestrator.run_suite()
    except HarnessError as e:
        return _report_error(e, args.json)

    report = reports[0]
    try:
        path = report.save(settings.report_dir)
    except OSError as e:
        print(f"Error writing report to {settings.report_dir}: {e}", file=sys.stderr)
        return EXIT_ENVIRONMENT
    if args.json:
        print(report.to_json())
    else:
        print("=" * 60)
        print(report.summary())
        print("=" * 60)
        print(f"Report saved to: {path}")
    return EXIT_PASSED if report.passed else EXIT_CONTRACT


def generate_overlay(args: argparse.Namespace) -> int:
    """Write or print the overlay artifact for a protocol pair."""
    try:
        selection = ProtocolSelection(
            receive_protocol=args.receive or "amqp",
            send_protocol=args.send or "kafka",
        )
    except ValueError as e:
        print(f"Invalid protocol selection: {e}", file=sys.stderr)
        return EXIT_PREPARATION

    try:
        document = SpecDocument.load(args.spec) if args.spec else None
        actions = build_overlay_actions(
            selection,
            document,
            default_augmentations(args.order_service_url),
        )
    except HarnessError as e:
        return _report_error(e, as_json=False)

    if args.output:
        try:
            write_overlay_document(args.output, actions)
        except OSError as e:
            print(f"Error writing {args.output}: {e}", file=sys.stderr)
            return EXIT_PREPARATION
        print(f"Overlay written to: {args.output}")
    else:
        sys.stdout.write(render_overlay_document(actions))
    return EXIT_PASSED


def classify_log(args: argparse.Namespace) -> int:
    """Classify a captured engine log and print the verdict."""
    if args.file == "-":
        text = sys.stdin.read()
    else:
        try:
            text = Path(args.file).read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            print(f"Error reading {args.file}: {e}", file=sys.stderr)
            return EXIT_PREPARATION

    outcome = classify_output(text, missing_passed_policy=args.policy)
    if args.json:
        print(json.dumps(outcome.to_dict(), indent=2))
    else:
        print(f"Outcome: {outcome.status.value.upper()}")
        if outcome.detail:
            print(f"Detail: {outcome.detail}")
        if not outcome.is_success and outcome.excerpt:
            print(outcome.excerpt)
    return EXIT_PASSED if outcome.is_success else EXIT_CONTRACT


def list_profiles() -> int:
    for profile in OVERLAY_PROFILES.values():
        print(f"{profile.name:<12} {profile.description} ({profile.asset})")
    return EXIT_PASSED


def main(args: Optional[list[str]] = None) -> int:
    """Main entry point.

    Args:
        args: Optional list of arguments (uses sys.argv if None)

    Returns:
        Exit code
    """
    parsed = parse_args(args)
    level = "debug" if parsed.verbose else "warning" if parsed.quiet else "info"
    configure_logging(level, parsed.log_format)

    if parsed.command == "run":
        return asyncio.run(run_verification(parsed))
    if parsed.command == "overlay":
        return generate_overlay(parsed)
    if parsed.command == "classify":
        return classify_log(parsed)
    return list_profiles()


if __name__ == "__main__":
    sys.exit(main())
