"""Shared test fixtures for the contract harness."""

import sys
import textwrap
from pathlib import Path

import pytest

from contract_harness.config import Settings
from contract_harness.spec.document import SpecDocument
from contract_harness.spec.models import ProtocolSelection
from contract_harness.verification.command import VerifierCommand


SAMPLE_SPEC = textwrap.dedent(
    """\
    asyncapi: 3.0.0
    info:
      title: Order API
      version: 1.0.0
    servers:
      amqpServer:
        host: localhost:5672
        protocol: amqp
      kafkaServer:
        host: localhost:9092
        protocol: kafka
      jmsServer:
        host: localhost:61616
        protocol: jms
      mqttServer:
        host: localhost:1883
        protocol: mqtt
      sqsServer:
        host: localhost:4566
        protocol: sqs
    channels:
      NewOrderPlaced:
        address: new-orders
        servers:
          - $ref: '#/servers/kafkaServer'
      OrderCancellationRequested:
        address: cancel-order
        servers:
          - $ref: '#/servers/kafkaServer'
      OrderDeliveryInitiated:
        address: initiate-order-delivery
        servers:
          - $ref: '#/servers/kafkaServer'
      OrderInitiated:
        address: wip-orders
        servers:
          - $ref: '#/servers/kafkaServer'
      OrderCancelled:
        address: cancelled-orders
        servers:
          - $ref: '#/servers/kafkaServer'
      OrderAccepted:
        address: accepted-orders
        servers:
          - $ref: '#/servers/kafkaServer'
    operations:
      placeOrder:
        action: receive
        channel:
          $ref: '#/channels/NewOrderPlaced'
      cancelOrder:
        action: receive
        channel:
          $ref: '#/channels/OrderCancellationRequested'
      orderAccepted:
        action: send
        channel:
          $ref: '#/channels/OrderAccepted'
      initiateOrderDelivery:
        action: receive
        channel:
          $ref: '#/channels/OrderDeliveryInitiated'
    """
)


@pytest.fixture
def spec_text() -> str:
    """Sample order service specification text."""
    return SAMPLE_SPEC


@pytest.fixture
def spec_path(tmp_path: Path) -> Path:
    """Sample specification written to a temp directory."""
    path = tmp_path / "spec" / "spec.yaml"
    path.parent.mkdir(parents=True)
    path.write_text(SAMPLE_SPEC, encoding="utf-8")
    return path


@pytest.fixture
def spec_document() -> SpecDocument:
    """Parsed sample specification."""
    return SpecDocument.from_text(SAMPLE_SPEC)


@pytest.fixture
def amqp_kafka() -> ProtocolSelection:
    return ProtocolSelection(receive="amqp", send="kafka")


@pytest.fixture
def settings(tmp_path: Path, spec_path: Path) -> Settings:
    """Settings pointing at temp paths with short waits and no infrastructure."""
    return Settings(
        receive_protocol="amqp",
        send_protocol="kafka",
        overlay_profile=None,
        overlay_strategy="overlay_document",
        spec_path=spec_path,
        overlay_output_path=tmp_path / "build" / "overlay" / "spec_overlay.yaml",
        verifier_config_path=tmp_path / "specmatic.yaml",
        report_dir=tmp_path / "build" / "reports",
        verifier_mode="docker",
        verifier_image="specmatic/specmatic-async",
        verifier_jar=tmp_path / "specmatic.jar",
        verifier_startup_timeout_seconds=5.0,
        verifier_completion_timeout_seconds=5.0,
        verifier_settle_seconds=0.0,
        verifier_stop_grace_seconds=1.0,
        verifier_env={},
        order_service_url="http://localhost:8080",
        descriptor_timeout_seconds=10,
        infra_enabled=False,
        compose_file=tmp_path / "docker-compose.yml",
        infra_settle_seconds=0.0,
        readiness_url=None,
        readiness_timeout_seconds=1.0,
        missing_passed_count_policy="indeterminate",
    )


@pytest.fixture
def python_engine():
    """Factory for commands that run a Python script in place of the engine."""

    def _make(script: str) -> VerifierCommand:
        return VerifierCommand(argv=(sys.executable, "-u", "-c", textwrap.dedent(script)))

    return _make
