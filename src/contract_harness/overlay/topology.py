"""Static channel/operation topology of the order service contract.

Directions are fixed here rather than discovered from the document: inbound
channels carry commands the service consumes, outbound channels carry the
events it publishes.
"""

import json
from dataclasses import dataclass
from typing import Optional

from contract_harness.spec.models import DescriptorKind, Direction, HttpDescriptor

INBOUND_CHANNELS: tuple[str, ...] = (
    "NewOrderPlaced",
    "OrderCancellationRequested",
    "OrderDeliveryInitiated",
)

OUTBOUND_CHANNELS: tuple[str, ...] = (
    "OrderInitiated",
    "OrderCancelled",
    "OrderAccepted",
)

TRIGGER_OPERATION = "orderAccepted"
SIDE_EFFECT_OPERATION = "initiateOrderDelivery"

DEFAULT_ORDER_SERVICE_URL = "http://localhost:8080"
DEFAULT_DESCRIPTOR_TIMEOUT_SECONDS = 10

# Order the trigger moves to ACCEPTED and the side effect expects SHIPPED
SAMPLE_ORDER_ID = 123
SAMPLE_ORDER_TIMESTAMP = "2025-04-12T14:30:00Z"


def channel_directions() -> list[tuple[str, Direction]]:
    """All topology channels with their direction, inbound first."""
    return [(name, Direction.INBOUND) for name in INBOUND_CHANNELS] + [
        (name, Direction.OUTBOUND) for name in OUTBOUND_CHANNELS
    ]


@dataclass(frozen=True)
class OperationAugmentation:
    """A descriptor attached to a named operation."""

    operation: str
    descriptor: HttpDescriptor


def accepted_order_body() -> str:
    """JSON body for the accepted-order state transition."""
    return json.dumps(
        {
            "id": SAMPLE_ORDER_ID,
            "status": "ACCEPTED",
            "timestamp": SAMPLE_ORDER_TIMESTAMP,
        },
        separators=(",", ":"),
    )


def default_augmentations(
    order_service_url: Optional[str] = None,
    timeout_seconds: int = DEFAULT_DESCRIPTOR_TIMEOUT_SECONDS,
) -> tuple[OperationAugmentation, ...]:
    """
    Build the trigger and side-effect descriptors for the order workflow.

    Args:
        order_service_url: Base URL of the service under test
        timeout_seconds: Per-request timeout the verifier applies

    Returns:
        Trigger for ``orderAccepted`` and side effect for ``initiateOrderDelivery``
    """
    base_url = (order_service_url or DEFAULT_ORDER_SERVICE_URL).rstrip("/")
    trigger = HttpDescriptor(
        kind=DescriptorKind.TRIGGER,
        method="PUT",
        url=f"{base_url}/orders",
        expected_status=200,
        timeout_seconds=timeout_seconds,
        headers={"Content-Type": "application/json"},
        body=accepted_order_body(),
    )
    side_effect = HttpDescriptor(
        kind=DescriptorKind.SIDE_EFFECT,
        method="GET",
        url=f"{base_url}/orders/{SAMPLE_ORDER_ID}?status=SHIPPED",
        expected_status=200,
        timeout_seconds=timeout_seconds,
    )
    return (
        OperationAugmentation(operation=TRIGGER_OPERATION, descriptor=trigger),
        OperationAugmentation(operation=SIDE_EFFECT_OPERATION, descriptor=side_effect),
    )
