"""Map a protocol selection onto overlay actions for the fixed topology."""

from __future__ import annotations

from typing import Iterable, Optional

import structlog

from contract_harness.core.errors import SpecMutationFailure
from contract_harness.spec.document import SpecDocument
from contract_harness.spec.models import (
    OverlayAction,
    ProtocolSelection,
    server_id_for,
    server_ref_for,
)
from contract_harness.spec.paths import PathExpression

from .topology import OperationAugmentation, channel_directions, default_augmentations

logger = structlog.get_logger(__name__)


def channel_binding_target(channel: str) -> PathExpression:
    """Path of a channel's first server reference object."""
    return PathExpression.of("channels", channel, "servers", 0)


def operation_target(operation: str) -> PathExpression:
    return PathExpression.of("operations", operation)


def build_overlay_actions(
    selection: ProtocolSelection,
    document: Optional[SpecDocument] = None,
    augmentations: Optional[Iterable[OperationAugmentation]] = None,
) -> list[OverlayAction]:
    """
    Build the overlay actions for a protocol selection.

    One action per topology channel rebinds its first server reference to
    ``#/servers/<protocol>Server``; one action per augmentation attaches an
    HTTP descriptor to its operation. The result depends only on the
    arguments, so repeated calls produce identical lists.

    Args:
        selection: Protocol pair for this run
        document: Base specification to validate against (skipped if None)
        augmentations: Operation descriptors (order workflow defaults if None)

    Returns:
        Overlay actions in topology order, channels first

    Raises:
        SpecMutationFailure: If the document lacks a topology channel, an
            augmented operation, or the server a channel would be bound to
    """
    augmentations = tuple(augmentations if augmentations is not None else default_augmentations())

    if document is not None:
        validate_against_document(selection, document, augmentations)

    actions: list[OverlayAction] = []
    for channel, direction in channel_directions():
        protocol = selection.protocol_for(direction)
        actions.append(
            OverlayAction(
                target=channel_binding_target(channel),
                update={"$ref": server_ref_for(protocol)},
            )
        )

    for augmentation in augmentations:
        descriptor = augmentation.descriptor
        actions.append(
            OverlayAction(
                target=operation_target(augmentation.operation),
                update={descriptor.kind.extension_key: descriptor.to_extension()},
            )
        )

    logger.info(
        "overlay_actions_built",
        receive_protocol=selection.receive_protocol,
        send_protocol=selection.send_protocol,
        action_count=len(actions),
    )
    return actions


def validate_against_document(
    selection: ProtocolSelection,
    document: SpecDocument,
    augmentations: Iterable[OperationAugmentation],
) -> None:
    """
    Fail fast when the topology does not fit the base document.

    Raises:
        SpecMutationFailure: Listing every missing channel, operation or server
    """
    missing_channels: list[str] = []
    missing_bindings: list[str] = []
    for channel, _direction in channel_directions():
        if not document.has_channel(channel):
            missing_channels.append(channel)
        elif not channel_binding_target(channel).exists(document.tree):
            missing_bindings.append(channel)

    missing_operations = [
        augmentation.operation
        for augmentation in augmentations
        if not document.has_operation(augmentation.operation)
    ]

    missing_servers = sorted(
        {
            server_id_for(protocol)
            for protocol in (selection.receive_protocol, selection.send_protocol)
            if not document.has_server(server_id_for(protocol))
        }
    )

    if missing_channels or missing_bindings or missing_operations or missing_servers:
        problems = []
        if missing_channels:
            problems.append(f"channels {', '.join(missing_channels)} not declared")
        if missing_bindings:
            problems.append(f"channels {', '.join(missing_bindings)} have no server binding")
        if missing_operations:
            problems.append(f"operations {', '.join(missing_operations)} not declared")
        if missing_servers:
            problems.append(f"servers {', '.join(missing_servers)} not declared")
        logger.error(
            "overlay_topology_mismatch",
            source=str(document.source) if document.source else None,
            missing_channels=missing_channels,
            missing_bindings=missing_bindings,
            missing_operations=missing_operations,
            missing_servers=missing_servers,
        )
        raise SpecMutationFailure(
            "; ".join(problems),
            details={
                "missing_channels": missing_channels,
                "missing_bindings": missing_bindings,
                "missing_operations": missing_operations,
                "missing_servers": missing_servers,
            },
        )
