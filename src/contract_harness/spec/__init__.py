"""Specification document model and path addressing."""

from .document import SpecDocument, atomic_write_text
from .models import (
    Channel,
    DescriptorKind,
    Direction,
    HttpDescriptor,
    OutcomeStatus,
    OverlayAction,
    ProtocolSelection,
    Server,
    SideEffectDescriptor,
    TriggerDescriptor,
    VerificationOutcome,
    server_id_for,
    server_ref_for,
)
from .paths import PathExpression

__all__ = [
    # Document
    "SpecDocument",
    "atomic_write_text",
    "PathExpression",
    # Models
    "Channel",
    "DescriptorKind",
    "Direction",
    "HttpDescriptor",
    "OutcomeStatus",
    "OverlayAction",
    "ProtocolSelection",
    "Server",
    "SideEffectDescriptor",
    "TriggerDescriptor",
    "VerificationOutcome",
    "server_id_for",
    "server_ref_for",
]
