"""Protocol overlay generation and application.

Example:
    from contract_harness.overlay import create_overlay_strategy
    from contract_harness.spec import ProtocolSelection

    strategy = create_overlay_strategy(
        "overlay_document",
        spec_path=Path("spec/spec.yaml"),
        overlay_path=Path("build/overlay/spec_overlay.yaml"),
    )
    prepared = strategy.prepare(ProtocolSelection(receive="amqp", send="kafka"))
    try:
        ...  # run the verifier against prepared.spec_path / prepared.overlay_path
    finally:
        prepared.discard()
"""

from .applier import (
    OVERLAY_VERSION,
    apply_actions,
    load_overlay_document,
    overlay_document,
    render_overlay_document,
    write_overlay_document,
)
from .builder import build_overlay_actions, channel_binding_target, operation_target
from .profiles import (
    OVERLAY_PROFILES,
    OverlayProfile,
    find_profile,
    get_overlay_profile,
    load_profile_actions,
    profile_for_selection,
)
from .strategies import (
    InPlaceOverlayStrategy,
    OverlayDocumentStrategy,
    OverlayStrategy,
    OverlayStrategyName,
    PrecomputedOverlayStrategy,
    PreparedOverlay,
    create_overlay_strategy,
)
from .topology import (
    INBOUND_CHANNELS,
    OUTBOUND_CHANNELS,
    SIDE_EFFECT_OPERATION,
    TRIGGER_OPERATION,
    OperationAugmentation,
    default_augmentations,
)

__all__ = [
    # Topology
    "INBOUND_CHANNELS",
    "OUTBOUND_CHANNELS",
    "SIDE_EFFECT_OPERATION",
    "TRIGGER_OPERATION",
    "OperationAugmentation",
    "default_augmentations",
    # Builder
    "build_overlay_actions",
    "channel_binding_target",
    "operation_target",
    # Applier
    "OVERLAY_VERSION",
    "apply_actions",
    "load_overlay_document",
    "overlay_document",
    "render_overlay_document",
    "write_overlay_document",
    # Profiles
    "OVERLAY_PROFILES",
    "OverlayProfile",
    "find_profile",
    "get_overlay_profile",
    "load_profile_actions",
    "profile_for_selection",
    # Strategies
    "InPlaceOverlayStrategy",
    "OverlayDocumentStrategy",
    "OverlayStrategy",
    "OverlayStrategyName",
    "PrecomputedOverlayStrategy",
    "PreparedOverlay",
    "create_overlay_strategy",
]
