"""Apply overlay actions to documents and convert them to overlay artifacts."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable

import structlog
import yaml

from contract_harness.core.errors import SpecMutationFailure
from contract_harness.spec.document import SpecDocument, atomic_write_text
from contract_harness.spec.models import OverlayAction

logger = structlog.get_logger(__name__)

OVERLAY_VERSION = "1.0.0"
OVERLAY_TITLE = "Protocol bindings and HTTP descriptors for contract verification"


def apply_actions(document: SpecDocument, actions: Iterable[OverlayAction]) -> SpecDocument:
    """
    Apply actions to a copy of ``document``.

    Either every action lands on the returned copy or an error is raised and
    the input document is left untouched.

    Args:
        document: Base specification
        actions: Overlay actions to apply

    Returns:
        New SpecDocument with all actions applied

    Raises:
        SpecMutationFailure: If a target is missing or a rebound channel ends up
            pointing at an undeclared server
    """
    patched = document.copy()
    rebound: list[str] = []
    applied = 0
    for action in actions:
        patched.merge(action.target, action.update)
        segments = action.target.segments
        if len(segments) >= 2 and segments[0] == "channels":
            rebound.append(str(segments[1]))
        applied += 1

    unresolved = patched.unresolved_server_refs(rebound)
    if unresolved:
        raise SpecMutationFailure(
            "rebound channels reference undeclared servers: "
            + ", ".join(f"{name} -> {ref}" for name, ref in unresolved.items()),
            details={"unresolved": unresolved},
        )

    logger.debug("overlay_actions_applied", action_count=applied, rebound_channels=rebound)
    return patched


def overlay_document(actions: Iterable[OverlayAction]) -> dict[str, Any]:
    """Build the overlay artifact structure: ``{overlay, info, actions}``."""
    return {
        "overlay": OVERLAY_VERSION,
        "info": {"title": OVERLAY_TITLE, "version": OVERLAY_VERSION},
        "actions": [action.to_dict() for action in actions],
    }


def render_overlay_document(actions: Iterable[OverlayAction]) -> str:
    """Serialise actions as a YAML overlay artifact.

    Output is a pure function of the actions, so identical inputs yield
    byte-identical artifacts.
    """
    return yaml.safe_dump(
        overlay_document(actions),
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=4096,
    )


def write_overlay_document(path: Path, actions: Iterable[OverlayAction]) -> Path:
    """Write the overlay artifact atomically and return its path."""
    atomic_write_text(path, render_overlay_document(actions))
    logger.info("overlay_document_written", path=str(path))
    return path


def load_overlay_document(text: str, source: str = "<overlay>") -> list[OverlayAction]:
    """
    Parse an overlay artifact back into actions.

    Raises:
        SpecMutationFailure: If the artifact does not follow the overlay schema
    """
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise SpecMutationFailure(
            f"overlay {source} is not valid YAML: {exc}", details={"source": source}
        ) from exc

    if not isinstance(raw, dict) or "overlay" not in raw:
        raise SpecMutationFailure(
            f"overlay {source} has no 'overlay' version field", details={"source": source}
        )
    entries = raw.get("actions")
    if not isinstance(entries, list):
        raise SpecMutationFailure(
            f"overlay {source} has no 'actions' list", details={"source": source}
        )

    actions: list[OverlayAction] = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict) or "target" not in entry:
            raise SpecMutationFailure(
                f"overlay {source} action #{index} has no target",
                details={"source": source, "index": index},
            )
        actions.append(OverlayAction.from_dict(entry))
    return actions
