"""Interchangeable ways of handing a protocol overlay to the verifier.

- ``in_place``: rewrite the base specification on disk
- ``overlay_document``: leave the base specification alone and emit an overlay artifact
- ``precomputed``: copy a pre-authored overlay asset for a known protocol pair

All three produce the same channel bindings and operation descriptors for the
same protocol selection.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, ClassVar, Iterable, Iterator, Optional

import structlog

from contract_harness.core.errors import SpecMutationFailure
from contract_harness.spec.document import SpecDocument, atomic_write_text
from contract_harness.spec.models import OverlayAction, ProtocolSelection

from .applier import apply_actions, write_overlay_document
from .builder import build_overlay_actions
from .profiles import (
    OverlayProfile,
    get_overlay_profile,
    load_profile_actions,
    profile_for_selection,
    read_profile_asset,
)
from .topology import OperationAugmentation

logger = structlog.get_logger(__name__)


@contextmanager
def artifact_io(operation: str, path: Path) -> Iterator[None]:
    """Report filesystem errors on overlay artifacts as preparation failures."""
    try:
        yield
    except OSError as exc:
        logger.error(
            "overlay_artifact_io_failed", operation=operation, path=str(path), error=str(exc)
        )
        raise SpecMutationFailure(
            f"cannot {operation} {path}: {exc}",
            details={"path": str(path), "operation": operation},
        ) from exc


class OverlayStrategyName(str, Enum):
    """Available overlay strategies."""

    IN_PLACE = "in_place"
    OVERLAY_DOCUMENT = "overlay_document"
    PRECOMPUTED = "precomputed"


@dataclass
class PreparedOverlay:
    """
    Artifacts one run hands to the verifier.

    Attributes:
        strategy: Strategy that produced the artifacts
        selection: Protocol pair the artifacts encode
        spec_path: Base specification the verifier reads
        overlay_path: Overlay artifact, or None when the AsyncAPI document was rewritten in place
        actions: Actions the artifacts encode
    """

    strategy: OverlayStrategyName
    selection: ProtocolSelection
    spec_path: Path
    overlay_path: Optional[Path]
    actions: list[OverlayAction] = field(default_factory=list)
    _cleanup: Optional[Callable[[], None]] = field(default=None, repr=False)

    def discard(self) -> None:
        """Drop the run's artifacts. Safe to call more than once."""
        cleanup, self._cleanup = self._cleanup, None
        if cleanup is not None:
            cleanup()
            logger.debug("overlay_discarded", strategy=self.strategy.value)


class OverlayStrategy(ABC):
    """Turns a protocol selection into verifier-ready artifacts."""

    name: ClassVar[OverlayStrategyName]

    def __init__(self, spec_path: Path) -> None:
        self.spec_path = spec_path

    def load_base(self) -> SpecDocument:
        return SpecDocument.load(self.spec_path)

    @abstractmethod
    def prepare(self, selection: ProtocolSelection) -> PreparedOverlay:
        """
        Produce the artifacts for ``selection``.

        Either every artifact is in place when this returns or nothing was
        written and an error is raised.

        Raises:
            SpecMutationFailure: If the overlay cannot be produced
        """


class InPlaceOverlayStrategy(OverlayStrategy):
    """Apply the actions to the base specification and write it back.

    The write goes through a temp file and ``os.replace``; the original text
    is restored when the prepared overlay is discarded.
    """

    name = OverlayStrategyName.IN_PLACE

    def __init__(
        self,
        spec_path: Path,
        augmentations: Optional[Iterable[OperationAugmentation]] = None,
    ) -> None:
        super().__init__(spec_path)
        self.augmentations = tuple(augmentations) if augmentations is not None else None

    def prepare(self, selection: ProtocolSelection) -> PreparedOverlay:
        base = self.load_base()
        actions = build_overlay_actions(selection, base, self.augmentations)
        patched = apply_actions(base, actions)

        with artifact_io("read specification", self.spec_path):
            original_text = self.spec_path.read_text(encoding="utf-8")
        with artifact_io("rewrite specification", self.spec_path):
            patched.save(self.spec_path)
        logger.info(
            "spec_rewritten_in_place",
            path=str(self.spec_path),
            selection=str(selection),
            action_count=len(actions),
        )

        def _restore() -> None:
            atomic_write_text(self.spec_path, original_text)

        return PreparedOverlay(
            strategy=self.name,
            selection=selection,
            spec_path=self.spec_path,
            overlay_path=None,
            actions=actions,
            _cleanup=_restore,
        )


class OverlayDocumentStrategy(OverlayStrategy):
    """Emit a standalone overlay artifact and leave the base specification untouched."""

    name = OverlayStrategyName.OVERLAY_DOCUMENT

    def __init__(
        self,
        spec_path: Path,
        overlay_path: Path,
        augmentations: Optional[Iterable[OperationAugmentation]] = None,
    ) -> None:
        super().__init__(spec_path)
        self.overlay_path = overlay_path
        self.augmentations = tuple(augmentations) if augmentations is not None else None

    def prepare(self, selection: ProtocolSelection) -> PreparedOverlay:
        base = self.load_base()
        actions = build_overlay_actions(selection, base, self.augmentations)
        # Dry-run against a copy so a bad overlay never reaches disk
        apply_actions(base, actions)
        with artifact_io("write overlay", self.overlay_path):
            write_overlay_document(self.overlay_path, actions)

        return PreparedOverlay(
            strategy=self.name,
            selection=selection,
            spec_path=self.spec_path,
            overlay_path=self.overlay_path,
            actions=actions,
            _cleanup=lambda: self.overlay_path.unlink(missing_ok=True),
        )


class PrecomputedOverlayStrategy(OverlayStrategy):
    """Copy a pre-authored overlay asset chosen by profile name or protocol pair.

    The asset must encode the same actions the builder generates for the
    configured descriptors; assets carry the default service URL and timeout,
    so any other descriptor configuration is rejected.
    """

    name = OverlayStrategyName.PRECOMPUTED

    def __init__(
        self,
        spec_path: Path,
        overlay_path: Path,
        profile_name: Optional[str] = None,
        augmentations: Optional[Iterable[OperationAugmentation]] = None,
    ) -> None:
        super().__init__(spec_path)
        self.overlay_path = overlay_path
        self.profile_name = profile_name
        self.augmentations = tuple(augmentations) if augmentations is not None else None

    def resolve_profile(self, selection: ProtocolSelection) -> OverlayProfile:
        """
        Pick the profile for this run.

        Raises:
            SpecMutationFailure: If the profile is unknown or does not match ``selection``
        """
        if self.profile_name is None:
            return profile_for_selection(selection)

        profile = get_overlay_profile(self.profile_name)
        if profile.selection != selection:
            raise SpecMutationFailure(
                f"profile {profile.name!r} binds {profile.selection}, "
                f"but the run selected {selection}",
                details={"profile": profile.name, "pair": selection.pair_name},
            )
        return profile

    def check_descriptors(
        self,
        profile: OverlayProfile,
        selection: ProtocolSelection,
        actions: list[OverlayAction],
    ) -> None:
        """
        Compare the asset with the actions generated for the configured descriptors.

        Raises:
            SpecMutationFailure: If the asset binds or describes anything differently
        """
        expected = build_overlay_actions(selection, augmentations=self.augmentations)
        if actions == expected:
            return
        differing = [e.target.render() for e in expected if e not in actions]
        raise SpecMutationFailure(
            f"precomputed overlay {profile.asset!r} does not match the configured "
            "operation descriptors; use a generated strategy for non-default "
            "ORDER_SERVICE_URL or DESCRIPTOR_TIMEOUT_SECONDS",
            details={"profile": profile.name, "differing_targets": differing},
        )

    def prepare(self, selection: ProtocolSelection) -> PreparedOverlay:
        profile = self.resolve_profile(selection)
        actions = load_profile_actions(profile)
        self.check_descriptors(profile, selection, actions)
        apply_actions(self.load_base(), actions)

        with artifact_io("write overlay", self.overlay_path):
            atomic_write_text(self.overlay_path, read_profile_asset(profile))
        logger.info(
            "precomputed_overlay_selected",
            profile=profile.name,
            path=str(self.overlay_path),
        )

        return PreparedOverlay(
            strategy=self.name,
            selection=selection,
            spec_path=self.spec_path,
            overlay_path=self.overlay_path,
            actions=actions,
            _cleanup=lambda: self.overlay_path.unlink(missing_ok=True),
        )


def create_overlay_strategy(
    name: str,
    spec_path: Path,
    overlay_path: Path,
    profile_name: Optional[str] = None,
    augmentations: Optional[Iterable[OperationAugmentation]] = None,
) -> OverlayStrategy:
    """
    Create the configured overlay strategy.

    Args:
        name: Strategy name (in_place, overlay_document or precomputed)
        spec_path: Base specification path
        overlay_path: Where overlay artifacts are written
        profile_name: Precomputed profile name (precomputed strategy only)
        augmentations: Operation descriptors the overlay must carry

    Returns:
        OverlayStrategy instance

    Raises:
        SpecMutationFailure: If the strategy name is not recognized
    """
    try:
        strategy_name = OverlayStrategyName(name.strip().lower())
    except ValueError as exc:
        valid_names = ", ".join(s.value for s in OverlayStrategyName)
        raise SpecMutationFailure(
            f"unknown overlay strategy {name!r}. Valid strategies: {valid_names}",
            details={"strategy": name},
        ) from exc

    if strategy_name is OverlayStrategyName.IN_PLACE:
        return InPlaceOverlayStrategy(spec_path, augmentations=augmentations)
    if strategy_name is OverlayStrategyName.OVERLAY_DOCUMENT:
        return OverlayDocumentStrategy(spec_path, overlay_path, augmentations=augmentations)
    return PrecomputedOverlayStrategy(
        spec_path, overlay_path, profile_name=profile_name, augmentations=augmentations
    )
