"""Pre-authored overlay profiles for known protocol pairs.

Each profile names a protocol pair and the overlay asset shipped for it under
``contract_harness/overlay/assets``. Profiles trade generality for simplicity:
they only exist for pairs in this registry, and asking for any other pair is a
configuration error.
"""

from dataclasses import dataclass
from importlib import resources
from typing import Optional

import structlog

from contract_harness.core.errors import SpecMutationFailure
from contract_harness.spec.models import OverlayAction, ProtocolSelection

from .applier import load_overlay_document

logger = structlog.get_logger(__name__)

ASSET_PACKAGE = "contract_harness.overlay"
ASSET_DIR = "assets"


@dataclass(frozen=True)
class OverlayProfile:
    """
    A named, pre-authored overlay.

    Attributes:
        name: Profile name, ``<receive>-<send>``
        description: What the profile is for
        receive_protocol: Protocol of inbound channels
        send_protocol: Protocol of outbound channels
        asset: File name of the overlay asset
    """

    name: str
    description: str
    receive_protocol: str
    send_protocol: str
    asset: str

    @property
    def selection(self) -> ProtocolSelection:
        return ProtocolSelection(
            receive_protocol=self.receive_protocol,
            send_protocol=self.send_protocol,
        )


OVERLAY_PROFILES: dict[str, OverlayProfile] = {
    "amqp-kafka": OverlayProfile(
        name="amqp-kafka",
        description="Commands over AMQP, events over Kafka",
        receive_protocol="amqp",
        send_protocol="kafka",
        asset="amqp-kafka.yaml",
    ),
    "sqs-kafka": OverlayProfile(
        name="sqs-kafka",
        description="Commands over SQS, events over Kafka",
        receive_protocol="sqs",
        send_protocol="kafka",
        asset="sqs-kafka.yaml",
    ),
    "jms-mqtt": OverlayProfile(
        name="jms-mqtt",
        description="Commands over JMS, events over MQTT",
        receive_protocol="jms",
        send_protocol="mqtt",
        asset="jms-mqtt.yaml",
    ),
}


def get_overlay_profile(name: str) -> OverlayProfile:
    """
    Get an overlay profile by name.

    Args:
        name: Profile name, e.g. ``amqp-kafka``

    Returns:
        OverlayProfile instance

    Raises:
        SpecMutationFailure: If the profile name is not recognized
    """
    name_lower = name.lower().strip()

    if name_lower not in OVERLAY_PROFILES:
        valid_names = ", ".join(sorted(OVERLAY_PROFILES.keys()))
        raise SpecMutationFailure(
            f"unknown overlay profile {name!r}. Valid profiles: {valid_names}",
            details={"profile": name, "valid_profiles": sorted(OVERLAY_PROFILES.keys())},
        )

    profile = OVERLAY_PROFILES[name_lower]
    logger.debug(
        "overlay_profile_selected",
        profile_name=profile.name,
        receive_protocol=profile.receive_protocol,
        send_protocol=profile.send_protocol,
    )
    return profile


def find_profile(selection: ProtocolSelection) -> Optional[OverlayProfile]:
    """Return the profile matching a protocol pair, if one is shipped."""
    for profile in OVERLAY_PROFILES.values():
        if (
            profile.receive_protocol == selection.receive_protocol
            and profile.send_protocol == selection.send_protocol
        ):
            return profile
    return None


def profile_for_selection(selection: ProtocolSelection) -> OverlayProfile:
    """
    Resolve the profile for a protocol pair.

    Raises:
        SpecMutationFailure: If no profile exists for the pair
    """
    profile = find_profile(selection)
    if profile is None:
        valid_names = ", ".join(sorted(OVERLAY_PROFILES.keys()))
        raise SpecMutationFailure(
            f"no precomputed overlay for {selection.pair_name}. Known pairs: {valid_names}",
            details={"pair": selection.pair_name},
        )
    return profile


def read_profile_asset(profile: OverlayProfile) -> str:
    """Read the raw overlay asset text of a profile."""
    asset = resources.files(ASSET_PACKAGE).joinpath(ASSET_DIR).joinpath(profile.asset)
    return asset.read_text(encoding="utf-8")


def load_profile_actions(profile: OverlayProfile) -> list[OverlayAction]:
    """Parse a profile's overlay asset into actions."""
    return load_overlay_document(read_profile_asset(profile), source=profile.asset)
