"""Data model for specification documents, overlays and verification outcomes."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .paths import PathExpression

_PROTOCOL_NAME = re.compile(r"^[A-Za-z][A-Za-z0-9_-]*$")


class Direction(str, Enum):
    """Channel direction from the point of view of the service under test."""

    INBOUND = "inbound"
    OUTBOUND = "outbound"


@dataclass(frozen=True)
class Channel:
    """A named logical message path bound to a server definition.

    Attributes:
        name: Channel name (identity)
        direction: Inbound or outbound, fixed by the topology table
        server_ref: Reference to the server definition, e.g. ``#/servers/amqpServer``
    """

    name: str
    direction: Direction
    server_ref: Optional[str]


@dataclass(frozen=True)
class Server:
    """A transport-protocol server definition.

    Attributes:
        id: Server identifier, conventionally ``<protocol>Server``
        protocol: Protocol name declared by the server
    """

    id: str
    protocol: Optional[str]


def server_id_for(protocol: str) -> str:
    """Return the conventional server id for a protocol."""
    return f"{protocol}Server"


def server_ref_for(protocol: str) -> str:
    """Return the ``$ref`` value pointing at the server for a protocol."""
    return f"#/servers/{server_id_for(protocol)}"


class ProtocolSelection(BaseModel):
    """Protocol pair chosen once per run.

    Attributes:
        receive_protocol: Protocol for inbound (command) channels
        send_protocol: Protocol for outbound (event) channels
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    receive_protocol: str = Field(..., alias="receive", description="Inbound protocol")
    send_protocol: str = Field(..., alias="send", description="Outbound protocol")

    @field_validator("receive_protocol", "send_protocol", mode="before")
    @classmethod
    def _normalise_protocol(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("protocol must be a string")
        # Case is kept: the name prefixes a case-sensitive server id
        name = value.strip()
        if not _PROTOCOL_NAME.match(name):
            raise ValueError(
                f"invalid protocol name {value!r}: start with a letter, "
                "then use letters, digits, '-' or '_'"
            )
        return name

    def protocol_for(self, direction: Direction) -> str:
        """Return the protocol that channels of the given direction use."""
        if direction is Direction.INBOUND:
            return self.receive_protocol
        return self.send_protocol

    @property
    def pair_name(self) -> str:
        """Name of the protocol pair, e.g. ``amqp-kafka``."""
        return f"{self.receive_protocol}-{self.send_protocol}"

    def __str__(self) -> str:
        return f"receive={self.receive_protocol}, send={self.send_protocol}"


@dataclass(frozen=True)
class OverlayAction:
    """A targeted patch: a path into the document and the fragment to place there.

    Attributes:
        target: Path of the node to update
        update: Partial document merged into (or replacing) the target node
    """

    target: PathExpression
    update: Any

    def to_dict(self) -> dict[str, Any]:
        """Convert to the overlay artifact's ``{target, update}`` form."""
        return {"target": self.target.render(), "update": self.update}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OverlayAction":
        return cls(target=PathExpression.parse(data["target"]), update=data.get("update"))


class DescriptorKind(str, Enum):
    """Whether a descriptor drives an operation or observes its outcome."""

    TRIGGER = "trigger"
    SIDE_EFFECT = "side_effect"

    @property
    def extension_key(self) -> str:
        """Vendor extension field the verifier reads the descriptor from."""
        if self is DescriptorKind.TRIGGER:
            return "x-specmatic-trigger"
        return "x-specmatic-side-effect"


class HttpDescriptor(BaseModel):
    """Declarative HTTP call attached to an operation.

    Field aliases match the verifier's descriptor schema.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    kind: DescriptorKind = Field(..., exclude=True)
    method: str = Field(..., description="HTTP method")
    url: str = Field(..., description="Absolute request URL")
    expected_status: int = Field(
        default=200, alias="expectedStatus", ge=100, le=599, description="Expected HTTP status"
    )
    timeout_seconds: int = Field(
        default=10, alias="timeoutInSeconds", ge=1, description="Request timeout"
    )
    headers: dict[str, str] = Field(default_factory=dict)
    body: Optional[str] = Field(default=None, alias="requestBody")

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.strip().upper()

    def to_extension(self) -> dict[str, Any]:
        """Render as the vendor-extension payload (``type: http`` first)."""
        payload: dict[str, Any] = {
            "type": "http",
            "method": self.method,
            "url": self.url,
            "expectedStatus": self.expected_status,
            "timeoutInSeconds": self.timeout_seconds,
        }
        if self.headers:
            payload["headers"] = dict(self.headers)
        if self.body is not None:
            payload["requestBody"] = self.body
        return payload


TriggerDescriptor = HttpDescriptor
SideEffectDescriptor = HttpDescriptor


class OutcomeStatus(str, Enum):
    """Verdict of a verification run."""

    SUCCESS = "success"
    FAILURE = "failure"
    INDETERMINATE = "indeterminate"


@dataclass(frozen=True)
class VerificationOutcome:
    """Tagged verdict produced exactly once per run.

    Attributes:
        status: Success, failure or indeterminate
        detail: Failure detail or indeterminate reason (empty on success)
        excerpt: Relevant part of the engine output
        passed: Passed scenario count if the engine reported one
        failed: Failed scenario count if the engine reported one
    """

    status: OutcomeStatus
    detail: str = ""
    excerpt: str = ""
    passed: Optional[int] = None
    failed: Optional[int] = None

    @staticmethod
    def success(passed: Optional[int] = None, excerpt: str = "") -> "VerificationOutcome":
        return VerificationOutcome(
            status=OutcomeStatus.SUCCESS, passed=passed, failed=0, excerpt=excerpt
        )

    @staticmethod
    def failure(
        detail: str,
        excerpt: str = "",
        passed: Optional[int] = None,
        failed: Optional[int] = None,
    ) -> "VerificationOutcome":
        """Create a failure outcome.

        Args:
            detail: Why the run is considered failed
            excerpt: Offending part of the engine output
            passed: Passed count, if reported
            failed: Failed count, if reported

        Returns:
            A VerificationOutcome with FAILURE status
        """
        return VerificationOutcome(
            status=OutcomeStatus.FAILURE,
            detail=detail,
            excerpt=excerpt,
            passed=passed,
            failed=failed,
        )

    @staticmethod
    def indeterminate(reason: str, excerpt: str = "") -> "VerificationOutcome":
        return VerificationOutcome(
            status=OutcomeStatus.INDETERMINATE, detail=reason, excerpt=excerpt
        )

    @property
    def is_success(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "status": self.status.value,
            "detail": self.detail,
            "passed": self.passed,
            "failed": self.failed,
            "excerpt": self.excerpt,
        }

