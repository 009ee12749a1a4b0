"""
Envelope
========

Tagged message unit carried over the signaling channel.

Wire form is a JSON object: {"channel": <tag>, "data": <payload>}.
"""
from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from drone_relay.core.exceptions import ProtocolDecodeError


class Tag(str, Enum):
    """Channels understood by the drone and the signaling server."""
    MATCH = "match"                    # announce identity
    DESCRIPTION = "description"        # SDP offer/answer exchange
    ICE_CANDIDATE = "iceCandidate"     # trickled candidates
    CLIENTS_ONLINE = "clientsOnline"   # heartbeat, empty payload
    BEGIN = "begin"                    # remote asks for an offer
    CONNECTED = "connected"            # handshake acknowledgment
    MESSAGE = "message"                # free-form diagnostic text
    MSG = "msg"                        # free-form diagnostic text
    DISCONNECT = "disconnect"          # remote asks for a full reset


class _WireEnvelope(BaseModel):
    model_config = ConfigDict(strict=True, extra="ignore")

    channel: str = Field(..., min_length=1)
    data: str = ""


@dataclass(frozen=True)
class Envelope:
    """
    Immutable (tag, payload) pair.

    The payload is opaque text; channels that carry structured data
    encode it as JSON inside the payload string.
    """
    tag: str
    payload: str = ""

    def __post_init__(self) -> None:
        tag = self.tag.value if isinstance(self.tag, Tag) else self.tag
        if not isinstance(tag, str) or not tag:
            raise ValueError("Envelope tag cannot be empty")
        if not isinstance(self.payload, str):
            raise ValueError("Envelope payload must be a string")
        object.__setattr__(self, "tag", tag)

    def encode(self) -> str:
        """Serialize to the JSON wire form."""
        return _WireEnvelope(channel=self.tag, data=self.payload).model_dump_json()

    @classmethod
    def decode(cls, raw) -> "Envelope":
        """
        Parse one inbound frame.

        Args:
            raw: Text (or bytes) frame as read from the websocket

        Returns:
            Decoded envelope

        Raises:
            ProtocolDecodeError: Frame is not a valid envelope
        """
        try:
            wire = _WireEnvelope.model_validate_json(raw)
        except ValidationError as e:
            raise ProtocolDecodeError(
                "Malformed envelope",
                {"errors": e.error_count(), "frame": _preview(raw)},
            ) from e
        return cls(tag=wire.channel, payload=wire.data)


def _preview(raw, limit: int = 80) -> str:
    if isinstance(raw, (bytes, bytearray)):
        raw = bytes(raw).decode("utf-8", errors="replace")
    text = str(raw)
    return text if len(text) <= limit else f"{text[:limit]}..."
