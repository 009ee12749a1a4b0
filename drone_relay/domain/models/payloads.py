"""
Channel Payloads
================

Pydantic models for the structured payloads carried inside an envelope,
and the tag-driven decode step that picks the right model per channel.

Field names match the browser/pion JSON forms (camelCase).
"""
from typing import Dict, Literal, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from drone_relay.core.exceptions import ProtocolDecodeError
from drone_relay.domain.models.envelope import Tag


class Announcement(BaseModel):
    """Identity sent on the "match" channel."""
    type: Literal["drone", "receiver"] = "drone"
    id: str = Field(..., min_length=1)


class SessionDescriptionPayload(BaseModel):
    """Offer/answer descriptor. The SDP body is opaque to the drone."""
    type: Literal["offer", "answer", "pranswer", "rollback"]
    sdp: str = ""

    @model_validator(mode="after")
    def _require_sdp(self) -> "SessionDescriptionPayload":
        if self.type != "rollback" and not self.sdp:
            raise ValueError("sdp cannot be empty")
        return self


class CandidatePayload(BaseModel):
    """Connectivity candidate (RTCIceCandidateInit shape)."""
    model_config = ConfigDict(populate_by_name=True)

    candidate: str
    sdp_mid: Optional[str] = Field(None, alias="sdpMid")
    sdp_mline_index: Optional[int] = Field(None, alias="sdpMLineIndex")
    username_fragment: Optional[str] = Field(None, alias="usernameFragment")

    @property
    def is_end_of_candidates(self) -> bool:
        return not self.candidate


Payload = Union[Announcement, SessionDescriptionPayload, CandidatePayload, str]

_PAYLOAD_MODELS: Dict[str, Type[BaseModel]] = {
    Tag.MATCH.value: Announcement,
    Tag.DESCRIPTION.value: SessionDescriptionPayload,
    Tag.ICE_CANDIDATE.value: CandidatePayload,
}


def decode_payload(tag: str, text: str) -> Payload:
    """
    Decode a payload according to its channel.

    Channels without a structured model return the text unchanged.

    Raises:
        ProtocolDecodeError: Payload does not match the channel's model
    """
    key = tag.value if isinstance(tag, Tag) else tag
    model = _PAYLOAD_MODELS.get(key)
    if model is None:
        return text
    try:
        return model.model_validate_json(text)
    except ValidationError as e:
        raise ProtocolDecodeError(
            f"Invalid {key} payload",
            {"errors": e.error_count()},
        ) from e


def encode_payload(payload: BaseModel) -> str:
    """Serialize a payload model with wire field names, dropping nulls."""
    return payload.model_dump_json(by_alias=True, exclude_none=True)


def decode_description(text: str) -> SessionDescriptionPayload:
    return decode_payload(Tag.DESCRIPTION, text)


def decode_candidate(text: str) -> CandidatePayload:
    return decode_payload(Tag.ICE_CANDIDATE, text)
