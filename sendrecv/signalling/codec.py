"""
Wire codec for the signalling protocol.

Control words travel as bare text (``HELLO``, ``SESSION_OK``, ``ERROR ...``);
session descriptions and ICE candidates travel as JSON envelopes.  The JSON
side is validated through pydantic models mirroring the server contract.

Answers nest the SDP text one level deeper than offers
(``{"sdp": {"type": "answer", "sdp": {"sdp": "..."}}}``).  The decoder accepts
both the nested and the flat form for answers; offers are always encoded flat.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import MalformedMessage

HELLO = "HELLO"
SESSION = "SESSION"
SESSION_OK = "SESSION_OK"
ERROR = "ERROR"


# ---------------------------------------------------------------- messages


@dataclass(frozen=True)
class Hello:
    """Registration (outbound, carries the client token) or its ack (inbound)."""

    client_token: Optional[str] = None


@dataclass(frozen=True)
class SessionRequest:
    peer_id: str


@dataclass(frozen=True)
class SessionAck:
    pass


@dataclass(frozen=True)
class Error:
    text: str


@dataclass(frozen=True)
class SdpOffer:
    sdp: str


@dataclass(frozen=True)
class SdpAnswer:
    sdp: str


@dataclass(frozen=True)
class IceCandidate:
    candidate: str
    mline_index: int
    sdp_mid: Optional[str] = None


SignallingMessage = Union[Hello, SessionRequest, SessionAck, Error, SdpOffer, SdpAnswer, IceCandidate]


# ---------------------------------------------------------------- envelopes


class NestedSdpModel(BaseModel):
    sdp: str


class SdpBodyModel(BaseModel):
    type: Optional[str] = None
    sdp: Union[str, NestedSdpModel]


class SdpEnvelopeModel(BaseModel):
    sdp: SdpBodyModel


class IceBodyModel(BaseModel):
    candidate: str
    sdp_mline_index: int = Field(alias="sdpMLineIndex", ge=0, strict=True)
    sdp_mid: Optional[str] = Field(default=None, alias="sdpMid")
    model_config = ConfigDict(populate_by_name=True, validate_by_name=True)


class IceEnvelopeModel(BaseModel):
    ice: IceBodyModel


# ---------------------------------------------------------------- codec


class MessageCodec:
    """Translate between raw text frames and :data:`SignallingMessage` values."""

    def decode(self, text: str) -> SignallingMessage:
        if not isinstance(text, str):
            raise MalformedMessage(f"expected a text frame, got {type(text).__name__}")

        word = text.strip()
        if word == HELLO:
            return Hello()
        if word == SESSION_OK:
            return SessionAck()
        if word.startswith(ERROR):
            return Error(text=word[len(ERROR):].strip())

        try:
            payload = json.loads(text)
        except ValueError as exc:
            raise MalformedMessage(f"payload is neither a control word nor JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise MalformedMessage("JSON payload is not an object")

        if "sdp" in payload:
            return self._decode_sdp(payload)
        if "ice" in payload:
            return self._decode_ice(payload)
        raise MalformedMessage(f"JSON payload has no 'sdp' or 'ice' field: {sorted(payload)}")

    def encode(self, message: SignallingMessage) -> str:
        if isinstance(message, Hello):
            if not message.client_token:
                raise ValueError("outbound HELLO requires a client token")
            return f"{HELLO} {message.client_token}"
        if isinstance(message, SessionRequest):
            return f"{SESSION} {message.peer_id}"
        if isinstance(message, SdpOffer):
            envelope = SdpEnvelopeModel(sdp=SdpBodyModel(type="offer", sdp=message.sdp))
            return envelope.model_dump_json()
        if isinstance(message, IceCandidate):
            envelope = IceEnvelopeModel(
                ice=IceBodyModel(
                    candidate=message.candidate,
                    sdp_mline_index=message.mline_index,
                    sdp_mid=message.sdp_mid,
                )
            )
            return envelope.model_dump_json(by_alias=True, exclude_none=True)
        raise TypeError(f"{type(message).__name__} is never sent by this client")

    # ------------------------------------------------------------ helpers

    @staticmethod
    def _decode_sdp(payload: dict) -> SignallingMessage:
        try:
            envelope = SdpEnvelopeModel.model_validate(payload)
        except ValidationError as exc:
            raise MalformedMessage(f"invalid sdp envelope: {exc}") from exc

        body = envelope.sdp
        text = body.sdp if isinstance(body.sdp, str) else body.sdp.sdp
        if body.type == "offer":
            return SdpOffer(sdp=text)
        if body.type in (None, "answer"):
            return SdpAnswer(sdp=text)
        raise MalformedMessage(f"unsupported sdp type '{body.type}'")

    @staticmethod
    def _decode_ice(payload: dict) -> IceCandidate:
        try:
            envelope = IceEnvelopeModel.model_validate(payload)
        except ValidationError as exc:
            raise MalformedMessage(f"invalid ice envelope: {exc}") from exc
        return IceCandidate(
            candidate=envelope.ice.candidate,
            mline_index=envelope.ice.sdp_mline_index,
            sdp_mid=envelope.ice.sdp_mid,
        )


__all__ = [
    "Error",
    "Hello",
    "IceCandidate",
    "MessageCodec",
    "SdpAnswer",
    "SdpOffer",
    "SessionAck",
    "SessionRequest",
    "SignallingMessage",
]
