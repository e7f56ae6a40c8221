"""Wire schema for the realtime channel.

Inbound frames are JSON objects tagged by ``type``. They are parsed into a
closed discriminated union so the gateway can dispatch on the event class
instead of on raw strings. Outbound frames are plain dictionaries built with
:func:`frame`.
"""

from __future__ import annotations

import re
from typing import Annotated, Any, Literal, Union, get_args

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
)

from .errors import InvalidEvent

_USER_ID_PATTERN = re.compile(r"^[1-9][0-9]{0,18}$")

# Outbound event names
TYPING = "chat:typing"
CHAT_INCOMING = "chat:incoming"
CHAT_SENT = "chat:sent"
CHAT_READ = "chat:read"
UNREAD_UPDATE = "unread_update"
NOTIF_UPDATE = "notif_update"
NEW_NOTIFICATION = "new_notification"
RTC_INCOMING = "rtc:incoming"
RTC_RING = "rtc:ring"
RTC_OFFER = "rtc:offer"
RTC_ANSWER = "rtc:answer"
RTC_CANDIDATE = "rtc:candidate"
RTC_END = "rtc:end"
RTC_ERROR = "rtc:error"
ERROR = "error"
ACK = "ack"
PING = "ping"
PONG = "pong"


def parse_user_id(value: Any) -> int | None:
    """Return a positive integer user id, or ``None`` when *value* is ill-formed."""

    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str):
        candidate = value.strip()
        if _USER_ID_PATTERN.match(candidate):
            return int(candidate)
    return None


def _coerce_user_id(value: Any) -> int:
    user_id = parse_user_id(value)
    if user_id is None:
        raise ValueError("must be a valid user id")
    return user_id


def _require_present(value: Any) -> Any:
    if value is None or value == "" or value == {}:
        raise ValueError("payload is required")
    return value


UserId = Annotated[int, BeforeValidator(_coerce_user_id)]
Opaque = Annotated[Any, AfterValidator(_require_present)]
AckId = Union[int, str, None]


class _Inbound(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    ack: AckId = None


class RegisterEvent(_Inbound):
    type: Literal["register"]
    user_id: Any = Field(default=None, alias="userId")


class TypingEvent(_Inbound):
    type: Literal["chat:typing"]
    to: UserId


class ChatSendEvent(_Inbound):
    type: Literal["chat:send"]
    to: UserId
    content: str


class CallEvent(_Inbound):
    type: Literal["rtc:call"]
    to: UserId
    meta: dict[str, Any] = Field(default_factory=dict)


class OfferEvent(_Inbound):
    type: Literal["rtc:offer"]
    to: UserId
    sdp: Opaque


class AnswerEvent(_Inbound):
    type: Literal["rtc:answer"]
    to: UserId
    sdp: Opaque


class CandidateEvent(_Inbound):
    type: Literal["rtc:candidate"]
    to: UserId
    candidate: Opaque


class EndEvent(_Inbound):
    type: Literal["rtc:end"]
    to: UserId
    reason: str | None = None


class PingEvent(_Inbound):
    type: Literal["ping"]


InboundEvent = Annotated[
    Union[
        RegisterEvent,
        TypingEvent,
        ChatSendEvent,
        CallEvent,
        OfferEvent,
        AnswerEvent,
        CandidateEvent,
        EndEvent,
        PingEvent,
    ],
    Field(discriminator="type"),
]

INBOUND_EVENT_TYPES: tuple[type[_Inbound], ...] = (
    RegisterEvent,
    TypingEvent,
    ChatSendEvent,
    CallEvent,
    OfferEvent,
    AnswerEvent,
    CandidateEvent,
    EndEvent,
    PingEvent,
)

# Events whose sender waits for an acknowledgement; malformed frames of
# these kinds are answered with an ``invalid`` ack instead of being dropped.
REQUEST_EVENTS = frozenset({"chat:send", "rtc:call"})

_KNOWN_TYPES = frozenset(
    get_args(model.model_fields["type"].annotation)[0] for model in INBOUND_EVENT_TYPES
)

_adapter: TypeAdapter[Any] = TypeAdapter(InboundEvent)


class UnsupportedEvent(InvalidEvent):
    """Raised when a frame carries an unknown or missing ``type``."""

    code = "unsupported"


class MalformedEvent(InvalidEvent):
    """Raised when a known event type fails validation."""

    def __init__(self, event_type: str, ack: AckId, detail: str) -> None:
        super().__init__(detail)
        self.event_type = event_type
        self.ack = ack

    @property
    def expects_ack(self) -> bool:
        return self.event_type in REQUEST_EVENTS and self.ack is not None


def parse_inbound(payload: Any) -> Any:
    """Validate a decoded JSON frame into one of the inbound event models."""

    if not isinstance(payload, dict):
        raise UnsupportedEvent("Message payload must be a JSON object")
    event_type = payload.get("type")
    if not isinstance(event_type, str) or event_type not in _KNOWN_TYPES:
        raise UnsupportedEvent("Unsupported event")
    try:
        return _adapter.validate_python(payload)
    except ValidationError as exc:
        ack = payload.get("ack")
        if not isinstance(ack, (int, str)) or isinstance(ack, bool):
            ack = None
        raise MalformedEvent(event_type, ack, str(exc.errors()[0]["msg"])) from exc


def frame(event: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
    """Build an outbound frame; payload keys such as ``from`` are not identifiers."""

    return {"type": event, **(payload or {})}


def ack_frame(ack: AckId, ok: bool, **payload: Any) -> dict[str, Any]:
    return {"type": ACK, "ack": ack, "ok": ok, **payload}


__all__ = [
    "InboundEvent",
    "INBOUND_EVENT_TYPES",
    "REQUEST_EVENTS",
    "RegisterEvent",
    "TypingEvent",
    "ChatSendEvent",
    "CallEvent",
    "OfferEvent",
    "AnswerEvent",
    "CandidateEvent",
    "EndEvent",
    "PingEvent",
    "MalformedEvent",
    "UnsupportedEvent",
    "parse_inbound",
    "parse_user_id",
    "frame",
    "ack_frame",
]
