"""
Control messages exchanged with the rendezvous service.

Each message travels as one JSON object. ``id`` is always the sender's
identity; ``target_id`` addresses the peer (for ``signaling_response`` it names
the peer the rendezvous service matched us with).
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Type, Union

SIGNALING_REQUEST = "signaling_request"
SIGNALING_RESPONSE = "signaling_response"
OFFER = "offer"
ANSWER = "answer"
CANDIDATE = "candidate"

_STRING_FIELDS = ("type", "target_id", "request", "offer", "answer", "candidate", "id")


class MalformedMessage(ValueError):
    pass


@dataclass(frozen=True)
class ControlMessage:
    sender: str
    target: str = ""

    TYPE: ClassVar[str] = ""

    @property
    def type(self) -> str:
        return self.TYPE

    def payload(self) -> Dict[str, str]:
        return {}


@dataclass(frozen=True)
class RegistrationRequest(ControlMessage):
    TYPE: ClassVar[str] = SIGNALING_REQUEST


@dataclass(frozen=True)
class RegistrationResponse(ControlMessage):
    request: str = ""

    TYPE: ClassVar[str] = SIGNALING_RESPONSE

    @property
    def peer_target(self) -> str:
        return self.target

    def payload(self) -> Dict[str, str]:
        return {"request": self.request}


@dataclass(frozen=True)
class SessionOffer(ControlMessage):
    offer: str = ""

    TYPE: ClassVar[str] = OFFER

    def payload(self) -> Dict[str, str]:
        return {"offer": self.offer}


@dataclass(frozen=True)
class SessionAnswer(ControlMessage):
    answer: str = ""

    TYPE: ClassVar[str] = ANSWER

    def payload(self) -> Dict[str, str]:
        return {"answer": self.answer}


@dataclass(frozen=True)
class ConnectivityCandidate(ControlMessage):
    candidate: str = ""

    TYPE: ClassVar[str] = CANDIDATE

    def payload(self) -> Dict[str, str]:
        return {"candidate": self.candidate}


@dataclass(frozen=True)
class UnknownMessage(ControlMessage):
    """Message with a type we do not recognise; decoded only so it can be ignored."""

    raw_type: str = ""

    @property
    def type(self) -> str:
        return self.raw_type


_KINDS: Dict[str, Type[ControlMessage]] = {
    SIGNALING_REQUEST: RegistrationRequest,
    SIGNALING_RESPONSE: RegistrationResponse,
    OFFER: SessionOffer,
    ANSWER: SessionAnswer,
    CANDIDATE: ConnectivityCandidate,
}


def to_wire(message: ControlMessage) -> Dict[str, str]:
    wire = {"type": message.type, "target_id": message.target, "id": message.sender}
    wire.update(message.payload())
    return wire


def encode(message: ControlMessage) -> str:
    return json.dumps(to_wire(message), separators=(",", ":"), ensure_ascii=False)


def from_wire(obj: Any) -> ControlMessage:
    if not isinstance(obj, dict):
        raise MalformedMessage("control message must be a JSON object")
    fields: Dict[str, str] = {}
    for name in _STRING_FIELDS:
        value = obj.get(name, "")
        if value is None:
            value = ""
        if not isinstance(value, str):
            raise MalformedMessage(f"field {name!r} must be a string")
        fields[name] = value

    kind = fields["type"]
    sender, target = fields["id"], fields["target_id"]
    cls = _KINDS.get(kind)
    if cls is None:
        return UnknownMessage(sender=sender, target=target, raw_type=kind)
    if cls is RegistrationResponse:
        return RegistrationResponse(sender=sender, target=target, request=fields["request"])
    if cls is SessionOffer:
        return SessionOffer(sender=sender, target=target, offer=fields["offer"])
    if cls is SessionAnswer:
        return SessionAnswer(sender=sender, target=target, answer=fields["answer"])
    if cls is ConnectivityCandidate:
        return ConnectivityCandidate(sender=sender, target=target, candidate=fields["candidate"])
    return RegistrationRequest(sender=sender, target=target)


def decode(raw: Union[str, bytes]) -> ControlMessage:
    try:
        obj = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MalformedMessage(f"not JSON: {e}") from e
    return from_wire(obj)
