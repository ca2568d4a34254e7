"""
Signaling messages exchanged between the relay, the broadcaster and the viewers
"""
from enum import Enum
import json
import math
import typing as t

# noinspection PyUnresolvedReferences
import serde.tags
import serde.fields


class Role(Enum):
    UNASSIGNED = "unassigned"
    BROADCASTER = "broadcaster"
    VIEWER = "viewer"


PEER_ROLES = ["broadcaster", "viewer"]


# Serialization shim to customize the type tag
class Tag(serde.tags.Internal):
    def lookup_tag(self, variant):
        return getattr(variant, "tag_name", super().lookup_tag(variant))


class Message(serde.Model):
    """The base message type."""
    tag_name = "__INVALID__"

    class Meta:
        abstract = True
        tag = Tag(tag="type")


# CLIENT -> RELAY #

class RegisterMessage(Message):
    """Declares the role of a connection, once"""
    tag_name = "register"

    role: serde.fields.Choice(PEER_ROLES)


class OfferMessage(Message):
    """Session description offered by the broadcaster to one viewer"""
    tag_name = "offer"

    viewer_id: serde.fields.Str(rename="viewerId")
    sdp: serde.fields.Field()


class AnswerMessage(Message):
    """Session description answered by a viewer"""
    tag_name = "answer"

    viewer_id: serde.fields.Str(rename="viewerId")
    sdp: serde.fields.Field()


class CandidateMessage(Message):
    """Connectivity candidate for the connection between the broadcaster and one viewer"""
    tag_name = "candidate"

    viewer_id: serde.fields.Str(rename="viewerId")
    candidate: serde.fields.Field()
    origin: serde.fields.Choice(PEER_ROLES)


class StopMessage(Message):
    """Ends the broadcast without disconnecting the broadcaster"""
    tag_name = "stop"


# RELAY -> CLIENT #

class RegisteredMessage(Message):
    """Confirms a registration. Viewers also learn their id and whether a broadcaster is live"""
    tag_name = "registered"

    role: serde.fields.Choice(PEER_ROLES)
    viewer_id: serde.fields.Optional(serde.fields.Str(), rename="viewerId")
    has_broadcaster: serde.fields.Optional(serde.fields.Bool(), rename="hasBroadcaster")


class ViewerJoinedMessage(Message):
    tag_name = "viewer-joined"

    viewer_id: serde.fields.Str(rename="viewerId")


class ViewerLeftMessage(Message):
    tag_name = "viewer-left"

    viewer_id: serde.fields.Str(rename="viewerId")


class ViewerMissingMessage(Message):
    """Tells the broadcaster that the viewer it addressed is gone"""
    tag_name = "viewer-missing"

    viewer_id: serde.fields.Str(rename="viewerId")


class ViewerCountMessage(Message):
    tag_name = "viewer-count"

    count: serde.fields.Int()


class BroadcasterEndedMessage(Message):
    """Sent to every viewer right before the relay disconnects it"""
    tag_name = "broadcaster-ended"


class StoppedMessage(Message):
    """Confirms a stop request to the broadcaster"""
    tag_name = "stopped"


class ErrorMessage(Message):
    """Reports a rejected message to its sender"""
    tag_name = "error"

    message: serde.fields.Str()


class MalformedMessage(ValueError):
    """Raised when an inbound frame is not one of the known message shapes"""


def _reject_constant(name: str):
    raise ValueError(f"{name} is not a JSON number")


def _finite_float(literal: str) -> float:
    value = float(literal)
    if not math.isfinite(value):
        raise ValueError(f"number {literal} is out of range")
    return value


def decode_message(raw: t.Union[str, bytes, bytearray, memoryview]) -> Message:
    """
    Decodes one inbound frame
    :param raw: The text or binary frame as received
    :return: The decoded message
    :raises MalformedMessage: if the frame is not valid UTF-8 JSON describing a known message
    """
    # Only finite numbers survive re-encoding as strict JSON
    try:
        text = raw if isinstance(raw, str) else bytes(raw).decode("utf-8")
        data = json.loads(text, parse_constant=_reject_constant, parse_float=_finite_float)
    except ValueError as e:  # includes UnicodeDecodeError and json.JSONDecodeError
        raise MalformedMessage(f"Message is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedMessage("Message must be a JSON object")
    if not isinstance(data.get("type"), str):
        raise MalformedMessage("Message has no type")

    try:
        return Message.from_dict(data)
    except serde.ValidationError as e:
        raise MalformedMessage(f"Invalid {data['type']} message: {e}") from e


__all__ = [
    "Role",
    "PEER_ROLES",
    "Message",
    "RegisterMessage",
    "OfferMessage",
    "AnswerMessage",
    "CandidateMessage",
    "StopMessage",
    "RegisteredMessage",
    "ViewerJoinedMessage",
    "ViewerLeftMessage",
    "ViewerMissingMessage",
    "ViewerCountMessage",
    "BroadcasterEndedMessage",
    "StoppedMessage",
    "ErrorMessage",
    "MalformedMessage",
    "decode_message",
]
