"""Wire format for the debug message relay.

Every frame is a UTF-8 JSON object:

    {version, id?, method?, target?, params?, result?, error?}

A message is one of three shapes, decided by which fields are present:

- broadcast: ``method`` with neither ``id`` nor ``target``
- request:   ``method`` and a string ``target`` (a client id or "server")
- response:  ``id`` of the form {requestId, clientId} plus ``result`` or ``error``
"""

import json
import logging
from enum import Enum

logger = logging.getLogger("relay.protocol")

PROTOCOL_VERSION = 2

# Target name for requests handled by the relay itself
SERVER_TARGET = "server"


class _Absent:
    """Marker for a field that must not appear in an outbound frame."""

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT = _Absent()


class MessageKind(Enum):
    BROADCAST = "broadcast"
    REQUEST = "request"
    RESPONSE = "response"
    INVALID = "invalid"


# --- Errors ---

class RelayError(Exception):
    """Base class for failures raised while routing a message."""


class ProtocolViolation(RelayError):
    pass


class UnknownMethod(RelayError):
    pass


class UnresolvedTarget(RelayError):
    pass


class DeliveryError(RelayError):
    pass


# --- Decoding ---

def _is_protocol_version(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return value == PROTOCOL_VERSION


def parse_message(data, binary: bool = False) -> dict | None:
    """Decode one frame. Returns None (after logging why) if it is rejected."""
    if binary:
        logger.error("Expected text message, got binary!")
        return None
    try:
        message = json.loads(data)
    except (TypeError, ValueError):
        logger.error(f"Failed to parse the message as JSON:\n{data}")
        return None

    version = message.get("version") if isinstance(message, dict) else None
    if not _is_protocol_version(version):
        logger.error(f"Received message had wrong protocol version: {version}")
        return None
    return message


def is_broadcast(message: dict) -> bool:
    return (
        isinstance(message.get("method"), str)
        and "id" not in message
        and "target" not in message
    )


def is_request(message: dict) -> bool:
    return isinstance(message.get("method"), str) and isinstance(message.get("target"), str)


def is_response(message: dict) -> bool:
    msg_id = message.get("id")
    return (
        isinstance(msg_id, dict)
        and "requestId" in msg_id
        and isinstance(msg_id.get("clientId"), str)
        and ("result" in message or "error" in message)
    )


def classify(message: dict) -> MessageKind:
    """Pick the message shape. Earlier shapes win: a request carrying a
    response-style id is still a request."""
    if is_broadcast(message):
        return MessageKind.BROADCAST
    if is_request(message):
        return MessageKind.REQUEST
    if is_response(message):
        return MessageKind.RESPONSE
    return MessageKind.INVALID


# --- Encoding ---

def encode(**fields) -> str:
    """Serialize an outbound frame. Fields set to ABSENT are left out."""
    frame = {"version": PROTOCOL_VERSION}
    for key, value in fields.items():
        if value is not ABSENT:
            frame[key] = value
    return json.dumps(frame)


def describe(message: dict) -> dict:
    """Redacted view of a message for diagnostics: routing fields verbatim,
    payload fields reduced to whether they were defined."""
    return {
        "id": message.get("id"),
        "method": message.get("method"),
        "target": message.get("target"),
        "error": "defined" if "error" in message else "undefined",
        "params": "defined" if "params" in message else "undefined",
        "result": "defined" if "result" in message else "undefined",
    }
