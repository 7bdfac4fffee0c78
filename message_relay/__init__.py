"""Debug message relay: multiplexes app and debugger WebSocket clients."""

from message_relay.protocol import PROTOCOL_VERSION
from message_relay.relay import MessageRelay, attach

__all__ = ["PROTOCOL_VERSION", "MessageRelay", "attach"]
