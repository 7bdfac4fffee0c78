"""Message relay core.

Accepts WebSocket clients (the running app and any number of debugger
front-ends), gives each a ``client#N`` identity and routes every frame:

- broadcast: fanned out to every other client as {version, method, params}
- request to "server": answered by the relay (getid, getpeers)
- request to a client: forwarded with its id rewritten to
  {requestId: <original id>, clientId: <sender>}
- response: delivered to ``id.clientId`` with the original id restored

The rewritten id is the only record of who asked; there is no pending
request table.
"""

import asyncio
import logging
from collections import Counter

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from message_relay.protocol import (
    ABSENT,
    SERVER_TARGET,
    DeliveryError,
    MessageKind,
    ProtocolViolation,
    UnknownMethod,
    classify,
    describe,
    encode,
    parse_message,
)
from message_relay.registry import Connection, ConnectionRegistry

logger = logging.getLogger("relay.core")


class MessageRelay:
    def __init__(self, registry: ConnectionRegistry | None = None):
        self.registry = registry or ConnectionRegistry()
        self._attached = False
        # Frames are routed one at a time across all connections
        self._dispatch_lock = asyncio.Lock()
        self._stats: Counter = Counter()
        self._server_methods = {
            "getid": self._method_getid,
            "getpeers": self._method_getpeers,
        }

    # --- Control surface ---

    def is_relay_active(self) -> bool:
        return self._attached

    async def server_broadcast(self, method: str, params: dict | None = None) -> int:
        """Send a method call from the relay itself to every connected client."""
        message = {"method": method}
        if params is not None:
            message["params"] = params
        async with self._dispatch_lock:
            return await self.send_broadcast(None, message)

    def stats(self) -> dict[str, int]:
        return dict(self._stats)

    # --- Connection lifecycle ---

    async def handle_connection(self, ws: WebSocket):
        """WebSocket endpoint: one call per client, returns when it goes away."""
        await ws.accept()
        client_id = self.registry.next_client_id()
        connection = await self.registry.register(client_id, ws, str(ws.url))
        logger.info(f"Client connected: {client_id} ({ws.url.query or 'no query'})")

        try:
            while True:
                frame = await ws.receive()
                if frame["type"] == "websocket.disconnect":
                    break
                text = frame.get("text")
                if text is not None:
                    await self.handle_frame(connection, text)
                else:
                    await self.handle_frame(connection, frame.get("bytes"), binary=True)
        except WebSocketDisconnect:
            pass
        except Exception as e:
            logger.warning(f"WebSocket error on {client_id}: {e}")
        finally:
            if await self.registry.unregister(client_id):
                logger.info(f"Client disconnected: {client_id}")

    async def handle_frame(self, connection: Connection, data, binary: bool = False):
        self._stats["frames"] += 1
        message = parse_message(data, binary)
        if message is None:
            self._stats["rejected"] += 1
            logger.error("Received message not matching protocol")
            return

        async with self._dispatch_lock:
            if not connection.is_open:
                logger.debug(f"Dropping frame from closed connection {connection.client_id}")
                return
            try:
                await self.dispatch(connection, message)
            except Exception as e:
                await self._handle_caught_error(connection, message, e)

    # --- Routing ---

    async def dispatch(self, connection: Connection, message: dict):
        kind = classify(message)
        if kind is MessageKind.BROADCAST:
            await self.send_broadcast(connection.client_id, message)
        elif kind is MessageKind.REQUEST:
            if message["target"] == SERVER_TARGET:
                await self.handle_server_request(connection, message)
            else:
                await self.forward_request(connection, message)
        elif kind is MessageKind.RESPONSE:
            await self.forward_response(message)
        else:
            raise ProtocolViolation("Invalid message, did not match the protocol")

    async def send_broadcast(self, sender_id: str | None, message: dict) -> int:
        """Fan *message* out to every client except *sender_id*.

        Only method and params are passed on. A failed send is logged and
        the remaining clients still get the message. Returns how many
        clients it was delivered to.
        """
        self._stats["broadcasts"] += 1
        forwarded = encode(method=message.get("method"), params=message.get("params", ABSENT))
        if len(self.registry) == 0:
            logger.warning(
                f'No apps connected. Sending "{message.get("method")}" to all apps failed. '
                "Make sure your app is running and connected to the relay."
            )

        delivered = 0
        for other_id, other in self.registry.snapshot():
            if other_id == sender_id:
                continue
            try:
                await other.ws.send_text(forwarded)
                delivered += 1
            except Exception as e:
                logger.error(f"Failed to send broadcast to client: '{other_id}' due to:\n {e}")
        return delivered

    async def handle_server_request(self, connection: Connection, message: dict):
        method = message["method"]
        handler = self._server_methods.get(method)
        if handler is None:
            raise UnknownMethod(f"unknown method: {method}")
        result = handler(connection)
        await connection.ws.send_text(encode(result=result, id=message.get("id", ABSENT)))

    def _method_getid(self, connection: Connection) -> str:
        return connection.client_id

    def _method_getpeers(self, connection: Connection) -> dict:
        return {
            other_id: other.query_params
            for other_id, other in self.registry.snapshot()
            if other_id != connection.client_id
        }

    async def forward_request(self, connection: Connection, message: dict):
        target = message["target"]
        ws = self.registry.lookup(target)
        if "id" in message:
            request_id = {"requestId": message["id"], "clientId": connection.client_id}
        else:
            request_id = ABSENT
        frame = encode(method=message["method"], params=message.get("params", ABSENT), id=request_id)
        await self._deliver(target, ws, frame)
        self._stats["requests_forwarded"] += 1

    async def forward_response(self, message: dict):
        composite_id = message["id"]
        requester = composite_id["clientId"]
        ws = self.registry.lookup(requester)
        frame = encode(
            result=message.get("result", ABSENT),
            error=message.get("error", ABSENT),
            id=composite_id["requestId"],
        )
        await self._deliver(requester, ws, frame)
        self._stats["responses_forwarded"] += 1

    async def _deliver(self, client_id: str, ws, frame: str):
        try:
            await ws.send_text(frame)
        except Exception as e:
            raise DeliveryError(f"failed to deliver message to {client_id}: {e}") from e

    async def _handle_caught_error(self, connection: Connection, message: dict, error: Exception):
        client_id = connection.client_id
        if "id" not in message:
            logger.error(
                f"Handling message from {client_id} failed with:\n{error}\n"
                f"message:\n{describe(message)}"
            )
            return

        self._stats["error_replies"] += 1
        try:
            await connection.ws.send_text(encode(error=str(error), id=message["id"]))
        except Exception as e:
            logger.error(
                f"Failed to reply to {client_id} with error:\n{error}"
                f"\nmessage:\n{describe(message)}"
                f"\ndue to error: {e}"
            )


def attach(app: FastAPI, path: str, relay: MessageRelay | None = None) -> MessageRelay:
    """Install the relay's WebSocket endpoint on *app* at *path*."""
    relay = relay or MessageRelay()
    app.add_api_websocket_route(path, relay.handle_connection)
    relay._attached = True
    logger.info(f"Message relay attached at {path}")
    return relay
