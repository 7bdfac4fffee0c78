"""Connection registry for tracking clients attached to the relay."""

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import parse_qsl, urlsplit

from message_relay.protocol import UnresolvedTarget

logger = logging.getLogger("relay.registry")


class ConnectionState(Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


def parse_query(url: str) -> dict[str, str | list[str]]:
    """Query parameters of *url*. Repeated keys collect into a list,
    keys without a value map to an empty string."""
    params: dict[str, str | list[str]] = {}
    for key, value in parse_qsl(urlsplit(url).query, keep_blank_values=True):
        if key not in params:
            params[key] = value
        elif isinstance(params[key], list):
            params[key].append(value)
        else:
            params[key] = [params[key], value]
    return params


@dataclass
class Connection:
    client_id: str
    ws: object  # WebSocket connection
    url: str  # full upgrade request URL, query string included
    state: ConnectionState = ConnectionState.CONNECTING
    connected_at: float = field(default_factory=time.time)

    @property
    def query_params(self) -> dict[str, str | list[str]]:
        return parse_query(self.url)

    @property
    def is_open(self) -> bool:
        return self.state is ConnectionState.OPEN

    def to_dict(self) -> dict:
        return {
            "client_id": self.client_id,
            "state": self.state.value,
            "query": self.query_params,
            "connected_at": self.connected_at,
        }


class ConnectionRegistry:
    def __init__(self):
        self._connections: dict[str, Connection] = {}
        self._lock = asyncio.Lock()
        self._ids = itertools.count()

    def next_client_id(self) -> str:
        """Allocate the next identity. Identities are never reused."""
        return f"client#{next(self._ids)}"

    async def register(self, client_id: str, ws, url: str) -> Connection:
        async with self._lock:
            if client_id in self._connections:
                raise ValueError(f"client id {client_id!r} is already registered")
            connection = Connection(client_id=client_id, ws=ws, url=url)
            self._connections[client_id] = connection
            connection.state = ConnectionState.OPEN
            logger.debug(f"Registered {client_id} ({len(self._connections)} connected)")
            return connection

    async def unregister(self, client_id: str) -> bool:
        """Remove a connection. Safe to call more than once."""
        async with self._lock:
            connection = self._connections.pop(client_id, None)
            if connection is None:
                return False
            connection.state = ConnectionState.CLOSED
            logger.debug(f"Unregistered {client_id} ({len(self._connections)} connected)")
            return True

    def get(self, client_id: str) -> Connection | None:
        return self._connections.get(client_id)

    def lookup(self, client_id: str):
        """Return the live WebSocket for *client_id*."""
        connection = self._connections.get(client_id)
        if connection is None:
            raise UnresolvedTarget(f'could not find id "{client_id}" while forwarding request')
        return connection.ws

    def snapshot(self) -> list[tuple[str, Connection]]:
        return list(self._connections.items())

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, client_id: str) -> bool:
        return client_id in self._connections
