"""
Shared pytest fixtures for the message relay tests.
"""

import json

import pytest
from fastapi.testclient import TestClient

from message_relay.registry import ConnectionRegistry
from message_relay.relay import MessageRelay
from message_relay.server import create_app


class FakeWebSocket:
    """Records outbound frames; raises on send once ``broken`` is set."""

    def __init__(self, url: str = "ws://testserver/message"):
        self.url = url
        self.sent: list[dict] = []
        self.broken = False

    async def send_text(self, data: str):
        if self.broken:
            raise RuntimeError("Cannot call send once a close message has been sent.")
        self.sent.append(json.loads(data))


@pytest.fixture
def relay() -> MessageRelay:
    return MessageRelay(ConnectionRegistry())


@pytest.fixture
def connect(relay):
    """Register a fake client with the relay and return its Connection."""

    async def _connect(query: str = ""):
        url = "ws://testserver/message" + (f"?{query}" if query else "")
        ws = FakeWebSocket(url)
        client_id = relay.registry.next_client_id()
        return await relay.registry.register(client_id, ws, url)

    return _connect


@pytest.fixture
def client():
    app = create_app(watch_folders=[])
    with TestClient(app) as c:
        yield c
