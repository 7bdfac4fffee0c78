"""
Tests for message_relay/registry.py
"""

import pytest

from message_relay.protocol import UnresolvedTarget
from message_relay.registry import ConnectionRegistry, ConnectionState, parse_query


def test_client_ids_increase_and_are_not_reused():
    registry = ConnectionRegistry()
    ids = [registry.next_client_id() for _ in range(3)]
    assert ids == ["client#0", "client#1", "client#2"]


@pytest.mark.asyncio
async def test_register_marks_connection_open():
    registry = ConnectionRegistry()
    connection = await registry.register("client#0", object(), "ws://host/message?app=1")
    assert connection.state is ConnectionState.OPEN
    assert "client#0" in registry
    assert len(registry) == 1


@pytest.mark.asyncio
async def test_register_rejects_duplicate_identity():
    registry = ConnectionRegistry()
    await registry.register("client#0", object(), "ws://host/message")
    with pytest.raises(ValueError):
        await registry.register("client#0", object(), "ws://host/message")
    assert len(registry) == 1


@pytest.mark.asyncio
async def test_lookup_returns_websocket():
    registry = ConnectionRegistry()
    ws = object()
    await registry.register("client#0", ws, "ws://host/message")
    assert registry.lookup("client#0") is ws


def test_lookup_unknown_identity_raises():
    registry = ConnectionRegistry()
    with pytest.raises(UnresolvedTarget, match='could not find id "client#9"'):
        registry.lookup("client#9")


@pytest.mark.asyncio
async def test_unregister_is_idempotent():
    registry = ConnectionRegistry()
    connection = await registry.register("client#0", object(), "ws://host/message")
    assert await registry.unregister("client#0") is True
    assert await registry.unregister("client#0") is False
    assert connection.state is ConnectionState.CLOSED
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_snapshot_keeps_insertion_order():
    registry = ConnectionRegistry()
    for n in (0, 1, 2):
        await registry.register(f"client#{n}", object(), "ws://host/message")
    await registry.unregister("client#1")
    assert [cid for cid, _ in registry.snapshot()] == ["client#0", "client#2"]


class TestParseQuery:
    def test_single_values(self):
        assert parse_query("ws://host/message?device=pixel&role=app") == {"device": "pixel", "role": "app"}

    def test_repeated_key_becomes_list(self):
        assert parse_query("ws://host/message?tag=a&tag=b&tag=c") == {"tag": ["a", "b", "c"]}

    def test_blank_value(self):
        assert parse_query("ws://host/message?debug") == {"debug": ""}

    def test_no_query(self):
        assert parse_query("ws://host/message") == {}
