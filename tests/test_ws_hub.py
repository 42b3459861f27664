"""Tests for the WebSocket event hub."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from conftest import async_wait_until

from mgauss.events import EventBus, MagnitudeEvent, StatusEvent
from mgauss.ws_hub import WebSocketHub


def _make_ws() -> AsyncMock:
    """Create a mock WebSocket with ``send_text``."""
    ws = AsyncMock()
    ws.send_text = AsyncMock()
    return ws


@pytest.mark.asyncio
async def test_add_remove() -> None:
    hub = WebSocketHub()
    ws = _make_ws()
    await hub.add(ws)
    conns = await hub._snapshot()
    assert len(conns) == 1
    assert conns[0].websocket is ws
    assert hub.connection_count == 1
    await hub.remove(ws)
    assert await hub._snapshot() == []


@pytest.mark.asyncio
async def test_broadcast_sends_compact_json() -> None:
    hub = WebSocketHub()
    ws = _make_ws()
    await hub.add(ws)
    await hub.broadcast({"type": "status", "message": "Detecting..."})
    ws.send_text.assert_awaited_once()
    assert json.loads(ws.send_text.call_args[0][0]) == {
        "type": "status",
        "message": "Detecting...",
    }


@pytest.mark.asyncio
async def test_magnitude_events_respect_opt_out() -> None:
    hub = WebSocketHub()
    wants, skips = _make_ws(), _make_ws()
    await hub.add(wants)
    await hub.add(skips, include_magnitude=False)
    await hub.broadcast({"type": "magnitude", "timestamp_ns": 1, "magnitude": 2.0})
    wants.send_text.assert_awaited_once()
    skips.send_text.assert_not_awaited()

    await hub.set_include_magnitude(skips, True)
    await hub.broadcast({"type": "magnitude", "timestamp_ns": 2, "magnitude": 2.0})
    assert skips.send_text.await_count == 1


@pytest.mark.asyncio
async def test_failed_send_drops_connection() -> None:
    hub = WebSocketHub()
    dead, alive = _make_ws(), _make_ws()
    dead.send_text.side_effect = RuntimeError("closed")
    await hub.add(dead)
    await hub.add(alive)
    await hub.broadcast({"type": "status", "message": "x"})
    conns = await hub._snapshot()
    assert [c.websocket for c in conns] == [alive]


@pytest.mark.asyncio
async def test_attach_bridges_thread_events_to_clients() -> None:
    hub = WebSocketHub()
    bus = EventBus()
    ws = _make_ws()
    await hub.add(ws)
    unsubscribe = hub.attach(bus, asyncio.get_running_loop())
    runner = asyncio.create_task(hub.run())
    try:
        await asyncio.to_thread(bus.publish, StatusEvent("Detecting..."))
        await asyncio.to_thread(bus.publish, MagnitudeEvent(5, 1.5))
        assert await async_wait_until(lambda: ws.send_text.await_count == 2)
        sent = [json.loads(c.args[0])["type"] for c in ws.send_text.call_args_list]
        assert sent == ["status", "magnitude"]
    finally:
        unsubscribe()
        runner.cancel()
        await asyncio.gather(runner, return_exceptions=True)


@pytest.mark.asyncio
async def test_full_queue_drops_new_events() -> None:
    hub = WebSocketHub(queue_maxsize=1)
    hub._enqueue({"type": "status", "message": "a"})
    hub._enqueue({"type": "status", "message": "b"})
    assert hub.dropped_events == 1
