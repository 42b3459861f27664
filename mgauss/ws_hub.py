from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from fastapi import WebSocket

from .events import Event, EventBus, event_to_payload

LOGGER = logging.getLogger(__name__)

_SEND_TIMEOUT_S: float = 0.5
"""Per-connection send timeout; connections exceeding this are dropped."""

_SEND_ERROR_LOG_INTERVAL_S: float = 10.0
"""Minimum interval between logged send-error warnings to avoid log spam."""

_QUEUE_DROP_LOG_INTERVAL_S: float = 10.0

DEFAULT_QUEUE_MAXSIZE = 512


@dataclass(slots=True)
class WSConnection:
    websocket: WebSocket
    include_magnitude: bool = True


class WebSocketHub:
    """Fans detection events out to every connected UI websocket.

    Events are published from sensor and worker threads; :meth:`attach`
    hops them onto the event loop through a bounded queue and :meth:`run`
    drains that queue.  When the UI falls behind, new events are dropped.
    """

    def __init__(self, queue_maxsize: int = DEFAULT_QUEUE_MAXSIZE):
        self._connections: dict[int, WSConnection] = {}
        self._lock = asyncio.Lock()
        self._queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=max(1, queue_maxsize))
        self._send_timeout_s = _SEND_TIMEOUT_S
        self._last_send_error_log_ts = 0.0
        self._send_error_log_interval_s = _SEND_ERROR_LOG_INTERVAL_S
        self._last_queue_drop_log_ts = 0.0
        self.dropped_events = 0

    async def add(self, websocket: WebSocket, include_magnitude: bool = True) -> None:
        async with self._lock:
            self._connections[id(websocket)] = WSConnection(
                websocket=websocket,
                include_magnitude=include_magnitude,
            )

    async def remove(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._connections.pop(id(websocket), None)

    async def set_include_magnitude(self, websocket: WebSocket, include: bool) -> None:
        async with self._lock:
            conn = self._connections.get(id(websocket))
            if conn is not None:
                conn.include_magnitude = include

    async def _snapshot(self) -> list[WSConnection]:
        async with self._lock:
            return list(self._connections.values())

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    # -- event bridge -----------------------------------------------------------

    def attach(self, events: EventBus, loop: asyncio.AbstractEventLoop) -> Callable[[], None]:
        """Subscribe to *events*; returns the unsubscribe function."""

        def _on_event(event: Event) -> None:
            payload = event_to_payload(event)
            loop.call_soon_threadsafe(self._enqueue, payload)

        return events.subscribe(_on_event)

    def _enqueue(self, payload: dict[str, Any]) -> None:
        try:
            self._queue.put_nowait(payload)
        except asyncio.QueueFull:
            self.dropped_events += 1
            now = time.monotonic()
            if (now - self._last_queue_drop_log_ts) >= _QUEUE_DROP_LOG_INTERVAL_S:
                self._last_queue_drop_log_ts = now
                LOGGER.warning(
                    "WebSocket event queue full; dropped %d event(s) so far",
                    self.dropped_events,
                )

    async def run(self) -> None:
        while True:
            payload = await self._queue.get()
            try:
                await self.broadcast(payload)
            except Exception:
                LOGGER.warning("WebSocket broadcast failed; will continue.", exc_info=True)
            finally:
                self._queue.task_done()

    # -- fan-out ----------------------------------------------------------------

    async def broadcast(self, payload: dict[str, Any]) -> None:
        conns = await self._snapshot()
        if not conns:
            return
        is_magnitude = payload.get("type") == "magnitude"
        text = json.dumps(payload, separators=(",", ":"), ensure_ascii=False, allow_nan=False)

        async def _send(conn: WSConnection) -> WebSocket | None:
            if is_magnitude and not conn.include_magnitude:
                return None
            try:
                await asyncio.wait_for(
                    conn.websocket.send_text(text),
                    timeout=self._send_timeout_s,
                )
                return None
            except Exception:
                now = asyncio.get_running_loop().time()
                if (now - self._last_send_error_log_ts) >= self._send_error_log_interval_s:
                    self._last_send_error_log_ts = now
                    LOGGER.warning(
                        "WebSocket broadcast send failed; connection will be removed.",
                        exc_info=True,
                    )
                return conn.websocket

        dead_ws = await asyncio.gather(*(_send(conn) for conn in conns))
        for ws in dead_ws:
            if ws is not None:
                await self.remove(ws)
