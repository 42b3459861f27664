"""Peer alert protocol over broadcast UDP.

Wire format: one UTF-8 JSON object per datagram::

    {"uuid": "<session uuid>", "event": "ALERT", "timestamp": <epoch ms>}

There is no acknowledgement, sequencing or authentication.  Delivery odds
are improved by sending each alert several times back-to-back and by
bursting on activation.  The session uuid exists only so a device can
ignore the echo of its own broadcast.
"""

from __future__ import annotations

import asyncio
import ipaddress
import json
import logging
import socket
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

import psutil
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .constants import (
    ALERT_BURST_COUNT,
    ALERT_BURST_INTERVAL_S,
    ALERT_DATAGRAM_REDUNDANCY,
    LIMITED_BROADCAST_ADDR,
    PEER_ALERT_EVENT,
    PEER_ALERT_PORT,
)

LOGGER = logging.getLogger(__name__)

_RESTART_BACKOFF_S: float = 1.0
_RESTART_BACKOFF_MAX_S: float = 30.0
_ERROR_LOG_INTERVAL_S: float = 10.0


class ProtocolError(ValueError):
    pass


class PeerAlertMessage(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    uuid: str = Field(min_length=1)
    event: Literal["ALERT"]
    timestamp: int

    @classmethod
    def now(cls, session_uuid: str) -> PeerAlertMessage:
        return cls(uuid=session_uuid, event=PEER_ALERT_EVENT, timestamp=int(time.time() * 1000))

    def encode(self) -> bytes:
        return json.dumps(self.model_dump(), separators=(",", ":")).encode("utf-8")

    @classmethod
    def decode(cls, data: bytes) -> PeerAlertMessage:
        try:
            return cls.model_validate_json(data)
        except ValidationError as exc:
            raise ProtocolError(
                f"invalid peer alert payload: {exc.error_count()} error(s)"
            ) from exc


def new_session_uuid() -> str:
    return str(uuid.uuid4())


def resolve_broadcast_address() -> str:
    """Broadcast address of the first up, non-loopback IPv4 interface.

    Falls back to the limited broadcast address when no interface carries
    one or the interface table cannot be read.
    """
    try:
        stats = psutil.net_if_stats()
        for name, addrs in psutil.net_if_addrs().items():
            if_stats = stats.get(name)
            if if_stats is None or not if_stats.isup:
                continue
            for addr in addrs:
                if addr.family != socket.AF_INET or not addr.broadcast:
                    continue
                if ipaddress.ip_address(addr.address).is_loopback:
                    break
                return str(addr.broadcast)
    except (OSError, ValueError, psutil.Error):
        LOGGER.warning(
            "Broadcast address lookup failed; using %s",
            LIMITED_BROADCAST_ADDR,
            exc_info=True,
        )
    return LIMITED_BROADCAST_ADDR


# ---------------------------------------------------------------------------
# Send path
# ---------------------------------------------------------------------------


class PeerAlertSender:
    def __init__(
        self,
        session_uuid: str,
        port: int = PEER_ALERT_PORT,
        redundancy: int = ALERT_DATAGRAM_REDUNDANCY,
        address_resolver: Callable[[], str] = resolve_broadcast_address,
    ):
        self.session_uuid = session_uuid
        self.port = int(port)
        self.redundancy = max(1, int(redundancy))
        self._resolve_address = address_resolver
        self.alerts_sent = 0
        self.send_failures = 0

    def _open_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        return sock

    def send_alert(self) -> bool:
        """Send one alert as ``redundancy`` identical datagrams; never raises."""
        try:
            payload = PeerAlertMessage.now(self.session_uuid).encode()
            target = (self._resolve_address(), self.port)
            with self._open_socket() as sock:
                for _ in range(self.redundancy):
                    sock.sendto(payload, target)
        except OSError:
            self.send_failures += 1
            LOGGER.warning("Peer alert send to port %d failed", self.port, exc_info=True)
            return False
        self.alerts_sent += 1
        LOGGER.debug("Peer alert sent to %s:%d (x%d)", target[0], target[1], self.redundancy)
        return True

    def send_burst(
        self,
        count: int = ALERT_BURST_COUNT,
        interval_s: float = ALERT_BURST_INTERVAL_S,
        sleep: Callable[[float], None] = time.sleep,
    ) -> int:
        """Blocking burst of *count* alerts spaced by *interval_s*; returns successes."""
        delivered = 0
        for _ in range(max(0, int(count))):
            if self.send_alert():
                delivered += 1
            sleep(interval_s)
        return delivered


# ---------------------------------------------------------------------------
# Receive path
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class ListenerStats:
    received: int = 0
    dispatched: int = 0
    self_echoes: int = 0
    malformed: int = 0


class PeerAlertDatagramProtocol(asyncio.DatagramProtocol):
    def __init__(
        self,
        session_uuid: str,
        on_alert: Callable[[str], None],
        on_connection_lost: Callable[[Exception | None], None] | None = None,
    ):
        self.session_uuid = session_uuid
        self._on_alert = on_alert
        self._on_connection_lost = on_connection_lost
        self.transport: asyncio.DatagramTransport | None = None
        self.stats = ListenerStats()
        self._last_error_log_ts = 0.0

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self.transport = transport  # type: ignore[assignment]

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        self.stats.received += 1
        try:
            message = PeerAlertMessage.decode(data)
        except ProtocolError as exc:
            self.stats.malformed += 1
            LOGGER.debug("Dropping malformed peer alert from %s: %s", addr, exc)
            return
        if message.uuid == self.session_uuid:
            self.stats.self_echoes += 1
            return
        self.stats.dispatched += 1
        try:
            self._on_alert(message.uuid)
        except Exception:
            LOGGER.warning(
                "Peer alert handler failed for sender %s", message.uuid, exc_info=True
            )

    def error_received(self, exc: Exception) -> None:
        now = time.monotonic()
        if (now - self._last_error_log_ts) >= _ERROR_LOG_INTERVAL_S:
            self._last_error_log_ts = now
            LOGGER.warning("Peer alert socket error: %s", exc)

    def connection_lost(self, exc: Exception | None) -> None:
        self.transport = None
        if self._on_connection_lost is not None:
            self._on_connection_lost(exc)


class PeerAlertChannel:
    """Owns the session uuid, the sender and a self-restarting listener."""

    def __init__(
        self,
        on_alert: Callable[[str], None],
        bind_host: str = "0.0.0.0",
        port: int = PEER_ALERT_PORT,
        redundancy: int = ALERT_DATAGRAM_REDUNDANCY,
        session_uuid: str | None = None,
        address_resolver: Callable[[], str] = resolve_broadcast_address,
    ):
        self.session_uuid = session_uuid or new_session_uuid()
        self.bind_host = bind_host
        self.port = int(port)
        self.sender = PeerAlertSender(
            self.session_uuid,
            port=self.port,
            redundancy=redundancy,
            address_resolver=address_resolver,
        )
        self.protocol = PeerAlertDatagramProtocol(
            self.session_uuid, on_alert, on_connection_lost=self._connection_lost
        )
        self.transport: asyncio.DatagramTransport | None = None
        self._lost: asyncio.Event | None = None
        self._supervisor: asyncio.Task[None] | None = None
        self._closing = False

    @property
    def listening(self) -> bool:
        return self.transport is not None

    @property
    def bound_port(self) -> int | None:
        if self.transport is None:
            return None
        sockname = self.transport.get_extra_info("sockname")
        return int(sockname[1]) if sockname else None

    def _bind_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            sock.bind((self.bind_host, self.port))
        except OSError:
            sock.close()
            raise
        sock.setblocking(False)
        return sock

    async def _open(self) -> None:
        loop = asyncio.get_running_loop()
        transport, _ = await loop.create_datagram_endpoint(
            lambda: self.protocol,
            sock=self._bind_socket(),
        )
        self._lost = asyncio.Event()
        self.transport = transport
        LOGGER.info("Listening for peer alerts on %s:%s", self.bind_host, self.bound_port)

    def _connection_lost(self, exc: Exception | None) -> None:
        self.transport = None
        if exc is not None:
            LOGGER.warning("Peer alert listener lost its socket: %s", exc)
        if self._lost is not None:
            self._lost.set()

    async def start(self) -> None:
        self._closing = False
        await self._open()
        self._supervisor = asyncio.create_task(self._supervise(), name="peer-alert-listener")

    async def _supervise(self) -> None:
        backoff = _RESTART_BACKOFF_S
        while not self._closing:
            if self._lost is not None:
                await self._lost.wait()
            if self._closing:
                return
            try:
                await self._open()
                backoff = _RESTART_BACKOFF_S
            except OSError:
                LOGGER.warning(
                    "Peer alert listener restart failed; retrying in %.1f s",
                    backoff,
                    exc_info=True,
                )
                await asyncio.sleep(backoff)
                backoff = min(_RESTART_BACKOFF_MAX_S, backoff * 2)

    async def close(self) -> None:
        self._closing = True
        if self._supervisor is not None:
            self._supervisor.cancel()
            await asyncio.gather(self._supervisor, return_exceptions=True)
            self._supervisor = None
        if self.transport is not None:
            self.transport.close()
            self.transport = None

    def send_alert(self) -> bool:
        return self.sender.send_alert()

    def send_burst(
        self,
        count: int = ALERT_BURST_COUNT,
        interval_s: float = ALERT_BURST_INTERVAL_S,
    ) -> int:
        return self.sender.send_burst(count=count, interval_s=interval_s)
