"""Runtime orchestration for sensor ingestion -> detection -> peer alerts -> WS/API.

Boundary note for maintainers:
- Keep this module focused on wiring, not algorithm details.
- Signal math belongs in ``processing/*``; decisions in ``detection.py``.
- API schemas belong in ``api_models.py``.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from collections.abc import Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path

import uvicorn
from fastapi import FastAPI

from .classifier import ClassifierAdapter, load_model
from .config import AppConfig, load_config
from .events import EventBus
from .peer_alert import PeerAlertChannel
from .routes import create_router
from .session import DetectionSession
from .ws_hub import WebSocketHub

LOGGER = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(slots=True)
class RuntimeState:
    config: AppConfig
    events: EventBus
    session: DetectionSession
    ws_hub: WebSocketHub
    peer_channel: PeerAlertChannel | None = None
    tasks: list[asyncio.Task] = field(default_factory=list)
    unsubscribe: Callable[[], None] | None = None


def create_app(config_path: Path | None = None) -> FastAPI:
    config = load_config(config_path)

    events = EventBus()
    classifier = ClassifierAdapter(load_model(config.classifier.model))
    peer_channel: PeerAlertChannel | None = None
    if config.peer.enabled:
        peer_channel = PeerAlertChannel(
            on_alert=lambda uuid: session.on_peer_alert(uuid),
            bind_host=config.peer.listen_host,
            port=config.peer.port,
            redundancy=config.peer.redundancy,
        )
    session = DetectionSession(
        classifier,
        events,
        alert_sink=peer_channel,
        feedback_interval_s=config.detection.feedback_interval_s,
        burst_count=config.peer.burst_count,
        burst_interval_s=config.peer.burst_interval_s,
    )
    runtime = RuntimeState(
        config=config,
        events=events,
        session=session,
        ws_hub=WebSocketHub(),
        peer_channel=peer_channel,
    )

    async def start_runtime() -> None:
        loop = asyncio.get_running_loop()
        runtime.unsubscribe = runtime.ws_hub.attach(events, loop)
        runtime.tasks = [asyncio.create_task(runtime.ws_hub.run(), name="ws-broadcast")]
        if peer_channel is not None:
            try:
                await peer_channel.start()
            except OSError:
                # Detection still works locally; peers just won't be heard.
                LOGGER.error(
                    "Could not bind peer alert listener on %s:%d",
                    config.peer.listen_host,
                    config.peer.port,
                    exc_info=True,
                )
        if config.detection.start_on_boot:
            session.start_detection()

    async def stop_runtime() -> None:
        if runtime.peer_channel is not None:
            try:
                await runtime.peer_channel.close()
            except Exception:
                LOGGER.warning("Error closing peer alert channel", exc_info=True)
        try:
            await asyncio.to_thread(session.close)
        except Exception:
            LOGGER.warning("Error closing detection session", exc_info=True)
        if runtime.unsubscribe is not None:
            runtime.unsubscribe()
            runtime.unsubscribe = None
        for task in runtime.tasks:
            task.cancel()
        await asyncio.gather(*runtime.tasks, return_exceptions=True)
        runtime.tasks.clear()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await start_runtime()
        try:
            yield
        finally:
            await stop_runtime()

    app = FastAPI(title="mgauss", lifespan=lifespan)
    app.state.runtime = runtime
    app.include_router(create_router(runtime))
    return app


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the mgauss detection server")
    parser.add_argument("--config", type=Path, default=None, help="Path to config YAML")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    runtime_app = create_app(config_path=args.config)
    runtime: RuntimeState = runtime_app.state.runtime
    logging.getLogger().setLevel(runtime.config.logging.level)
    try:
        uvicorn.run(
            runtime_app,
            host=runtime.config.server.host,
            port=runtime.config.server.port,
            log_level=runtime.config.logging.level.lower(),
        )
    except OSError:
        LOGGER.error(
            "Failed to bind HTTP server to %s:%d",
            runtime.config.server.host,
            runtime.config.server.port,
            exc_info=True,
        )
        raise


if __name__ == "__main__":
    main()
