from __future__ import annotations

import logging
from copy import deepcopy
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .constants import (
    ALERT_BURST_COUNT,
    ALERT_BURST_INTERVAL_S,
    ALERT_DATAGRAM_REDUNDANCY,
    FEEDBACK_INTERVAL_S,
    PEER_ALERT_PORT,
)

LOGGER = logging.getLogger(__name__)

VALID_LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

DEFAULT_CONFIG: dict[str, Any] = {
    "server": {"host": "0.0.0.0", "port": 8000},
    "peer": {
        "enabled": True,
        "listen": f"0.0.0.0:{PEER_ALERT_PORT}",
        "redundancy": ALERT_DATAGRAM_REDUNDANCY,
        "burst_count": ALERT_BURST_COUNT,
        "burst_interval_s": ALERT_BURST_INTERVAL_S,
    },
    "detection": {
        "start_on_boot": False,
        "feedback_interval_s": FEEDBACK_INTERVAL_S,
    },
    "classifier": {"model": None},
    "logging": {"level": "INFO"},
}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _split_host_port(value: str) -> tuple[str, int]:
    host, sep, port = value.rpartition(":")
    if sep == "":
        raise ValueError(f"Expected HOST:PORT, got: {value!r}")
    try:
        return host, int(port)
    except ValueError:
        raise ValueError(f"Invalid port number in {value!r}: {port!r} is not an integer") from None


def _check_port(owner: str, value: object) -> None:
    if not isinstance(value, int) or not (1 <= value <= 65535):
        raise ValueError(f"{owner} must be 1-65535, got {value!r}")


@dataclass(slots=True)
class ServerConfig:
    host: str
    port: int

    def __post_init__(self) -> None:
        _check_port("ServerConfig.port", self.port)


@dataclass(slots=True)
class PeerConfig:
    enabled: bool
    listen_host: str
    port: int
    redundancy: int
    burst_count: int
    burst_interval_s: float

    def __post_init__(self) -> None:
        _check_port("PeerConfig.port", self.port)
        if self.redundancy < 1:
            LOGGER.warning("peer.redundancy=%s is below minimum 1; clamped to 1", self.redundancy)
            object.__setattr__(self, "redundancy", 1)
        if self.burst_count < 1:
            LOGGER.warning(
                "peer.burst_count=%s is below minimum 1; clamped to 1", self.burst_count
            )
            object.__setattr__(self, "burst_count", 1)
        if self.burst_interval_s < 0:
            LOGGER.warning(
                "peer.burst_interval_s=%s is negative; clamped to 0", self.burst_interval_s
            )
            object.__setattr__(self, "burst_interval_s", 0.0)


@dataclass(slots=True)
class DetectionConfig:
    start_on_boot: bool
    feedback_interval_s: float

    def __post_init__(self) -> None:
        if self.feedback_interval_s <= 0:
            LOGGER.warning(
                "detection.feedback_interval_s=%s is not positive; using %s",
                self.feedback_interval_s,
                FEEDBACK_INTERVAL_S,
            )
            object.__setattr__(self, "feedback_interval_s", FEEDBACK_INTERVAL_S)


@dataclass(slots=True)
class ClassifierConfig:
    model: str | None


@dataclass(slots=True)
class LoggingConfig:
    level: str

    def __post_init__(self) -> None:
        normalized = str(self.level).upper()
        if normalized not in VALID_LOG_LEVELS:
            raise ValueError(
                f"logging.level must be one of {VALID_LOG_LEVELS}, got {self.level!r}"
            )
        object.__setattr__(self, "level", normalized)


@dataclass(slots=True)
class AppConfig:
    server: ServerConfig
    peer: PeerConfig
    detection: DetectionConfig
    classifier: ClassifierConfig
    logging: LoggingConfig
    config_path: Path | None = None


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a YAML object at the top level.")
        return data


def documented_default_config() -> dict[str, Any]:
    """Return runtime defaults in the shape documented by config.example.yaml."""
    return deepcopy(DEFAULT_CONFIG)


def load_config(config_path: Path | None = None) -> AppConfig:
    path = config_path.resolve() if config_path is not None else None
    override = _read_config_file(path) if path is not None else {}
    merged = _deep_merge(DEFAULT_CONFIG, override)

    server_cfg = merged.get("server") or {}
    peer_cfg = merged.get("peer") or {}
    detection_cfg = merged.get("detection") or {}
    logging_cfg = merged.get("logging") or {}
    listen_host, listen_port = _split_host_port(
        str(peer_cfg.get("listen", DEFAULT_CONFIG["peer"]["listen"]))
    )
    model_raw = (merged.get("classifier") or {}).get("model")
    model = str(model_raw).strip() if model_raw not in (None, "") else None

    app_config = AppConfig(
        server=ServerConfig(
            host=str(server_cfg.get("host", "0.0.0.0")),
            port=int(server_cfg.get("port", 8000)),
        ),
        peer=PeerConfig(
            enabled=bool(peer_cfg.get("enabled", True)),
            listen_host=listen_host,
            port=listen_port,
            redundancy=int(peer_cfg.get("redundancy", ALERT_DATAGRAM_REDUNDANCY)),
            burst_count=int(peer_cfg.get("burst_count", ALERT_BURST_COUNT)),
            burst_interval_s=float(peer_cfg.get("burst_interval_s", ALERT_BURST_INTERVAL_S)),
        ),
        detection=DetectionConfig(
            start_on_boot=bool(detection_cfg.get("start_on_boot", False)),
            feedback_interval_s=float(
                detection_cfg.get("feedback_interval_s", FEEDBACK_INTERVAL_S)
            ),
        ),
        classifier=ClassifierConfig(model=model or None),
        logging=LoggingConfig(level=str(logging_cfg.get("level", "INFO"))),
        config_path=path,
    )
    LOGGER.info(
        "Loaded config=%s peer=%s:%d classifier=%s",
        app_config.config_path,
        app_config.peer.listen_host,
        app_config.peer.port,
        app_config.classifier.model,
    )
    return app_config
