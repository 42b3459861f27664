from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from mgauss.config import documented_default_config, load_config

REPO_ROOT = Path(__file__).resolve().parents[1]


def _write_config(path: Path, payload: dict) -> None:
    path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")


def test_defaults_without_file() -> None:
    cfg = load_config(None)
    assert cfg.server.host == "0.0.0.0"
    assert cfg.server.port == 8000
    assert cfg.peer.enabled is True
    assert (cfg.peer.listen_host, cfg.peer.port) == ("0.0.0.0", 8888)
    assert cfg.peer.redundancy == 3
    assert cfg.peer.burst_count == 5
    assert cfg.peer.burst_interval_s == pytest.approx(0.2)
    assert cfg.detection.start_on_boot is False
    assert cfg.detection.feedback_interval_s == pytest.approx(1.0)
    assert cfg.classifier.model is None
    assert cfg.logging.level == "INFO"
    assert cfg.config_path is None


def test_missing_file_uses_defaults(tmp_path: Path) -> None:
    cfg = load_config(tmp_path / "absent.yaml")
    assert cfg.peer.port == 8888
    assert cfg.config_path == (tmp_path / "absent.yaml").resolve()


def test_partial_override_is_deep_merged(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    _write_config(
        config_path,
        {"peer": {"listen": "192.168.4.1:9999"}, "classifier": {"model": "pkg.models:make"}},
    )
    cfg = load_config(config_path)
    assert (cfg.peer.listen_host, cfg.peer.port) == ("192.168.4.1", 9999)
    assert cfg.peer.redundancy == 3
    assert cfg.classifier.model == "pkg.models:make"


def test_null_sections_fall_back_to_defaults(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("peer:\ndetection:\nlogging:\n", encoding="utf-8")
    cfg = load_config(config_path)
    assert cfg.peer.port == 8888
    assert cfg.detection.feedback_interval_s == pytest.approx(1.0)
    assert cfg.logging.level == "INFO"


def test_out_of_range_counts_are_clamped(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    _write_config(
        config_path,
        {
            "peer": {"redundancy": 0, "burst_count": -2, "burst_interval_s": -1},
            "detection": {"feedback_interval_s": 0},
        },
    )
    cfg = load_config(config_path)
    assert cfg.peer.redundancy == 1
    assert cfg.peer.burst_count == 1
    assert cfg.peer.burst_interval_s == 0.0
    assert cfg.detection.feedback_interval_s == pytest.approx(1.0)


@pytest.mark.parametrize(
    ("payload", "match"),
    [
        ({"peer": {"listen": "8888"}}, "HOST:PORT"),
        ({"peer": {"listen": "0.0.0.0:abc"}}, "not an integer"),
        ({"peer": {"listen": "0.0.0.0:70000"}}, "PeerConfig.port"),
        ({"server": {"port": 0}}, "ServerConfig.port"),
        ({"logging": {"level": "chatty"}}, "logging.level"),
    ],
)
def test_invalid_values_raise(tmp_path: Path, payload: dict, match: str) -> None:
    config_path = tmp_path / "config.yaml"
    _write_config(config_path, payload)
    with pytest.raises(ValueError, match=match):
        load_config(config_path)


def test_log_level_is_normalised(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    _write_config(config_path, {"logging": {"level": "debug"}})
    assert load_config(config_path).logging.level == "DEBUG"


def test_top_level_must_be_mapping(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError, match="YAML object"):
        load_config(config_path)


def test_example_config_matches_documented_defaults() -> None:
    example = yaml.safe_load((REPO_ROOT / "config.example.yaml").read_text(encoding="utf-8"))
    assert example == documented_default_config()
