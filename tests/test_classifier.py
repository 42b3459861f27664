from __future__ import annotations

import sys
import types

import numpy as np
import pytest

from mgauss.classifier import ClassifierAdapter, StaticScoreModel, load_model
from mgauss.domain_models import DetectionLabel, FeatureWindow


def _window(sigma: float = 0.7) -> FeatureWindow:
    return FeatureWindow(np.zeros((100, 3), dtype=np.float32), sigma)


def test_device_wins_when_its_score_is_higher() -> None:
    result = ClassifierAdapter(StaticScoreModel(0.2, 0.9)).classify(_window(0.7))
    assert result.label is DetectionLabel.DEVICE
    assert result.confidence == pytest.approx(0.9)
    assert result.sigma == pytest.approx(0.7)


def test_neutral_wins_ties() -> None:
    result = ClassifierAdapter(StaticScoreModel(0.5, 0.5)).classify(_window())
    assert result.label is DetectionLabel.NEUTRAL
    assert result.confidence == pytest.approx(0.5)


def test_model_receives_batched_float32_tensors() -> None:
    seen: dict[str, np.ndarray] = {}

    def _model(wave: np.ndarray, sigma: np.ndarray):
        seen["wave"], seen["sigma"] = wave, sigma
        return np.array([[0.9, 0.1]], dtype=np.float32)

    result = ClassifierAdapter(_model).classify(_window(2.0))
    assert seen["wave"].shape == (1, 100, 3)
    assert seen["wave"].dtype == np.float32
    assert seen["sigma"].tolist() == [[2.0]]
    assert result.label is DetectionLabel.NEUTRAL


def test_missing_model_reports_error() -> None:
    adapter = ClassifierAdapter()
    assert adapter.loaded is False
    assert adapter.classify(_window()).label is DetectionLabel.ERROR
    assert adapter.classify(_window()).label is DetectionLabel.ERROR


@pytest.mark.parametrize(
    "model",
    [
        lambda wave, sigma: (_ for _ in ()).throw(RuntimeError("interpreter crashed")),
        lambda wave, sigma: [0.3],
        lambda wave, sigma: [float("nan"), 0.4],
    ],
    ids=["raises", "short-output", "non-finite"],
)
def test_model_failures_become_error(model) -> None:
    result = ClassifierAdapter(model).classify(_window())
    assert result.label is DetectionLabel.ERROR
    assert result.confidence == 0.0


def test_load_model_from_factory(monkeypatch) -> None:
    module = types.ModuleType("fake_mgauss_models")
    module.make = lambda: StaticScoreModel(0.1, 0.8)
    monkeypatch.setitem(sys.modules, "fake_mgauss_models", module)
    model = load_model("fake_mgauss_models:make")
    assert isinstance(model, StaticScoreModel)
    assert model.device == pytest.approx(0.8)


@pytest.mark.parametrize(
    "spec",
    [None, "", "no_colon_here", "mgauss_missing_module:make", "builtins:object"],
)
def test_load_model_failures_return_none(spec) -> None:
    assert load_model(spec) is None
