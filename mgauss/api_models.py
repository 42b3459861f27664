"""Pydantic request/response models for the status HTTP API."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

SensorKind = Literal["magnetometer", "rotation_vector", "quaternion", "accelerometer"]


class SensorEventModel(BaseModel):
    """One raw sensor reading forwarded by a sensor bridge."""

    type: SensorKind
    timestamp_ns: int | None = Field(default=None, ge=0)
    values: list[float] = Field(min_length=3, max_length=5)

    @model_validator(mode="after")
    def _check_shape(self) -> SensorEventModel:
        if self.type == "magnetometer" and self.timestamp_ns is None:
            raise ValueError("magnetometer events need timestamp_ns")
        if self.type == "quaternion" and len(self.values) != 4:
            raise ValueError("quaternion events need exactly 4 values (qx, qy, qz, qw)")
        return self


class SensorEventsRequest(BaseModel):
    events: list[SensorEventModel] = Field(min_length=1, max_length=5000)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class DetectionResultResponse(BaseModel):
    label: str
    confidence: float
    sigma: float


class HealthResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    status: str
    detecting: bool
    label: str
    active: bool
    session_status: str
    last_result: DetectionResultResponse | None = None
    classifier_loaded: bool
    peer_listening: bool
    peer_short_id: str | None = None
    websocket_clients: int
    worker: dict[str, Any]


class DetectionStateResponse(BaseModel):
    detecting: bool
    label: str
    status: str


class SensorEventsResponse(BaseModel):
    accepted: int
    cycles_launched: int
