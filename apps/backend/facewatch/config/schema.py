from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from .defaults import (
    APP_VERSION,
    DEFAULT_BIND,
    DEFAULT_CASCADE_FILE,
    DEFAULT_CASCADE_URL,
    DEFAULT_DETECTION_INTERVAL_SECONDS,
    DEFAULT_DETECTION_PARAMS,
    DEFAULT_FFMPEG_PATH,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_PORT,
    DEFAULT_REGISTRY_URL,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_RESTREAM_BASE_URL,
    DEFAULT_TERMINATE_GRACE_SECONDS,
)


class CascadeParams(BaseModel):
    min_size: int = DEFAULT_DETECTION_PARAMS["min_size"]
    max_size: int = DEFAULT_DETECTION_PARAMS["max_size"]
    shift_factor: float = Field(
        default=DEFAULT_DETECTION_PARAMS["shift_factor"],
        description="Kept for settings compatibility; has no effect, OpenCV scans with a fixed stride.",
    )
    scale_factor: float = DEFAULT_DETECTION_PARAMS["scale_factor"]
    min_neighbors: int = DEFAULT_DETECTION_PARAMS["min_neighbors"]
    overlap_threshold: float = DEFAULT_DETECTION_PARAMS["overlap_threshold"]

    @field_validator("scale_factor")
    @classmethod
    def scale_factor_above_one(cls, value: float) -> float:
        if value <= 1.0:
            msg = "scale_factor must be greater than 1.0"
            raise ValueError(msg)
        return value

    @field_validator("min_size", "max_size")
    @classmethod
    def positive_size(cls, value: int) -> int:
        return max(1, value)


class WorkerSettings(BaseModel):
    version: int = APP_VERSION
    data_dir: str
    registry_url: str = DEFAULT_REGISTRY_URL
    restream_base_url: str = DEFAULT_RESTREAM_BASE_URL
    ffmpeg_path: str = DEFAULT_FFMPEG_PATH
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    detection_interval_seconds: float = DEFAULT_DETECTION_INTERVAL_SECONDS
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    terminate_grace_seconds: float = DEFAULT_TERMINATE_GRACE_SECONDS
    cascade_url: str = DEFAULT_CASCADE_URL
    cascade_file: str = DEFAULT_CASCADE_FILE
    detection: CascadeParams = Field(default_factory=CascadeParams)
    bind: str = DEFAULT_BIND
    port: int = DEFAULT_PORT

    @field_validator("data_dir")
    @classmethod
    def data_dir_not_empty(cls, value: str) -> str:
        if not value.strip():
            msg = "data_dir cannot be empty"
            raise ValueError(msg)
        return value

    @field_validator("registry_url", "restream_base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator(
        "poll_interval_seconds",
        "detection_interval_seconds",
        "request_timeout_seconds",
        "terminate_grace_seconds",
    )
    @classmethod
    def positive_interval(cls, value: float) -> float:
        return max(0.05, value)
