from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class Camera(BaseModel):
    """One camera as listed by the registry; immutable for the duration of a poll."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str
    name: str = ""
    rtsp_url: str = Field(default="", alias="rtspUrl")
    status: str = ""
    location: str | None = None
    ai_enabled: bool | None = Field(default=None, alias="aiEnabled")
    created_at: str | None = Field(default=None, alias="createdAt")

    @property
    def label(self) -> str:
        return self.name or self.id


class AlertPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    camera_id: str = Field(alias="cameraId")
    message: str


CameraList = TypeAdapter(list[Camera])
