from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request

from facewatch.util.security import scrub_sensitive, validate_camera_id

router = APIRouter(prefix="/pipelines", tags=["pipelines"])


@router.get("")
def list_pipelines(request: Request) -> list[dict[str, Any]]:
    statuses = request.app.state.facewatch.supervisor.statuses()
    return [scrub_sensitive(statuses[camera_id]) for camera_id in sorted(statuses)]


@router.get("/{camera_id}")
def get_pipeline(camera_id: str, request: Request) -> dict[str, Any]:
    try:
        camera_id = validate_camera_id(camera_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid camera id") from exc
    status = request.app.state.facewatch.supervisor.statuses().get(camera_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Pipeline not found")
    return scrub_sensitive(status)
