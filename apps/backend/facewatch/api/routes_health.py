from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
def get_health(request: Request) -> dict[str, object]:
    state = request.app.state.facewatch
    reconciler = state.reconciler.snapshot()
    statuses = state.supervisor.statuses()
    return {
        "ok": reconciler["consecutive_failures"] == 0,
        "version": "0.1.0",
        "registry_url": state.settings.registry_url,
        "pipelines": len(statuses),
        "pipelines_alive": sum(1 for s in statuses.values() if s.get("alive")),
        "reconciler": reconciler,
    }
