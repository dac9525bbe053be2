from __future__ import annotations

import httpx

from facewatch.registry.client import RegistryClient
from facewatch.registry.models import AlertPayload
from facewatch.util.logging import get_logger

from .detection import DetectionResult

logger = get_logger(__name__)


class AlertDispatcher:
    """Fire-and-forget delivery of face alerts to the registry.

    At most once: a failed post is logged and dropped, never retried or queued.
    """

    def __init__(self, client: RegistryClient) -> None:
        self._client = client

    def dispatch(self, camera_id: str, message: str) -> bool:
        alert = AlertPayload(camera_id=camera_id, message=message)
        try:
            self._client.post_alert(alert)
        except httpx.HTTPStatusError as exc:
            logger.warning("alert for %s rejected by registry: HTTP %s", camera_id, exc.response.status_code)
            return False
        except httpx.HTTPError as exc:
            logger.warning("alert for %s not delivered: %s", camera_id, exc)
            return False
        return True

    def __call__(self, result: DetectionResult) -> bool:
        return self.dispatch(result.camera_id, result.summary)
