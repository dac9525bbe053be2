from __future__ import annotations

import httpx
from pydantic import ValidationError

from .models import AlertPayload, Camera, CameraList


class RegistryError(RuntimeError):
    """The camera list could not be fetched or decoded in full."""


class RegistryClient:
    """Blocking client for the registry's `/cameras` and `/alerts` endpoints.

    Every request carries a bounded timeout so an unreachable registry costs one
    poll cycle at most. The underlying `httpx.Client` is shared by the
    reconciler thread and every detection thread; httpx clients are thread-safe.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 3.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
            transport=transport,
            headers={"User-Agent": "facewatch-worker"},
        )

    def fetch_cameras(self) -> list[Camera]:
        try:
            response = self._client.get("/cameras")
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            raise RegistryError(f"camera list request failed: {exc}") from exc
        except ValueError as exc:
            raise RegistryError(f"camera list is not valid JSON: {exc}") from exc

        try:
            return CameraList.validate_python(payload)
        except ValidationError as exc:
            raise RegistryError(f"camera list has unexpected shape: {exc.error_count()} error(s)") from exc

    def post_alert(self, alert: AlertPayload) -> httpx.Response:
        response = self._client.post("/alerts", json=alert.model_dump(by_alias=True))
        response.raise_for_status()
        return response

    def close(self) -> None:
        self._client.close()
