from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

from facewatch.registry.client import RegistryClient, RegistryError
from facewatch.registry.models import Camera
from facewatch.util.logging import get_logger
from facewatch.util.security import validate_camera_id
from facewatch.util.time import now_utc_iso

from .supervisor import PipelineSupervisor

logger = get_logger(__name__)


@dataclass
class ReconcileResult:
    ok: bool
    started: list[str] = field(default_factory=list)
    stopped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    suppressed: list[str] = field(default_factory=list)
    error: str | None = None


def resolve_desired_cameras(cameras: list[Camera]) -> tuple[dict[str, Camera], list[str]]:
    desired: dict[str, Camera] = {}
    suppressed: list[str] = []

    for camera in cameras:
        try:
            camera_id = validate_camera_id(camera.id)
        except ValueError:
            suppressed.append(camera.id)
            logger.warning("camera suppressed due to invalid camera id: %r", camera.id)
            continue
        if not camera.rtsp_url.strip():
            suppressed.append(camera_id)
            logger.warning("camera suppressed due to missing source address: %s", camera_id)
            continue
        if camera_id in desired:
            continue
        desired[camera_id] = camera

    return desired, suppressed


class Reconciler:
    """Keeps the supervised pipelines equal to the registry's camera set.

    Only identifier presence is compared: a camera whose attributes change
    (including its source address) keeps its running pipeline until it leaves
    the registry.
    """

    def __init__(
        self,
        client: RegistryClient,
        supervisor: PipelineSupervisor,
        poll_interval_seconds: float = 5.0,
    ) -> None:
        self.client = client
        self.supervisor = supervisor
        self.poll_interval_seconds = poll_interval_seconds
        self._sync_lock = threading.Lock()
        self._status_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._passes = 0
        self._consecutive_failures = 0
        self._last_success: str | None = None
        self._last_error: str | None = None

    def reconcile_once(self) -> ReconcileResult:
        with self._sync_lock:
            try:
                cameras = self.client.fetch_cameras()
            except RegistryError as exc:
                logger.error("registry poll failed, skipping cycle: %s", exc)
                self._record(ok=False, error=str(exc))
                return ReconcileResult(ok=False, error=str(exc))

            if self._stop_event.is_set():
                return ReconcileResult(ok=False, error="reconciler stopped")

            desired, suppressed = resolve_desired_cameras(cameras)
            result = ReconcileResult(ok=True, suppressed=suppressed)
            existing_ids = self.supervisor.ids()

            for camera_id in sorted(existing_ids - desired.keys()):
                if self.supervisor.stop(camera_id):
                    result.stopped.append(camera_id)

            for camera_id, camera in desired.items():
                if camera_id in existing_ids:
                    continue
                if self._stop_event.is_set():
                    break
                logger.info("starting pipeline for camera %s (%s)", camera_id, camera.label)
                if self.supervisor.start(camera) is None:
                    result.failed.append(camera_id)
                else:
                    result.started.append(camera_id)

            self._record(ok=True)
            return result

    def _record(self, ok: bool, error: str | None = None) -> None:
        with self._status_lock:
            self._passes += 1
            if ok:
                self._consecutive_failures = 0
                self._last_success = now_utc_iso()
                self._last_error = None
            else:
                self._consecutive_failures += 1
                self._last_error = error

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="reconciler", daemon=True)
        self._thread.start()

    def _run_loop(self) -> None:
        logger.info("waiting for cameras from %s", self.client.base_url)
        while not self._stop_event.is_set():
            try:
                self.reconcile_once()
            except Exception:
                logger.exception("reconciliation pass failed")
            if self._stop_event.wait(self.poll_interval_seconds):
                break

    def stop(self, timeout: float = 3.0) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=timeout)
            # A pass blocked in the registry call can outlive the join; wait for
            # it so no pipeline starts after the caller moves on to teardown.
            with self._sync_lock:
                pass

    def is_running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def snapshot(self) -> dict[str, Any]:
        with self._status_lock:
            return {
                "running": self.is_running(),
                "passes": self._passes,
                "consecutive_failures": self._consecutive_failures,
                "last_success": self._last_success,
                "last_error": self._last_error,
            }
