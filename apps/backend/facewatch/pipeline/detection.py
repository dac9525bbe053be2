from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import cv2

from facewatch.config.schema import CascadeParams
from facewatch.util.logging import get_logger
from facewatch.vision.cascade import cluster_detections
from facewatch.vision.detect_base import FaceClassifier, ImageParams

from .frames import FrameStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class DetectionResult:
    camera_id: str
    face_count: int
    summary: str

    @classmethod
    def for_faces(cls, camera_id: str, face_count: int) -> "DetectionResult":
        return cls(camera_id=camera_id, face_count=face_count, summary=f"Detected {face_count} face(s)")


AlertSink = Callable[[DetectionResult], Any]


@dataclass
class DetectionTask:
    """Samples one camera's latest frame on a fixed cadence and alerts on faces.

    Every tick is independent: there is no smoothing or debouncing, so a face
    that stays in view raises one alert per tick. Cancellation is checked only
    between ticks and never interrupts a running classification.
    """

    camera_id: str
    camera_name: str
    frame_store: FrameStore
    classifier: FaceClassifier
    params: CascadeParams
    alert_sink: AlertSink
    interval_seconds: float = 1.0
    cancel_event: threading.Event = field(default_factory=threading.Event)
    _thread: threading.Thread | None = field(default=None, init=False)
    _stats_lock: threading.Lock = field(default_factory=threading.Lock, init=False)
    _ticks: int = field(default=0, init=False)
    _skipped: int = field(default=0, init=False)
    _alerts: int = field(default=0, init=False)
    _last_classify_ms: float = field(default=0.0, init=False)

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._thread = threading.Thread(
            target=self._run_loop,
            name=f"detect-{self.camera_id}",
            daemon=True,
        )
        self._thread.start()

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def is_running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def wait_stopped(self, timeout: float = 3.0) -> None:
        thread = self._thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=timeout)

    def _run_loop(self) -> None:
        while not self.cancel_event.wait(self.interval_seconds):
            try:
                self.tick()
            except Exception:
                logger.exception("detection tick failed: %s", self.camera_id)
        logger.debug("detection task stopped: %s", self.camera_id)

    def tick(self) -> DetectionResult | None:
        with self._stats_lock:
            self._ticks += 1

        frame = self.frame_store.read_latest(self.camera_id)
        if frame is None:
            # The sampler rewrites the file every second; misses are routine.
            with self._stats_lock:
                self._skipped += 1
            return None

        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY) if frame.ndim == 3 else frame
        started = time.perf_counter()
        raw = self.classifier.detect(gray, self.params, ImageParams.from_image(gray))
        faces = cluster_detections(raw, self.params.overlap_threshold)
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        with self._stats_lock:
            self._last_classify_ms = elapsed_ms

        if not faces:
            return None

        result = DetectionResult.for_faces(self.camera_id, len(faces))
        logger.warning("ALERT: found %d face(s) on %s", result.face_count, self.camera_name)
        self.alert_sink(result)
        with self._stats_lock:
            self._alerts += 1
        return result

    def snapshot(self) -> dict[str, object]:
        with self._stats_lock:
            return {
                "running": self.is_running(),
                "cancelled": self.cancelled,
                "ticks": self._ticks,
                "skipped_ticks": self._skipped,
                "alerts": self._alerts,
                "classify_ms": round(self._last_classify_ms, 2),
            }
