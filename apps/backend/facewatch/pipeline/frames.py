from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import cv2
import numpy as np

from facewatch.util.logging import get_logger

logger = get_logger(__name__)


@dataclass
class FrameStore:
    """Per-camera sample frames written by the sampler process.

    Each camera owns exactly one file that ffmpeg overwrites once per second.
    Readers never lock it: a missing, truncated or half-replaced file simply
    yields no frame for that tick.
    """

    frames_dir: Path

    def path_for(self, camera_id: str) -> Path:
        return self.frames_dir / f"{camera_id}.jpg"

    def read_bytes(self, camera_id: str) -> bytes | None:
        try:
            payload = self.path_for(camera_id).read_bytes()
        except OSError:
            return None
        return payload or None

    def read_latest(self, camera_id: str) -> np.ndarray | None:
        payload = self.read_bytes(camera_id)
        if payload is None:
            return None
        return decode_frame(payload)

    def discard(self, camera_id: str) -> None:
        try:
            self.path_for(camera_id).unlink(missing_ok=True)
        except OSError:
            logger.debug("stale frame cleanup failed: %s", camera_id, exc_info=True)


def decode_frame(payload: bytes) -> np.ndarray | None:
    buffer = np.frombuffer(payload, dtype=np.uint8)
    try:
        frame = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    except cv2.error:
        return None
    if frame is None or frame.size == 0:
        return None
    return frame
