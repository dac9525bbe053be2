from __future__ import annotations

from pathlib import Path

from facewatch.util.paths import platform_default_data_dir

APP_VERSION = 1
DEFAULT_BIND = "127.0.0.1"
DEFAULT_PORT = 8766
DEFAULT_LOG_LEVEL = "info"
DEFAULT_REGISTRY_URL = "http://localhost:3000"
DEFAULT_RESTREAM_BASE_URL = "rtsp://localhost:8554"
DEFAULT_FFMPEG_PATH = "ffmpeg"
DEFAULT_POLL_INTERVAL_SECONDS = 5.0
DEFAULT_DETECTION_INTERVAL_SECONDS = 1.0
DEFAULT_REQUEST_TIMEOUT_SECONDS = 3.0
DEFAULT_TERMINATE_GRACE_SECONDS = 3.0
DEFAULT_CASCADE_URL = "https://raw.githubusercontent.com/opencv/opencv/master/data/haarcascades/haarcascade_frontalface_default.xml"
DEFAULT_CASCADE_FILE = "facefinder.xml"
DEFAULT_DETECTION_PARAMS = {
    "min_size": 50,
    "max_size": 1000,
    "shift_factor": 0.1,
    "scale_factor": 1.1,
    "min_neighbors": 3,
    "overlap_threshold": 0.2,
}


def default_data_dir() -> Path:
    return platform_default_data_dir()
