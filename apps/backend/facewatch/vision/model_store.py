from __future__ import annotations

from pathlib import Path

import cv2
import httpx

from facewatch.util.logging import get_logger
from facewatch.util.security import resolve_path_within_base

logger = get_logger(__name__)


class CascadeModelError(RuntimeError):
    """The cascade definition is missing, unfetchable or unreadable."""


def cascade_model_path(cascades_dir: Path, filename: str) -> Path:
    path = resolve_path_within_base(cascades_dir, filename)
    if path is None or path == cascades_dir.resolve():
        raise CascadeModelError(f"cascade file must live inside {cascades_dir}: {filename!r}")
    return path


def ensure_cascade_model(
    path: Path,
    url: str,
    timeout: float = 30.0,
    transport: httpx.BaseTransport | None = None,
) -> Path:
    """Download the cascade definition to `path` unless it is already cached."""
    if path.exists() and path.stat().st_size > 0:
        return path

    path.parent.mkdir(parents=True, exist_ok=True)
    partial = path.with_name(path.name + ".part")
    logger.info("downloading face cascade model from %s", url)
    try:
        with httpx.Client(timeout=timeout, transport=transport, follow_redirects=True) as client:
            with client.stream("GET", url) as response:
                response.raise_for_status()
                with partial.open("wb") as handle:
                    for chunk in response.iter_bytes():
                        handle.write(chunk)
    except (httpx.HTTPError, OSError) as exc:
        partial.unlink(missing_ok=True)
        raise CascadeModelError(f"failed to fetch cascade model: {exc}") from exc

    if partial.stat().st_size == 0:
        partial.unlink(missing_ok=True)
        raise CascadeModelError("fetched cascade model is empty")

    partial.replace(path)
    logger.info("face cascade model cached at %s", path)
    return path


def load_cascade(path: Path) -> cv2.CascadeClassifier:
    if not path.exists():
        raise CascadeModelError(f"cascade model not found: {path}")
    try:
        cascade = cv2.CascadeClassifier(str(path))
    except cv2.error as exc:
        raise CascadeModelError(f"cascade model could not be parsed: {path}") from exc
    if cascade.empty():
        raise CascadeModelError(f"cascade model could not be parsed: {path}")
    return cascade
