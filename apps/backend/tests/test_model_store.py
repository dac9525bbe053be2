from __future__ import annotations

import cv2
import httpx
import pytest

from facewatch.vision.model_store import CascadeModelError, cascade_model_path, ensure_cascade_model, load_cascade

CASCADE_URL = "https://models.test/haarcascade_frontalface_default.xml"


def test_model_is_downloaded_once_and_then_cached(tmp_path) -> None:
    requests: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(str(request.url))
        return httpx.Response(200, content=b"<?xml version='1.0'?><opencv_storage></opencv_storage>")

    target = tmp_path / "cascades" / "facefinder.xml"
    transport = httpx.MockTransport(handler)

    assert ensure_cascade_model(target, CASCADE_URL, transport=transport) == target
    assert target.read_bytes().startswith(b"<?xml")
    assert not (tmp_path / "cascades" / "facefinder.xml.part").exists()

    ensure_cascade_model(target, CASCADE_URL, transport=transport)
    assert requests == [CASCADE_URL]


def test_failed_download_leaves_nothing_behind(tmp_path) -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(404, text="missing"))
    target = tmp_path / "facefinder.xml"

    with pytest.raises(CascadeModelError):
        ensure_cascade_model(target, CASCADE_URL, transport=transport)
    assert list(tmp_path.iterdir()) == []


def test_empty_download_is_rejected(tmp_path) -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b""))

    with pytest.raises(CascadeModelError):
        ensure_cascade_model(tmp_path / "facefinder.xml", CASCADE_URL, transport=transport)
    assert list(tmp_path.iterdir()) == []


def test_load_cascade_rejects_missing_and_garbage_files(tmp_path) -> None:
    with pytest.raises(CascadeModelError):
        load_cascade(tmp_path / "absent.xml")

    garbage = tmp_path / "garbage.xml"
    garbage.write_bytes(b"this is not a cascade")
    with pytest.raises(CascadeModelError):
        load_cascade(garbage)


def test_load_cascade_accepts_bundled_frontal_face_model() -> None:
    from pathlib import Path

    bundled = Path(cv2.data.haarcascades) / "haarcascade_frontalface_default.xml"
    cascade = load_cascade(bundled)
    assert not cascade.empty()


@pytest.mark.parametrize("filename", ["../escape.xml", "/etc/passwd", "", "."])
def test_cascade_path_stays_inside_cascade_dir(tmp_path, filename: str) -> None:
    with pytest.raises(CascadeModelError):
        cascade_model_path(tmp_path, filename)


def test_cascade_path_accepts_plain_filename(tmp_path) -> None:
    assert cascade_model_path(tmp_path, "facefinder.xml") == (tmp_path / "facefinder.xml").resolve()
