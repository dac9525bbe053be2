from __future__ import annotations

import time

import cv2
import numpy as np

from facewatch.config.schema import CascadeParams
from facewatch.pipeline.detection import DetectionResult, DetectionTask
from facewatch.pipeline.frames import FrameStore
from facewatch.vision.detect_base import Detection

from fake_pipeline import FakeClassifier, RecordingAlertSink


def _write_frame(store: FrameStore, camera_id: str, width: int = 320, height: int = 240) -> None:
    frame = np.full((height, width, 3), 96, dtype=np.uint8)
    assert cv2.imwrite(str(store.path_for(camera_id)), frame)


def _task(store: FrameStore, classifier: FakeClassifier, sink: RecordingAlertSink, interval: float = 1.0) -> DetectionTask:
    return DetectionTask(
        camera_id="cam-1",
        camera_name="Front Door",
        frame_store=store,
        classifier=classifier,
        params=CascadeParams(),
        alert_sink=sink,
        interval_seconds=interval,
    )


def test_no_faces_emits_no_alert(tmp_path) -> None:
    store = FrameStore(tmp_path)
    _write_frame(store, "cam-1")
    sink = RecordingAlertSink()

    result = _task(store, FakeClassifier([]), sink).tick()

    assert result is None
    assert sink.results == []


def test_two_separated_faces_emit_one_alert_with_count_two(tmp_path) -> None:
    store = FrameStore(tmp_path)
    _write_frame(store, "cam-1")
    sink = RecordingAlertSink()
    classifier = FakeClassifier([Detection(bbox=(10, 10, 70, 70)), Detection(bbox=(200, 100, 260, 160))])

    result = _task(store, classifier, sink).tick()

    assert result == DetectionResult(camera_id="cam-1", face_count=2, summary="Detected 2 face(s)")
    assert sink.results == [result]


def test_overlapping_hits_are_counted_once(tmp_path) -> None:
    store = FrameStore(tmp_path)
    _write_frame(store, "cam-1")
    sink = RecordingAlertSink()
    classifier = FakeClassifier([Detection(bbox=(10, 10, 70, 70)), Detection(bbox=(14, 12, 74, 72))])

    result = _task(store, classifier, sink).tick()

    assert result is not None
    assert result.face_count == 1
    assert len(sink.results) == 1


def test_classifier_receives_actual_image_dimensions(tmp_path) -> None:
    store = FrameStore(tmp_path)
    _write_frame(store, "cam-1", width=352, height=288)
    classifier = FakeClassifier([])

    _task(store, classifier, RecordingAlertSink()).tick()

    assert len(classifier.calls) == 1
    assert (classifier.calls[0].cols, classifier.calls[0].rows) == (352, 288)


def test_missing_and_partial_frames_are_skipped(tmp_path) -> None:
    store = FrameStore(tmp_path)
    sink = RecordingAlertSink()
    classifier = FakeClassifier([Detection(bbox=(10, 10, 70, 70))])
    task = _task(store, classifier, sink)

    assert task.tick() is None

    store.path_for("cam-1").write_bytes(b"")
    assert task.tick() is None

    _write_frame(store, "cam-1")
    payload = store.path_for("cam-1").read_bytes()
    store.path_for("cam-1").write_bytes(payload[:12])
    assert task.tick() is None

    store.path_for("cam-1").write_bytes(b"not a jpeg at all")
    assert task.tick() is None

    assert classifier.calls == []
    assert sink.results == []
    assert task.snapshot()["skipped_ticks"] == 4


def test_every_tick_alerts_without_debounce(tmp_path) -> None:
    store = FrameStore(tmp_path)
    _write_frame(store, "cam-1")
    sink = RecordingAlertSink()
    task = _task(store, FakeClassifier([Detection(bbox=(10, 10, 70, 70))]), sink)

    for _ in range(3):
        task.tick()

    assert len(sink.results) == 3
    assert task.snapshot()["alerts"] == 3


def test_cancelled_task_stops_ticking(tmp_path) -> None:
    store = FrameStore(tmp_path)
    _write_frame(store, "cam-1")
    sink = RecordingAlertSink()
    task = _task(store, FakeClassifier([Detection(bbox=(10, 10, 70, 70))]), sink, interval=0.02)

    task.start()
    deadline = time.perf_counter() + 2.0
    while not sink.results and time.perf_counter() < deadline:
        time.sleep(0.01)
    task.cancel()
    task.wait_stopped(timeout=1.0)
    alerts_at_cancel = len(sink.results)
    time.sleep(0.1)

    assert alerts_at_cancel >= 1
    assert not task.is_running()
    assert len(sink.results) == alerts_at_cancel


def test_classifier_error_does_not_kill_task(tmp_path) -> None:
    store = FrameStore(tmp_path)
    _write_frame(store, "cam-1")
    sink = RecordingAlertSink()

    class _FlakyClassifier(FakeClassifier):
        def detect(self, gray, params, image):
            self.calls.append(image)
            if len(self.calls) == 1:
                raise RuntimeError("cascade exploded")
            return [Detection(bbox=(10, 10, 70, 70))]

    task = _task(store, _FlakyClassifier(), sink, interval=0.02)
    task.start()
    deadline = time.perf_counter() + 2.0
    while not sink.results and time.perf_counter() < deadline:
        time.sleep(0.01)
    task.cancel()
    task.wait_stopped(timeout=1.0)

    assert sink.results
    assert not task.is_running()
