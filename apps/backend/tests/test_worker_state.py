from __future__ import annotations

import json

import pytest

from facewatch import main as worker_main
from facewatch.main import WorkerState
from facewatch.pipeline.reconciler import Reconciler
from facewatch.vision.model_store import CascadeModelError


class _StubCascade:
    def detectMultiScale(self, gray, **kwargs):  # noqa: N802
        return ()


@pytest.fixture
def started(monkeypatch) -> list[int]:
    calls: list[int] = []
    monkeypatch.setattr(worker_main, "setup_logging", lambda level, data_dir: None)
    monkeypatch.setattr(worker_main, "ensure_cascade_model", lambda path, url: path)
    monkeypatch.setattr(worker_main, "load_cascade", lambda path: _StubCascade())
    monkeypatch.setattr(Reconciler, "start", lambda self: calls.append(1))
    return calls


def test_create_wires_components_from_settings(tmp_path, started) -> None:
    state = WorkerState.create(
        data_dir=str(tmp_path),
        log_level="warning",
        registry_url="http://registry.test:3000/",
        poll_interval_seconds=2.5,
        port=None,
    )
    try:
        assert started == [1]
        assert state.data_dir == tmp_path.resolve()
        assert state.client.base_url == "http://registry.test:3000"
        assert state.reconciler.poll_interval_seconds == 2.5
        assert state.settings.port == 8766
        assert state.supervisor.frame_store.frames_dir == tmp_path.resolve() / "frames"
        assert (tmp_path / "config" / "settings.json").exists()
        saved = json.loads((tmp_path / "config" / "settings.json").read_text(encoding="utf-8"))
        assert saved["registry_url"] == "http://localhost:3000"
        assert saved["poll_interval_seconds"] == 5.0
    finally:
        state.shutdown()


def test_shutdown_is_idempotent(tmp_path, started, monkeypatch) -> None:
    state = WorkerState.create(data_dir=str(tmp_path), log_level="warning")
    stops: list[int] = []
    monkeypatch.setattr(state.supervisor, "stop_all", lambda: stops.append(1))

    state.begin_shutdown()
    state.shutdown()
    state.shutdown()

    assert stops == [1]


def test_model_failure_stops_startup(tmp_path, started, monkeypatch) -> None:
    def _unreachable(path, url):
        raise CascadeModelError("failed to fetch cascade model: connection refused")

    monkeypatch.setattr(worker_main, "ensure_cascade_model", _unreachable)

    with pytest.raises(CascadeModelError):
        WorkerState.create(data_dir=str(tmp_path), log_level="warning")
    assert started == []
