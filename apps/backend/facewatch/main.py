from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
import threading
from typing import Any

from fastapi import FastAPI

from facewatch.api import routes_health, routes_pipelines
from facewatch.config.migrate import SettingsStore
from facewatch.config.schema import WorkerSettings
from facewatch.pipeline.alerts import AlertDispatcher
from facewatch.pipeline.frames import FrameStore
from facewatch.pipeline.reconciler import Reconciler
from facewatch.pipeline.supervisor import PipelineSupervisor
from facewatch.registry.client import RegistryClient
from facewatch.util.logging import get_logger, setup_logging
from facewatch.vision.cascade import HaarCascadeClassifier
from facewatch.vision.model_store import cascade_model_path, ensure_cascade_model, load_cascade

logger = get_logger(__name__)


@dataclass
class WorkerState:
    settings: WorkerSettings
    client: RegistryClient
    supervisor: PipelineSupervisor
    reconciler: Reconciler
    data_dir: Path
    _shutdown_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _shutdown_started: bool = field(default=False, init=False, repr=False)
    _shutdown_complete: bool = field(default=False, init=False, repr=False)

    @classmethod
    def create(
        cls,
        data_dir: str | None = None,
        log_level: str = "info",
        **overrides: Any,
    ) -> "WorkerState":
        """Wire every component and start reconciling.

        Raises CascadeModelError when the face model cannot be fetched or
        loaded; nothing is started in that case.
        """
        settings_store = SettingsStore(cli_data_dir=data_dir)
        updates = {key: value for key, value in overrides.items() if value is not None}
        if updates:
            settings_store.apply_overrides(**updates)
        settings = settings_store.settings
        tree = settings_store.data_tree
        setup_logging(log_level, tree["root"])

        cascade_path = ensure_cascade_model(
            cascade_model_path(tree["cascades"], settings.cascade_file),
            settings.cascade_url,
        )
        classifier = HaarCascadeClassifier(load_cascade(cascade_path))
        logger.info("face classifier ready")

        client = RegistryClient(settings.registry_url, timeout=settings.request_timeout_seconds)
        supervisor = PipelineSupervisor(
            frame_store=FrameStore(tree["frames"]),
            classifier=classifier,
            alert_sink=AlertDispatcher(client),
            params=settings.detection,
            ffmpeg_path=settings.ffmpeg_path,
            restream_base_url=settings.restream_base_url,
            detection_interval_seconds=settings.detection_interval_seconds,
            terminate_grace_seconds=settings.terminate_grace_seconds,
        )
        reconciler = Reconciler(client, supervisor, poll_interval_seconds=settings.poll_interval_seconds)
        reconciler.start()

        return cls(
            settings=settings,
            client=client,
            supervisor=supervisor,
            reconciler=reconciler,
            data_dir=tree["root"],
        )

    def begin_shutdown(self) -> None:
        with self._shutdown_lock:
            if self._shutdown_started:
                return
            self._shutdown_started = True
        self.reconciler.stop()
        self.supervisor.stop_all()

    def shutdown(self) -> None:
        self.begin_shutdown()
        with self._shutdown_lock:
            if self._shutdown_complete:
                return
            self._shutdown_complete = True
        self.client.close()


def build_app(state: WorkerState) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            yield
        finally:
            app.state.facewatch.shutdown()

    app = FastAPI(title="facewatch", version="0.1.0", lifespan=lifespan)
    app.state.facewatch = state
    app.include_router(routes_health.router, prefix="/api")
    app.include_router(routes_pipelines.router, prefix="/api")
    return app


def create_app(
    data_dir: str | None = None,
    log_level: str = "info",
    **overrides: Any,
) -> FastAPI:
    return build_app(WorkerState.create(data_dir=data_dir, log_level=log_level, **overrides))
