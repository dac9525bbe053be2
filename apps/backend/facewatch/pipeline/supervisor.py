from __future__ import annotations

import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from facewatch.config.schema import CascadeParams
from facewatch.registry.models import Camera
from facewatch.util.logging import get_logger
from facewatch.util.security import sanitize_rtsp_url
from facewatch.util.time import now_utc_iso
from facewatch.vision.detect_base import FaceClassifier

from .detection import AlertSink, DetectionTask
from .frames import FrameStore
from .process import ExitCallback, ProcessHandle, ProcessLaunchError, restream_command, sampler_command

logger = get_logger(__name__)

ProcessFactory = Callable[[str, Sequence[str], ExitCallback, str], ProcessHandle]


def _spawn_process(role: str, argv: Sequence[str], on_exit: ExitCallback, owner: str) -> ProcessHandle:
    handle = ProcessHandle(role, argv, on_exit=on_exit, owner=owner)
    handle.start()
    return handle


@dataclass
class ManagedPipeline:
    camera: Camera
    detection: DetectionTask
    restream: ProcessHandle | None = None
    sampler: ProcessHandle | None = None
    started_at: str = field(default_factory=now_utc_iso)
    _teardown_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _torn_down: bool = field(default=False, init=False)

    @property
    def camera_id(self) -> str:
        return self.camera.id

    @property
    def handles(self) -> list[ProcessHandle]:
        return [handle for handle in (self.restream, self.sampler) if handle is not None]

    @property
    def alive(self) -> bool:
        if self._torn_down or self.restream is None or self.sampler is None:
            return False
        return not (self.restream.exited or self.sampler.exited)

    @property
    def torn_down(self) -> bool:
        return self._torn_down

    def teardown(self, grace_seconds: float) -> bool:
        """Terminate both processes and cancel detection; later calls are no-ops."""
        with self._teardown_lock:
            if self._torn_down:
                return False
            self._torn_down = True
        self.detection.cancel()
        for handle in self.handles:
            try:
                handle.terminate(grace_seconds)
            except Exception:
                logger.warning("terminate failed for %s process of %s", handle.role, self.camera_id, exc_info=True)
        return True

    def snapshot(self) -> dict[str, Any]:
        return {
            "camera_id": self.camera_id,
            "name": self.camera.label,
            "source": sanitize_rtsp_url(self.camera.rtsp_url),
            "alive": self.alive,
            "started_at": self.started_at,
            "restream_pid": self.restream.pid if self.restream else None,
            "sampler_pid": self.sampler.pid if self.sampler else None,
            "detection": self.detection.snapshot(),
        }


class PipelineRegistry:
    """The only shared mutable map: camera id -> ManagedPipeline.

    Every operation holds one lock, so insertion and removal are atomic with
    respect to the reconciler and to exit watchers racing it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pipelines: dict[str, ManagedPipeline] = {}

    def insert(self, pipeline: ManagedPipeline) -> bool:
        with self._lock:
            if pipeline.camera_id in self._pipelines:
                return False
            self._pipelines[pipeline.camera_id] = pipeline
            return True

    def remove(self, camera_id: str) -> ManagedPipeline | None:
        with self._lock:
            return self._pipelines.pop(camera_id, None)

    def remove_if(self, camera_id: str, pipeline: ManagedPipeline) -> bool:
        with self._lock:
            if self._pipelines.get(camera_id) is not pipeline:
                return False
            del self._pipelines[camera_id]
            return True

    def get(self, camera_id: str) -> ManagedPipeline | None:
        with self._lock:
            return self._pipelines.get(camera_id)

    def ids(self) -> set[str]:
        with self._lock:
            return set(self._pipelines)

    def values(self) -> list[ManagedPipeline]:
        with self._lock:
            return list(self._pipelines.values())

    def __contains__(self, camera_id: object) -> bool:
        with self._lock:
            return camera_id in self._pipelines

    def __len__(self) -> int:
        with self._lock:
            return len(self._pipelines)


class PipelineSupervisor:
    def __init__(
        self,
        frame_store: FrameStore,
        classifier: FaceClassifier,
        alert_sink: AlertSink,
        params: CascadeParams,
        ffmpeg_path: str = "ffmpeg",
        restream_base_url: str = "rtsp://localhost:8554",
        detection_interval_seconds: float = 1.0,
        terminate_grace_seconds: float = 3.0,
        process_factory: ProcessFactory = _spawn_process,
    ) -> None:
        self.frame_store = frame_store
        self.classifier = classifier
        self.alert_sink = alert_sink
        self.params = params
        self.ffmpeg_path = ffmpeg_path
        self.restream_base_url = restream_base_url.rstrip("/")
        self.detection_interval_seconds = detection_interval_seconds
        self.terminate_grace_seconds = terminate_grace_seconds
        self.registry = PipelineRegistry()
        self._process_factory = process_factory
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def restream_destination(self, camera_id: str) -> str:
        return f"{self.restream_base_url}/{camera_id}"

    def start(self, camera: Camera) -> ManagedPipeline | None:
        """Bring up both processes and the detection task for `camera`.

        Returns None without registering anything if any part fails to launch;
        the next reconciliation pass retries from scratch.
        """
        if self.closed or camera.id in self.registry:
            return None

        self.frame_store.discard(camera.id)
        frame_path = self.frame_store.path_for(camera.id)
        detection = DetectionTask(
            camera_id=camera.id,
            camera_name=camera.label,
            frame_store=self.frame_store,
            classifier=self.classifier,
            params=self.params,
            alert_sink=self.alert_sink,
            interval_seconds=self.detection_interval_seconds,
        )
        pipeline = ManagedPipeline(camera=camera, detection=detection)

        def on_exit(handle: ProcessHandle) -> None:
            self._handle_exit(pipeline, handle)

        try:
            pipeline.restream = self._process_factory(
                "restream",
                restream_command(self.ffmpeg_path, camera.rtsp_url, self.restream_destination(camera.id)),
                on_exit,
                camera.id,
            )
            pipeline.sampler = self._process_factory(
                "sampler",
                sampler_command(self.ffmpeg_path, camera.rtsp_url, str(frame_path)),
                on_exit,
                camera.id,
            )
        except ProcessLaunchError as exc:
            logger.error("pipeline launch failed for %s: %s", camera.id, exc)
            pipeline.teardown(self.terminate_grace_seconds)
            return None

        if pipeline.torn_down:
            # The restream child died while the sampler was launching; the
            # sampler was not yet attached when the pipeline was torn down.
            for handle in pipeline.handles:
                handle.terminate(self.terminate_grace_seconds)
            return None

        detection.start()

        if not self.registry.insert(pipeline):
            logger.warning("pipeline already registered, discarding duplicate: %s", camera.id)
            pipeline.teardown(self.terminate_grace_seconds)
            return None

        # stop_all may have drained the registry while this start was launching.
        if self.closed:
            self._retire(pipeline, reason="supervisor closed during startup")
            return None

        # A child that died before registration had nothing to remove.
        if not pipeline.alive:
            self._retire(pipeline, reason="process exited during startup")
            return None

        logger.info(
            "pipeline started: %s (%s) from %s",
            camera.id,
            camera.label,
            sanitize_rtsp_url(camera.rtsp_url),
        )
        return pipeline

    def stop(self, camera_id: str) -> bool:
        # Removing before terminating makes teardown at-most-once even if an
        # exit watcher fires for the same pipeline right now.
        pipeline = self.registry.remove(camera_id)
        if pipeline is None:
            return False
        pipeline.teardown(self.terminate_grace_seconds)
        logger.info("pipeline stopped: %s", camera_id)
        return True

    def stop_all(self, timeout: float = 6.0) -> None:
        """Stop every pipeline and refuse further starts.

        Waits up to `timeout` seconds in total for children and detection
        threads to exit.
        """
        self._closed.set()
        pipelines = []
        for camera_id in sorted(self.registry.ids()):
            pipeline = self.registry.remove(camera_id)
            if pipeline is not None:
                pipeline.teardown(self.terminate_grace_seconds)
                pipelines.append(pipeline)

        deadline = time.perf_counter() + timeout
        for pipeline in pipelines:
            for handle in pipeline.handles:
                remaining = max(0.0, deadline - time.perf_counter())
                if not handle.wait(remaining):
                    logger.warning("%s process did not exit before timeout: %s", handle.role, pipeline.camera_id)
            pipeline.detection.wait_stopped(timeout=max(0.0, deadline - time.perf_counter()))

    def _handle_exit(self, pipeline: ManagedPipeline, handle: ProcessHandle) -> None:
        if handle.termination_requested:
            return
        self._retire(pipeline, reason=f"{handle.role} process exited with code {handle.returncode}")

    def _retire(self, pipeline: ManagedPipeline, reason: str) -> None:
        # Tear down before unregistering so a replacement never runs beside
        # the dying pipeline.
        torn_down = pipeline.teardown(self.terminate_grace_seconds)
        removed = self.registry.remove_if(pipeline.camera_id, pipeline)
        if torn_down or removed:
            logger.warning("pipeline torn down: %s (%s)", pipeline.camera_id, reason)

    def ids(self) -> set[str]:
        return self.registry.ids()

    def statuses(self) -> dict[str, dict[str, Any]]:
        return {pipeline.camera_id: pipeline.snapshot() for pipeline in self.registry.values()}
