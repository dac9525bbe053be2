from __future__ import annotations

import subprocess
import threading
from collections.abc import Callable, Sequence

from facewatch.util.logging import get_logger
from facewatch.util.security import redact_secrets

logger = get_logger(__name__)

ExitCallback = Callable[["ProcessHandle"], None]


class ProcessLaunchError(RuntimeError):
    """The child process could not be spawned."""


def restream_command(ffmpeg_path: str, source_url: str, destination_url: str) -> list[str]:
    return [
        ffmpeg_path,
        "-stream_loop", "-1",
        "-re",
        "-i", source_url,
        "-c:v", "libx264",
        "-preset", "ultrafast",
        "-bf", "0",
        "-an",
        "-f", "rtsp",
        destination_url,
    ]


def sampler_command(ffmpeg_path: str, source_url: str, frame_path: str) -> list[str]:
    return [
        ffmpeg_path,
        "-stream_loop", "-1",
        "-i", source_url,
        "-r", "1",
        "-update", "1",
        "-y",
        frame_path,
    ]


class ProcessHandle:
    """Owns one spawned child process for its whole life.

    A watcher thread blocks in `Popen.wait()` and fires `on_exit` exactly once
    when the child ends, whether it crashed or was asked to terminate;
    `termination_requested` tells the two apart. A handle is never restarted.
    """

    def __init__(
        self,
        role: str,
        argv: Sequence[str],
        on_exit: ExitCallback | None = None,
        owner: str = "",
    ) -> None:
        self.role = role
        self.argv = list(argv)
        self.owner = owner
        self._on_exit = on_exit
        self._popen: subprocess.Popen[bytes] | None = None
        self._watcher: threading.Thread | None = None
        self._exited = threading.Event()
        self._lock = threading.Lock()
        self._termination_requested = False
        self._kill_timer: threading.Timer | None = None
        self.returncode: int | None = None

    @property
    def pid(self) -> int | None:
        if self._popen is None or self._exited.is_set():
            return None
        return self._popen.pid

    @property
    def exited(self) -> bool:
        return self._exited.is_set()

    @property
    def termination_requested(self) -> bool:
        with self._lock:
            return self._termination_requested

    def start(self) -> None:
        if self._popen is not None:
            raise ProcessLaunchError(f"{self.role} process already started")
        try:
            self._popen = subprocess.Popen(
                self.argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                close_fds=True,
            )
        except (OSError, ValueError) as exc:
            self._exited.set()
            raise ProcessLaunchError(f"{self.role} process failed to launch: {exc}") from exc

        self._watcher = threading.Thread(
            target=self._watch,
            name=f"{self.role}-watch-{self.owner or self._popen.pid}",
            daemon=True,
        )
        self._watcher.start()
        logger.debug("%s process started for %s (pid %s)", self.role, self.owner, self._popen.pid)

    def _watch(self) -> None:
        popen = self._popen
        if popen is None:
            return
        self.returncode = popen.wait()
        with self._lock:
            timer = self._kill_timer
            self._kill_timer = None
        if timer is not None:
            timer.cancel()
        self._exited.set()
        if not self.termination_requested:
            logger.warning(
                "%s process for %s exited unexpectedly with code %s",
                self.role,
                self.owner,
                self.returncode,
            )
        callback = self._on_exit
        if callback is None:
            return
        try:
            callback(self)
        except Exception:
            logger.exception("exit callback failed for %s process of %s", self.role, self.owner)

    def terminate(self, grace_seconds: float = 3.0) -> None:
        """Ask the child to stop; escalate to SIGKILL after `grace_seconds`.

        Returns immediately. Failures are logged and not retried.
        """
        with self._lock:
            if self._termination_requested:
                return
            self._termination_requested = True
        popen = self._popen
        if popen is None or self._exited.is_set():
            return
        try:
            popen.terminate()
        except OSError:
            logger.warning("failed to terminate %s process for %s", self.role, self.owner, exc_info=True)
            return

        timer = threading.Timer(grace_seconds, self._kill)
        timer.daemon = True
        with self._lock:
            self._kill_timer = timer
        timer.start()

    def _kill(self) -> None:
        popen = self._popen
        if popen is None or self._exited.is_set():
            return
        logger.warning("%s process for %s ignored SIGTERM, killing", self.role, self.owner)
        try:
            popen.kill()
        except OSError:
            logger.warning("failed to kill %s process for %s", self.role, self.owner, exc_info=True)

    def wait(self, timeout: float | None = None) -> bool:
        return self._exited.wait(timeout)

    def describe(self) -> str:
        return redact_secrets(" ".join(self.argv))
