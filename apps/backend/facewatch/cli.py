from __future__ import annotations

import argparse
import signal
import sys
import threading

import uvicorn

from facewatch.config.defaults import DEFAULT_LOG_LEVEL
from facewatch.config.migrate import SettingsStore
from facewatch.main import WorkerState, build_app
from facewatch.vision.model_store import cascade_model_path, ensure_cascade_model, load_cascade

_KNOWN_COMMANDS = {"serve", "fetch-model"}


def _add_serve_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--data-dir", default=None, help="Path for runtime data (config/logs/frames/cascades)")
    parser.add_argument("--registry-url", default=None, help="Camera registry base URL (default http://localhost:3000)")
    parser.add_argument("--restream-url", default=None, help="Re-stream server base URL (default rtsp://localhost:8554)")
    parser.add_argument("--ffmpeg", dest="ffmpeg_path", default=None, help="Path to the ffmpeg executable")
    parser.add_argument("--poll-interval", type=float, default=None, help="Seconds between registry polls")
    parser.add_argument("--bind", default=None, help="Status API bind host (default 127.0.0.1)")
    parser.add_argument("--port", type=int, default=None, help="Status API port (default 8766)")
    parser.add_argument("--headless", action="store_true", help="Run without the status API")
    parser.add_argument("--log-level", default=DEFAULT_LOG_LEVEL, help="Log level")


def _build_parser(prog: str) -> argparse.ArgumentParser:
    """Parser used when no explicit command is given; equivalent to `serve`."""
    parser = argparse.ArgumentParser(prog=prog, description="facewatch camera pipeline supervisor")
    _add_serve_arguments(parser)
    return parser


def _build_command_parser(prog: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=prog, description="facewatch camera pipeline supervisor")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Supervise camera pipelines and serve the status API")
    _add_serve_arguments(serve)

    fetch = subparsers.add_parser("fetch-model", help="Download and verify the face cascade model")
    fetch.add_argument("--data-dir", default=None, help="Path for runtime data (config/logs/frames/cascades)")

    return parser


def _overrides(parsed: argparse.Namespace) -> dict[str, object]:
    return {
        "registry_url": parsed.registry_url,
        "restream_base_url": parsed.restream_url,
        "ffmpeg_path": parsed.ffmpeg_path,
        "poll_interval_seconds": parsed.poll_interval,
        "bind": parsed.bind,
        "port": parsed.port,
    }


def _install_signal_handlers(handler) -> dict[int, object]:
    previous_handlers: dict[int, object] = {}
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            previous_handlers[sig] = signal.getsignal(sig)
            signal.signal(sig, handler)
        except (AttributeError, ValueError):
            continue
    return previous_handlers


def _restore_signal_handlers(previous_handlers: dict[int, object]) -> None:
    for sig, handler in previous_handlers.items():
        try:
            signal.signal(sig, handler)
        except (AttributeError, ValueError):
            continue


def _run_headless(state: WorkerState) -> int:
    stop_requested = threading.Event()

    def _request_exit(signum: int, _frame: object) -> None:
        if signum in {signal.SIGINT, signal.SIGTERM}:
            stop_requested.set()

    previous_handlers = _install_signal_handlers(_request_exit)
    print("facewatch running headless; press Ctrl+C to stop")
    try:
        while not stop_requested.wait(1.0):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        state.shutdown()
        _restore_signal_handlers(previous_handlers)
    return 0


def _run(parsed: argparse.Namespace) -> int:
    state = WorkerState.create(data_dir=parsed.data_dir, log_level=parsed.log_level, **_overrides(parsed))
    if parsed.headless:
        return _run_headless(state)

    app = build_app(state)
    settings = state.settings
    print(f"facewatch status API at http://{settings.bind}:{settings.port}/api/health")
    config = uvicorn.Config(
        app,
        host=settings.bind,
        port=settings.port,
        log_level=parsed.log_level,
        workers=1,
        timeout_graceful_shutdown=2,
        timeout_keep_alive=1,
    )
    server = uvicorn.Server(config)
    early_shutdown_started = threading.Event()
    run_exit_code: int | None = None

    def _begin_runtime_shutdown() -> None:
        if early_shutdown_started.is_set():
            return
        early_shutdown_started.set()
        try:
            state.begin_shutdown()
        except Exception:
            pass

    def _request_exit(signum: int, _frame: object) -> None:
        if signum in {signal.SIGINT, signal.SIGTERM}:
            _begin_runtime_shutdown()
            server.should_exit = True

    previous_handlers = _install_signal_handlers(_request_exit)

    try:
        try:
            server.run()
        except KeyboardInterrupt:
            _begin_runtime_shutdown()
            server.should_exit = True
        except SystemExit as exc:
            if server.should_exit or early_shutdown_started.is_set():
                run_exit_code = 0
            else:
                code = exc.code
                run_exit_code = code if isinstance(code, int) else 1
    finally:
        _begin_runtime_shutdown()
        try:
            state.shutdown()
        except Exception:
            pass
        _restore_signal_handlers(previous_handlers)
    if run_exit_code is not None:
        return run_exit_code
    if bool(getattr(server, "started", False)) or server.should_exit:
        return 0
    return 1


def _fetch_model(parsed: argparse.Namespace) -> int:
    settings_store = SettingsStore(cli_data_dir=parsed.data_dir)
    settings = settings_store.settings
    path = ensure_cascade_model(
        cascade_model_path(settings_store.data_tree["cascades"], settings.cascade_file),
        settings.cascade_url,
    )
    load_cascade(path)
    print(f"cascade model ready at {path}")
    return 0


def _dispatch_command(parsed: argparse.Namespace) -> int:
    if parsed.command == "serve":
        return _run(parsed)
    if parsed.command == "fetch-model":
        return _fetch_model(parsed)
    raise ValueError(f"Unknown command: {parsed.command}")


def main(argv: list[str] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    try:
        if args and args[0] in _KNOWN_COMMANDS:
            parser = _build_command_parser("facewatch")
            parsed = parser.parse_args(args)
            return _dispatch_command(parsed)
        parser = _build_parser("facewatch")
        parsed = parser.parse_args(args)
        return _run(parsed)
    except KeyboardInterrupt:
        return 0
    except Exception as exc:
        print(f"[error] {exc}")
        return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
