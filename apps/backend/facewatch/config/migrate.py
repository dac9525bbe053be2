from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from facewatch.util.paths import ensure_data_tree, resolve_data_dir

from .defaults import (
    APP_VERSION,
    DEFAULT_BIND,
    DEFAULT_CASCADE_FILE,
    DEFAULT_CASCADE_URL,
    DEFAULT_DETECTION_PARAMS,
    DEFAULT_PORT,
    DEFAULT_REGISTRY_URL,
    default_data_dir,
)
from .schema import WorkerSettings


class SettingsStore:
    def __init__(self, cli_data_dir: str | None = None) -> None:
        chosen_dir = resolve_data_dir(cli_data_dir or str(default_data_dir()))
        self._data_tree = ensure_data_tree(chosen_dir)

        self.settings_path = self._data_tree["config"] / "settings.json"
        raw_settings = self._read_json(self.settings_path, default={})
        migrated = migrate_settings(raw_settings, str(chosen_dir))
        self._settings = WorkerSettings.model_validate(migrated)
        self._settings.data_dir = str(chosen_dir)
        self.save()

    @property
    def settings(self) -> WorkerSettings:
        return self._settings

    @property
    def data_tree(self) -> dict[str, Path]:
        return self._data_tree

    def update(self, **changes: Any) -> WorkerSettings:
        merged = self._settings.model_dump()
        merged.update(changes)
        self._settings = WorkerSettings.model_validate(merged)
        self.save()
        return self._settings

    def apply_overrides(self, **changes: Any) -> WorkerSettings:
        """Apply run-only overrides; unlike `update`, nothing is written back."""
        merged = self._settings.model_dump()
        merged.update(changes)
        self._settings = WorkerSettings.model_validate(merged)
        return self._settings

    def save(self) -> None:
        payload = self._settings.model_dump(mode="json")
        self._write_json(self.settings_path, payload)

    @staticmethod
    def _read_json(path: Path, default: dict[str, Any]) -> dict[str, Any]:
        if not path.exists():
            return default
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return default

    @staticmethod
    def _write_json(path: Path, payload: dict[str, Any]) -> None:
        path.write_text(json.dumps(payload, ensure_ascii=True, indent=2), encoding="utf-8")


def migrate_settings(raw: dict[str, Any], data_dir: str) -> dict[str, Any]:
    if not raw:
        return {
            "version": APP_VERSION,
            "data_dir": data_dir,
            "registry_url": DEFAULT_REGISTRY_URL,
            "cascade_url": DEFAULT_CASCADE_URL,
            "cascade_file": DEFAULT_CASCADE_FILE,
            "detection": dict(DEFAULT_DETECTION_PARAMS),
            "bind": DEFAULT_BIND,
            "port": DEFAULT_PORT,
        }

    raw.setdefault("version", APP_VERSION)
    raw.setdefault("data_dir", data_dir)
    raw.setdefault("registry_url", DEFAULT_REGISTRY_URL)
    raw.setdefault("cascade_url", DEFAULT_CASCADE_URL)
    raw.setdefault("cascade_file", DEFAULT_CASCADE_FILE)
    detection = raw.setdefault("detection", {})
    if isinstance(detection, dict):
        for key, value in DEFAULT_DETECTION_PARAMS.items():
            detection.setdefault(key, value)
    else:
        raw["detection"] = dict(DEFAULT_DETECTION_PARAMS)
    raw.setdefault("bind", DEFAULT_BIND)
    raw.setdefault("port", DEFAULT_PORT)
    return raw
