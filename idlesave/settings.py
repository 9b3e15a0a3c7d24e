"""Settings persistence for the save subsystem."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict

_BASE_DIR = Path(__file__).resolve().parent.parent
SETTINGS_PATH = _BASE_DIR / "idlesave.json"
DEV_ENV_VAR = "IDLESAVE_DEV"

logger = logging.getLogger(__name__)


def _clamp(value: float, minimum: float, maximum: float) -> float:
    return max(minimum, min(maximum, value))


@dataclass
class StorageSettings:
    """Runtime configuration for local and cloud persistence."""

    dev: bool = False
    save_interval_s: float = 30.0
    cloud_interval_s: float = 600.0
    cloud_url: str = ""
    cloud_auth_token: str = ""
    request_timeout_s: float = 10.0
    storage_path: str = "saves/local_storage.json"

    @property
    def local_storage_key(self) -> str:
        return "dimensionTestSave" if self.dev else "dimensionSave"

    def clamp(self) -> "StorageSettings":
        self.dev = bool(self.dev)
        self.save_interval_s = _clamp(float(self.save_interval_s), 5.0, 600.0)
        self.cloud_interval_s = _clamp(float(self.cloud_interval_s), 60.0, 3600.0)
        self.request_timeout_s = _clamp(float(self.request_timeout_s), 1.0, 60.0)
        self.cloud_url = str(self.cloud_url or "").rstrip("/")
        self.cloud_auth_token = str(self.cloud_auth_token or "")
        self.storage_path = str(self.storage_path or "saves/local_storage.json")
        return self

    def copy(self) -> "StorageSettings":
        return StorageSettings.from_dict(self.to_dict())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any] | None) -> "StorageSettings":
        if not isinstance(data, dict):
            return cls()

        def _as_float(key: str, default: float) -> float:
            try:
                return float(data.get(key, default))
            except (TypeError, ValueError):
                return default

        def _as_bool(key: str, default: bool) -> bool:
            value = data.get(key, default)
            if isinstance(value, bool):
                return value
            if isinstance(value, str):
                lowered = value.strip().lower()
                if lowered in {"true", "1", "yes", "on"}:
                    return True
                if lowered in {"false", "0", "no", "off"}:
                    return False
            return bool(value) if value is not None else default

        settings = cls(
            dev=_as_bool("dev", False),
            save_interval_s=_as_float("save_interval_s", 30.0),
            cloud_interval_s=_as_float("cloud_interval_s", 600.0),
            cloud_url=str(data.get("cloud_url") or ""),
            cloud_auth_token=str(data.get("cloud_auth_token") or ""),
            request_timeout_s=_as_float("request_timeout_s", 10.0),
            storage_path=str(data.get("storage_path") or "saves/local_storage.json"),
        )
        return settings.clamp()


def _apply_environment(settings: StorageSettings) -> StorageSettings:
    if os.getenv(DEV_ENV_VAR, "").strip().lower() in {"1", "true", "yes", "on"}:
        settings.dev = True
    return settings


def load_settings(path: Path | str = SETTINGS_PATH) -> StorageSettings:
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except FileNotFoundError:
        return _apply_environment(StorageSettings())
    except (OSError, json.JSONDecodeError, TypeError) as exc:
        logger.warning("Ignoring unreadable settings file %s: %s", path, exc)
        return _apply_environment(StorageSettings())
    return _apply_environment(StorageSettings.from_dict(data))


def save_settings(settings: StorageSettings, path: Path | str = SETTINGS_PATH) -> StorageSettings:
    path = Path(path)
    sanitized = settings.copy().clamp()
    path.parent.mkdir(parents=True, exist_ok=True)

    tmp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            "w", delete=False, dir=path.parent, prefix=path.name, suffix=".tmp", encoding="utf-8"
        ) as tmp_file:
            json.dump(sanitized.to_dict(), tmp_file, indent=2)
            tmp_file.write("\n")
            tmp_path = Path(tmp_file.name)
        os.replace(str(tmp_path), str(path))
    except OSError as exc:
        logger.error("Failed to save settings: %s", exc)
        if tmp_path is not None:
            try:
                tmp_path.unlink()
            except OSError:
                pass
    return sanitized
