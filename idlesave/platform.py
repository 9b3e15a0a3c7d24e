"""Platform helpers for desktop vs web builds.

The storage manager only needs a tiny ``localStorage``-shaped surface:
``getItem``, ``setItem`` and ``removeItem`` over string keys and values.
Web builds get the browser's own ``localStorage``; desktop builds keep the
same surface on top of a single JSON file.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

IS_WEB = sys.platform == "emscripten"

logger = logging.getLogger(__name__)


class MemoryLocalStorage:
    """In-process store; used by tests and headless tooling."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._items: Dict[str, str] = dict(initial or {})

    def getItem(self, key: str) -> Optional[str]:  # noqa: N802 - mirrors the web API
        return self._items.get(key)

    def setItem(self, key: str, value: str) -> None:  # noqa: N802
        self._items[key] = str(value)

    def removeItem(self, key: str) -> None:  # noqa: N802
        self._items.pop(key, None)

    @property
    def length(self) -> int:
        return len(self._items)


class FileLocalStorage:
    """``localStorage`` look-alike persisted to one JSON file on disk."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._items = self._read()

    def getItem(self, key: str) -> Optional[str]:  # noqa: N802
        return self._items.get(key)

    def setItem(self, key: str, value: str) -> None:  # noqa: N802
        self._items[key] = str(value)
        self._write()

    def removeItem(self, key: str) -> None:  # noqa: N802
        if self._items.pop(key, None) is not None:
            self._write()

    @property
    def length(self) -> int:
        return len(self._items)

    def _read(self) -> Dict[str, str]:
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Local storage file %s unreadable, starting empty: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(key): str(value) for key, value in data.items() if value is not None}

    def _write(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path: Path | None = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                delete=False,
                dir=self.path.parent,
                prefix=self.path.name,
                suffix=".tmp",
                encoding="utf-8",
            ) as tmp_file:
                json.dump(self._items, tmp_file, indent=2, sort_keys=True)
                tmp_file.write("\n")
                tmp_path = Path(tmp_file.name)
            if self.path.exists():
                shutil.copy2(self.path, self.path.with_suffix(self.path.suffix + ".bak"))
            os.replace(str(tmp_path), str(self.path))
        except OSError:
            if tmp_path is not None:
                try:
                    tmp_path.unlink()
                except OSError:
                    pass
            raise


def get_local_storage(fallback_path: Path | str | None = None) -> Optional[Any]:
    """Return the browser ``localStorage`` or a file-backed stand-in.

    Returns ``None`` only on the web when ``localStorage`` is unavailable and no
    fallback path was given.
    """
    if IS_WEB:
        try:
            from js import localStorage  # type: ignore
        except Exception:
            localStorage = None
        if localStorage is not None:
            return localStorage
    if fallback_path is None:
        return None
    return FileLocalStorage(fallback_path)
