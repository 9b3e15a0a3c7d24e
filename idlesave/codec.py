"""Save text codec.

Saves are compact, key-sorted JSON, deflated with zlib and wrapped in URL-safe
base64 between a fixed header and footer. Sorting keys keeps the output
deterministic, which the cloud fingerprint relies on.
"""

from __future__ import annotations

import base64
import binascii
import gzip
import hashlib
import json
import zlib
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from .errors import DecodeError

SAVE_HEADER = "IdleSaveFormatAAB"
SAVE_FOOTER = "EndOfSavefile"


def _dumps(obj: Any) -> str:
    try:
        return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Save data is not serializable: {exc}") from exc


def encode(obj: Any) -> str:
    raw = _dumps(obj).encode("utf-8")
    packed = base64.urlsafe_b64encode(zlib.compress(raw, 9)).decode("ascii")
    return f"{SAVE_HEADER}{packed}{SAVE_FOOTER}"


def decode(text: Optional[str]) -> Any:
    """Decode save text, raising :class:`DecodeError` on anything foreign."""
    if not isinstance(text, str):
        raise DecodeError("Save text missing.")
    stripped = text.strip()
    if not stripped:
        raise DecodeError("Save text was empty.")
    if stripped.startswith(SAVE_HEADER) and stripped.endswith(SAVE_FOOTER):
        body = stripped[len(SAVE_HEADER) : len(stripped) - len(SAVE_FOOTER)]
    elif stripped.startswith(SAVE_HEADER):
        raise DecodeError("Save text is truncated (missing footer).")
    else:
        # Headerless saves predate the current wrapper.
        body = stripped
    try:
        packed = base64.urlsafe_b64decode(_pad(body))
        raw = zlib.decompress(packed)
        data = json.loads(raw.decode("utf-8"))
    except (binascii.Error, ValueError, zlib.error, UnicodeDecodeError) as exc:
        raise DecodeError(f"Unrecognized save format: {exc}") from exc
    return normalize_root(data)


def try_decode(text: Optional[str]) -> Any:
    try:
        return decode(text)
    except DecodeError:
        return None


def decode_bundled(text: Optional[str]) -> Any:
    """Decode the legacy remote blob: gzip-compressed JSON in base64url."""
    if not isinstance(text, str) or not text.strip():
        raise DecodeError("Bundled save missing.")
    standard = text.strip().replace("-", "+").replace("_", "/")
    try:
        raw = gzip.decompress(base64.b64decode(_pad(standard)))
        data = json.loads(raw.decode("utf-8"))
    except (binascii.Error, OSError, EOFError, ValueError, UnicodeDecodeError) as exc:
        raise DecodeError(f"Unrecognized bundled save: {exc}") from exc
    return normalize_root(data)


def fingerprint(obj: Any) -> str:
    return hashlib.sha256(encode(obj).encode("utf-8")).hexdigest()


def normalize_root(data: Any) -> Any:
    """JSON object keys are strings; restore integer slot ids on a save root."""
    if not isinstance(data, dict):
        return data
    saves = data.get("saves")
    if isinstance(saves, dict):
        data["saves"] = {_slot_key(key): value for key, value in saves.items()}
        current = data.get("current")
        if isinstance(current, str) and current.isdigit():
            data["current"] = int(current)
    return data


@contextmanager
def export_normalized(player: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
    """Force export-only values on ``player`` and restore them afterwards."""
    speedrun = player.get("speedrun")
    if not isinstance(speedrun, dict):
        yield player
        return
    had_key = "isSegmented" in speedrun
    previous = speedrun.get("isSegmented")
    speedrun["isSegmented"] = True
    try:
        yield player
    finally:
        if had_key:
            speedrun["isSegmented"] = previous
        else:
            speedrun.pop("isSegmented", None)


def encode_for_export(player: Dict[str, Any]) -> str:
    with export_normalized(player) as normalized:
        return encode(normalized)


def _slot_key(key: Any) -> Any:
    if isinstance(key, str) and key.isdigit():
        return int(key)
    return key


def _pad(body: str) -> str:
    return body + "=" * (-len(body) % 4)
