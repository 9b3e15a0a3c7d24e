"""Minimal save verification.

``check_player_object`` returns an empty string for a usable save and a short
human readable reason otherwise. Every load, import and slot overwrite goes
through it.
"""

from __future__ import annotations

import math
from typing import Any, List, Mapping

PROGRESS_FIELDS = ("antimatter", "money")

DECODE_FAILED = "Save decoding failed (invalid format)"
MISSING_PROGRESS = "Save does not have antimatter property"


def check_player_object(save: Any) -> str:
    if save is None or not isinstance(save, Mapping):
        return DECODE_FAILED
    if not any(field in save for field in PROGRESS_FIELDS):
        return MISSING_PROGRESS

    invalid = find_nan_paths(save)
    if not invalid:
        return ""
    noun = "property" if len(invalid) == 1 else "properties"
    return f"{len(invalid)} NaN player {noun} found: {', '.join(invalid)}"


def find_nan_paths(save: Any, root: str = "player") -> List[str]:
    """Collect the dotted path of every NaN leaf under ``save``.

    Text imports carry numbers as strings until they are reinterpreted, so the
    literal ``"NaN"`` counts as well.
    """
    invalid: List[str] = []
    _scan(save, root, invalid)
    return invalid


def _scan(node: Any, path: str, invalid: List[str]) -> None:
    if isinstance(node, Mapping):
        items = node.items()
    elif isinstance(node, (list, tuple)):
        items = enumerate(node)
    else:
        return
    for key, value in items:
        child = f"{path}.{key}"
        if isinstance(value, (Mapping, list, tuple)):
            _scan(value, child, invalid)
        elif isinstance(value, bool):
            continue
        elif isinstance(value, float) and math.isnan(value):
            invalid.append(child)
        elif isinstance(value, str) and value == "NaN":
            invalid.append(child)
