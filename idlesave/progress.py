"""Progress and play-time comparison between two player saves.

Both helpers return ``-1`` when the first (cloud) save wins the comparison,
``1`` when the second (local) save does, and ``0`` on a tie. A missing save
never wins. Malformed saves raise; callers treat that as corrupt data.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

# Prestige layers, most significant first.
PROGRESS_COUNTERS = ("realities", "eternities", "infinities")


def progress_key(save: Dict[str, Any]) -> Tuple[float, ...]:
    counters = tuple(float(save.get(name, 0)) for name in PROGRESS_COUNTERS)
    records = save["records"]
    return counters + (float(records["totalAntimatter"]), float(save["antimatter"]))


def play_time(save: Dict[str, Any]) -> float:
    return float(save["records"]["realTimePlayed"])


def compare_save_progress(cloud: Optional[Dict[str, Any]], local: Optional[Dict[str, Any]]) -> int:
    """``-1`` if the cloud save is farther ahead, ``1`` if the local one is."""
    if cloud is None or local is None:
        return _missing(cloud, local)
    return _compare(progress_key(cloud), progress_key(local))


def compare_save_times(cloud: Optional[Dict[str, Any]], local: Optional[Dict[str, Any]]) -> int:
    """``-1`` if the cloud save is older (played longer), ``1`` if the local one is."""
    if cloud is None or local is None:
        return _missing(cloud, local)
    return _compare(play_time(cloud), play_time(local))


def _compare(cloud_value: Any, local_value: Any) -> int:
    if cloud_value > local_value:
        return -1
    if local_value > cloud_value:
        return 1
    return 0


def _missing(cloud: Optional[Dict[str, Any]], local: Optional[Dict[str, Any]]) -> int:
    if cloud is None and local is None:
        return 0
    return 1 if cloud is None else -1
