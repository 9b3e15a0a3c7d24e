"""Default player state template."""

from __future__ import annotations

import copy
import time
from typing import Any, Dict, Optional

CURRENT_SCHEMA_VERSION = 5

# Identity-compared by the load gate: passing this exact object means "start a
# new game" rather than "restore this save".
DEFAULT_START: Dict[str, Any] = {
    "version": CURRENT_SCHEMA_VERSION,
    "antimatter": 10,
    "lastUpdate": 0,
    "tutorialState": 0,
    "tutorialActive": True,
    "records": {
        "gameCreatedTime": 0,
        "realTimePlayed": 0,
        "totalTimePlayed": 0,
        "totalAntimatter": 10,
    },
    "speedrun": {
        "isActive": False,
        "isSegmented": False,
        "isUnlocked": False,
        "hasStarted": False,
        "offlineTimeUsed": 0,
    },
    "options": {
        "saveFileName": "",
        "offlineProgress": True,
        "updateRate": 33,
        "exportedFileCount": 0,
        "hideGoogleName": False,
        "showCloudModal": True,
        "forceCloudOverwrite": False,
        "syncSaveIntervals": True,
        "cloudEnabled": True,
        "news": {"enabled": True},
        "lastOpenTab": 0,
    },
    "dimensions": {"antimatter": [], "infinity": [], "time": []},
}


def now_ms() -> int:
    return int(time.time() * 1000)


def new_player(timestamp: Optional[int] = None) -> Dict[str, Any]:
    """Fresh copy of the default start, stamped with creation/update times."""
    stamp = now_ms() if timestamp is None else int(timestamp)
    player = copy.deepcopy(DEFAULT_START)
    player["records"]["gameCreatedTime"] = stamp
    player["lastUpdate"] = stamp
    return player


def save_file_name(player: Optional[Dict[str, Any]]) -> str:
    if not isinstance(player, dict):
        return ""
    options = player.get("options")
    if not isinstance(options, dict):
        return ""
    return str(options.get("saveFileName") or "")
