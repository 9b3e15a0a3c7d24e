"""Player save migration registry."""

from __future__ import annotations

import copy
from typing import Any, Callable, Dict, Mapping, Optional

from .errors import SaveError
from .player import CURRENT_SCHEMA_VERSION

# Saves older than this predate the current reality layout and trigger a
# one-off "converted" notification after loading.
CONVERTED_SAVE_VERSION = 3


class SaveMigrationError(SaveError):
    """Raised when a save cannot be migrated to the latest schema."""


Migration = Callable[[Dict], Dict]


def _as_dict(value: Any) -> Dict:
    return dict(value) if isinstance(value, dict) else {}


def _migrate_v0_to_v1(player: Dict) -> Dict:
    upgraded = dict(player)
    if "antimatter" not in upgraded and "money" in upgraded:
        upgraded["antimatter"] = upgraded["money"]
    upgraded.pop("money", None)
    upgraded["options"] = _as_dict(upgraded.get("options"))
    return upgraded


def _migrate_v1_to_v2(player: Dict) -> Dict:
    upgraded = dict(player)
    options = _as_dict(upgraded.get("options"))
    options.setdefault("saveFileName", "")
    news = options.get("news")
    if isinstance(news, bool):
        options["news"] = {"enabled": news}
    elif not isinstance(news, dict):
        options["news"] = {"enabled": True}
    upgraded["options"] = options
    return upgraded


def _migrate_v2_to_v3(player: Dict) -> Dict:
    upgraded = dict(player)
    speedrun = _as_dict(upgraded.get("speedrun"))
    speedrun.setdefault("isActive", False)
    speedrun.setdefault("isSegmented", False)
    speedrun.setdefault("isUnlocked", False)
    speedrun.setdefault("hasStarted", False)
    speedrun.setdefault("offlineTimeUsed", 0)
    upgraded["speedrun"] = speedrun

    records = _as_dict(upgraded.get("records"))
    records.setdefault("gameCreatedTime", upgraded.get("lastUpdate", 0))
    records.setdefault("realTimePlayed", 0)
    upgraded["records"] = records
    return upgraded


def _migrate_v3_to_v4(player: Dict) -> Dict:
    upgraded = dict(player)
    options = _as_dict(upgraded.get("options"))
    options.setdefault("hideGoogleName", False)
    options.setdefault("showCloudModal", True)
    options.setdefault("forceCloudOverwrite", False)
    options.setdefault("syncSaveIntervals", True)
    options.setdefault("cloudEnabled", True)
    upgraded["options"] = options
    return upgraded


def _migrate_v4_to_v5(player: Dict) -> Dict:
    upgraded = dict(player)
    options = _as_dict(upgraded.get("options"))
    options.setdefault("exportedFileCount", 0)
    options.setdefault("offlineProgress", True)
    upgraded["options"] = options

    records = _as_dict(upgraded.get("records"))
    if "totalAntimatter" in upgraded:
        records.setdefault("totalAntimatter", upgraded.pop("totalAntimatter"))
    else:
        records.setdefault("totalAntimatter", upgraded.get("antimatter", 0))
    upgraded["records"] = records
    return upgraded


MIGRATIONS: Dict[int, Migration] = {
    0: _migrate_v0_to_v1,
    1: _migrate_v1_to_v2,
    2: _migrate_v2_to_v3,
    3: _migrate_v3_to_v4,
    4: _migrate_v4_to_v5,
}


def save_version(player: Mapping) -> int:
    version = player.get("version", 0)
    if version is None:
        return 0
    if isinstance(version, bool) or not isinstance(version, int):
        raise SaveMigrationError("Save version missing or invalid.")
    return version


def patch(
    player: Dict,
    *,
    migrations: Optional[Mapping[int, Migration]] = None,
    target_version: int = CURRENT_SCHEMA_VERSION,
) -> Dict:
    """Upgrade ``player`` to ``target_version`` one registered step at a time.

    The input is never modified. Each step is keyed by the version it upgrades
    from and its output is stamped with the next version, so a chain with a
    gap fails instead of skipping a transform.
    """
    if not isinstance(player, dict):
        raise SaveMigrationError("Save payload was not an object.")
    registry = MIGRATIONS if migrations is None else migrations

    version = save_version(player)
    if version > target_version:
        raise SaveMigrationError(
            f"Save schema {version} is newer than supported {target_version}."
        )

    current = copy.deepcopy(player)
    while version < target_version:
        migrator = registry.get(version)
        if migrator is None:
            raise SaveMigrationError(
                f"No migration available for save schema {version}."
            )
        current = migrator(current)
        if not isinstance(current, dict):
            raise SaveMigrationError(
                f"Migration from schema {version} did not return an object."
            )
        version += 1
        current["version"] = version

    return current
