"""Result types returned by storage and cloud operations.

Callers decide how to surface these (toasts, modals, logs); the core never
talks to the UI directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class GameEvent(str, Enum):
    SAVE_CONVERTED = "save_converted"
    GAME_LOAD = "game_load"
    MANUAL_SAVE_MILESTONE = "manual_save_milestone"


class LoadKind(str, Enum):
    INITIALIZED = "initialized"
    RESET = "reset"
    MIGRATED = "migrated"
    RESTORED = "restored"


@dataclass
class LoadOutcome:
    kind: LoadKind
    slot: int
    reason: str = ""
    from_version: Optional[int] = None
    events: List[GameEvent] = field(default_factory=list)
    catchup_ms: Optional[int] = None

    @property
    def was_reset(self) -> bool:
        return self.kind in (LoadKind.INITIALIZED, LoadKind.RESET)


@dataclass
class ImportOutcome:
    accepted: bool
    reason: str = ""
    load: Optional[LoadOutcome] = None


@dataclass(frozen=True)
class SaveComparison:
    farther_ahead: int
    older: int
    different_name: bool
    hash_mismatch: bool


class CloudAction(str, Enum):
    PUSHED = "pushed"
    PULLED = "pulled"
    NO_CLOUD_SAVE = "no_cloud_save"
    DECLINED = "declined"
    SKIPPED = "skipped"
    NOT_LOGGED_IN = "not_logged_in"
    FAILED = "failed"


@dataclass
class CloudOutcome:
    action: CloudAction
    slot: int
    comparison: Optional[SaveComparison] = None
    prompted: bool = False
    invalid_data: bool = False
