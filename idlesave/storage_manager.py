"""Local save slot management.

``GameStorage`` owns the three save slots, the active-slot pointer and the
session holding the live player object. Every path that puts a player object
into play goes through :meth:`GameStorage.load_player_object`.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, Iterator, Optional

from . import codec
from .errors import DecodeError, SaveError, SlotBusyError, ValidationError
from .intervals import Interval
from .outcomes import GameEvent, ImportOutcome, LoadKind, LoadOutcome
from .player import CURRENT_SCHEMA_VERSION, DEFAULT_START, new_player, now_ms, save_file_name
from .save_migrations import CONVERTED_SAVE_VERSION, SaveMigrationError, patch, save_version
from .settings import StorageSettings
from .validator import check_player_object

logger = logging.getLogger(__name__)

SLOT_IDS = (0, 1, 2)
IMPORT_REJECTED = "Could not load the save (format unrecognized or invalid)."

OFFLINE_TICK_MS = 50
OFFLINE_SIMULATION_MIN_MS = 10 * 1000
OFFLINE_FAST_THRESHOLD_MS = 50 * 1000
CATCHUP_THRESHOLD_MS = 14 * 24 * 60 * 60 * 1000


class EndState:
    """Markers along the end-of-game sequence, compared with ``>=``."""

    GAME_END = 1.0
    SAVE_DISABLED = 4.0
    INTERACTIVITY_DISABLED = 4.5


@dataclass
class GameFlags:
    """Game-side state the save path must respect."""

    end_state: float = 0.0
    remove_additional_end: bool = False
    transient_ui_active: bool = False
    credits_closed: bool = False


def _paused_at_start(player: Dict[str, Any]) -> bool:
    speedrun = player.get("speedrun")
    if not isinstance(speedrun, dict):
        return False
    return bool(speedrun.get("isActive")) and not bool(speedrun.get("hasStarted"))


@dataclass
class GameHooks:
    """Collaborators outside the save core, all optional."""

    dispatch: Optional[Callable[[GameEvent], None]] = None
    simulate_offline: Optional[Callable[[float, bool], None]] = None
    post_load: Optional[Callable[[], None]] = None
    clear_ui: Optional[Callable[[], None]] = None
    copy_to_clipboard: Optional[Callable[[str], None]] = None
    paused_at_start: Callable[[Dict[str, Any]], bool] = _paused_at_start
    clock: Callable[[], int] = now_ms


@dataclass
class GameSession:
    """Holds the live player object handed to the rest of the game."""

    player: Dict[str, Any] = field(default_factory=dict)
    revision: int = 0

    def replace(self, player: Dict[str, Any]) -> None:
        self.player = player
        self.touch()

    def touch(self) -> None:
        self.revision += 1


class GameStorage:
    """Slot-aware load/save orchestration against a ``localStorage`` store."""

    def __init__(
        self,
        local_storage,
        settings: Optional[StorageSettings] = None,
        *,
        flags: Optional[GameFlags] = None,
        hooks: Optional[GameHooks] = None,
        print_func: Callable[[str], None] = print,
    ) -> None:
        if local_storage is None:
            raise SaveError("No local storage available.")
        self.local_storage = local_storage
        self.settings = settings or StorageSettings()
        self.flags = flags or GameFlags()
        self.hooks = hooks or GameHooks()
        self.print = print_func

        self.current_slot = 0
        self.saves: Dict[int, Optional[Dict[str, Any]]] = {slot: None for slot in SLOT_IDS}
        self.session = GameSession()
        self.saved = 0
        self.last_save_time = self.now()
        self.last_cloud_save = self.now()
        self.offline_enabled: Optional[bool] = None
        self.offline_ticks = 500
        self.save_interval = Interval("save", self.settings.save_interval_s, self._autosave)
        self.cloud = None

        self._slot_locks = {slot: asyncio.Lock() for slot in SLOT_IDS}
        self._lock_owners: Dict[int, Any] = {}

    # ---------- Accessors ----------
    @property
    def player(self) -> Dict[str, Any]:
        return self.session.player

    @property
    def revision(self) -> int:
        return self.session.revision

    @property
    def backup_key(self) -> str:
        return f"{self.settings.local_storage_key}.bak"

    def root(self) -> Dict[str, Any]:
        return {"current": self.current_slot, "saves": self.saves}

    @staticmethod
    def check_player_object(save: Any) -> str:
        return check_player_object(save)

    def max_offline_ticks(self, simulated_ms: float, default_ticks: Optional[int] = None) -> int:
        ticks = self.offline_ticks if default_ticks is None else default_ticks
        return min(int(ticks), int(simulated_ms // OFFLINE_TICK_MS))

    # ---------- Slot locking ----------
    def slot_lock(self, slot: int) -> asyncio.Lock:
        return self._slot_locks[self._check_slot(slot)]

    @asynccontextmanager
    async def slot_guard(self, slot: int) -> AsyncIterator[None]:
        """Hold ``slot`` exclusively; slot-changing calls from elsewhere fail fast."""
        lock = self.slot_lock(slot)
        async with lock:
            self._lock_owners[slot] = asyncio.current_task()
            try:
                yield
            finally:
                self._lock_owners.pop(slot, None)

    def _ensure_slot_free(self, slot: int) -> None:
        lock = self._slot_locks.get(slot)
        if lock is None or not lock.locked():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if current is not None and self._lock_owners.get(slot) is current:
            return
        raise SlotBusyError(f"Slot {slot + 1} is busy with a cloud operation.")

    # ---------- Loading ----------
    def load(self) -> LoadOutcome:
        key = self.settings.local_storage_key
        root = self._read_root(key)
        if root is None and self.local_storage.getItem(key) is not None:
            root = self._read_root(self.backup_key)
            if root is not None:
                logger.warning("Main save unreadable; restored from backup.")
        return self.load_root(root)

    def load_root(self, root: Any) -> LoadOutcome:
        with self._restore_on_failure():
            if root is None or not isinstance(root, dict):
                if root is not None:
                    logger.warning("Ignoring save root of type %s.", type(root).__name__)
                self.current_slot = 0
                return self.load_player_object(DEFAULT_START)

            if root.get("saves") is None:
                logger.info("Migrating single-save root into slot 1.")
                self.saves = {0: root, 1: None, 2: None}
                self.current_slot = 0
                outcome = self.load_player_object(root)
                self.save(silent=True)
                return outcome

            saves = root["saves"] if isinstance(root["saves"], dict) else {}
            self.saves = {slot: saves.get(slot) for slot in SLOT_IDS}
            current = root.get("current", 0)
            self.current_slot = current if current in SLOT_IDS else 0
            return self.load_player_object(self._slot_or_default(self.current_slot))

    def load_player_object(self, player_object: Any) -> LoadOutcome:
        """Validate, migrate and activate ``player_object`` in the current slot.

        The default-start sentinel and anything failing validation are replaced
        by a fresh default player. Saves from a newer schema raise
        :class:`SaveMigrationError` and leave the current state untouched.
        """
        now = self.now()
        check = check_player_object(player_object)
        if player_object is DEFAULT_START or check:
            if check and player_object is not DEFAULT_START:
                log = logger.warning if self.settings.dev else logger.debug
                log("Savefile was invalid and has been reset - %s", check)
            player = new_player(now)
            outcome = LoadOutcome(
                kind=LoadKind.RESET if player_object is not DEFAULT_START else LoadKind.INITIALIZED,
                slot=self.current_slot,
                reason=check if player_object is not DEFAULT_START else "",
            )
        else:
            from_version = save_version(player_object)
            player = patch(player_object)
            outcome = LoadOutcome(
                kind=LoadKind.MIGRATED if from_version < CURRENT_SCHEMA_VERSION else LoadKind.RESTORED,
                slot=self.current_slot,
                from_version=from_version,
            )
            if from_version < CONVERTED_SAVE_VERSION:
                self._emit(outcome, GameEvent.SAVE_CONVERTED)

        self.saved = 0
        self.saves[self.current_slot] = player
        self.session.replace(player)
        self._emit(outcome, GameEvent.GAME_LOAD)
        self._handle_offline_progress(player, now, outcome)
        return outcome

    def load_slot(self, slot: int) -> LoadOutcome:
        slot = self._check_slot(slot)
        self._ensure_slot_free(self.current_slot)
        self._ensure_slot_free(slot)
        # Persist the slot being left so nothing since the last autosave is lost.
        self.save(silent=True)
        with self._restore_on_failure():
            self.current_slot = slot
            outcome = self.load_player_object(self._slot_or_default(slot))
        self._reset_cloud_state()
        self.print("Game loaded")
        return outcome

    # ---------- Import / overwrite ----------
    def import_save(self, save_data: str) -> ImportOutcome:
        self._ensure_slot_free(self.current_slot)
        player = codec.try_decode(save_data)
        reason = check_player_object(player)
        if not reason:
            try:
                if save_version(player) > CURRENT_SCHEMA_VERSION:
                    reason = f"Save schema {player['version']} is newer than this game."
            except SaveMigrationError as exc:
                reason = str(exc)
        if reason:
            logger.info("Rejected import: %s", reason)
            self.print(IMPORT_REJECTED)
            return ImportOutcome(accepted=False, reason=reason)

        if self.hooks.clear_ui is not None:
            self.hooks.clear_ui()
        outcome = self.load_player_object(player)
        speedrun = self.player.get("speedrun")
        if isinstance(speedrun, dict) and speedrun.get("isActive"):
            speedrun["isSegmented"] = True
        self.save(silent=True)
        self._reset_cloud_state()
        self.print("Game imported")
        return ImportOutcome(accepted=True, load=outcome)

    def import_file(self, path: Path | str) -> ImportOutcome:
        if self.flags.credits_closed:
            return ImportOutcome(accepted=False, reason="Importing is disabled after the credits.")
        text = Path(path).read_text(encoding="utf-8")
        return self.import_save(text)

    def overwrite_slot(self, slot: int, save_data: Dict[str, Any]) -> Optional[LoadOutcome]:
        slot = self._check_slot(slot)
        reason = check_player_object(save_data)
        if reason:
            raise ValidationError(reason)
        version = save_version(save_data)
        if version > CURRENT_SCHEMA_VERSION:
            raise SaveMigrationError(
                f"Save schema {version} is newer than supported {CURRENT_SCHEMA_VERSION}."
            )
        self._ensure_slot_free(slot)
        outcome = None
        with self._restore_on_failure():
            self.saves[slot] = save_data
            if slot == self.current_slot:
                outcome = self.load_player_object(save_data)
            else:
                self.session.touch()
        self.save(silent=True)
        return outcome

    # ---------- Saving ----------
    def can_save(self) -> bool:
        flags = self.flags
        if flags.end_state >= EndState.SAVE_DISABLED and not flags.remove_additional_end:
            return False
        if flags.end_state >= EndState.INTERACTIVITY_DISABLED:
            return False
        return not flags.transient_ui_active

    def save(self, silent: bool = True, manual: bool = False) -> bool:
        if not self.can_save():
            logger.debug("Save skipped: game state does not allow saving right now.")
            return False
        self.last_save_time = self.now()
        self.save_interval.restart()
        if manual:
            self.saved += 1
            if self.saved > 99:
                self._dispatch(GameEvent.MANUAL_SAVE_MILESTONE)
        text = codec.encode(self.root())
        self._write(text)
        if not silent:
            self.print("Game saved")
        return True

    def export(self) -> str:
        text = codec.encode_for_export(self.player)
        if self.hooks.copy_to_clipboard is not None:
            self.hooks.copy_to_clipboard(text)
            self.print("Exported current savefile to your clipboard")
        return text

    def export_as_file(self, directory: Path | str = ".") -> Path:
        options = self.player.setdefault("options", {})
        options["exportedFileCount"] = int(options.get("exportedFileCount", 0)) + 1
        self.save(silent=True)
        path = Path(directory) / self.export_file_name()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(codec.encode_for_export(self.player), encoding="utf-8")
        self.print("Successfully downloaded current save file to your computer")
        return path

    def export_file_name(self, today: Optional[datetime] = None) -> str:
        options = self.player.get("options", {})
        name = save_file_name(self.player)
        label = f" - {name}," if name else ""
        day = today or datetime.now()
        count = options.get("exportedFileCount", 0)
        return (
            f"Save, Slot {self.current_slot + 1}{label} #{count} "
            f"({day.year}-{day.month}-{day.day}).txt"
        )

    def hard_reset(self) -> LoadOutcome:
        self._ensure_slot_free(self.current_slot)
        outcome = self.load_player_object(DEFAULT_START)
        self.save(silent=True)
        self._reset_cloud_state()
        return outcome

    # ---------- Internal helpers ----------
    @contextmanager
    def _restore_on_failure(self) -> Iterator[None]:
        """Put the slots and the active-slot pointer back if a load fails."""
        saves = dict(self.saves)
        current = self.current_slot
        try:
            yield
        except SaveError:
            self.saves = saves
            self.current_slot = current
            raise

    def _check_slot(self, slot: int) -> int:
        if isinstance(slot, bool) or slot not in SLOT_IDS:
            raise SaveError(f"Unknown save slot {slot!r}.")
        return slot

    def _slot_or_default(self, slot: int) -> Any:
        save = self.saves.get(slot)
        return DEFAULT_START if save is None else save

    def _read_root(self, key: str) -> Any:
        raw = self.local_storage.getItem(key)
        if raw is None:
            return None
        try:
            return codec.decode(raw)
        except DecodeError as exc:
            logger.warning("Stored save under %r could not be decoded: %s", key, exc)
            return None

    def _write(self, text: str) -> None:
        key = self.settings.local_storage_key
        existing = self.local_storage.getItem(key)
        # Only rotate a readable save into the backup; a corrupt one would
        # otherwise replace the last good copy.
        if existing is not None and existing != text and codec.try_decode(existing) is not None:
            self.local_storage.setItem(self.backup_key, existing)
        self.local_storage.setItem(key, text)

    def _handle_offline_progress(self, player: Dict[str, Any], now: int, outcome: LoadOutcome) -> None:
        try:
            raw_diff = now - int(player.get("lastUpdate", now))
        except (TypeError, ValueError):
            raw_diff = 0
        options = player.get("options") if isinstance(player.get("options"), dict) else {}
        simulate = self.offline_enabled
        if simulate is None:
            simulate = bool(options.get("offlineProgress", True))

        if simulate and not self.hooks.paused_at_start(player):
            diff = raw_diff
            speedrun = player.get("speedrun")
            if isinstance(speedrun, dict):
                speedrun["offlineTimeUsed"] = speedrun.get("offlineTimeUsed", 0) + diff
            if diff > OFFLINE_SIMULATION_MIN_MS and self.hooks.simulate_offline is not None:
                self.hooks.simulate_offline(diff / 1000, diff < OFFLINE_FAST_THRESHOLD_MS)
            elif self.hooks.post_load is not None:
                self.hooks.post_load()
        else:
            player["lastUpdate"] = now
            if self.hooks.post_load is not None:
                self.hooks.post_load()

        if raw_diff > CATCHUP_THRESHOLD_MS:
            outcome.catchup_ms = raw_diff

    def _reset_cloud_state(self) -> None:
        if self.cloud is not None:
            self.cloud.reset_temp_state()
        else:
            self.last_cloud_save = self.now()

    def _autosave(self) -> None:
        self.save(silent=True)

    def _emit(self, outcome: LoadOutcome, event: GameEvent) -> None:
        outcome.events.append(event)
        self._dispatch(event)

    def _dispatch(self, event: GameEvent) -> None:
        if self.hooks.dispatch is not None:
            self.hooks.dispatch(event)

    def now(self) -> int:
        return int(self.hooks.clock())
