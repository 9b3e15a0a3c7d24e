"""Cloud save reconciliation.

One remote copy of the whole save root is kept per user. Before pushing or
pulling, the cloud and local copies of the active slot are compared by
progress, recency, save name and (for pushes) a fingerprint of the last cloud
copy seen this session. Risky directions ask the player first; resolution is
always a whole-save overwrite one way or the other.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from . import codec
from .errors import CloudError, ComparisonError, DecodeError, ValidationError
from .intervals import Interval
from .outcomes import CloudAction, CloudOutcome, SaveComparison
from .progress import compare_save_progress, compare_save_times
from .save_migrations import SaveMigrationError

logger = logging.getLogger(__name__)

InputFunc = Callable[[str], str | Awaitable[str]]

WEB_PATH = "web"
LEGACY_PATH = "player"


@dataclass(frozen=True)
class CloudUser:
    id: str
    display_name: str = ""
    email: str = ""


class MemoryRemoteStore:
    """Remote store kept in memory; handy offline and in tests."""

    def __init__(self) -> None:
        self.data: Dict[Tuple[str, str], str] = {}
        self.writes: List[Tuple[str, str]] = []

    def fetch(self, user_id: str, path: str) -> Optional[str]:
        return self.data.get((user_id, path))

    def store(self, user_id: str, path: str, text: str) -> None:
        self.data[(user_id, path)] = text
        self.writes.append((user_id, path))


class HttpRemoteStore:
    """REST realtime-database client: ``{base}/users/{id}/{path}.json``.

    Values are stored as JSON strings; a missing value reads back as ``null``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        auth_token: Optional[str] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not base_url:
            raise CloudError("A cloud database URL is required.")
        self.base_url = base_url.rstrip("/")
        self.auth_token = auth_token or None
        self.timeout = timeout
        self.session = session or requests.Session()
        retry = Retry(
            total=3,
            backoff_factor=0.5,
            status_forcelist=[502, 503, 504],
            allowed_methods=["GET", "PUT"],
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

    def _url(self, user_id: str, path: str) -> str:
        return f"{self.base_url}/users/{user_id}/{path}.json"

    def _params(self) -> Dict[str, str]:
        return {"auth": self.auth_token} if self.auth_token else {}

    def fetch(self, user_id: str, path: str) -> Optional[str]:
        url = self._url(user_id, path)
        try:
            resp = self.session.get(url, params=self._params(), timeout=self.timeout)
        except requests.RequestException as exc:
            raise CloudError(f"Cloud fetch failed: {exc}") from exc
        if resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            logger.error("Cloud GET %s -> %s: %s", url, resp.status_code, resp.text[:200])
            raise CloudError(f"Cloud fetch failed with HTTP {resp.status_code}.")
        try:
            value = resp.json()
        except json.JSONDecodeError as exc:
            raise CloudError("Cloud answered with malformed JSON.") from exc
        logger.debug("Cloud GET %s -> %s", url, resp.status_code)
        if value is None:
            return None
        if not isinstance(value, str):
            raise CloudError("Cloud value was not an encoded save.")
        return value

    def store(self, user_id: str, path: str, text: str) -> None:
        url = self._url(user_id, path)
        try:
            resp = self.session.put(url, params=self._params(), json=text, timeout=self.timeout)
        except requests.RequestException as exc:
            raise CloudError(f"Cloud write failed: {exc}") from exc
        if resp.status_code >= 400:
            logger.error("Cloud PUT %s -> %s: %s", url, resp.status_code, resp.text[:200])
            raise CloudError(f"Cloud write failed with HTTP {resp.status_code}.")
        logger.debug("Cloud PUT %s -> %s", url, resp.status_code)


def _save_name(save: Optional[Dict[str, Any]]) -> Optional[str]:
    if save is None:
        return None
    return save["options"]["saveFileName"]


def save_conflict(comparison: SaveComparison, has_both: bool) -> bool:
    """Would pushing local over the cloud risk losing something?"""
    return has_both and (
        comparison.older == -1
        or comparison.farther_ahead == -1
        or comparison.different_name
        or comparison.hash_mismatch
    )


def load_conflict(comparison: SaveComparison, has_both: bool) -> bool:
    """Would pulling the cloud over local risk losing something?

    Not the mirror of :func:`save_conflict`: pulling is only safe when the
    cloud copy is strictly farther ahead.
    """
    return has_both and (
        comparison.older == 1
        or comparison.farther_ahead != -1
        or comparison.different_name
    )


def describe_comparison(comparison: SaveComparison) -> str:
    parts = []
    if comparison.farther_ahead == -1:
        parts.append("the cloud save is farther ahead")
    elif comparison.farther_ahead == 1:
        parts.append("the local save is farther ahead")
    if comparison.older == -1:
        parts.append("the cloud save has more play time")
    elif comparison.older == 1:
        parts.append("the local save has more play time")
    if comparison.different_name:
        parts.append("the save names differ")
    if comparison.hash_mismatch:
        parts.append("the cloud save changed since it was last synced")
    return "; ".join(parts) or "the saves look identical"


class CloudReconciler:
    """Push/pull the save root to a remote store with conflict checks."""

    def __init__(
        self,
        storage,
        remote,
        *,
        user: Optional[CloudUser] = None,
        input_func: InputFunc = input,
        print_func: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.storage = storage
        self.remote = remote
        self.user = user
        self.input_func = input_func
        self.print = print_func or storage.print
        self.last_cloud_hash: Optional[str] = None
        self.interval = Interval("cloud-save", storage.settings.cloud_interval_s, self._interval_check)
        storage.cloud = self

    # ---------- Identity ----------
    @property
    def logged_in(self) -> bool:
        return self.user is not None

    def set_user(self, user: Optional[CloudUser]) -> None:
        self.user = user
        if user is not None:
            logger.info("Cloud identity set for user %s", user.id)

    def logout(self) -> None:
        self.user = None
        self.last_cloud_hash = None

    # ---------- Session state ----------
    def reset_temp_state(self) -> None:
        self.last_cloud_hash = None
        self.storage.last_cloud_save = self.storage.now()
        self.interval.restart()

    # ---------- Comparison ----------
    def compare_saves(
        self,
        cloud: Optional[Dict[str, Any]],
        local: Optional[Dict[str, Any]],
        cloud_hash: Optional[str] = None,
    ) -> Optional[SaveComparison]:
        """Compare two saves; ``None`` means the data could not be compared."""
        try:
            return self._compare(cloud, local, cloud_hash)
        except ComparisonError as exc:
            logger.warning("Cloud save comparison failed: %s", exc)
            return None

    def _compare(self, cloud, local, cloud_hash: Optional[str]) -> SaveComparison:
        try:
            return SaveComparison(
                farther_ahead=compare_save_progress(cloud, local),
                older=compare_save_times(cloud, local),
                different_name=_save_name(cloud) != _save_name(local),
                hash_mismatch=(
                    cloud_hash is not None
                    and bool(self.last_cloud_hash)
                    and self.last_cloud_hash != cloud_hash
                ),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise ComparisonError(f"{type(exc).__name__}: {exc}") from exc

    # ---------- Push ----------
    async def save_check(self, force_modal: bool = False) -> CloudOutcome:
        slot = self.storage.current_slot
        if not self.logged_in:
            return CloudOutcome(CloudAction.NOT_LOGGED_IN, slot)
        async with self.storage.slot_guard(slot):
            try:
                return await self._save_check(slot, force_modal)
            except CloudError as exc:
                logger.error("Cloud save failed: %s", exc)
                self.print("Cloud save failed")
                return CloudOutcome(CloudAction.FAILED, slot)

    async def _save_check(self, slot: int, force_modal: bool) -> CloudOutcome:
        text = await self._fetch(WEB_PATH)
        if text is None:
            return await self._push_outcome(slot)

        valid, cloud_save = self._cloud_slot(text, slot)
        local_save = self.storage.saves.get(slot)
        comparison = None
        if valid:
            this_hash = codec.fingerprint(cloud_save)
            if not self.last_cloud_hash:
                self.last_cloud_hash = this_hash
            comparison = self.compare_saves(cloud_save, local_save, this_hash)

        if comparison is None:
            prompt = (
                f"Cloud data for slot {slot + 1} is invalid. "
                "Overwrite the cloud save with your local save? [y/N]: "
            )
            if await self._confirm(prompt):
                return await self._push_outcome(slot, prompted=True, invalid_data=True)
            return CloudOutcome(CloudAction.DECLINED, slot, prompted=True, invalid_data=True)

        has_conflict = save_conflict(comparison, cloud_save is not None and local_save is not None)
        options = self._options()
        if force_modal or (has_conflict and options.get("showCloudModal", True)):
            prompt = (
                f"Cloud save conflict for slot {slot + 1}: {describe_comparison(comparison)}. "
                "Overwrite the cloud save? [y/N]: "
            )
            if await self._confirm(prompt):
                return await self._push_outcome(slot, comparison, prompted=True)
            return CloudOutcome(CloudAction.DECLINED, slot, comparison, prompted=True)
        if not has_conflict or options.get("forceCloudOverwrite", False):
            return await self._push_outcome(slot, comparison)
        logger.info("Cloud save for slot %s skipped: unresolved conflict.", slot + 1)
        return CloudOutcome(CloudAction.SKIPPED, slot, comparison)

    async def _push_outcome(
        self, slot: int, comparison: Optional[SaveComparison] = None, **flags: bool
    ) -> CloudOutcome:
        if await self.push(slot):
            return CloudOutcome(CloudAction.PUSHED, slot, comparison, **flags)
        logger.info("Cloud save for slot %s skipped: pushing is not possible right now.", slot + 1)
        return CloudOutcome(CloudAction.SKIPPED, slot, comparison, **flags)

    async def push(self, slot: Optional[int] = None) -> bool:
        """Write the whole local save root to the cloud.

        The root is encoded before the network write starts, so the push
        reflects local state as of the call.
        """
        if not self.logged_in:
            return False
        if self.storage.flags.transient_ui_active:
            return False
        slot = self.storage.current_slot if slot is None else slot
        if self._options().get("syncSaveIntervals", False):
            self.storage.save(silent=True)
        root = self.storage.root()
        text = codec.encode(root)
        pushed_hash = codec.fingerprint(root["saves"].get(slot))
        user = self.user

        await asyncio.to_thread(self.remote.store, user.id, WEB_PATH, text)

        self.last_cloud_hash = pushed_hash
        self.storage.last_cloud_save = self.storage.now()
        self.interval.restart()
        self.print(f"Game saved (slot {slot + 1}) to cloud{self._user_suffix(user)}")
        return True

    # ---------- Pull ----------
    async def load_check(self) -> CloudOutcome:
        slot = self.storage.current_slot
        if not self.logged_in:
            return CloudOutcome(CloudAction.NOT_LOGGED_IN, slot)
        async with self.storage.slot_guard(slot):
            try:
                return await self._load_check(slot)
            except CloudError as exc:
                logger.error("Cloud load failed: %s", exc)
                self.print("Cloud load failed")
                return CloudOutcome(CloudAction.FAILED, slot)

    async def _load_check(self, slot: int) -> CloudOutcome:
        user = self.user
        revision = self.storage.revision
        text = await self._fetch(WEB_PATH)
        if text is None:
            self.print(f"No cloud save{self._user_suffix(user, 'for user')}")
            return CloudOutcome(CloudAction.NO_CLOUD_SAVE, slot)
        valid, cloud_save = self._cloud_slot(text, slot)
        if valid and cloud_save is None:
            self.print(f"No cloud save in slot {slot + 1}")
            return CloudOutcome(CloudAction.NO_CLOUD_SAVE, slot)
        if self.storage.revision != revision:
            logger.info("Local save changed while fetching; comparing against the newer copy.")

        while True:
            # Local state is read after every suspension so a stale fetch is
            # always compared against the newest local save.
            local_save = self.storage.saves.get(slot)
            comparison = self.compare_saves(cloud_save, local_save) if valid else None
            if comparison is None:
                prompt = (
                    f"Cloud data for slot {slot + 1} is invalid. "
                    "Overwrite your local save with it anyway? [y/N]: "
                )
            elif load_conflict(comparison, cloud_save is not None and local_save is not None):
                prompt = (
                    f"Cloud load conflict for slot {slot + 1}: {describe_comparison(comparison)}. "
                    "Overwrite your local save? [y/N]: "
                )
            else:
                return self._apply_cloud_save(slot, cloud_save, comparison, prompted=False)

            revision = self.storage.revision
            accepted = await self._confirm(prompt)
            if self.storage.revision != revision:
                logger.info("Local save changed during the prompt; comparing again.")
                continue
            if not accepted:
                return CloudOutcome(
                    CloudAction.DECLINED, slot, comparison, prompted=True, invalid_data=comparison is None
                )
            return self._apply_cloud_save(slot, cloud_save, comparison, prompted=True)

    def _apply_cloud_save(
        self,
        slot: int,
        cloud_save: Optional[Dict[str, Any]],
        comparison: Optional[SaveComparison],
        *,
        prompted: bool,
    ) -> CloudOutcome:
        invalid = comparison is None
        try:
            self.storage.overwrite_slot(slot, cloud_save)
        except ValidationError as exc:
            logger.warning("Cloud save for slot %s rejected: %s", slot + 1, exc.reason)
            self.print("The cloud save is invalid and could not be loaded.")
            return CloudOutcome(CloudAction.DECLINED, slot, comparison, prompted=prompted, invalid_data=True)
        except SaveMigrationError as exc:
            logger.warning("Cloud save for slot %s rejected: %s", slot + 1, exc)
            self.print("The cloud save comes from a newer version of the game and could not be loaded.")
            return CloudOutcome(CloudAction.DECLINED, slot, comparison, prompted=prompted, invalid_data=True)
        self.print(f"Cloud save (slot {slot + 1}) loaded{self._user_suffix(self.user, 'for user')}")
        return CloudOutcome(CloudAction.PULLED, slot, comparison, prompted=prompted, invalid_data=invalid)

    async def load_legacy(self) -> Optional[Dict[str, Any]]:
        """Read the single-save blob older clients wrote to the legacy path."""
        if not self.logged_in:
            return None
        text = await self._fetch(LEGACY_PATH)
        if text is None:
            return None
        try:
            return codec.decode_bundled(text)
        except DecodeError as exc:
            logger.warning("Legacy cloud save could not be decoded: %s", exc)
            return None

    # ---------- Internal helpers ----------
    async def _fetch(self, path: str) -> Optional[str]:
        return await asyncio.to_thread(self.remote.fetch, self.user.id, path)

    def _cloud_slot(self, text: str, slot: int) -> Tuple[bool, Optional[Dict[str, Any]]]:
        root = codec.try_decode(text)
        if not isinstance(root, dict) or not isinstance(root.get("saves"), dict):
            logger.warning("Cloud save root could not be decoded.")
            return False, None
        return True, root["saves"].get(slot)

    def _options(self) -> Dict[str, Any]:
        options = self.storage.player.get("options") if isinstance(self.storage.player, dict) else None
        return options if isinstance(options, dict) else {}

    def _user_suffix(self, user: Optional[CloudUser], prefix: str = "as user") -> str:
        if user is None or self._options().get("hideGoogleName", False):
            return ""
        return f" {prefix} {user.display_name or user.id}"

    async def _confirm(self, prompt: str) -> bool:
        result = self.input_func(prompt)
        if inspect.isawaitable(result):
            result = await result
        return (result or "").strip().lower() in {"y", "yes"}

    async def _interval_check(self) -> None:
        if self.logged_in and self._options().get("cloudEnabled", False):
            await self.save_check()
