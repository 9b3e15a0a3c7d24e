#!/usr/bin/env python3
"""
Console front end for the save core.
- Loads the configured local store and keeps an autosave running.
- Slot switching, import/export, hard reset.
- Cloud sign-in, push and pull with conflict prompts.
Usage: python3 -m idlesave.console [--settings idlesave.json] [--user ID]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional, Sequence

from .cloud import CloudReconciler, CloudUser, HttpRemoteStore, MemoryRemoteStore
from .errors import SaveError
from .logging_config import configure_logging
from .platform import get_local_storage
from .player import save_file_name
from .settings import SETTINGS_PATH, StorageSettings, load_settings, save_settings
from .storage_manager import GameStorage

logger = logging.getLogger(__name__)

HELP = """Commands:
  status                 show the active slot and cloud identity
  save                   save now
  slot N                 switch to save slot N (1-3)
  import PATH            import a save file into the active slot
  export [DIR]           write the active save to a file
  reset                  hard reset the active slot
  login ID [NAME]        sign in to the cloud and check for a newer save
  logout                 sign out of the cloud
  cloud save|load        push to or pull from the cloud
  config [KEY VALUE]     show settings, or change and save one
  quit"""


def emit_print(*args, **kwargs) -> None:
    print(*args, **kwargs)


async def read_input(prompt: str = "") -> str:
    return await asyncio.to_thread(input, prompt)


def build_storage(settings: StorageSettings, *, print_func: Callable[[str], None] = emit_print) -> GameStorage:
    local_storage = get_local_storage(settings.storage_path)
    if local_storage is None:
        raise SaveError("No local storage available.")
    return GameStorage(local_storage, settings, print_func=print_func)


def build_remote(settings: StorageSettings):
    if not settings.cloud_url:
        logger.info("No cloud URL configured; cloud saves are kept in memory for this session.")
        return MemoryRemoteStore()
    return HttpRemoteStore(
        settings.cloud_url,
        auth_token=settings.cloud_auth_token,
        timeout=settings.request_timeout_s,
    )


def describe_status(storage: GameStorage, cloud: CloudReconciler) -> str:
    player = storage.player
    name = save_file_name(player) or "unnamed"
    user = cloud.user.display_name or cloud.user.id if cloud.user else "not signed in"
    return (
        f"Slot {storage.current_slot + 1} ({name}): "
        f"{player.get('antimatter', 0)} antimatter, schema v{player.get('version')} | cloud: {user}"
    )


def describe_settings(settings: StorageSettings) -> str:
    lines = []
    for key, value in settings.to_dict().items():
        if key == "cloud_auth_token" and value:
            value = "***"
        lines.append(f"  {key} = {value}")
    return "\n".join(lines)


def update_setting(
    storage: GameStorage,
    cloud: CloudReconciler,
    key: str,
    value: str,
    settings_path: Path | str = SETTINGS_PATH,
) -> StorageSettings:
    data = storage.settings.to_dict()
    if key not in data:
        raise ValueError(f"Unknown setting '{key}'.")
    data[key] = value
    saved = save_settings(StorageSettings.from_dict(data), settings_path)
    # Interval lengths apply now; storage and cloud endpoints on the next start.
    storage.settings.save_interval_s = saved.save_interval_s
    storage.settings.cloud_interval_s = saved.cloud_interval_s
    storage.save_interval.period_s = saved.save_interval_s
    cloud.interval.period_s = saved.cloud_interval_s
    return saved


async def run_command(
    line: str,
    storage: GameStorage,
    cloud: CloudReconciler,
    input_func: Callable[[str], Awaitable[str]] = read_input,
    settings_path: Path | str = SETTINGS_PATH,
) -> bool:
    """Run one console command. Returns ``False`` when the session should end."""
    parts = line.split()
    if not parts:
        return True
    command, args = parts[0].lower(), parts[1:]

    try:
        if command in {"quit", "exit", "q"}:
            storage.save(silent=True)
            return False
        if command == "help":
            emit_print(HELP)
        elif command == "status":
            emit_print(describe_status(storage, cloud))
        elif command == "save":
            storage.save(silent=False, manual=True)
        elif command == "slot" and len(args) == 1:
            storage.load_slot(int(args[0]) - 1)
        elif command == "import" and args:
            outcome = storage.import_file(" ".join(args))
            if not outcome.accepted:
                emit_print(f"[!] {outcome.reason}")
        elif command == "export":
            path = storage.export_as_file(args[0] if args else ".")
            emit_print(f"[Export] {path}")
        elif command == "reset":
            answer = await input_func("Hard reset this slot? Type RESET to confirm: ")
            if answer.strip() == "RESET":
                storage.hard_reset()
                emit_print("Slot reset.")
        elif command == "login" and args:
            cloud.set_user(CloudUser(id=args[0], display_name=" ".join(args[1:])))
            await cloud.load_check()
        elif command == "logout":
            cloud.logout()
            emit_print("Signed out of the cloud.")
        elif command == "cloud" and args and args[0] in {"save", "load"}:
            outcome = await (cloud.save_check() if args[0] == "save" else cloud.load_check())
            logger.debug("Cloud %s finished: %s", args[0], outcome.action.value)
        elif command == "config" and not args:
            emit_print(describe_settings(storage.settings))
        elif command == "config" and len(args) >= 2:
            saved = update_setting(storage, cloud, args[0], " ".join(args[1:]), settings_path)
            emit_print(f"Settings saved: {args[0]} = {getattr(saved, args[0])}")
        else:
            emit_print("Unknown command. Type 'help' for a list.")
    except (SaveError, ValueError, OSError) as exc:
        emit_print(f"[!] {exc}")
    return True


async def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Manage incremental game saves from the console.")
    parser.add_argument("--settings", default=str(SETTINGS_PATH), help="Settings JSON file.")
    parser.add_argument("--user", help="Cloud user id to sign in as on start.")
    parser.add_argument("--debug", action="store_true", help="Verbose logging.")
    args = parser.parse_args(argv)

    configure_logging(logging.DEBUG if args.debug else logging.WARNING)
    settings = load_settings(args.settings)
    storage = build_storage(settings)
    cloud = CloudReconciler(storage, build_remote(settings), input_func=read_input)

    try:
        outcome = storage.load()
    except SaveError as exc:
        emit_print(f"[!] Could not load saves: {exc}")
        return
    if outcome.reason:
        emit_print(f"[!] Save was reset: {outcome.reason}")
    if outcome.catchup_ms:
        emit_print(f"Welcome back! You were away for {outcome.catchup_ms // 86_400_000} days.")

    if args.user:
        cloud.set_user(CloudUser(id=args.user))
        await cloud.load_check()

    storage.save_interval.restart()
    cloud.interval.restart()
    emit_print(HELP)
    try:
        while await run_command(await read_input("> "), storage, cloud, settings_path=args.settings):
            pass
    finally:
        storage.save_interval.stop()
        cloud.interval.stop()


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        emit_print("\n[Interrupted] Bye.")


if __name__ == "__main__":
    run()
