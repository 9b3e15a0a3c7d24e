#!/usr/bin/env python3
"""Decode, migrate and validate an exported save or a stored save root."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Sequence

REPO_ROOT = Path(__file__).resolve().parents[1]

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from idlesave import codec
from idlesave.errors import DecodeError
from idlesave.save_migrations import SaveMigrationError, patch, save_version
from idlesave.validator import check_player_object


def inspect_player(label: str, player: Any, *, dump: bool) -> Dict[str, Any]:
    report: Dict[str, Any] = {"slot": label}
    if player is None:
        report["status"] = "empty"
        return report
    reason = check_player_object(player)
    if reason:
        report.update(status="invalid", reason=reason)
        return report
    try:
        version = save_version(player)
        migrated = patch(player)
    except SaveMigrationError as exc:
        report.update(status="invalid", reason=str(exc))
        return report
    options = migrated.get("options", {})
    report.update(
        status="ok",
        version=version,
        migrated_version=migrated["version"],
        save_name=options.get("saveFileName", ""),
        antimatter=migrated.get("antimatter"),
    )
    if dump:
        report["player"] = migrated
    return report


def inspect_text(text: str, *, dump: bool = False) -> List[Dict[str, Any]]:
    data = codec.decode(text)
    if isinstance(data, dict) and isinstance(data.get("saves"), dict):
        current = data.get("current")
        reports = []
        for slot in sorted(key for key in data["saves"] if isinstance(key, int)):
            report = inspect_player(str(slot + 1), data["saves"][slot], dump=dump)
            report["current"] = slot == current
            reports.append(report)
        return reports
    return [inspect_player("export", data, dump=dump)]


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Inspect an encoded save file.")
    parser.add_argument("save_path", help="File holding the encoded save text.")
    parser.add_argument(
        "--dump",
        action="store_true",
        help="Include the migrated player objects in the output.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str]) -> None:
    args = parse_args(argv[1:])
    save_path = Path(args.save_path).resolve()
    try:
        text = save_path.read_text(encoding="utf-8")
    except OSError as exc:
        print(f"Failed to read {save_path}: {exc}")
        sys.exit(1)
    try:
        reports = inspect_text(text, dump=args.dump)
    except DecodeError as exc:
        print(f"Failed to decode {save_path}: {exc}")
        sys.exit(1)

    print(json.dumps(reports, indent=2, sort_keys=True))
    if any(report["status"] == "invalid" for report in reports):
        sys.exit(1)


if __name__ == "__main__":
    main(sys.argv)
