import json
import subprocess
import sys
from pathlib import Path

from idlesave import codec
from tools import inspect_save


REPO_ROOT = Path(__file__).resolve().parents[1]


def run_tool(path: Path, *extra: str) -> subprocess.CompletedProcess:
    return subprocess.run(
        [sys.executable, str(REPO_ROOT / "tools" / "inspect_save.py"), str(path), *extra],
        capture_output=True,
        text=True,
        check=False,
    )


def test_inspect_text_reports_every_slot() -> None:
    root = {
        "current": 1,
        "saves": {0: None, 1: {"version": 3, "antimatter": 9, "lastUpdate": 0}, 2: {"version": 5}},
    }

    reports = inspect_save.inspect_text(codec.encode(root))

    assert [report["status"] for report in reports] == ["empty", "ok", "invalid"]
    assert reports[1]["current"] is True
    assert reports[1]["version"] == 3
    assert reports[1]["migrated_version"] == 5


def test_inspect_text_accepts_single_export(make_player) -> None:
    reports = inspect_save.inspect_text(codec.encode_for_export(make_player(options={"saveFileName": "Main"})), dump=True)

    assert reports[0]["slot"] == "export"
    assert reports[0]["save_name"] == "Main"
    assert reports[0]["player"]["speedrun"]["isSegmented"] is True


def test_tool_exits_cleanly_for_valid_export(tmp_path: Path, make_player) -> None:
    path = tmp_path / "save.txt"
    path.write_text(codec.encode(make_player()), encoding="utf-8")

    result = run_tool(path)

    assert result.returncode == 0
    assert json.loads(result.stdout)[0]["status"] == "ok"


def test_tool_flags_nan_save(tmp_path: Path, make_player) -> None:
    path = tmp_path / "save.txt"
    path.write_text(codec.encode(make_player(antimatter=float("nan"))), encoding="utf-8")

    result = run_tool(path)

    assert result.returncode == 1
    assert "NaN player property" in result.stdout


def test_tool_rejects_foreign_text(tmp_path: Path) -> None:
    path = tmp_path / "save.txt"
    path.write_text("hello", encoding="utf-8")

    result = run_tool(path)

    assert result.returncode == 1
    assert "Failed to decode" in result.stdout
