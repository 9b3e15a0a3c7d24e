import json
from pathlib import Path

from idlesave.platform import FileLocalStorage, MemoryLocalStorage, get_local_storage


def test_memory_storage_behaves_like_local_storage() -> None:
    store = MemoryLocalStorage({"a": "1"})

    store.setItem("b", 2)
    store.removeItem("a")
    store.removeItem("missing")

    assert store.getItem("a") is None
    assert store.getItem("b") == "2"
    assert store.length == 1


def test_file_storage_persists_between_instances(tmp_path: Path) -> None:
    path = tmp_path / "saves" / "local_storage.json"
    store = FileLocalStorage(path)
    store.setItem("dimensionSave", "first")
    store.setItem("dimensionSave", "second")

    reopened = FileLocalStorage(path)

    assert reopened.getItem("dimensionSave") == "second"
    backup = json.loads(path.with_suffix(".json.bak").read_text(encoding="utf-8"))
    assert backup == {"dimensionSave": "first"}
    assert not list(path.parent.glob("*.tmp"))


def test_file_storage_survives_corrupt_file(tmp_path: Path) -> None:
    path = tmp_path / "local_storage.json"
    path.write_text("{not json", encoding="utf-8")

    store = FileLocalStorage(path)

    assert store.length == 0
    store.setItem("k", "v")
    assert FileLocalStorage(path).getItem("k") == "v"


def test_get_local_storage_uses_file_fallback_on_desktop(tmp_path: Path) -> None:
    assert get_local_storage() is None
    assert isinstance(get_local_storage(tmp_path / "ls.json"), FileLocalStorage)
