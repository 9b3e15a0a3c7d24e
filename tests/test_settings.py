import json
from pathlib import Path

from idlesave.settings import DEV_ENV_VAR, StorageSettings, load_settings, save_settings


def test_missing_file_gives_defaults(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv(DEV_ENV_VAR, raising=False)

    settings = load_settings(tmp_path / "missing.json")

    assert settings == StorageSettings()
    assert settings.local_storage_key == "dimensionSave"


def test_values_are_clamped(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv(DEV_ENV_VAR, raising=False)
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"save_interval_s": 1, "cloud_interval_s": 99999, "request_timeout_s": "oops"}))

    settings = load_settings(path)

    assert settings.save_interval_s == 5.0
    assert settings.cloud_interval_s == 3600.0
    assert settings.request_timeout_s == 10.0


def test_unreadable_file_falls_back_to_defaults(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv(DEV_ENV_VAR, raising=False)
    path = tmp_path / "settings.json"
    path.write_text("{broken")

    assert load_settings(path) == StorageSettings()


def test_dev_environment_switches_storage_key(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv(DEV_ENV_VAR, "1")

    settings = load_settings(tmp_path / "missing.json")

    assert settings.dev is True
    assert settings.local_storage_key == "dimensionTestSave"


def test_save_round_trips_and_strips_url(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv(DEV_ENV_VAR, raising=False)
    path = tmp_path / "nested" / "settings.json"
    settings = StorageSettings(cloud_url="https://saves.example.test/", dev="yes")

    saved = save_settings(settings, path)

    assert saved.cloud_url == "https://saves.example.test"
    assert load_settings(path) == saved
    assert not list(path.parent.glob("*.tmp"))


def test_from_dict_parses_string_booleans() -> None:
    assert StorageSettings.from_dict({"dev": "on"}).dev is True
    assert StorageSettings.from_dict({"dev": "off"}).dev is False
    assert StorageSettings.from_dict(None) == StorageSettings()
