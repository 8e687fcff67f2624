from __future__ import annotations

import logging
import threading
import time
from pathlib import Path

import pytest

from verconf.errors import ConfigParseError, ConfigValidationError, LockContentionError
from verconf.lock import LockFile
from verconf.schema import (
    CURRENT_VERSION,
    PreferencesConfig,
    ProfileConfig,
    create_default,
)
from verconf.store import ConfigStore


@pytest.fixture
def store(tmp_path: Path) -> ConfigStore:
    return ConfigStore(tmp_path / "base")


def _leftovers(directory: Path) -> list[str]:
    return sorted(p.name for p in directory.iterdir() if p.name != "config.yaml")


def test_base_dir_from_environment(tmp_path: Path) -> None:
    store = ConfigStore()
    assert store.base_dir == (tmp_path / "verconf-home").resolve()
    assert store.path.name == "config.yaml"
    assert store.lock_path.name == "config.yaml.lock"


def test_absent_file(store: ConfigStore) -> None:
    assert store.load() is None
    result = store.load_with_diagnostics()
    assert result.document is None
    assert result.error is None
    assert store.load_or_create() == create_default()
    assert not store.path.exists()


def test_save_then_load(store: ConfigStore) -> None:
    doc = create_default()
    doc.default = "work"
    doc.profiles["work"] = ProfileConfig(settings="~/creds/work.json")
    doc.preferences.theme = "dark"
    saved = store.save(doc)
    assert saved == doc
    assert store.load() == doc
    assert store.path.read_text(encoding="utf-8").startswith(f"version: {CURRENT_VERSION}\n")


def test_save_does_not_mutate_argument(store: ConfigStore) -> None:
    doc = create_default()
    doc.version = 3
    saved = store.save(doc)
    assert doc.version == 3
    assert saved.version == CURRENT_VERSION
    assert store.load().version == CURRENT_VERSION


def test_newer_version_is_kept(store: ConfigStore) -> None:
    store.base_dir.mkdir(parents=True)
    store.path.write_text("version: 99\npreferences:\n  theme: dark\n", encoding="utf-8")
    doc = store.load()
    assert doc.version == 99
    assert store.save(doc).version == 99
    assert store.path.read_text(encoding="utf-8").startswith("version: 99\n")


def test_upgrade_is_written_once(store: ConfigStore, monkeypatch) -> None:
    store.base_dir.mkdir(parents=True)
    store.path.write_text("version: 2\npreferences:\n  theme: dark\n", encoding="utf-8")

    result = store.load_with_diagnostics()
    assert result.upgraded
    assert result.document.version == CURRENT_VERSION
    assert result.document.preferences.theme == "dark"
    first = store.path.read_text(encoding="utf-8")
    assert first.startswith(f"version: {CURRENT_VERSION}\n")

    def no_save(doc):
        raise AssertionError("unexpected save")

    monkeypatch.setattr(store, "save", no_save)
    again = store.load_with_diagnostics()
    assert not again.upgraded
    assert again.document == result.document
    assert store.path.read_text(encoding="utf-8") == first


def test_upgrade_save_failure_is_not_fatal(tmp_path: Path, caplog) -> None:
    store = ConfigStore(tmp_path, lock_attempts=1, lock_delay=0.0)
    store.path.write_text("version: 1\n", encoding="utf-8")
    blocker = LockFile(store.lock_path)
    assert blocker.try_acquire()
    with caplog.at_level(logging.WARNING, logger="verconf.store"):
        doc = store.load()
    assert doc is not None
    assert doc.version == CURRENT_VERSION
    assert "Config upgrade failed to save" in caplog.text
    assert store.path.read_text(encoding="utf-8") == "version: 1\n"
    blocker.release()


def test_parse_error_reported(store: ConfigStore, caplog) -> None:
    store.base_dir.mkdir(parents=True)
    store.path.write_text("version: 8\n  bad: indent\n", encoding="utf-8")
    with caplog.at_level(logging.ERROR, logger="verconf.store"):
        assert store.load() is None
    result = store.load_with_diagnostics()
    assert isinstance(result.error, ConfigParseError)
    assert result.error.line == 2
    assert "YAML syntax error" in caplog.text


def test_load_or_create_on_corrupt_file_keeps_file(store: ConfigStore) -> None:
    store.base_dir.mkdir(parents=True)
    store.path.write_text("version: [\n", encoding="utf-8")
    assert store.load_or_create() == create_default()
    assert store.path.read_text(encoding="utf-8") == "version: [\n"


@pytest.mark.parametrize("text", ["- a\n- b\n", "preferences: {}\n", "version: zero\n"])
def test_not_a_document(store: ConfigStore, text: str) -> None:
    store.base_dir.mkdir(parents=True)
    store.path.write_text(text, encoding="utf-8")
    result = store.load_with_diagnostics()
    assert result.document is None
    assert isinstance(result.error, ConfigValidationError)


def test_bad_section_reported_as_warning(store: ConfigStore) -> None:
    store.base_dir.mkdir(parents=True)
    store.path.write_text(f"version: {CURRENT_VERSION}\nthinking: true\n", encoding="utf-8")
    result = store.load_with_diagnostics()
    assert result.document.thinking == create_default().thinking
    assert len(result.warnings) == 1


def test_save_fails_while_lock_held(tmp_path: Path) -> None:
    store = ConfigStore(tmp_path, lock_attempts=2, lock_delay=0.01)
    store.save(create_default())
    before = store.path.read_text(encoding="utf-8")
    blocker = LockFile(store.lock_path)
    assert blocker.try_acquire()
    doc = create_default()
    doc.default = "other"
    with pytest.raises(LockContentionError, match="config.yaml.lock"):
        store.save(doc)
    assert store.path.read_text(encoding="utf-8") == before
    blocker.release()


def test_no_artifacts_left_after_save(store: ConfigStore) -> None:
    store.save(create_default())
    store.update(default="x")
    assert _leftovers(store.base_dir) == []


def test_update_replaces_whole_section(store: ConfigStore) -> None:
    doc = create_default()
    doc.preferences = PreferencesConfig(theme="dark", telemetry=True)
    doc.profiles["a"] = ProfileConfig(settings="a.json")
    store.save(doc)

    updated = store.update({"preferences": {"auto_update": False}})
    assert updated.preferences == PreferencesConfig(auto_update=False)
    assert updated.profiles == {"a": ProfileConfig(settings="a.json")}
    assert store.load() == updated


def test_update_accepts_objects_and_scalars(store: ConfigStore) -> None:
    updated = store.update(
        profiles={"b": ProfileConfig(settings="b.json")},
        default="b",
        setup_completed=True,
    )
    assert updated.profiles == {"b": ProfileConfig(settings="b.json")}
    assert updated.default == "b"
    assert updated.setup_completed is True
    assert store.load() == updated


def test_update_rejects_unknown_name(store: ConfigStore) -> None:
    with pytest.raises(ConfigValidationError):
        store.update({"colours": {}})
    assert not store.path.exists()


def test_overlapping_saves_serialize(store: ConfigStore) -> None:
    store.save(create_default())
    acquired = threading.Event()

    def hold() -> None:
        with store.locked():
            acquired.set()
            time.sleep(0.2)

    thread = threading.Thread(target=hold)
    thread.start()
    assert acquired.wait(1.0)
    time.sleep(0.05)
    start = time.monotonic()
    doc = create_default()
    doc.default = "late"
    store.save(doc)
    elapsed = time.monotonic() - start
    thread.join()
    assert elapsed < 1.2
    assert store.load().default == "late"
    assert not store.lock_path.exists()
