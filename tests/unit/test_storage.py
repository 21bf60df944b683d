from __future__ import annotations

import json
from pathlib import Path

from forkline_client.storage import (
    CODE_EDITOR_KEY,
    THEME_KEY,
    LocalStore,
    Preferences,
    active_version_key,
    load_preferences,
    pending_version_key,
    save_preferences,
)


def test_key_names():
    assert active_version_key("src/Foo") == "forkline-component-src/Foo"
    assert pending_version_key("src/Foo") == "forkline-component-src/Foo-pending-version"


def test_file_store_is_shared_between_instances(tmp_path: Path):
    path = tmp_path / "storage.json"
    tab1, tab2 = LocalStore(path), LocalStore(path)
    tab1.set_json("k", "v2")
    assert tab2.get_json("k") == "v2"
    tab2.remove_item("k")
    assert tab1.get_item("k") is None


def test_change_events():
    store = LocalStore()
    seen = []
    unsubscribe = store.subscribe(lambda k, v: seen.append((k, v)))
    store.set_item("a", "1")
    store.set_item("a", "1")  # unchanged value is not an event
    store.remove_item("a")
    unsubscribe()
    store.set_item("b", "2")
    assert seen == [("a", "1"), ("a", None)]


def test_unreadable_storage_degrades_to_defaults(tmp_path: Path):
    path = tmp_path / "storage.json"
    path.write_text("{not json", encoding="utf-8")
    store = LocalStore(path)
    assert store.get_item("anything") is None
    assert store.get_json("anything", "fallback") == "fallback"


def test_unwritable_storage_keeps_working_in_memory(tmp_path: Path):
    blocker = tmp_path / "file"
    blocker.write_text("", encoding="utf-8")
    store = LocalStore(blocker / "nested" / "storage.json")
    store.set_item("k", "v")
    assert store.get_item("k") == "v"


def test_malformed_json_value_uses_default():
    store = LocalStore()
    store.set_item("k", "{oops")
    assert store.get_json("k", 7) == 7


def test_preferences_round_trip_and_invalid_values():
    store = LocalStore()
    assert load_preferences(store) == Preferences()

    save_preferences(store, Preferences(theme="dark", position="top-left", code_editor="cursor"))
    prefs = load_preferences(store)
    assert (prefs.theme, prefs.position, prefs.code_editor) == ("dark", "top-left", "cursor")

    store.set_json(THEME_KEY, "neon")
    store.set_item(CODE_EDITOR_KEY, "not json")
    prefs = load_preferences(store)
    assert prefs.theme == "system"
    assert prefs.code_editor == "vscode"
    assert prefs.position == "top-left"


def test_stores_on_one_file_receive_each_others_events(tmp_path: Path):
    path = tmp_path / "storage.json"
    tab1, tab2, other = LocalStore(path), LocalStore(path), LocalStore(tmp_path / "other.json")
    seen1, seen2, seen_other = [], [], []
    tab1.subscribe(lambda k, v: seen1.append((k, v)))
    tab2.subscribe(lambda k, v: seen2.append((k, v)))
    other.subscribe(lambda k, v: seen_other.append((k, v)))

    tab1.set_item("k", "1")
    tab2.remove_item("k")
    assert seen1 == [("k", "1"), ("k", None)]
    assert seen2 == [("k", "1"), ("k", None)]
    assert seen_other == []


def test_refresh_reports_changes_made_outside_the_process(tmp_path: Path):
    path = tmp_path / "storage.json"
    store = LocalStore(path)
    store.set_item("kept", "1")
    store.set_item("gone", "1")
    seen = []
    store.subscribe(lambda k, v: seen.append((k, v)))

    path.write_text(json.dumps({"kept": "1", "new": "2"}), encoding="utf-8")
    assert store.refresh() == ["gone", "new"]
    assert seen == [("gone", None), ("new", "2")]
    assert store.refresh() == []
