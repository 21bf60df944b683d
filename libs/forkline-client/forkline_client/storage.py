"""Per-origin key/value storage shared by every tab of one browser profile.

Backed by a JSON file or by memory. Stores opened on the same file in one
process receive each other's change events, the way tabs receive ``storage``
events. Writes made by another process are picked up by ``refresh()``.
Storage is best-effort: read and write failures are logged at debug level and
degrade to defaults, never to errors.
"""

from __future__ import annotations

import json
import logging
import weakref
from pathlib import Path
from typing import Any, Callable, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

logger = logging.getLogger(__name__)

SELECTED_COMPONENT_KEY = "forkline-selected-component"
COMPONENT_KEY_PREFIX = "forkline-component-"
THEME_KEY = "forkline-theme"
POSITION_KEY = "forkline-position"
CODE_EDITOR_KEY = "forkline-code-editor"

StorageListener = Callable[[str, "str | None"], None]


def active_version_key(target_id: str) -> str:
    return f"{COMPONENT_KEY_PREFIX}{target_id}"


def pending_version_key(target_id: str) -> str:
    return f"{COMPONENT_KEY_PREFIX}{target_id}-pending-version"


# Open file-backed stores, by resolved path.
_PEERS: dict[Path, "weakref.WeakSet[LocalStore]"] = {}


class LocalStore:
    """String key/value store with change notification."""

    def __init__(self, path: Path | None = None):
        self.path = Path(path) if path else None
        self._cache: dict[str, str] = {}
        self._listeners: list[StorageListener] = []
        self._seen: dict[str, str] = {}
        if self.path is not None:
            _PEERS.setdefault(self.path.resolve(), weakref.WeakSet()).add(self)
            self._seen = dict(self._read_all())

    # ---- raw access --------------------------------------------------------
    def _read_all(self) -> dict[str, str]:
        if self.path is None:
            return self._cache
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return self._cache
        except (OSError, ValueError) as e:
            logger.debug(f"Storage unreadable ({self.path}): {e}")
            return self._cache
        if isinstance(data, dict):
            self._cache = {str(k): str(v) for k, v in data.items()}
        return self._cache

    def _write_all(self, data: dict[str, str]) -> None:
        self._cache = data
        self._seen = dict(data)
        if self.path is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.parent / f".{self.path.name}.forklinetmp"
            tmp.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
            tmp.replace(self.path)
        except OSError as e:
            logger.debug(f"Storage not writable ({self.path}): {e}")

    def get_item(self, key: str) -> str | None:
        return self._read_all().get(key)

    def set_item(self, key: str, value: str) -> None:
        data = dict(self._read_all())
        if data.get(key) == value:
            return
        data[key] = value
        self._write_all(data)
        self._notify(key, value)

    def remove_item(self, key: str) -> None:
        data = dict(self._read_all())
        if key not in data:
            return
        del data[key]
        self._write_all(data)
        self._notify(key, None)

    def keys(self) -> list[str]:
        return sorted(self._read_all())

    # ---- JSON values -------------------------------------------------------
    def get_json(self, key: str, default: Any = None) -> Any:
        raw = self.get_item(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            logger.debug(f"Ignoring malformed stored value for {key}")
            return default

    def set_json(self, key: str, value: Any) -> None:
        self.set_item(key, json.dumps(value))

    # ---- change events -----------------------------------------------------
    def subscribe(self, listener: StorageListener) -> Callable[[], None]:
        """listener(key, new_value) after every change; value None means removed."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def refresh(self) -> list[str]:
        """Emit events for keys changed on disk since this store last looked."""
        current = dict(self._read_all())
        changed = sorted(k for k in set(self._seen) | set(current) if self._seen.get(k) != current.get(k))
        self._seen = current
        for key in changed:
            self._emit(key, current.get(key))
        return changed

    def _notify(self, key: str, value: str | None) -> None:
        self._emit(key, value)
        if self.path is None:
            return
        for peer in list(_PEERS.get(self.path.resolve(), ())):
            if peer is not self:
                peer._receive(key, value)

    def _receive(self, key: str, value: str | None) -> None:
        if value is None:
            self._seen.pop(key, None)
        else:
            self._seen[key] = value
        self._emit(key, value)

    def _emit(self, key: str, value: str | None) -> None:
        for listener in list(self._listeners):
            listener(key, value)


class Preferences(BaseModel):
    """Widget UI preferences."""

    model_config = ConfigDict(populate_by_name=True)

    theme: Literal["light", "dark", "system"] = "system"
    position: Literal["top-left", "top-right", "bottom-left", "bottom-right"] = "bottom-right"
    code_editor: Literal["vscode", "cursor", "webstorm", "zed"] = Field(
        default="vscode", alias="code-editor"
    )


_PREFERENCE_KEYS = {
    "theme": THEME_KEY,
    "position": POSITION_KEY,
    "code_editor": CODE_EDITOR_KEY,
}


def load_preferences(store: LocalStore) -> Preferences:
    """Stored preferences; any missing or invalid value falls back to its default."""
    defaults = Preferences()
    values: dict[str, Any] = {}
    for field_name, key in _PREFERENCE_KEYS.items():
        value = store.get_json(key)
        if value is None:
            continue
        try:
            Preferences.model_validate({field_name: value})
        except PydanticValidationError:
            logger.debug(f"Ignoring invalid stored {key}: {value!r}")
            continue
        values[field_name] = value
    return defaults.model_copy(update=values)


def save_preferences(store: LocalStore, prefs: Preferences) -> None:
    for field_name, key in _PREFERENCE_KEYS.items():
        store.set_json(key, getattr(prefs, field_name))
