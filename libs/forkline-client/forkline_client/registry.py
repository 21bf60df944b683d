"""Refcounted registry of targets currently mounted in the page."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Sequence

from forkline_core.models import VersionInfo

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


@dataclass
class _Entry:
    versions: list[VersionInfo]
    refcount: int = 1


@dataclass
class MountedRegistry:
    """
    Which targets are on screen, and with which versions.

    The same target may be rendered several times; only the first register
    and the final unregister change membership, and only membership changes
    notify subscribers. Pass one instance explicitly to every consumer.
    """

    _entries: dict[str, _Entry] = field(default_factory=dict)
    _listeners: list[Listener] = field(default_factory=list)

    def register(self, target_id: str, versions: Sequence[VersionInfo] = ()) -> None:
        entry = self._entries.get(target_id)
        if entry is not None:
            entry.refcount += 1
            return
        self._entries[target_id] = _Entry(versions=list(versions))
        logger.debug(f"Mounted {target_id}")
        self._notify()

    def unregister(self, target_id: str) -> None:
        entry = self._entries.get(target_id)
        if entry is None:
            return
        entry.refcount -= 1
        if entry.refcount > 0:
            return
        del self._entries[target_id]
        logger.debug(f"Unmounted {target_id}")
        self._notify()

    def is_mounted(self, target_id: str) -> bool:
        return target_id in self._entries

    def mounted_ids(self) -> list[str]:
        return list(self._entries)

    def refcount(self, target_id: str) -> int:
        entry = self._entries.get(target_id)
        return entry.refcount if entry else 0

    def versions_for(self, target_id: str) -> list[VersionInfo]:
        entry = self._entries.get(target_id)
        return list(entry.versions) if entry else []

    def all_with_versions(self) -> dict[str, list[VersionInfo]]:
        return {tid: list(e.versions) for tid, e in self._entries.items()}

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call listener on membership changes; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()
