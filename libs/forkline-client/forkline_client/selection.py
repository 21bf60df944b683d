"""Active version selection for one target.

The selected key is persisted per target so every tab shows the same
version. A selection that is missing from the known versions is not
replaced at once: the list may still be catching up (a rename, a file
being written), so the fallback to the first version only happens if the
key is still unknown after a grace period.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Iterable, Protocol

from forkline_core import versionkey

from forkline_client.storage import LocalStore, active_version_key, pending_version_key

logger = logging.getLogger(__name__)

STALE_GRACE_PERIOD = 2.5


class Scheduler(Protocol):
    """Anything with asyncio's ``call_later``; the handle must have ``cancel()``."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> Any: ...


class ActiveVersionState:
    def __init__(
        self,
        store: LocalStore,
        target_id: str,
        *,
        versions: Iterable[str] = (),
        default_version: str | None = None,
        grace_period: float = STALE_GRACE_PERIOD,
        scheduler: Scheduler | None = None,
    ):
        self.store = store
        self.target_id = target_id
        self.default_version = default_version
        self.grace_period = grace_period
        self._scheduler = scheduler
        self._storage_key = active_version_key(target_id)
        self._pending_key = pending_version_key(target_id)
        self._versions: list[str] = []
        self._last_valid: str | None = None
        self._timer: Any = None
        self._listeners: list[Callable[[str | None], None]] = []
        self._unsubscribe = store.subscribe(self._on_storage_change)
        self.update_versions(versions)

    # ---- reads -------------------------------------------------------------
    @property
    def versions(self) -> list[str]:
        return list(self._versions)

    @property
    def active_version(self) -> str | None:
        """The stored selection, even if stale; else the default or first version."""
        stored = self.store.get_json(self._storage_key)
        if isinstance(stored, str) and stored:
            return stored
        if self.default_version:
            return self.default_version
        return self._versions[0] if self._versions else None

    @property
    def resolved_version(self) -> str | None:
        """What to render now: the selection if known, else the last known-good key."""
        active = self.active_version
        if active in self._versions:
            return active
        if self._last_valid in self._versions:
            return self._last_valid
        return self._versions[0] if self._versions else None

    @property
    def is_stale(self) -> bool:
        return bool(self._versions) and self.active_version not in self._versions

    @property
    def fallback_pending(self) -> bool:
        return self._timer is not None

    @property
    def pending_version(self) -> str | None:
        return self.store.get_item(self._pending_key) or None

    # ---- writes ------------------------------------------------------------
    def set_active(self, key: str) -> None:
        self.store.set_json(self._storage_key, key)

    def store_pending(self, key: str) -> None:
        """Remember a key to activate once a snapshot contains it."""
        self.store.set_item(self._pending_key, key)
        if key in self._versions:
            self._consume_pending()

    def clear_pending(self) -> None:
        self.store.remove_item(self._pending_key)

    def update_versions(self, keys: Iterable[str]) -> None:
        """Apply a new version list (from a snapshot or the mounted registry)."""
        self._versions = versionkey.sort_keys(k for k in keys if versionkey.is_valid_key(k))
        if self._consume_pending():
            return
        self._revalidate()

    def subscribe(self, listener: Callable[[str | None], None]) -> Callable[[], None]:
        """listener(resolved_version) whenever the selection changes."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def close(self) -> None:
        self._cancel_timer()
        self._unsubscribe()
        self._listeners.clear()

    # ---- internals ---------------------------------------------------------
    def _consume_pending(self) -> bool:
        pending = self.pending_version
        if not pending or pending not in self._versions:
            return False
        self.store.remove_item(self._pending_key)
        logger.debug(f"{self.target_id}: activating pending {pending}")
        self.set_active(pending)
        self._revalidate()
        return True

    def _on_storage_change(self, key: str, value: str | None) -> None:
        # Also fires for writes made by other tabs sharing the store.
        if key != self._storage_key:
            return
        self._revalidate()
        resolved = self.resolved_version
        for listener in list(self._listeners):
            listener(resolved)

    def _revalidate(self) -> None:
        active = self.active_version
        if active in self._versions:
            self._last_valid = active
            self._cancel_timer()
        elif self._versions and self._timer is None:
            self._schedule_fallback()

    def _schedule_fallback(self) -> None:
        scheduler = self._scheduler
        if scheduler is None:
            try:
                scheduler = asyncio.get_running_loop()
            except RuntimeError:
                logger.debug(f"{self.target_id}: no event loop, falling back immediately")
                self._fallback()
                return
        self._timer = scheduler.call_later(self.grace_period, self._fallback)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fallback(self) -> None:
        self._timer = None
        active = self.active_version
        if not self._versions or active in self._versions:
            return
        logger.info(f"{self.target_id}: {active} no longer exists, showing {self._versions[0]}")
        self.set_active(self._versions[0])
