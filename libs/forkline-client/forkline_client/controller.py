"""Non-visual logic of the version switcher widget."""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Literal

from forkline_core import versionkey
from forkline_core.errors import ErrorKind, NotConnectedError
from forkline_core.models import ComponentInfo
from forkline_core.protocol import MessageType

from forkline_client.discovery import ComponentDiscovery
from forkline_client.registry import MountedRegistry
from forkline_client.selection import STALE_GRACE_PERIOD, ActiveVersionState, Scheduler
from forkline_client.session import Ack, ClientSession, ConnectionStatus
from forkline_client.storage import LocalStore

logger = logging.getLogger(__name__)

NotificationKind = Literal["success", "error", "info"]

# Acks whose result should become the active version once it appears.
_ACTIVATING_ACTIONS = {"new", "fork", "rename"}


@dataclass
class Notification:
    id: int
    kind: NotificationKind
    message: str


class WidgetController:
    """
    Wires the session, discovery and per-target selections together.

    Only one mutation is in flight at a time; a second request while one is
    pending is refused with an info notification. Every ack, promotion or
    error ends the in-flight mutation.
    """

    def __init__(
        self,
        store: LocalStore,
        registry: MountedRegistry | None = None,
        *,
        port: int = 3030,
        host: str = "localhost",
        grace_period: float = STALE_GRACE_PERIOD,
        scheduler: Scheduler | None = None,
    ):
        self.store = store
        self.registry = registry or MountedRegistry()
        self.discovery = ComponentDiscovery(self.registry, store)
        self.grace_period = grace_period
        self.scheduler = scheduler
        self.notifications: list[Notification] = []
        self._ids = itertools.count(1)
        self._pending_mutations = 0
        self._selections: dict[str, ActiveVersionState] = {}
        self.session = ClientSession(
            port,
            host,
            target_provider=lambda: self.discovery.selected or None,
            on_components=self.handle_components,
            on_file_changed=self.handle_file_changed,
            on_ack=self.handle_ack,
            on_promoted=self.handle_promoted,
            on_error=self.handle_error,
            on_status=self.handle_status,
        )

    # ---- state -------------------------------------------------------------
    @property
    def is_mutation_pending(self) -> bool:
        return self._pending_mutations > 0

    @property
    def can_mutate(self) -> bool:
        return self.session.is_connected and self.discovery.has_server_snapshot

    def selection(self, target_id: str | None = None) -> ActiveVersionState:
        """Selection state for target_id (default: the selected target)."""
        target_id = target_id or self.discovery.selected
        state = self._selections.get(target_id)
        if state is None:
            state = ActiveVersionState(
                self.store,
                target_id,
                versions=[v.key for v in self.discovery.versions_for(target_id)],
                grace_period=self.grace_period,
                scheduler=self.scheduler,
            )
            self._selections[target_id] = state
        return state

    def notify(self, kind: NotificationKind, message: str) -> Notification:
        note = Notification(id=next(self._ids), kind=kind, message=message)
        self.notifications.append(note)
        return note

    def dismiss(self, notification_id: int) -> None:
        self.notifications = [n for n in self.notifications if n.id != notification_id]

    def _end_mutation(self) -> None:
        self._pending_mutations = max(0, self._pending_mutations - 1)

    # ---- commands ----------------------------------------------------------
    async def _issue(self, type_: MessageType, payload: dict | None = None) -> bool:
        if self.is_mutation_pending:
            self.notify("info", "Please wait for the current action to finish.")
            return False
        self._pending_mutations += 1
        try:
            await self.session.send(type_, payload)
        except NotConnectedError as e:
            self._end_mutation()
            self.notify("error", e.message)
            return False
        return True

    async def new_version(self) -> bool:
        return await self._issue(MessageType.NEW_VERSION)

    async def duplicate_version(self, version: str) -> bool:
        return await self._issue(MessageType.DUPLICATE_VERSION, {"version": version})

    async def delete_version(self, version: str) -> bool:
        return await self._issue(MessageType.DELETE_VERSION, {"version": version})

    async def promote_version(self, version: str) -> bool:
        return await self._issue(MessageType.PROMOTE_VERSION, {"version": version})

    async def rename_label(self, version: str, label: str) -> bool:
        return await self._issue(MessageType.RENAME_LABEL, {"version": version, "newLabel": label})

    async def rename_version(self, version: str, raw_new_version: str) -> bool:
        """Rename from free-form input ("2.1", "V2_1", "v2_1"); no-op when unchanged."""
        new_key = versionkey.normalize_user_input(raw_new_version)
        if new_key is None:
            self.notify("error", f"Invalid version: {raw_new_version!r}. Use a number like 2 or 2.1")
            return False
        if versionkey.same_version(new_key, version):
            return False
        existing = [v.key for v in self.discovery.versions_for(self.discovery.selected)]
        if any(versionkey.same_version(new_key, k) for k in existing):
            self.notify("error", f"Version {new_key} already exists")
            return False
        return await self._issue(MessageType.RENAME_VERSION, {"version": version, "newVersion": new_key})

    # ---- session callbacks -------------------------------------------------
    def handle_components(self, components: list[ComponentInfo]) -> None:
        self.discovery.handle_components_update(components)
        for target_id, state in self._selections.items():
            state.update_versions(v.key for v in self.discovery.versions_for(target_id))

    def handle_status(self, status: ConnectionStatus) -> None:
        if status is ConnectionStatus.CONNECTED:
            return
        self.discovery.forget_server_snapshot()
        if status is not ConnectionStatus.CONNECTING and self.is_mutation_pending:
            # The connection dropped before an ack; the outcome is unknown.
            self._pending_mutations = 0
            self.notify("error", "Lost connection to the watch server")

    def handle_file_changed(self) -> None:
        logger.debug("Files changed on the server")

    def handle_ack(self, ack: Ack) -> None:
        self._end_mutation()
        activate = ack.new_version if ack.action == "rename" else ack.version
        if ack.action in _ACTIVATING_ACTIONS and activate:
            self.selection(ack.target_id or self.discovery.selected).store_pending(activate)
        if ack.message:
            self.notify("success", ack.message)

    def handle_promoted(self, target_id: str | None) -> None:
        self._end_mutation()
        self.discovery.clear_selection(target_id)
        self.notify("success", f"Promoted {target_id or 'component'}")

    def handle_error(self, message: str, kind: ErrorKind) -> None:
        self._end_mutation()
        logger.debug(f"Server error ({kind.value}): {message}")
        self.notify("error", message)

    # ---- lifecycle ---------------------------------------------------------
    def start(self):
        return self.session.start()

    async def close(self) -> None:
        await self.session.close()
        for state in self._selections.values():
            state.close()
        self._selections.clear()
        self.discovery.close()
