"""Known targets: server snapshots merged with what is mounted locally."""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from forkline_core.models import ComponentInfo, VersionInfo

from forkline_client.registry import MountedRegistry
from forkline_client.storage import SELECTED_COMPONENT_KEY, LocalStore

logger = logging.getLogger(__name__)


class ComponentDiscovery:
    """
    Targets the widget can show, and which one is selected.

    With a server snapshot the server's list is authoritative (labels missing
    from it are filled from the mounted registry). Without one, the mounted
    registry alone is listed: the widget still switches versions but cannot
    mutate anything. The persisted selection is kept on a mounted target.
    """

    def __init__(self, registry: MountedRegistry, store: LocalStore):
        self.registry = registry
        self.store = store
        self._server_components: list[ComponentInfo] | None = None
        self._listeners: list[Callable[[], None]] = []
        self._unsubscribe = registry.subscribe(self._on_registry_change)

    @property
    def server_components(self) -> list[ComponentInfo]:
        return list(self._server_components or [])

    @property
    def has_server_snapshot(self) -> bool:
        return self._server_components is not None

    @property
    def components(self) -> list[ComponentInfo]:
        if self._server_components is not None:
            return [self._with_local_labels(c) for c in self._server_components]
        return [
            ComponentInfo(target_id=tid, name=tid.rsplit("/", 1)[-1], versions=versions)
            for tid, versions in self.registry.all_with_versions().items()
        ]

    def _with_local_labels(self, component: ComponentInfo) -> ComponentInfo:
        local = {v.key: v.label for v in self.registry.versions_for(component.target_id)}
        if not local:
            return component
        versions = [
            v if v.label else VersionInfo(key=v.key, label=local.get(v.key))
            for v in component.versions
        ]
        return component.model_copy(update={"versions": versions})

    def find(self, target_id: str) -> ComponentInfo | None:
        for c in self.components:
            if c.target_id == target_id or c.name == target_id:
                return c
        return None

    def versions_for(self, target_id: str) -> list[VersionInfo]:
        component = self.find(target_id)
        return list(component.versions) if component else self.registry.versions_for(target_id)

    @property
    def mounted_components(self) -> list[ComponentInfo]:
        mounted = set(self.registry.mounted_ids())
        return [c for c in self.components if c.target_id in mounted or c.name in mounted]

    # ---- selection ---------------------------------------------------------
    @property
    def selected(self) -> str:
        value = self.store.get_json(SELECTED_COMPONENT_KEY, "")
        return value if isinstance(value, str) else ""

    def select(self, target_id: str) -> None:
        if target_id:
            self.store.set_json(SELECTED_COMPONENT_KEY, target_id)
        else:
            self.store.remove_item(SELECTED_COMPONENT_KEY)

    def clear_selection(self, target_id: str | None = None) -> None:
        """Forget the selection (only if it is target_id, when given)."""
        selected = self.selected
        if target_id is None or selected == target_id or self._same_target(selected, target_id):
            self.store.remove_item(SELECTED_COMPONENT_KEY)

    def _same_target(self, a: str, b: str) -> bool:
        component = self.find(a)
        return component is not None and b in (component.target_id, component.name)

    def reconcile_selection(self) -> None:
        """Move the selection to a mounted target when it points elsewhere."""
        mounted = self.registry.mounted_ids()
        if not mounted:
            return
        selected = self.selected
        if selected and (selected in mounted or any(c.name == selected for c in self.mounted_components)):
            return
        candidates = self.mounted_components
        if candidates:
            logger.debug(f"Selection {selected or '(none)'} not mounted; selecting {candidates[0].target_id}")
            self.select(candidates[0].target_id)

    # ---- updates -----------------------------------------------------------
    def handle_components_update(self, components: Iterable[ComponentInfo]) -> None:
        self._server_components = list(components)
        if not self.selected and self._server_components:
            self.select(self._server_components[0].target_id)
        self.reconcile_selection()
        self._notify()

    def forget_server_snapshot(self) -> None:
        """Back to offline mode (the local registry is listed again)."""
        if self._server_components is None:
            return
        self._server_components = None
        self._notify()

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def close(self) -> None:
        self._unsubscribe()
        self._listeners.clear()

    def _on_registry_change(self) -> None:
        self.reconcile_selection()
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()
