"""Watch server: keeps indexes fresh and relays mutations over WebSocket.

One asyncio loop runs both the filesystem poller and the socket handlers.
Commands execute synchronously on that loop, so two mutations never
interleave; a client observes the ack for its command before the
``components`` broadcast that reflects it.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from enum import Enum
from http import HTTPStatus
from pathlib import Path
from typing import Any, Callable, Iterable

from websockets.asyncio.server import ServerConnection, serve
from websockets.exceptions import ConnectionClosed

from forkline_core.errors import ErrorKind, ForklineError, InvalidInputError, NotFoundError
from forkline_core.manager import ComponentManager, discover_managers
from forkline_core.models import ComponentInfo, ForklineConfig
from forkline_core.protocol import (
    Message,
    MessageType,
    ack_message,
    components_message,
    decode,
    encode,
    error_message,
    file_changed_message,
)
from forkline_core.targets import DEFAULT_IGNORE_DIRS, is_version_artifact, walk_files

from forkline_sync.operations import (
    OperationResult,
    delete_version,
    fork_version,
    new_version,
    promote_version,
    rename_label,
    rename_version,
)

logger = logging.getLogger(__name__)

WS_PATH = "/ws"

Fingerprint = dict[str, tuple[int, int]]


class WatchState(str, Enum):
    IDLE = "idle"
    WATCHING = "watching"
    REBUILDING = "rebuilding"


def _required(payload: dict[str, Any], field: str) -> str:
    value = payload.get(field)
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError(f"Missing required field: {field}")
    return value.strip()


def _optional(payload: dict[str, Any], field: str) -> str | None:
    value = payload.get(field)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


class WatchServer:
    """Filesystem poller plus WebSocket endpoint for one project root."""

    def __init__(
        self,
        root: Path,
        *,
        host: str = "localhost",
        port: int = 3030,
        poll_interval: float = 0.5,
        lazy: bool = False,
        ignore_dirs: Iterable[str] = DEFAULT_IGNORE_DIRS,
    ):
        self.root = Path(root).resolve()
        self.host = host
        self.port = port
        self.poll_interval = poll_interval
        self.lazy = lazy
        self.ignore_dirs = tuple(ignore_dirs)
        self.state = WatchState.IDLE
        self.clients: set[ServerConnection] = set()
        self.managers: dict[str, ComponentManager] = {}
        self.bound_port: int | None = None
        self._fingerprint: Fingerprint = {}
        self._commands: dict[MessageType, Callable[[ComponentManager, dict[str, Any]], OperationResult]] = {
            MessageType.NEW_VERSION: lambda m, p: new_version(m, _optional(p, "version")),
            MessageType.DUPLICATE_VERSION: lambda m, p: fork_version(
                m, _required(p, "version"), _optional(p, "newVersion")
            ),
            MessageType.RENAME_VERSION: lambda m, p: rename_version(
                m, _required(p, "version"), _required(p, "newVersion")
            ),
            MessageType.RENAME_LABEL: lambda m, p: rename_label(
                m, _required(p, "version"), _optional(p, "newLabel")
            ),
            MessageType.DELETE_VERSION: lambda m, p: delete_version(m, _required(p, "version")),
            MessageType.PROMOTE_VERSION: lambda m, p: promote_version(m, _required(p, "version")),
        }

    @classmethod
    def from_config(cls, root: Path, config: ForklineConfig) -> "WatchServer":
        return cls(
            root,
            host=config.host,
            port=config.port,
            poll_interval=config.poll_interval,
            lazy=config.lazy,
            ignore_dirs=config.ignore_dirs,
        )

    # ---- target model ------------------------------------------------------
    def discover(self) -> None:
        self.managers = {
            m.target_id: m
            for m in discover_managers(self.root, ignore_dirs=self.ignore_dirs, lazy=self.lazy)
        }
        logger.debug(f"Discovered {len(self.managers)} targets")

    def snapshot(self) -> list[ComponentInfo]:
        """Every known target with at least one version, sorted by id."""
        out: list[ComponentInfo] = []
        for target_id in sorted(self.managers):
            try:
                info = self.managers[target_id].describe()
            except NotFoundError as e:
                logger.debug(f"Skipping {target_id}: {e}")
                continue
            if info.versions:
                out.append(info)
        return out

    def resolve_manager(self, target_id: str) -> ComponentManager:
        """Manager for a full target id, or a bare component name when unambiguous."""
        if target_id not in self.managers:
            self.discover()
        manager = self.managers.get(target_id)
        if manager is not None:
            return manager
        by_name = [m for m in self.managers.values() if m.component_name == target_id]
        if len(by_name) == 1:
            return by_name[0]
        if len(by_name) > 1:
            raise InvalidInputError(f"Ambiguous target {target_id!r}; use the full target id")
        raise NotFoundError(f"Unknown target: {target_id}")

    # ---- polling -----------------------------------------------------------
    def scan(self) -> Fingerprint:
        """(mtime_ns, size) of every version artifact and wrapper under root."""
        wrappers = {str(m.wrapper_path) for m in self.managers.values() if m.wrapper_path}
        out: Fingerprint = {}
        for p in walk_files(self.root, self.ignore_dirs):
            key = str(p)
            if p.name.endswith(".forklinetmp") or not (is_version_artifact(p) or key in wrappers):
                continue
            try:
                st = p.stat()
            except FileNotFoundError:
                continue
            out[key] = (st.st_mtime_ns, st.st_size)
        return out

    def rebuild(self, changed: Iterable[str] | None = None) -> None:
        """Rediscover targets and regenerate indexes (all, or those in changed dirs)."""
        self.state = WatchState.REBUILDING
        try:
            self.discover()
            dirs = None if changed is None else {Path(p).parent for p in changed}
            for manager in self.managers.values():
                if dirs is not None and manager.watch_dir not in dirs:
                    continue
                try:
                    manager.generate_versions_file()
                except (OSError, ForklineError) as e:
                    logger.warning(f"Could not regenerate {manager.versions_file.name}: {e}")
            # Fingerprint after writing so regenerated indexes do not trigger another pass.
            self._fingerprint = self.scan()
        finally:
            self.state = WatchState.WATCHING

    def poll_once(self) -> bool:
        """Rebuild if anything changed since the last scan; True when it did."""
        current = self.scan()
        if current == self._fingerprint:
            return False
        previous = self._fingerprint
        changed = {k for k in current.keys() | previous.keys() if current.get(k) != previous.get(k)}
        logger.info(f"Detected {len(changed)} changed file(s)")
        self.rebuild(changed)
        return True

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                if self.poll_once():
                    await self.broadcast(file_changed_message())
                    await self.broadcast_components()
            except Exception:
                logger.exception("Rebuild failed")

    # ---- broadcast ---------------------------------------------------------
    async def _send(self, ws: ServerConnection, message: Message) -> None:
        try:
            await ws.send(encode(message))
        except ConnectionClosed:
            self.clients.discard(ws)

    async def broadcast(self, message: Message) -> None:
        data = encode(message)
        for ws in list(self.clients):
            try:
                await ws.send(data)
            except ConnectionClosed:
                self.clients.discard(ws)

    async def broadcast_components(self) -> None:
        await self.broadcast(components_message(self.snapshot()))

    # ---- commands ----------------------------------------------------------
    def execute(self, message: Message) -> OperationResult:
        payload = message.payload
        target_id = _optional(payload, "targetId") or _optional(payload, "component")
        if not target_id:
            raise InvalidInputError("Missing required field: targetId")
        handler = self._commands.get(message.type)
        if handler is None:
            raise InvalidInputError(f"Unsupported command: {message.type.value}")
        manager = self.resolve_manager(target_id)
        return handler(manager, payload)

    async def handle_command(self, ws: ServerConnection, message: Message) -> None:
        target_id = _optional(message.payload, "targetId") or _optional(message.payload, "component")
        try:
            result = self.execute(message)
        except ForklineError as e:
            logger.warning(f"{message.type.value} failed: {e.message}")
            await self._send(ws, error_message(e.message, e.kind, target_id))
            return
        except Exception as e:
            logger.exception(f"{message.type.value} failed unexpectedly")
            await self._send(ws, error_message(str(e) or type(e).__name__, ErrorKind.INTERNAL, target_id))
            return

        await self._send(
            ws,
            ack_message(
                result.action.value,
                result.version,
                result.message,
                result.target_id,
                new_version=result.new_version,
            ),
        )
        self.rebuild()
        await self.broadcast_components()

    async def handler(self, ws: ServerConnection) -> None:
        self.clients.add(ws)
        logger.info(f"Client connected ({len(self.clients)})")
        try:
            await self._send(ws, components_message(self.snapshot()))
            async for raw in ws:
                try:
                    message = decode(raw)
                except InvalidInputError as e:
                    await self._send(ws, error_message(e.message, e.kind))
                    continue
                if not message.is_command:
                    await self._send(
                        ws,
                        error_message(f"Unsupported command: {message.type.value}", ErrorKind.VALIDATION),
                    )
                    continue
                await self.handle_command(ws, message)
        except ConnectionClosed:
            pass
        finally:
            self.clients.discard(ws)
            logger.info(f"Client disconnected ({len(self.clients)})")

    def _process_request(self, connection: ServerConnection, request):
        if request.path.split("?", 1)[0] != WS_PATH:
            return connection.respond(HTTPStatus.NOT_FOUND, "Not found\n")
        return None

    # ---- lifecycle ---------------------------------------------------------
    async def serve(
        self,
        *,
        ready: asyncio.Event | None = None,
        stop: asyncio.Event | None = None,
    ) -> None:
        """Run until stop is set (forever without one). Port 0 binds a free port."""
        self.rebuild()
        async with serve(self.handler, self.host, self.port, process_request=self._process_request) as server:
            sock = next(iter(server.sockets))
            self.bound_port = sock.getsockname()[1]
            logger.info(
                f"Watching {self.root} ({len(self.managers)} targets); "
                f"ws://{self.host}:{self.bound_port}{WS_PATH}"
            )
            poller = asyncio.create_task(self._poll_loop())
            if ready is not None:
                ready.set()
            try:
                if stop is not None:
                    await stop.wait()
                else:
                    await asyncio.Future()
            finally:
                poller.cancel()
                with suppress(asyncio.CancelledError):
                    await poller
                self.state = WatchState.IDLE

    def run(self) -> None:
        asyncio.run(self.serve())
