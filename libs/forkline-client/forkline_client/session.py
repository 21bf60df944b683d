"""Client side of the watch server socket, with automatic reconnect."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from pydantic import ValidationError as PydanticValidationError
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from forkline_core.errors import ErrorKind, InvalidInputError, NotConnectedError
from forkline_core.models import ComponentInfo
from forkline_core.protocol import MessageType, command, decode, encode

logger = logging.getLogger(__name__)

RECONNECT_DELAY = 3.0
NOT_CONNECTED_MESSAGE = "Not connected to the forkline watch server. Start it with `forkline watch`."


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    # No attempt has succeeded yet: the server was probably never started.
    FAILED = "failed"


@dataclass
class Ack:
    action: str
    version: str
    message: str = ""
    new_version: str | None = None
    target_id: str | None = None

    @property
    def is_promotion(self) -> bool:
        return self.action == "promote"


class ClientSession:
    """
    One reconnecting connection to ``ws://{host}:{port}/ws``.

    Callbacks are plain functions invoked on the event loop:
    ``on_components(list[ComponentInfo])``, ``on_file_changed()``,
    ``on_ack(Ack)``, ``on_promoted(target_id)``, ``on_error(message, kind)``
    and ``on_status(ConnectionStatus)``.
    """

    def __init__(
        self,
        port: int = 3030,
        host: str = "localhost",
        *,
        target_provider: Callable[[], str | None] | None = None,
        on_components: Callable[[list[ComponentInfo]], None] | None = None,
        on_file_changed: Callable[[], None] | None = None,
        on_ack: Callable[[Ack], None] | None = None,
        on_promoted: Callable[[str | None], None] | None = None,
        on_error: Callable[[str, ErrorKind], None] | None = None,
        on_status: Callable[[ConnectionStatus], None] | None = None,
        reconnect_delay: float = RECONNECT_DELAY,
    ):
        self.port = port
        self.host = host
        self.target_provider = target_provider
        self.on_components = on_components
        self.on_file_changed = on_file_changed
        self.on_ack = on_ack
        self.on_promoted = on_promoted
        self.on_error = on_error
        self.on_status = on_status
        self.reconnect_delay = reconnect_delay
        self._ws: ClientConnection | None = None
        self._status = ConnectionStatus.DISCONNECTED
        self._has_ever_connected = False
        self._retry_count = 0
        self._closing = False
        self._task: asyncio.Task | None = None

    @property
    def url(self) -> str:
        return f"ws://{self.host}:{self.port}/ws"

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def is_connected(self) -> bool:
        return self._ws is not None and self._status is ConnectionStatus.CONNECTED

    def _set_status(self, status: ConnectionStatus) -> None:
        if status is self._status:
            return
        logger.debug(f"{self.url}: {self._status.value} -> {status.value}")
        self._status = status
        if self.on_status:
            self.on_status(status)

    # ---- connection loop ---------------------------------------------------
    async def connect_once(self) -> None:
        """Open one connection and read it until it closes."""
        # A never-connected session stays "failed" across retries instead of flickering.
        if self._status is not ConnectionStatus.FAILED and (
            self._retry_count == 0 or self._has_ever_connected
        ):
            self._set_status(ConnectionStatus.CONNECTING)
        self._retry_count += 1

        try:
            ws = await connect(self.url)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            logger.debug(f"Connection to {self.url} failed: {e}")
            if self._has_ever_connected:
                self._set_status(ConnectionStatus.DISCONNECTED)
            else:
                self._set_status(ConnectionStatus.FAILED)
            return

        self._ws = ws
        self._has_ever_connected = True
        self._retry_count = 0
        self._set_status(ConnectionStatus.CONNECTED)
        logger.info(f"Connected to {self.url}")
        if self.on_file_changed:
            self.on_file_changed()
        try:
            async for raw in ws:
                self._dispatch(raw)
        except ConnectionClosed:
            pass
        finally:
            self._ws = None
            self._set_status(ConnectionStatus.DISCONNECTED)
            logger.info(f"Disconnected from {self.url}")

    async def run(self) -> None:
        """Connect, and reconnect after a fixed delay, until close()."""
        self._closing = False
        while not self._closing:
            await self.connect_once()
            if self._closing:
                break
            await asyncio.sleep(self.reconnect_delay)

    def start(self) -> asyncio.Task:
        self._task = asyncio.create_task(self.run())
        return self._task

    async def close(self) -> None:
        self._closing = True
        ws = self._ws
        if ws is not None:
            await ws.close()
        if self._task is not None:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        self._set_status(ConnectionStatus.DISCONNECTED)

    # ---- outgoing ----------------------------------------------------------
    async def send(self, type_: MessageType | str, payload: dict[str, Any] | None = None) -> None:
        """Send a command stamped with the current target; fails fast when offline."""
        ws = self._ws
        if ws is None or self._status is not ConnectionStatus.CONNECTED:
            raise NotConnectedError(NOT_CONNECTED_MESSAGE)
        body = dict(payload or {})
        target = self.target_provider() if self.target_provider else None
        if target:
            body["targetId"] = target
            body["component"] = target
        try:
            await ws.send(encode(command(type_, body)))
        except ConnectionClosed as e:
            raise NotConnectedError(NOT_CONNECTED_MESSAGE) from e

    # ---- incoming ----------------------------------------------------------
    def _dispatch(self, raw: str | bytes) -> None:
        try:
            message = decode(raw)
        except InvalidInputError as e:
            logger.debug(f"Ignoring frame: {e.message}")
            return
        payload = message.payload

        if message.type is MessageType.COMPONENTS:
            items = payload.get("components")
            if not isinstance(items, list):
                return
            try:
                components = [ComponentInfo.model_validate(c) for c in items]
            except PydanticValidationError as e:
                logger.debug(f"Ignoring malformed components frame: {e}")
                return
            if self.on_components:
                self.on_components(components)

        elif message.type is MessageType.FILE_CHANGED:
            if self.on_file_changed:
                self.on_file_changed()

        elif message.type is MessageType.ACK:
            version = payload.get("version")
            if not isinstance(version, str) or not version:
                return
            ack = Ack(
                action=str(payload.get("action") or ""),
                version=version,
                message=str(payload.get("message") or ""),
                new_version=payload.get("newVersion") or None,
                target_id=payload.get("targetId") or None,
            )
            if ack.is_promotion:
                if self.on_promoted:
                    self.on_promoted(ack.target_id)
            elif self.on_ack:
                self.on_ack(ack)

        elif message.type is MessageType.ERROR:
            try:
                kind = ErrorKind(payload.get("kind") or ErrorKind.INTERNAL.value)
            except ValueError:
                kind = ErrorKind.INTERNAL
            if self.on_error:
                self.on_error(str(payload.get("message") or "Unknown error"), kind)
