"""WebSocket message framing.

Every frame in either direction is a JSON text frame ``{"type": ..., "payload": {...}}``.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Iterable

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from forkline_core.errors import ErrorKind, InvalidInputError
from forkline_core.models import ComponentInfo


class MessageType(str, Enum):
    # client -> server
    DUPLICATE_VERSION = "duplicate_version"
    DELETE_VERSION = "delete_version"
    NEW_VERSION = "new_version"
    RENAME_VERSION = "rename_version"
    RENAME_LABEL = "rename_label"
    PROMOTE_VERSION = "promote_version"
    # server -> client
    COMPONENTS = "components"
    FILE_CHANGED = "file_changed"
    ACK = "ack"
    ERROR = "error"


CLIENT_COMMANDS = frozenset(
    {
        MessageType.DUPLICATE_VERSION,
        MessageType.DELETE_VERSION,
        MessageType.NEW_VERSION,
        MessageType.RENAME_VERSION,
        MessageType.RENAME_LABEL,
        MessageType.PROMOTE_VERSION,
    }
)


class Message(BaseModel):
    type: MessageType
    payload: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_command(self) -> bool:
        return self.type in CLIENT_COMMANDS


def encode(message: Message) -> str:
    return json.dumps(message.model_dump(mode="json"), ensure_ascii=False)


def decode(raw: str | bytes) -> Message:
    """Parse a frame; raises InvalidInputError for malformed JSON or unknown types."""
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise InvalidInputError(f"Malformed message: {e}") from e
    if not isinstance(data, dict):
        raise InvalidInputError("Malformed message: expected a JSON object")
    if data.get("payload") is None:
        data["payload"] = {}
    try:
        return Message.model_validate(data)
    except PydanticValidationError as e:
        raise InvalidInputError(f"Unsupported message type: {data.get('type')!r}") from e


def command(type_: MessageType | str, payload: dict[str, Any] | None = None) -> Message:
    return Message(type=MessageType(type_), payload=dict(payload or {}))


def components_message(components: Iterable[ComponentInfo]) -> Message:
    return Message(
        type=MessageType.COMPONENTS,
        payload={"components": [c.to_wire() for c in components]},
    )


def file_changed_message() -> Message:
    return Message(type=MessageType.FILE_CHANGED, payload={})


def ack_message(
    action: str,
    version: str,
    message: str,
    target_id: str,
    new_version: str | None = None,
) -> Message:
    payload: dict[str, Any] = {
        "action": action,
        "version": version,
        "message": message,
        "targetId": target_id,
    }
    if new_version is not None:
        payload["newVersion"] = new_version
    return Message(type=MessageType.ACK, payload=payload)


def error_message(message: str, kind: ErrorKind, target_id: str | None = None) -> Message:
    payload: dict[str, Any] = {"message": message, "kind": kind.value}
    if target_id:
        payload["targetId"] = target_id
    return Message(type=MessageType.ERROR, payload=payload)
