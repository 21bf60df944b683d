import json

import pytest

from forkline_core.errors import ErrorKind, InvalidInputError
from forkline_core.models import ComponentInfo, VersionInfo
from forkline_core.protocol import (
    MessageType,
    ack_message,
    command,
    components_message,
    decode,
    encode,
    error_message,
)


def test_components_frame_uses_wire_names():
    info = ComponentInfo(
        target_id="src/Foo", name="Foo", kind="component", path="src/Foo.tsx",
        versions=[VersionInfo(key="v1", label="V1")],
    )
    frame = json.loads(encode(components_message([info])))
    assert frame == {
        "type": "components",
        "payload": {
            "components": [
                {
                    "targetId": "src/Foo",
                    "name": "Foo",
                    "kind": "component",
                    "path": "src/Foo.tsx",
                    "versions": [{"key": "v1", "label": "V1"}],
                }
            ]
        },
    }


def test_ack_includes_new_version_only_when_set():
    plain = json.loads(encode(ack_message("fork", "v2", "duplicated v1 to v2", "src/Foo")))
    assert "newVersion" not in plain["payload"]
    renamed = json.loads(encode(ack_message("rename", "v1", "renamed", "src/Foo", new_version="v3")))
    assert renamed["payload"]["newVersion"] == "v3"


def test_error_frame_carries_kind():
    frame = json.loads(encode(error_message("nope", ErrorKind.NOT_FOUND, "src/Foo")))
    assert frame["payload"] == {"message": "nope", "kind": "not_found", "targetId": "src/Foo"}


def test_decode_command():
    msg = decode('{"type": "duplicate_version", "payload": {"version": "v1", "targetId": "x"}}')
    assert msg.type is MessageType.DUPLICATE_VERSION
    assert msg.is_command
    assert msg.payload["version"] == "v1"


def test_decode_null_payload():
    assert decode('{"type": "file_changed", "payload": null}').payload == {}


@pytest.mark.parametrize("raw", ["not json", "[1, 2]", '{"type": "explode"}', '{"payload": {}}'])
def test_decode_rejects_bad_frames(raw):
    with pytest.raises(InvalidInputError):
        decode(raw)


def test_command_builder_validates_type():
    assert command("new_version").payload == {}
    with pytest.raises(ValueError):
        command("launch_rockets")


def test_component_info_accepts_bare_key_lists():
    info = ComponentInfo.model_validate({"targetId": "a/B", "name": "B", "versions": ["v1", "v2"]})
    assert info.version_keys == ["v1", "v2"]
    assert info.versions[0].label is None
