from __future__ import annotations

import asyncio

import pytest

from forkline_client.controller import WidgetController
from forkline_client.session import ClientSession, ConnectionStatus
from forkline_client.storage import LocalStore, active_version_key
from forkline_core.errors import NotConnectedError
from forkline_core.models import ComponentInfo
from forkline_core.protocol import MessageType, ack_message, encode
from tests.framework import Sandbox, read_file, running_server

FOO = "src/components/Foo.tsx"
FOO_ID = "src/components/Foo"


async def _wait_for(predicate, timeout: float = 5.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


def _free_port() -> int:
    import socket

    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def test_send_while_disconnected_fails_fast():
    async def scenario():
        session = ClientSession(port=1)
        with pytest.raises(NotConnectedError):
            await session.send(MessageType.NEW_VERSION)

    asyncio.run(scenario())


def test_never_connected_is_failed_and_stays_failed():
    async def scenario():
        statuses = []
        session = ClientSession(port=_free_port(), host="127.0.0.1", on_status=statuses.append, reconnect_delay=0.01)
        await session.connect_once()
        await session.connect_once()
        assert session.status is ConnectionStatus.FAILED
        assert statuses == [ConnectionStatus.CONNECTING, ConnectionStatus.FAILED]

    asyncio.run(scenario())


def test_session_receives_snapshot_and_acks(tmp_path):
    async def scenario(sb: Sandbox):
        snapshots, acks, errors = [], [], []
        async with running_server(sb.root) as server:
            session = ClientSession(
                port=server.bound_port,
                host="127.0.0.1",
                target_provider=lambda: FOO_ID,
                on_components=snapshots.append,
                on_ack=acks.append,
                on_error=lambda msg, kind: errors.append((msg, kind.value)),
            )
            session.start()
            await _wait_for(lambda: snapshots)
            assert session.status is ConnectionStatus.CONNECTED
            assert snapshots[0][0].version_keys == ["v1"]

            await session.send(MessageType.NEW_VERSION)
            await _wait_for(lambda: acks and len(snapshots) >= 2)
            assert acks[0].version == "v2"
            assert snapshots[-1][0].version_keys == ["v1", "v2"]

            await session.send(MessageType.DELETE_VERSION, {"version": "v9"})
            await _wait_for(lambda: errors)
            assert errors[0][1] == "not_found"
            await session.close()
        assert session.status is ConnectionStatus.DISCONNECTED

    with Sandbox(tmp_path) as sb:
        sb.versioned(FOO)
        asyncio.run(scenario(sb))


def test_session_reconnects_after_server_restart(tmp_path):
    async def scenario(sb: Sandbox):
        statuses = []
        port = _free_port()
        from forkline_sync.watch import WatchServer

        async def start():
            server = WatchServer(sb.root, host="127.0.0.1", port=port, poll_interval=0.05)
            ready, stop = asyncio.Event(), asyncio.Event()
            task = asyncio.create_task(server.serve(ready=ready, stop=stop))
            await ready.wait()
            return task, stop

        task, stop = await start()
        session = ClientSession(port=port, host="127.0.0.1", on_status=statuses.append, reconnect_delay=0.05)
        session.start()
        await _wait_for(lambda: session.status is ConnectionStatus.CONNECTED)

        stop.set()
        await task
        await _wait_for(lambda: session.status is not ConnectionStatus.CONNECTED)
        # Once connected, drops are "disconnected", never "failed".
        assert ConnectionStatus.FAILED not in statuses

        task, stop = await start()
        await _wait_for(lambda: session.status is ConnectionStatus.CONNECTED)
        await session.close()
        stop.set()
        await task

    with Sandbox(tmp_path) as sb:
        sb.versioned(FOO)
        asyncio.run(scenario(sb))


def test_controller_activates_created_version_and_serializes_mutations(tmp_path):
    async def scenario(sb: Sandbox):
        async with running_server(sb.root) as server:
            store = LocalStore()
            controller = WidgetController(store, port=server.bound_port, host="127.0.0.1")
            controller.registry.register(FOO_ID)
            controller.start()
            await _wait_for(lambda: controller.discovery.has_server_snapshot)
            assert controller.discovery.selected == FOO_ID

            assert await controller.duplicate_version("v1") is True
            assert await controller.new_version() is False  # one mutation at a time
            assert controller.notifications[-1].kind == "info"

            await _wait_for(lambda: not controller.is_mutation_pending)
            await _wait_for(lambda: store.get_json(active_version_key(FOO_ID)) == "v2")
            assert controller.selection().resolved_version == "v2"

            assert await controller.rename_version("v2", "3.1") is True
            await _wait_for(lambda: store.get_json(active_version_key(FOO_ID)) == "v3_1")

            assert await controller.rename_version("v1", "bogus") is False
            assert controller.notifications[-1].kind == "error"

            assert await controller.promote_version("v1") is True
            await _wait_for(lambda: not controller.is_mutation_pending)
            assert controller.discovery.selected == ""
            await controller.close()

    with Sandbox(tmp_path) as sb:
        sb.versioned(FOO)
        asyncio.run(scenario(sb))


def test_controller_offline_notifies():
    async def scenario():
        controller = WidgetController(LocalStore(), port=1)
        assert await controller.new_version() is False
        assert controller.notifications[-1].kind == "error"
        assert not controller.is_mutation_pending

    asyncio.run(scenario())


def _offline_controller() -> WidgetController:
    controller = WidgetController(LocalStore(), port=1)
    controller.registry.register(FOO_ID)
    controller.handle_components([ComponentInfo(target_id=FOO_ID, name="Foo", versions=["v1", "v2"])])
    return controller


def test_relabel_ack_mentioning_promoted_is_not_a_promotion():
    controller = _offline_controller()
    assert controller.discovery.selected == FOO_ID

    frame = ack_message("relabel", "v1", "relabeled v1 as Promoted hero", FOO_ID)
    controller.session._dispatch(encode(frame))
    assert controller.discovery.selected == FOO_ID
    assert controller.notifications[-1].message == "relabeled v1 as Promoted hero"

    controller.session._dispatch(encode(ack_message("promote", "v1", "promoted v1 for Foo", FOO_ID)))
    assert controller.discovery.selected == ""
    assert controller.notifications[-1].message == f"Promoted {FOO_ID}"


def test_rename_onto_existing_version_is_rejected_end_to_end(tmp_path):
    async def scenario(sb: Sandbox):
        v1 = sb.path("src/components/Foo.v1.tsx")
        v2 = sb.path("src/components/Foo.v2.tsx")
        before = (read_file(v1), read_file(v2))
        errors = []
        async with running_server(sb.root) as server:
            controller = WidgetController(LocalStore(), port=server.bound_port, host="127.0.0.1")
            controller.registry.register(FOO_ID)
            controller.start()
            await _wait_for(lambda: controller.discovery.has_server_snapshot)

            # Refused locally against the known version list.
            assert await controller.rename_version("v1", "2") is False
            assert controller.notifications[-1].message == "Version v2 already exists"
            assert not controller.is_mutation_pending
            await controller.close()

            # Sent anyway, the server answers with a conflict.
            session = ClientSession(
                port=server.bound_port,
                host="127.0.0.1",
                target_provider=lambda: FOO_ID,
                on_error=lambda msg, kind: errors.append(kind.value),
            )
            session.start()
            await _wait_for(lambda: session.status is ConnectionStatus.CONNECTED)
            await session.send(MessageType.RENAME_VERSION, {"version": "v1", "newVersion": "v2"})
            await _wait_for(lambda: errors)
            await session.close()

        assert errors == ["conflict"]
        assert (read_file(v1), read_file(v2)) == before

    with Sandbox(tmp_path) as sb:
        sb.versioned(FOO, extra_versions=("v2",))
        asyncio.run(scenario(sb))
