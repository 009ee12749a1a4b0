import asyncio
import socket

import pytest

from drone_relay.application.dispatch_registry import DispatchRegistry
from drone_relay.core.exceptions import ConnectError, SendError
from drone_relay.domain.models.envelope import Tag
from drone_relay.infrastructure.signaling.signaling_channel import SignalingChannel
from tests.mocks import wait_for


@pytest.fixture
async def connected(server):
    registry = DispatchRegistry()
    channel = SignalingChannel(server.url, registry, heartbeat_interval=60)
    await channel.connect()
    await wait_for(lambda: server.clients)
    yield channel, registry
    await channel.close()


def _unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


async def test_emit_writes_envelope(server, connected):
    channel, _ = connected
    await channel.emit(Tag.MATCH, '{"type":"drone","id":"droneId"}')

    await wait_for(lambda: server.received)
    assert server.received == [{"channel": "match", "data": '{"type":"drone","id":"droneId"}'}]


async def test_concurrent_emits_arrive_as_whole_frames(server, connected):
    channel, _ = connected
    await asyncio.gather(*(channel.emit("msg", f"frame-{i}" * 100) for i in range(50)))

    await wait_for(lambda: len(server.received) == 50)
    assert sorted(frame["data"] for frame in server.received) == sorted(f"frame-{i}" * 100 for i in range(50))


async def test_inbound_frames_are_dispatched_in_order(server, connected):
    _, registry = connected
    received = []
    registry.register("msg", received.append)

    client = server.clients[0]
    await client.send('{"channel":"msg","data":"one"}')
    await client.send('{"channel":"description"')
    await client.send('{"channel":"msg","data":"two"}')

    await wait_for(lambda: len(received) == 2)
    assert received == ["one", "two"]


async def test_handler_failure_does_not_stop_read_loop(server, connected):
    channel, registry = connected
    received = []

    def broken(payload):
        raise RuntimeError("handler exploded")

    registry.register("begin", broken)
    registry.register("msg", received.append)

    client = server.clients[0]
    await client.send('{"channel":"begin","data":""}')
    await client.send('{"channel":"msg","data":"after"}')

    await wait_for(lambda: received)
    assert channel.is_connected


async def test_heartbeat_sends_clients_online(server):
    channel = SignalingChannel(server.url, DispatchRegistry(), heartbeat_interval=0.05)
    await channel.connect()
    try:
        await wait_for(lambda: len(server.channels("clientsOnline")) >= 2)
        assert all(frame["data"] == "" for frame in server.channels("clientsOnline"))
    finally:
        await channel.close()


async def test_connect_failure_raises_connect_error():
    channel = SignalingChannel(f"ws://127.0.0.1:{_unused_port()}/", DispatchRegistry())
    with pytest.raises(ConnectError):
        await channel.connect()
    assert not channel.is_connected


async def test_server_close_ends_read_loop(server, connected):
    channel, _ = connected
    await server.clients[0].close()

    await asyncio.wait_for(channel.wait_closed(), timeout=2)
    assert not channel.is_connected
    with pytest.raises(SendError):
        await channel.emit("msg", "too late")


async def test_close_is_idempotent_and_blocks_emit(connected):
    channel, _ = connected
    await channel.close()
    await channel.close()

    assert not channel.is_connected
    with pytest.raises(SendError):
        await channel.emit(Tag.CLIENTS_ONLINE)
