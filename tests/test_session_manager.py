import asyncio
import json
import threading

import pytest

from drone_relay.application.services.media_relay import MediaRelay
from drone_relay.application.services.session_manager import PeerSessionManager
from drone_relay.core.exceptions import EngineError, ProtocolDecodeError
from drone_relay.domain.engine.connectivity_engine import ConnectivityState
from drone_relay.domain.models.payloads import CandidatePayload
from drone_relay.domain.models.session import SessionState
from drone_relay.infrastructure.ingest.udp_endpoint import IngestionEndpoint
from tests.mocks import wait_for

ANSWER = '{"type":"answer","sdp":"v=0\\r\\no=- 1 1 IN IP4 0.0.0.0\\r\\n"}'
CANDIDATE = '{"candidate":"candidate:1 1 udp 2122260223 10.0.0.2 54321 typ host","sdpMid":"0","sdpMLineIndex":0}'


@pytest.fixture
def relay():
    return MediaRelay(IngestionEndpoint(), max_consecutive_errors=3, poll_interval=0.01)


@pytest.fixture
async def manager(engine, channel, relay):
    session_manager = PeerSessionManager(
        engine,
        channel,
        relay,
        drone_id="droneId",
        ice_servers=[{"urls": "stun:stun.example.org:3478"}],
        create_attempts=3,
        create_backoff=0.001,
    )
    yield session_manager
    await session_manager.stop()


async def test_start_creates_and_announces_session(manager, engine, channel):
    session = await manager.start()

    assert manager.state == SessionState.ACTIVE
    assert manager.current_session is session
    assert manager.generation == 1
    assert engine.configs[0].ice_servers == [{"urls": "stun:stun.example.org:3478"}]
    assert engine.last.tracks == [session.track]
    assert [json.loads(p) for p in channel.payloads("match")] == [{"type": "drone", "id": "droneId"}]
    assert session.relay_task is not None and not session.relay_task.done()


async def test_offer_is_sent_before_it_is_committed(manager, engine, channel):
    await manager.start()
    assert await manager.request_offer()

    descriptions = channel.payloads("description")
    assert len(descriptions) == 1
    assert json.loads(descriptions[0])["type"] == "offer"

    events = engine.events
    assert events.index("pc1:create_offer") < events.index("emit:description") < events.index("pc1:set_local")
    assert engine.last.local[0].sdp == json.loads(descriptions[0])["sdp"]


async def test_remote_answer_is_applied(manager, engine):
    await manager.start()
    await manager.request_offer()

    assert await manager.handle_remote_description(ANSWER)
    assert engine.last.remote[0].type == "answer"


async def test_malformed_remote_description_does_not_reset(manager):
    await manager.start()
    with pytest.raises(ProtocolDecodeError):
        await manager.handle_remote_description('{"type":"answer"')
    assert manager.generation == 1


async def test_rejected_remote_description_resets(manager, engine):
    await manager.start()
    engine.last.fail_on.add("set_remote")

    assert not await manager.handle_remote_description(ANSWER)
    assert manager.generation == 2
    assert engine.connections[0].closed


async def test_remote_candidate_is_added(manager, engine):
    await manager.start()
    await manager.handle_remote_candidate(CANDIDATE)

    candidate = engine.last.candidates[0]
    assert candidate.sdp_mid == "0"
    assert candidate.sdp_mline_index == 0


async def test_rejected_candidate_raises_without_reset(manager, engine):
    await manager.start()
    engine.last.fail_on.add("add_candidate")

    with pytest.raises(EngineError):
        await manager.handle_remote_candidate(CANDIDATE)
    assert manager.generation == 1
    assert manager.reset_count == 0


async def test_offer_creation_failure_resets_without_sending(manager, engine, channel):
    engine.fail_next_on = {"create_offer"}
    await manager.start()

    assert not await manager.request_offer()
    assert channel.payloads("description") == []
    assert "pc1:set_local" not in engine.events
    assert manager.generation == 2
    assert len(channel.payloads("match")) == 2


async def test_offer_send_failure_never_commits_local_description(manager, engine, channel):
    await manager.start()
    channel.fail_tags.add("description")

    assert not await manager.request_offer()
    assert "pc1:set_local" not in engine.events
    assert engine.connections[0].closed
    assert manager.generation == 2


async def test_commit_failure_resets(manager, engine):
    engine.fail_next_on = {"set_local"}
    await manager.start()

    assert not await manager.request_offer()
    assert manager.generation == 2


async def test_reset_closes_old_session_before_building_new_one(manager, engine, channel):
    old = await manager.start()
    new = await manager.reset("remote disconnect")

    assert new is manager.current_session
    assert new is not old
    assert old.closed and old.cancelled
    assert old.relay_task.done()
    assert new.relay_task is not None and not new.relay_task.done()

    events = engine.events
    assert events.index("track1:track_stop") < events.index("pc1:close") < events.index("pc2:add_track")
    assert manager.generation == 2
    assert manager.reset_count == 1
    assert len(channel.payloads("match")) == 2


async def test_failed_state_resets_once_and_duplicates_are_stale(manager, engine):
    await manager.start()
    first = engine.last

    first.fire_state(ConnectivityState.FAILED)
    first.fire_state(ConnectivityState.FAILED)

    await wait_for(lambda: manager.generation == 2 and manager.state == SessionState.ACTIVE)
    await asyncio.sleep(0.05)
    assert manager.generation == 2
    assert manager.reset_count == 1
    assert first.closed


async def test_late_callback_from_retired_session_is_ignored(manager, engine, channel):
    await manager.start()
    first = engine.last
    await manager.reset("test")

    first.fire_state(ConnectivityState.FAILED)
    first.fire_candidate(CandidatePayload(candidate="candidate:9 1 udp 1 10.0.0.9 9 typ host"))
    await asyncio.sleep(0.05)

    assert manager.generation == 2
    assert channel.payloads("iceCandidate") == []


async def test_state_change_from_another_thread_is_marshalled(manager, engine):
    await manager.start()
    first = engine.last

    thread = threading.Thread(target=first.fire_state, args=(ConnectivityState.FAILED,))
    thread.start()
    thread.join()

    await wait_for(lambda: manager.generation == 2)


async def test_disconnected_state_requests_ice_restart(manager, engine, channel):
    await manager.start()
    engine.last.fire_state(ConnectivityState.DISCONNECTED)

    await wait_for(lambda: "pc1:set_local" in engine.events)
    assert "pc1:create_offer_restart" in engine.events
    assert len(channel.payloads("description")) == 1
    assert manager.generation == 1


async def test_unsupported_ice_restart_falls_back_to_reset(manager, engine):
    engine.fail_next_on = {"create_offer_restart"}
    await manager.start()
    engine.last.fire_state(ConnectivityState.DISCONNECTED)

    await wait_for(lambda: manager.generation == 2)


async def test_connected_state_changes_nothing(manager, engine):
    await manager.start()
    engine.last.fire_state(ConnectivityState.CONNECTED)
    await asyncio.sleep(0.02)
    assert manager.generation == 1


async def test_local_candidates_are_emitted(manager, engine, channel):
    await manager.start()
    engine.last.fire_candidate(CandidatePayload(candidate="candidate:1 1 udp 1 10.0.0.2 5000 typ host", sdp_mid="0"))

    await wait_for(lambda: channel.payloads("iceCandidate"))
    assert json.loads(channel.payloads("iceCandidate")[0]) == {
        "candidate": "candidate:1 1 udp 1 10.0.0.2 5000 typ host",
        "sdpMid": "0",
    }


async def test_relay_read_failures_escalate_to_reset(manager, engine, relay):
    await manager.start()
    for _ in range(3):
        relay.endpoint._push(OSError("socket error"))

    await wait_for(lambda: manager.generation == 2)
    assert engine.connections[0].closed


async def test_creation_retries_with_backoff(manager, engine):
    engine.create_failures = 2
    await manager.start()

    assert engine.events.count("create_connection_failed") == 2
    assert manager.state == SessionState.ACTIVE
    assert manager.generation == 1


async def test_half_built_connection_is_closed_on_failure(manager, engine):
    engine.fail_next_on = {"add_track"}
    await manager.start()

    assert engine.connections[0].closed
    assert manager.current_session.connection is engine.connections[1]


async def test_start_fails_when_retries_are_exhausted(manager, engine):
    engine.create_failures = 3

    with pytest.raises(EngineError):
        await manager.start()
    assert manager.state == SessionState.CLOSED
    assert not manager.is_running


async def test_stop_closes_session_and_rejects_new_work(manager, engine):
    session = await manager.start()
    await manager.stop()
    await manager.stop()

    assert session.closed
    assert engine.connections[0].closed
    assert engine.tracks[0].stopped
    assert manager.state == SessionState.CLOSED
    with pytest.raises(EngineError):
        await manager.request_offer()


async def test_commands_wait_for_the_initial_session(manager, engine, channel):
    engine.delay_next = {"add_track": 0.05}
    starting = asyncio.create_task(manager.start())
    await asyncio.sleep(0.01)

    assert await manager.request_offer()
    session = await starting

    assert [connection.name for connection in engine.connections] == ["pc1"]
    assert manager.current_session is session
    assert manager.generation == 1
    assert len(channel.payloads("description")) == 1


async def test_stop_during_reset_closes_the_retiring_session(manager, engine):
    await manager.start()
    engine.last.delays["close"] = 0.1
    resetting = asyncio.create_task(manager.reset("slow teardown"))
    await wait_for(lambda: "track1:track_stop" in engine.events)

    await manager.stop()

    assert engine.connections[0].closed
    assert len(engine.connections) == 1
    with pytest.raises(EngineError):
        await resetting


async def test_stop_during_first_creation_closes_half_built_connection(manager, engine):
    engine.delay_next = {"add_track": 0.2}
    starting = asyncio.create_task(manager.start())
    await wait_for(lambda: engine.connections)

    await manager.stop()

    with pytest.raises(EngineError):
        await starting
    assert engine.connections[0].closed
    assert manager.current_session is None
