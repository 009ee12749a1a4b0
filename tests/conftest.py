import pytest
import websockets

from tests.mocks import MockChannel, MockEngine, SignalingServer


@pytest.fixture
def engine() -> MockEngine:
    return MockEngine()


@pytest.fixture
def channel(engine) -> MockChannel:
    mock = MockChannel()
    mock.events = engine.events
    return mock


@pytest.fixture
async def server():
    signaling = SignalingServer()
    async with websockets.serve(signaling.handler, "127.0.0.1", 0) as ws_server:
        port = ws_server.sockets[0].getsockname()[1]
        signaling.url = f"ws://127.0.0.1:{port}/"
        yield signaling
