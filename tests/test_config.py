import pytest

from drone_relay.core.config import Settings
from drone_relay.core.exceptions import ConfigError

_ENV_KEYS = (
    "HOST", "SCHEME", "SIGNALING_PATH", "DRONE_ID", "STUN_URLS",
    "TURN_IP", "TURN_PORT", "TURN_USER", "TURN_PASS",
    "INGEST_HOST", "INGEST_PORT", "INGEST_RECV_BUFFER",
    "SESSION_CREATE_ATTEMPTS", "HEARTBEAT_INTERVAL_SEC",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


def test_defaults():
    settings = Settings(load_env_file=False)

    assert settings.drone_id == "droneId"
    assert settings.ingest_host == "127.0.0.1"
    assert settings.ingest_port == 5004
    assert settings.ingest_recv_buffer == 300000
    assert settings.heartbeat_interval_sec == 20
    assert settings.session_create_attempts == 5


def test_missing_host_is_fatal(clean_env):
    clean_env.setenv("SCHEME", "wss")
    with pytest.raises(ConfigError, match="HOST"):
        Settings(load_env_file=False).validate()


def test_missing_scheme_is_fatal(clean_env):
    clean_env.setenv("HOST", "signal.example.com")
    with pytest.raises(ConfigError, match="SCHEME"):
        Settings(load_env_file=False).validate()


def test_scheme_must_be_websocket(clean_env):
    clean_env.setenv("HOST", "signal.example.com")
    clean_env.setenv("SCHEME", "https")
    with pytest.raises(ConfigError):
        Settings(load_env_file=False).validate()


def test_signaling_url(clean_env):
    clean_env.setenv("HOST", "signal.example.com:8443")
    clean_env.setenv("SCHEME", "wss")
    clean_env.setenv("SIGNALING_PATH", "ws")
    settings = Settings(load_env_file=False)

    settings.validate()
    assert settings.signaling_url == "wss://signal.example.com:8443/ws"


def test_ice_servers_without_turn(clean_env):
    clean_env.setenv("STUN_URLS", "stun:a.example:3478, stun:b.example:3478")
    settings = Settings(load_env_file=False)

    assert not settings.has_turn()
    assert settings.ice_servers() == [
        {"urls": "stun:a.example:3478"},
        {"urls": "stun:b.example:3478"},
    ]


def test_ice_servers_with_turn(clean_env):
    clean_env.setenv("STUN_URLS", "stun:a.example:3478")
    clean_env.setenv("TURN_IP", "10.0.0.1")
    clean_env.setenv("TURN_PORT", "3478")
    clean_env.setenv("TURN_USER", "drone")
    clean_env.setenv("TURN_PASS", "secret")
    servers = Settings(load_env_file=False).ice_servers()

    assert servers[1:] == [
        {"urls": "turn:10.0.0.1:3478?transport=udp", "username": "drone", "credential": "secret"},
        {"urls": "turn:10.0.0.1:3478?transport=tcp", "username": "drone", "credential": "secret"},
    ]


def test_partial_turn_settings_are_ignored(clean_env):
    clean_env.setenv("TURN_IP", "10.0.0.1")
    assert not Settings(load_env_file=False).has_turn()


def test_attempts_must_be_positive(clean_env):
    clean_env.setenv("HOST", "h")
    clean_env.setenv("SCHEME", "ws")
    clean_env.setenv("SESSION_CREATE_ATTEMPTS", "0")
    with pytest.raises(ConfigError):
        Settings(load_env_file=False).validate()
