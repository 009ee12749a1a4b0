# Standard library imports
import os
from typing import Final, List, Optional
from dotenv import load_dotenv

from drone_relay.core.exceptions import ConfigError


_SCHEMES = ("ws", "wss")


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings:
    """
    Drone settings loaded from environment variables.

    This class centralizes all configuration for the drone process.
    Values come from the environment (optionally seeded from a .env file);
    HOST and SCHEME have no default and are checked by validate().
    """

    def __init__(self, load_env_file: bool = True) -> None:
        if load_env_file:
            load_dotenv()

        # Signaling server
        self.host: Final[Optional[str]] = os.getenv("HOST") or None
        self.scheme: Final[Optional[str]] = os.getenv("SCHEME") or None
        self.signaling_path: Final[str] = os.getenv("SIGNALING_PATH", "/")
        self.heartbeat_interval_sec: Final[float] = float(
            os.getenv("HEARTBEAT_INTERVAL_SEC", "20")
        )

        # Identity announced on the "match" channel
        self.drone_id: Final[str] = os.getenv("DRONE_ID", "droneId")

        # ICE servers
        self.stun_urls: Final[List[str]] = _split_csv(
            os.getenv("STUN_URLS", "stun:stun.l.google.com:19302")
        )
        self.turn_ip: Final[Optional[str]] = os.getenv("TURN_IP")
        self.turn_port: Final[Optional[str]] = os.getenv("TURN_PORT")
        self.turn_user: Final[Optional[str]] = os.getenv("TURN_USER")
        self.turn_pass: Final[Optional[str]] = os.getenv("TURN_PASS")

        # Local RTP ingestion (ffmpeg/gstreamer push RTP here)
        self.ingest_host: Final[str] = os.getenv("INGEST_HOST", "127.0.0.1")
        self.ingest_port: Final[int] = int(os.getenv("INGEST_PORT", "5004"))
        self.ingest_recv_buffer: Final[int] = int(
            os.getenv("INGEST_RECV_BUFFER", "300000")  # 300KB
        )
        self.max_datagram_size: Final[int] = int(
            os.getenv("MAX_DATAGRAM_SIZE", "1600")  # UDP MTU
        )

        # Session lifecycle
        self.session_create_attempts: Final[int] = int(
            os.getenv("SESSION_CREATE_ATTEMPTS", "5")
        )
        self.session_create_backoff_sec: Final[float] = float(
            os.getenv("SESSION_CREATE_BACKOFF_SEC", "0.5")
        )
        self.relay_max_consecutive_errors: Final[int] = int(
            os.getenv("RELAY_MAX_CONSECUTIVE_ERRORS", "50")
        )

        self.log_level: Final[str] = os.getenv("LOG_LEVEL", "INFO")

    def validate(self) -> None:
        """
        Check the settings the process cannot start without.

        Raises:
            ConfigError: HOST or SCHEME missing, or SCHEME not ws/wss
        """
        if not self.host:
            raise ConfigError("Forgot to set HOST environment variable")
        if not self.scheme:
            raise ConfigError("Forgot to set SCHEME environment variable")
        if self.scheme not in _SCHEMES:
            raise ConfigError(
                "SCHEME must be ws or wss", {"scheme": self.scheme}
            )
        if self.session_create_attempts < 1:
            raise ConfigError(
                "SESSION_CREATE_ATTEMPTS must be at least 1",
                {"attempts": self.session_create_attempts},
            )

    @property
    def signaling_url(self) -> str:
        """Websocket URL of the signaling server."""
        path = self.signaling_path if self.signaling_path.startswith("/") else f"/{self.signaling_path}"
        return f"{self.scheme}://{self.host}{path}"

    def has_turn(self) -> bool:
        return bool(self.turn_ip and self.turn_port and self.turn_user and self.turn_pass)

    def ice_servers(self) -> List[dict]:
        """
        Build the ICE server list handed to every new connection.

        Returns:
            List of {"urls", "username", "credential"} dicts
        """
        servers: List[dict] = [{"urls": url} for url in self.stun_urls]
        if self.has_turn():
            for transport in ("udp", "tcp"):
                servers.append({
                    "urls": f"turn:{self.turn_ip}:{self.turn_port}?transport={transport}",
                    "username": self.turn_user,
                    "credential": self.turn_pass,
                })
        return servers


# Global settings instance (singleton pattern)
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get drone settings (singleton pattern)

    Returns:
        Settings instance with all configuration values
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
