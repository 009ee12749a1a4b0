"""
Custom exception classes for the drone relay.
"""
from typing import Any, Dict, Optional


class DroneRelayError(Exception):
    """Base exception for the drone relay."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{super().__str__()} - {self.details}"
        return super().__str__()


class ConfigError(DroneRelayError):
    """Raised when required process configuration is missing or invalid."""
    pass


class TransportError(DroneRelayError):
    """Raised when the signaling transport fails to dial, read or write."""
    pass


class ConnectError(TransportError):
    """Raised when the signaling server is unreachable or the handshake fails."""
    pass


class SendError(TransportError):
    """Raised when a frame cannot be written to the signaling transport."""
    pass


class ProtocolDecodeError(DroneRelayError):
    """Raised when an envelope or a tag payload cannot be decoded."""
    pass


class EngineError(DroneRelayError):
    """Raised when the connectivity engine rejects an operation."""
    pass


class RelayError(DroneRelayError):
    """Raised when a datagram cannot be read or forwarded."""
    pass


class TrackClosedError(RelayError):
    """Raised when writing into a track the engine has already closed."""
    pass
