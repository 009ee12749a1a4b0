"""
Connectivity Engine Interface
=============================

Abstract capability surface the session manager drives.
Session descriptions and candidates are passed as payload models and are
otherwise opaque to the drone.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List

from drone_relay.domain.models.payloads import CandidatePayload, SessionDescriptionPayload


class ConnectivityState(str, Enum):
    """Connectivity states reported by the engine."""
    NEW = "new"
    CHECKING = "checking"
    CONNECTED = "connected"
    COMPLETED = "completed"
    DISCONNECTED = "disconnected"
    FAILED = "failed"
    CLOSED = "closed"


StateCallback = Callable[[ConnectivityState], None]
CandidateCallback = Callable[[CandidatePayload], None]


@dataclass(frozen=True)
class CodecDescriptor:
    """Codec of the outbound media track."""
    mime_type: str = "video/VP8"
    clock_rate: int = 90000
    track_id: str = "video"
    stream_id: str = "drone"

    @property
    def kind(self) -> str:
        return self.mime_type.split("/", 1)[0]


@dataclass(frozen=True)
class EngineConfig:
    """Configuration for one connection capability."""
    ice_servers: List[dict] = field(default_factory=list)


class LocalTrack(ABC):
    """Outbound media track fed with raw media transport units."""

    @property
    @abstractmethod
    def id(self) -> str:
        pass

    @abstractmethod
    def write(self, data: bytes) -> None:
        """
        Forward one datagram into the track.

        Raises:
            TrackClosedError: The track has ended
            RelayError: The datagram could not be accepted
        """
        pass

    @abstractmethod
    def stop(self) -> None:
        pass


class PeerConnectionHandle(ABC):
    """
    One connection capability.

    Callbacks may be invoked from the engine's own concurrency; callers must
    not assume they run on any particular task or thread.
    """

    @abstractmethod
    async def add_track(self, track: LocalTrack) -> None:
        pass

    @abstractmethod
    async def create_offer(self, ice_restart: bool = False) -> SessionDescriptionPayload:
        pass

    @abstractmethod
    async def set_local_description(self, description: SessionDescriptionPayload) -> None:
        pass

    @abstractmethod
    async def set_remote_description(self, description: SessionDescriptionPayload) -> None:
        pass

    @abstractmethod
    async def add_remote_candidate(self, candidate: CandidatePayload) -> None:
        pass

    @abstractmethod
    def on_connectivity_state_changed(self, callback: StateCallback) -> None:
        pass

    @abstractmethod
    def on_candidate_discovered(self, callback: CandidateCallback) -> None:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


class ConnectivityEngine(ABC):
    """Factory for connection capabilities and local tracks."""

    @abstractmethod
    def create_connection(self, config: EngineConfig) -> PeerConnectionHandle:
        """
        Create a new connection capability.

        Raises:
            EngineError: The engine could not build the connection
        """
        pass

    @abstractmethod
    def create_local_track(self, codec: CodecDescriptor) -> LocalTrack:
        """
        Create an outbound track for the given codec.

        Raises:
            EngineError: The codec is not supported
        """
        pass
