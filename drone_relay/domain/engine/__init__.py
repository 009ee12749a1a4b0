"""
Connectivity Engine Interface
=============================

Abstract contract for the peer-to-peer engine (ICE, SDP, RTP).
Implementations live in the infrastructure layer.
"""
from drone_relay.domain.engine.connectivity_engine import (
    CandidateCallback,
    CodecDescriptor,
    ConnectivityEngine,
    ConnectivityState,
    EngineConfig,
    LocalTrack,
    PeerConnectionHandle,
    StateCallback,
)

__all__ = [
    "CandidateCallback",
    "CodecDescriptor",
    "ConnectivityEngine",
    "ConnectivityState",
    "EngineConfig",
    "LocalTrack",
    "PeerConnectionHandle",
    "StateCallback",
]
