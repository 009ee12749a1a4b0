"""
aiortc Connectivity Engine
==========================

aiortc-backed implementation of the connectivity engine interface and the
RTP relay track it streams from.
"""
from drone_relay.infrastructure.webrtc.aiortc_engine import AiortcEngine, AiortcPeerConnection
from drone_relay.infrastructure.webrtc.rtp_relay_track import RtpFrameAssembler, RtpRelayTrack

__all__ = [
    "AiortcEngine",
    "AiortcPeerConnection",
    "RtpFrameAssembler",
    "RtpRelayTrack",
]
