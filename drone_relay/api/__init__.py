"""
Signaling API
=============

Handlers for the channels the signaling server sends to the drone.
"""
from drone_relay.api.signaling_handlers import SignalingController

__all__ = [
    "SignalingController",
]
