from drone_relay.infrastructure.signaling.signaling_channel import SignalingChannel

__all__ = [
    "SignalingChannel",
]
