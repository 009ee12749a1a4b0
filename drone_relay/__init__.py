"""
Drone Relay
===========

Relays a local RTP stream to one remote viewer over a WebRTC session
negotiated through a websocket signaling server.
"""

__version__ = "1.0.0"
