"""
Application Layer
=================

Signaling dispatch, the peer session state machine and the media relay.
"""
