"""
Domain Layer
============

Core models of the drone relay and the abstract contract of the
connectivity engine. This layer has no dependency on aiortc or websockets.

Contains:
- Models: envelope, per-channel payloads, session
- Engine: abstract connectivity capability interface
"""
