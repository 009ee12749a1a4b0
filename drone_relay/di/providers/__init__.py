"""
Providers Package
=================

Dependency injection providers for registering dependencies.
"""
from .ingest_provider import IngestProvider
from .engine_provider import EngineProvider
from .signaling_provider import SignalingProvider
from .session_provider import SessionProvider

__all__ = [
    "IngestProvider",
    "EngineProvider",
    "SignalingProvider",
    "SessionProvider",
]
