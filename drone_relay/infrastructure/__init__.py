"""
Infrastructure Layer
====================

Concrete adapters: websocket signaling, UDP ingestion, aiortc engine.
"""
