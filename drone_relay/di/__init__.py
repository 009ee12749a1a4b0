"""
Dependency Injection
====================

Container wiring the drone's components together.
"""
from .container import DIContainer

__all__ = [
    "DIContainer",
]
