"""
Workstation backends.

Implements the services behind the network boundary:
- HTTP (annotation server REST routes, httpx)
- In-memory (fixture-driven, for tests and offline runs)

All backends implement the WorkstationBackend interface.
"""

from infrastructure.backends.base import WorkstationBackend
from infrastructure.backends.factory import make_backend
from infrastructure.backends.http import HttpBackend
from infrastructure.backends.memory import InMemoryBackend

__all__ = [
    # Abstract base
    "WorkstationBackend",
    # Concrete implementations
    "HttpBackend",
    "InMemoryBackend",
    # Factory (most commonly used)
    "make_backend",
]
