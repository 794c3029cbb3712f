"""
Infrastructure layer: External dependencies and I/O boundaries.

Contains adapters for:
- Workstation backends (annotation server over HTTP, in-memory)
- Configuration loading (YAML, environment)
- Session key-value stores (memory, JSON file)
- Observability (logging, tracing)

This is the only layer that performs I/O operations.
"""

# Most commonly used - exposed at top level for convenience
from infrastructure.backends import WorkstationBackend, make_backend
from infrastructure.config import (
    BackendKind,
    WorkstationConfig,
    load_workstation_config,
)

__all__ = [
    # Backends (most commonly used)
    "make_backend",
    "WorkstationBackend",
    # Configuration (most commonly used)
    "load_workstation_config",
    "WorkstationConfig",
    "BackendKind",
]
