import logging

from infrastructure.config.models import BackendKind

from .base import WorkstationBackend

logger = logging.getLogger(__name__)

# BackendKind -> backend class
_BACKEND_REGISTRY: dict[BackendKind, type[WorkstationBackend]] = {}


def register_backend(kind: BackendKind, backend_cls: type[WorkstationBackend], *, override: bool = False) -> None:
    """Register a backend class for a kind.

    This is the plugin hook: backend modules call this at import time.
    """
    if (kind in _BACKEND_REGISTRY) and not override:
        existing = _BACKEND_REGISTRY[kind]
        raise RuntimeError(
            f"Backend already registered for kind={kind.value}: {existing.__name__}. Use override=True to replace."
        )
    _BACKEND_REGISTRY[kind] = backend_cls
    logger.debug("Registered backend for kind=%s: %s", kind.value, backend_cls.__name__)


def get_backend_class(kind: BackendKind) -> type[WorkstationBackend] | None:
    """Return the registered backend class (or None if not registered yet)."""
    return _BACKEND_REGISTRY.get(kind)
