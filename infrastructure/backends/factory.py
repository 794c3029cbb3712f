"""Factory for creating workstation backends."""

import importlib
import logging
from typing import Any

from infrastructure.config.models import BackendKind, WorkstationConfig

from .base import WorkstationBackend
from .memory import InMemoryBackend
from .registry import get_backend_class

logger = logging.getLogger(__name__)


def _ensure_backend_imported(kind: BackendKind) -> None:
    """
    Lazy-import the backend module to trigger `register_backend(...)`.

    Convention:
      - BackendKind value MUST match module filename under infrastructure/backends/
        e.g., BackendKind.HTTP.value == "http" -> infrastructure/backends/http.py
    """
    module_name = f"{__package__}.{kind.value}"
    try:
        importlib.import_module(module_name)
    except ModuleNotFoundError as e:
        if getattr(e, "name", None) == module_name:
            raise RuntimeError(
                f"No backend module found for backend='{kind.value}'. "
                f"Expected file: infrastructure/backends/{kind.value}.py"
            ) from e
        raise


def make_backend(
    cfg: WorkstationConfig,
    *,
    use_memory: bool = False,
    fixtures: dict[str, Any] | None = None,
) -> WorkstationBackend:
    """
    Factory function to create the configured backend.
    Args:
        cfg: Workstation configuration containing backend settings
        use_memory: If True, use the InMemoryBackend regardless of cfg
        fixtures: Optional fixtures for the InMemoryBackend
    Returns:
        An instance of WorkstationBackend for the configured kind.
    Raises:
        RuntimeError: If the backend kind is unsupported.
    """
    if use_memory or cfg.backend is BackendKind.MEMORY:
        return InMemoryBackend(cfg=cfg, fixtures=fixtures)

    # 1) Try registry first (maybe already imported elsewhere)
    backend_cls = get_backend_class(cfg.backend)

    # 2) If not registered yet, import the backend module by convention, then retry
    if backend_cls is None:
        _ensure_backend_imported(cfg.backend)
        backend_cls = get_backend_class(cfg.backend)

    if backend_cls is None:
        raise RuntimeError(
            f"Backend '{cfg.backend.value}' did not register a class. "
            f"Make sure {cfg.backend.value}.py calls register_backend(...)."
        )

    # Standard constructor path
    return backend_cls.from_cfg(cfg)  # type: ignore[attr-defined]
