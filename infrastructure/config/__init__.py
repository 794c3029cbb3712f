"""
Configuration management: models, loading, and validation.

Handles:
- WorkstationConfig: backend selection, API connection, polling budgets
- Environment variable overrides (AI_LABELING_API_URL / AI_LABELING_API_KEY)
- Fixture loading for the in-memory backend

The loader module performs file I/O; models are pure Pydantic classes.
"""

from infrastructure.config.loader import load_fixtures, load_workstation_config
from infrastructure.config.models import (
    ApiConfig,
    BackendKind,
    LabelingConfig,
    PollingConfig,
    SearchConfig,
    StoreConfig,
    WorkstationConfig,
)

__all__ = [
    # Main config (most commonly used)
    "WorkstationConfig",
    "load_workstation_config",
    # Enums
    "BackendKind",
    # Sections
    "ApiConfig",
    "PollingConfig",
    "SearchConfig",
    "LabelingConfig",
    "StoreConfig",
    # Loaders
    "load_fixtures",
]
