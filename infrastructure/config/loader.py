"""Configuration loading from YAML files and the environment."""

import os
from pathlib import Path
from typing import Any

import yaml

from infrastructure.config.models import (
    ApiConfig,
    BackendKind,
    LabelingConfig,
    PollingConfig,
    SearchConfig,
    StoreConfig,
    WorkstationConfig,
)
from infrastructure.constants import ENV_API_KEY, ENV_API_URL


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML file and return as dict."""
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict):
        raise ValueError(f"Expected YAML dict in {path}, got {type(data)}")

    return data


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    block = data.get(key) or {}
    if not isinstance(block, dict):
        raise ValueError(f"'{key}' must be a mapping")
    return block


def load_fixtures(path: Path) -> dict[str, Any]:
    """
    Load in-memory backend fixtures (taxonomies, nodes, records, job scripts).

    This function handles file I/O only; the backend validates the content.
    """
    return _load_yaml(path)


def load_workstation_config(
    path: Path | None = None,
    *,
    env: dict[str, str] | None = None,
    backend: BackendKind | None = None,
) -> WorkstationConfig:
    """
    Load workstation.yaml (optional) and apply environment overrides.

    Args:
        path: YAML file; None means defaults only
        env: Environment mapping (defaults to os.environ, after .env has been loaded)
        backend: Forces the backend kind (e.g. --memory on the CLI)

    Returns:
        Validated WorkstationConfig

    Raises:
        FileNotFoundError: If path is given but missing
        ValueError: If a section has the wrong type or validation fails
    """
    data = _load_yaml(path) if path is not None else {}
    env = dict(os.environ) if env is None else env

    if backend is None:
        backend = BackendKind(str(data.get("backend", BackendKind.HTTP.value)).strip().lower())

    api = ApiConfig(**_section(data, "api"))
    if env.get(ENV_API_URL):
        api.base_url = env[ENV_API_URL].rstrip("/")
    if env.get(ENV_API_KEY):
        api.api_key = env[ENV_API_KEY]

    store = StoreConfig(**_section(data, "store"))
    fixtures = data.get("memory_fixtures")

    return WorkstationConfig(
        backend=backend,
        api=api,
        polling=PollingConfig(**_section(data, "polling")),
        search=SearchConfig(**_section(data, "search")),
        labeling=LabelingConfig(**_section(data, "labeling")),
        store=store,
        memory_fixtures=Path(fixtures) if fixtures else None,
    )
