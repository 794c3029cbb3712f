"""Configuration models (Pydantic classes)."""

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, model_validator


class BackendKind(str, Enum):
    """Supported workstation backends."""

    HTTP = "http"
    MEMORY = "memory"


class ApiConfig(BaseModel):
    """Connection settings for the annotation server."""

    base_url: str | None = None
    api_key: str | None = None
    timeout_s: float = 30.0


class PollingConfig(BaseModel):
    """
    Intervals and budgets of the polling loops.

    Defaults give ~10 minutes per AI job (200 attempts at 3 s).
    """

    job_status_interval_s: float = 3.0
    job_status_max_attempts: int = 200
    active_jobs_interval_s: float = 5.0
    active_jobs_limit: int = 100
    queue_refresh_interval_s: float = 30.0


class SearchConfig(BaseModel):
    """Search-as-you-type settings."""

    debounce_s: float = 0.3


class LabelingConfig(BaseModel):
    """Labeling defaults."""

    default_max_depth: int = 5
    user_id: str | None = None


class StoreConfig(BaseModel):
    """Session key-value store. No path means in-memory (nothing shared across processes)."""

    path: Path | None = None


class WorkstationConfig(BaseModel):
    """
    Runtime configuration.
    - Loaded from workstation.yaml
    - Overridden by environment variables (AI_LABELING_API_URL, AI_LABELING_API_KEY)
    - Consumed by the backend factory, the orchestrator and the labeling session
    """

    backend: BackendKind = Field(default=BackendKind.HTTP, description="Backend implementation to use.")
    api: ApiConfig = Field(default_factory=ApiConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    labeling: LabelingConfig = Field(default_factory=LabelingConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)

    memory_fixtures: Path | None = Field(
        default=None,
        description="YAML fixtures (taxonomies, nodes, records) for the in-memory backend.",
    )

    @model_validator(mode="after")
    def _validate(self) -> "WorkstationConfig":
        if self.backend is BackendKind.HTTP and not (self.api.base_url or "").strip():
            raise ValueError("api.base_url is required when backend=http (or set AI_LABELING_API_URL)")

        if self.polling.job_status_max_attempts < 1:
            raise ValueError("polling.job_status_max_attempts must be >= 1")
        for name in ("job_status_interval_s", "active_jobs_interval_s", "queue_refresh_interval_s"):
            if getattr(self.polling, name) < 0:
                raise ValueError(f"polling.{name} must be >= 0")

        if self.labeling.default_max_depth < 1:
            raise ValueError("labeling.default_max_depth must be >= 1")

        return self
