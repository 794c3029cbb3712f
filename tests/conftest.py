import os

# Keep opik from trying to reach a tracking server while tests run
os.environ.setdefault("OPIK_TRACK_DISABLE", "true")

import pytest  # noqa: E402

from builders import isco_fixtures  # noqa: E402
from domain.schemas import Taxonomy  # noqa: E402
from infrastructure.backends.memory import InMemoryBackend  # noqa: E402
from infrastructure.config.models import BackendKind, PollingConfig, SearchConfig, WorkstationConfig  # noqa: E402


@pytest.fixture
def memory_cfg() -> WorkstationConfig:
    return WorkstationConfig(
        backend=BackendKind.MEMORY,
        polling=PollingConfig(job_status_interval_s=0, job_status_max_attempts=5, active_jobs_interval_s=0),
        search=SearchConfig(debounce_s=0),
    )


@pytest.fixture
def backend(memory_cfg: WorkstationConfig) -> InMemoryBackend:
    return InMemoryBackend(cfg=memory_cfg, fixtures=isco_fixtures())


@pytest.fixture
def isco() -> Taxonomy:
    return Taxonomy(key="isco", max_depth=3, level_names={"1": "Major group"}, last_ai_sync_status="completed")
