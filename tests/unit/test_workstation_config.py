from pathlib import Path

import pytest

from infrastructure.config import BackendKind, load_workstation_config
from infrastructure.config.models import LabelingConfig, PollingConfig, WorkstationConfig


def test_http_backend_requires_base_url() -> None:
    with pytest.raises(ValueError):
        WorkstationConfig(backend=BackendKind.HTTP)


def test_memory_backend_needs_no_api() -> None:
    cfg = WorkstationConfig(backend=BackendKind.MEMORY)

    assert cfg.polling.job_status_max_attempts == 200
    assert cfg.polling.job_status_interval_s == 3.0
    assert cfg.search.debounce_s == 0.3


def test_polling_budget_must_allow_one_attempt() -> None:
    with pytest.raises(ValueError):
        WorkstationConfig(backend=BackendKind.MEMORY, polling=PollingConfig(job_status_max_attempts=0))


def test_default_max_depth_must_be_positive() -> None:
    with pytest.raises(ValueError):
        WorkstationConfig(backend=BackendKind.MEMORY, labeling=LabelingConfig(default_max_depth=0))


def test_yaml_sections_and_env_overrides(tmp_path: Path) -> None:
    path = tmp_path / "workstation.yaml"
    path.write_text(
        "backend: http\n"
        "api:\n"
        "  base_url: http://yaml-host\n"
        "polling:\n"
        "  job_status_max_attempts: 7\n"
        "store:\n"
        "  path: state/store.json\n",
        encoding="utf-8",
    )

    cfg = load_workstation_config(
        path,
        env={"AI_LABELING_API_URL": "http://env-host/", "AI_LABELING_API_KEY": "secret"},
    )

    assert cfg.api.base_url == "http://env-host"
    assert cfg.api.api_key == "secret"
    assert cfg.polling.job_status_max_attempts == 7
    assert cfg.store.path == Path("state/store.json")


def test_backend_override_skips_api_requirement(tmp_path: Path) -> None:
    path = tmp_path / "workstation.yaml"
    path.write_text("backend: http\n", encoding="utf-8")

    cfg = load_workstation_config(path, env={}, backend=BackendKind.MEMORY)

    assert cfg.backend is BackendKind.MEMORY


def test_missing_file_and_bad_sections(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_workstation_config(tmp_path / "missing.yaml", env={})

    path = tmp_path / "workstation.yaml"
    path.write_text("backend: memory\npolling: 5\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_workstation_config(path, env={})
