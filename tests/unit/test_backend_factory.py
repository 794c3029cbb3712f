import asyncio

import pytest

from domain.schemas import Taxonomy
from infrastructure.backends import HttpBackend, InMemoryBackend, make_backend
from infrastructure.backends.registry import get_backend_class, register_backend
from infrastructure.config.models import ApiConfig, BackendKind, LabelingConfig, WorkstationConfig


def test_memory_kind_builds_in_memory_backend(memory_cfg: WorkstationConfig) -> None:
    backend = make_backend(memory_cfg, fixtures={"taxonomies": [{"key": "isco"}]})

    assert isinstance(backend, InMemoryBackend)
    assert [t.key for t in asyncio.run(backend.list_taxonomies())] == ["isco"]


def test_use_memory_overrides_configured_kind() -> None:
    cfg = WorkstationConfig(api=ApiConfig(base_url="http://annotator.test"))

    assert isinstance(make_backend(cfg, use_memory=True), InMemoryBackend)


def test_http_kind_builds_http_backend() -> None:
    cfg = WorkstationConfig(api=ApiConfig(base_url="http://annotator.test/", api_key="k"))

    backend = make_backend(cfg)
    try:
        assert isinstance(backend, HttpBackend)
        assert backend.client.base_url.host == "annotator.test"
        assert backend.client.headers["Authorization"] == "Bearer k"
    finally:
        asyncio.run(backend.aclose())


def test_registry_refuses_silent_replacement() -> None:
    assert get_backend_class(BackendKind.HTTP) is HttpBackend

    with pytest.raises(RuntimeError):
        register_backend(BackendKind.HTTP, InMemoryBackend)

    register_backend(BackendKind.HTTP, HttpBackend, override=True)
    assert get_backend_class(BackendKind.HTTP) is HttpBackend


def test_unconfigured_depth_falls_back_to_the_labeling_default() -> None:
    cfg = WorkstationConfig(backend=BackendKind.MEMORY, labeling=LabelingConfig(default_max_depth=4))
    backend = make_backend(cfg, fixtures={"taxonomies": [{"key": "isco"}, {"key": "topic", "maxDepth": 2}]})

    depths = {t.key: t.max_depth for t in asyncio.run(backend.list_taxonomies())}

    assert depths == {"isco": 4, "topic": 2}
    assert Taxonomy(key="plain").max_depth == 5
