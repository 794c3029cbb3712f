"""Base interface for workstation backends."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from domain.schemas import (
    AIJob,
    AnnotationInput,
    JobStatus,
    RecordPage,
    RecordStatus,
    Sentence,
    SubmissionRequest,
    SubmissionResult,
    Taxonomy,
    TaxonomyNode,
)
from infrastructure.config.models import BackendKind, WorkstationConfig

logger = logging.getLogger(__name__)


class WorkstationBackend(ABC):
    """
    Abstract base class for the services behind the network boundary.
    Common interface for backend implementations (HTTP server, in-memory).

    Groups the node lookup, annotation submission, AI job lifecycle and
    taxonomy sync-state services the labeling engine consumes. All calls are
    coroutines; implementations raise BackendError on failure.
    """

    kind: BackendKind
    cfg: WorkstationConfig

    def __init__(self, *, cfg: WorkstationConfig) -> None:
        self.cfg = cfg

    def parse_taxonomy(self, raw: dict[str, Any]) -> Taxonomy:
        """Validate a wire taxonomy, filling a missing depth from `labeling.default_max_depth`."""
        return Taxonomy.model_validate(raw, context={"default_max_depth": self.cfg.labeling.default_max_depth})

    # ---- Node lookup ----
    @abstractmethod
    async def list_nodes(
        self,
        taxonomy_key: str,
        level: int,
        parent_code: str | None = None,
    ) -> list[TaxonomyNode]:
        """Ordered nodes at `level` under `parent_code` (None lists every node of the level)."""
        raise NotImplementedError

    @abstractmethod
    async def search_nodes(self, taxonomy_key: str, query: str) -> list[TaxonomyNode]:
        """Ranked matches for `query` across all levels."""
        raise NotImplementedError

    # ---- Taxonomies and sync state ----
    @abstractmethod
    async def list_taxonomies(self, *, active_only: bool = True) -> list[Taxonomy]:
        """Taxonomies in tab order, including their AI sync status."""
        raise NotImplementedError

    # ---- Records and submission ----
    @abstractmethod
    async def get_record(self, record_id: str) -> Sentence:
        raise NotImplementedError

    @abstractmethod
    async def list_records(
        self,
        *,
        status: RecordStatus | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> RecordPage:
        """One page of the record queue in creation order."""
        raise NotImplementedError

    @abstractmethod
    async def submit_annotations(self, record_id: str, request: SubmissionRequest) -> SubmissionResult:
        """Replace the annotations of the request's taxonomy and update status/flag."""
        raise NotImplementedError

    @abstractmethod
    async def bulk_label(
        self,
        record_ids: Sequence[str],
        taxonomy_key: str,
        annotations: Sequence[AnnotationInput],
        *,
        flagged: bool | None = None,
        labeling_started_at: datetime | None = None,
    ) -> int:
        """Apply one label path to many records; returns the number of labelled records."""
        raise NotImplementedError

    # ---- AI job lifecycle ----
    @abstractmethod
    async def create_job(self, taxonomy_key: str, sentence_ids: Sequence[str]) -> str:
        """Start an AI labeling job and return its id."""
        raise NotImplementedError

    @abstractmethod
    async def get_job(self, job_id: str) -> AIJob:
        raise NotImplementedError

    @abstractmethod
    async def list_jobs(self, statuses: Sequence[JobStatus], *, limit: int = 100) -> list[AIJob]:
        raise NotImplementedError

    @abstractmethod
    async def cancel_job(self, job_id: str) -> JobStatus:
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release transport resources (no-op by default)."""
        return None

    async def __aenter__(self) -> "WorkstationBackend":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
