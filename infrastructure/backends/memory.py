"""In-memory backend for tests and offline runs."""

import itertools
import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from domain.errors import BackendError
from domain.schemas import (
    AIJob,
    Annotation,
    AnnotationInput,
    JobStatus,
    LabelSource,
    RecordPage,
    RecordStatus,
    Sentence,
    SubmissionRequest,
    SubmissionResult,
    Taxonomy,
    TaxonomyNode,
)
from domain.taxonomy.unknown import UNKNOWN_LABEL, is_unknown_node_code
from infrastructure.backends.base import WorkstationBackend
from infrastructure.backends.registry import register_backend
from infrastructure.config.models import BackendKind, WorkstationConfig

logger = logging.getLogger(__name__)

DEFAULT_JOB_SCRIPT = ("processing", "completed")


class InMemoryBackend(WorkstationBackend):
    """
    Fixture-driven backend that applies the annotation server's rules in memory.

    - Submissions replace the user annotations of one taxonomy only
    - A taxonomy counts as completed when it has any user annotation
    - AI suggestions are shown for a taxonomy only while it has no user annotations
    - AI jobs follow a scripted status sequence per taxonomy (one step per
      `get_job`); on completion the scripted suggestions are written

    Fixture layout (YAML or dict):

        taxonomies: [{key, displayName, maxDepth, levelNames, isActive, lastAISyncStatus}]
        nodes: {<taxonomy key>: [{code, label, level, parentCode, isLeaf, definition}]}
        records: [{id, fields, status, flagged, annotations: [{taxonomyKey, level, nodeCode, source}]}]
        jobs: {<taxonomy key>: {statuses: [...], fail_create: bool,
                                suggestions: {<record id>: [{level, nodeCode, confidence}]}}}

    Every call is appended to `calls` as (method, *args) for assertions.
    """

    kind = BackendKind.MEMORY

    def __init__(self, *, cfg: WorkstationConfig, fixtures: dict[str, Any] | None = None) -> None:
        super().__init__(cfg=cfg)
        fixtures = fixtures or {}
        self.calls: list[tuple[Any, ...]] = []

        self.taxonomies: list[Taxonomy] = [self.parse_taxonomy(t) for t in fixtures.get("taxonomies") or []]
        self.nodes: dict[str, list[TaxonomyNode]] = {
            key: sorted(
                (TaxonomyNode.model_validate(n) for n in items or []),
                key=lambda n: (n.level, n.code),
            )
            for key, items in (fixtures.get("nodes") or {}).items()
        }

        self.records: dict[str, Sentence] = {}
        self.annotations: dict[tuple[str, str], list[Annotation]] = {}
        self.suggestions: dict[tuple[str, str], list[Annotation]] = {}
        for raw in fixtures.get("records") or []:
            self._add_record(raw)

        self.job_scripts: dict[str, dict[str, Any]] = dict(fixtures.get("jobs") or {})
        self.jobs: dict[str, AIJob] = {}
        self._job_steps: dict[str, list[JobStatus]] = {}
        self._job_ids = itertools.count(1)

        logger.info(
            "Initialized in-memory backend (%d taxonomies, %d records)",
            len(self.taxonomies),
            len(self.records),
        )

    def _add_record(self, raw: dict[str, Any]) -> None:
        record = Sentence.model_validate({k: v for k, v in raw.items() if k != "annotations"})
        self.records[record.id] = record
        for ann in raw.get("annotations") or []:
            annotation = Annotation.model_validate(ann)
            store = self.suggestions if annotation.source is LabelSource.AI else self.annotations
            store.setdefault((record.id, annotation.taxonomy_key), []).append(annotation)

    # ---- helpers ----
    def _record(self, record_id: str) -> Sentence:
        try:
            return self.records[record_id]
        except KeyError as e:
            raise BackendError("Sentence not found", status_code=404) from e

    def _taxonomy(self, taxonomy_key: str) -> Taxonomy:
        for tax in self.taxonomies:
            if tax.key == taxonomy_key:
                return tax
        raise BackendError("Taxonomy not found", status_code=404)

    def _active_keys(self) -> list[str]:
        return [t.key for t in self.taxonomies if t.is_active]

    def _node(self, taxonomy_key: str, code: str) -> TaxonomyNode | None:
        return next((n for n in self.nodes.get(taxonomy_key, []) if n.code == code), None)

    def _enrich(self, ann: Annotation) -> Annotation:
        if is_unknown_node_code(ann.node_code):
            return ann.model_copy(update={"node_label": UNKNOWN_LABEL, "is_leaf": True})
        node = self._node(ann.taxonomy_key, ann.node_code)
        if node is None:
            return ann
        return ann.model_copy(
            update={
                "node_label": node.label,
                "node_definition": node.definition,
                "is_leaf": node.is_leaf,
            }
        )

    def _visible_annotations(self, record_id: str) -> list[Annotation]:
        visible: list[Annotation] = []
        for tax in self.taxonomies:
            user = self.annotations.get((record_id, tax.key)) or []
            shown = user or self.suggestions.get((record_id, tax.key)) or []
            visible.extend(self._enrich(a) for a in sorted(shown, key=lambda a: a.level))
        return visible

    def _completed_keys(self, record_id: str) -> list[str]:
        return [key for key in self._active_keys() if self.annotations.get((record_id, key))]

    def _replace_user_annotations(
        self,
        record_id: str,
        taxonomy_key: str,
        annotations: Sequence[AnnotationInput],
    ) -> None:
        now = datetime.now(timezone.utc)
        self.annotations[(record_id, taxonomy_key)] = [
            Annotation(
                level=a.level,
                node_code=a.node_code,
                taxonomy_key=taxonomy_key,
                source=LabelSource.USER,
                created_by=self.cfg.labeling.user_id,
                created_at=now,
            )
            for a in annotations
        ]

    # ---- Node lookup ----
    async def list_nodes(
        self,
        taxonomy_key: str,
        level: int,
        parent_code: str | None = None,
    ) -> list[TaxonomyNode]:
        self.calls.append(("list_nodes", taxonomy_key, level, parent_code))
        self._taxonomy(taxonomy_key)
        return [
            n
            for n in self.nodes.get(taxonomy_key, [])
            if n.level == level and (parent_code is None or n.parent_code == parent_code)
        ]

    async def search_nodes(self, taxonomy_key: str, query: str) -> list[TaxonomyNode]:
        self.calls.append(("search_nodes", taxonomy_key, query))
        self._taxonomy(taxonomy_key)
        q = query.strip().lower()
        if not q:
            return []
        return [
            n
            for n in self.nodes.get(taxonomy_key, [])
            if n.code.lower().startswith(q) or q in n.label.lower()
        ]

    # ---- Taxonomies and sync state ----
    async def list_taxonomies(self, *, active_only: bool = True) -> list[Taxonomy]:
        self.calls.append(("list_taxonomies", active_only))
        return [t.model_copy() for t in self.taxonomies if t.is_active or not active_only]

    # ---- Records and submission ----
    async def get_record(self, record_id: str) -> Sentence:
        self.calls.append(("get_record", record_id))
        record = self._record(record_id)
        return record.model_copy(update={"annotations": self._visible_annotations(record_id)})

    async def list_records(
        self,
        *,
        status: RecordStatus | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> RecordPage:
        self.calls.append(("list_records", status, page, limit))
        rows = [r for r in self.records.values() if status is None or r.status is status]
        start = (max(page, 1) - 1) * limit
        items = [
            r.model_copy(update={"annotations": self._visible_annotations(r.id)}) for r in rows[start : start + limit]
        ]
        return RecordPage(items=items, total=len(rows), page=page, limit=limit)

    async def submit_annotations(self, record_id: str, request: SubmissionRequest) -> SubmissionResult:
        self.calls.append(("submit_annotations", record_id, request))
        record = self._record(record_id)

        if request.annotations:
            taxonomy_key = request.annotations[0].taxonomy_key
            self._taxonomy(taxonomy_key)
            self._replace_user_annotations(record_id, taxonomy_key, request.annotations)

        completed = self._completed_keys(record_id)
        all_completed = len(completed) == len(self._active_keys())

        if request.status is RecordStatus.SKIPPED:
            status = RecordStatus.SKIPPED
        elif all_completed:
            status = RecordStatus.SUBMITTED
        else:
            status = RecordStatus.PENDING

        update: dict[str, Any] = {"status": status}
        if request.flagged is not None:
            update["flagged"] = request.flagged
        if status is not record.status or request.annotations or request.flagged is not None:
            update["last_edited_at"] = datetime.now(timezone.utc)
        self.records[record_id] = record.model_copy(update=update)

        return SubmissionResult(status=status, completed_taxonomies=completed, all_completed=all_completed)

    async def bulk_label(
        self,
        record_ids: Sequence[str],
        taxonomy_key: str,
        annotations: Sequence[AnnotationInput],
        *,
        flagged: bool | None = None,
        labeling_started_at: datetime | None = None,
    ) -> int:
        self.calls.append(("bulk_label", tuple(record_ids), taxonomy_key, tuple(annotations)))
        self._taxonomy(taxonomy_key)
        for record_id in record_ids:
            self._record(record_id)

        for record_id in record_ids:
            if annotations:
                self._replace_user_annotations(record_id, taxonomy_key, annotations)
            update: dict[str, Any] = {
                "status": RecordStatus.SUBMITTED,
                "last_edited_at": datetime.now(timezone.utc),
            }
            if flagged is not None:
                update["flagged"] = flagged
            self.records[record_id] = self.records[record_id].model_copy(update=update)
        return len(record_ids)

    # ---- AI job lifecycle ----
    async def create_job(self, taxonomy_key: str, sentence_ids: Sequence[str]) -> str:
        self.calls.append(("create_job", taxonomy_key, tuple(sentence_ids)))
        self._taxonomy(taxonomy_key)

        script = self.job_scripts.get(taxonomy_key) or {}
        if script.get("fail_create"):
            raise BackendError(script.get("error") or "Failed to create AI labeling job", status_code=500)

        ids = [sid for sid in sentence_ids if sid in self.records]
        if not ids:
            raise BackendError("No sentences matched the criteria", status_code=400)

        job_id = f"job-{next(self._job_ids)}"
        self.jobs[job_id] = AIJob(
            id=job_id,
            taxonomy_key=taxonomy_key,
            sentence_ids=ids,
            status=JobStatus.PENDING,
            total_sentences=len(ids),
            processed_sentences=0,
            failed_sentences=0,
        )
        self._job_steps[job_id] = [JobStatus(s) for s in script.get("statuses") or DEFAULT_JOB_SCRIPT]
        logger.debug("Created job %s for %s (%d records)", job_id, taxonomy_key, len(ids))
        return job_id

    def advance_job(self, job_id: str) -> AIJob:
        """Move a job one step along its script; completion writes the scripted suggestions."""
        job = self.jobs[job_id]
        steps = self._job_steps.get(job_id) or []
        if job.status.is_terminal or not steps:
            return job

        status = steps.pop(0)
        update: dict[str, Any] = {"status": status}
        if status is JobStatus.COMPLETED:
            update["processed_sentences"] = len(job.sentence_ids)
            self._write_suggestions(job)
        elif status is JobStatus.FAILED:
            update["error"] = (self.job_scripts.get(job.taxonomy_key or "") or {}).get("error") or "AI labeling failed"
        self.jobs[job_id] = job.model_copy(update=update)
        return self.jobs[job_id]

    def _write_suggestions(self, job: AIJob) -> None:
        taxonomy_key = job.taxonomy_key or ""
        scripted = (self.job_scripts.get(taxonomy_key) or {}).get("suggestions") or {}
        for record_id in job.sentence_ids:
            if record_id not in scripted:
                continue
            self.suggestions[(record_id, taxonomy_key)] = [
                Annotation(
                    level=item["level"],
                    node_code=item.get("nodeCode", item.get("node_code")),
                    taxonomy_key=taxonomy_key,
                    source=LabelSource.AI,
                    confidence_score=float(item.get("confidence") or 0),
                )
                for item in scripted[record_id]
            ]

    async def get_job(self, job_id: str) -> AIJob:
        self.calls.append(("get_job", job_id))
        if job_id not in self.jobs:
            raise BackendError("Job not found", status_code=404)
        return self.advance_job(job_id)

    async def list_jobs(self, statuses: Sequence[JobStatus], *, limit: int = 100) -> list[AIJob]:
        self.calls.append(("list_jobs", tuple(statuses), limit))
        wanted = set(statuses)
        # Newest first, as the server orders by start time
        jobs = [j for j in reversed(list(self.jobs.values())) if not wanted or j.status in wanted]
        return jobs[:limit]

    async def cancel_job(self, job_id: str) -> JobStatus:
        self.calls.append(("cancel_job", job_id))
        job = self.jobs.get(job_id)
        if job is None:
            raise BackendError("Job not found", status_code=404)
        if job.status.is_terminal:
            return job.status
        self.jobs[job_id] = job.model_copy(update={"status": JobStatus.CANCELLED})
        return JobStatus.CANCELLED


register_backend(BackendKind.MEMORY, InMemoryBackend)
