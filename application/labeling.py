"""Per-record, multi-taxonomy labeling workflow (load, submit, skip, flag, navigate)."""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

from opik import track

from application.constants import SEARCH_DEBOUNCE_S
from application.context import WorkstationContext
from application.selector import TaxonomyPathSelector
from application.timers import Sleep
from domain.annotation import AIAnnotationReconciler, CompletionTracker
from domain.errors import SubmissionRejectedError, WorkstationError
from domain.schemas import (
    AnnotationInput,
    LabelSource,
    RecordStatus,
    SelectedLabel,
    Sentence,
    SubmissionRequest,
    SubmissionResult,
    Taxonomy,
)
from domain.taxonomy.paths import LabelPath, sort_path
from infrastructure.backends import WorkstationBackend
from infrastructure.observability.logging import set_log_context

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmitOutcome:
    """Server result of a submission and where the session moved afterwards."""

    result: SubmissionResult
    next_taxonomy: str | None = None
    next_record: str | None = None
    end_of_queue: bool = False


def to_annotation_inputs(labels: Sequence[SelectedLabel], taxonomy_key: str) -> list[AnnotationInput]:
    return [AnnotationInput(level=lbl.level, node_code=lbl.node_code, taxonomy_key=taxonomy_key) for lbl in labels]


class LabelingSession:
    """
    Drives the labeling of a working set of records across every active taxonomy.

    One selector is open at a time (the active taxonomy); the completion
    tracker holds the live path of every taxonomy of the loaded record, and the
    reconciler keeps the AI suggestion each taxonomy was loaded with.
    """

    def __init__(
        self,
        backend: WorkstationBackend,
        taxonomies: Sequence[Taxonomy],
        *,
        context: WorkstationContext | None = None,
        record_ids: Sequence[str] = (),
        reconciler: AIAnnotationReconciler | None = None,
        debounce_s: float = SEARCH_DEBOUNCE_S,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.backend = backend
        self.context = context or WorkstationContext()
        self.taxonomies = [t for t in taxonomies if t.is_active]
        self.reconciler = reconciler or AIAnnotationReconciler()
        self.tracker = CompletionTracker(self.taxonomies)
        self.working_set = list(record_ids)
        self.position = -1

        self.record: Sentence | None = None
        self.selector: TaxonomyPathSelector | None = None
        self.active_index = 0
        self.labeling_started_at: datetime | None = None

        self._persisted: dict[str, LabelPath] = {}
        self._submitting = False
        self._debounce_s = debounce_s
        self._sleep = sleep

    @classmethod
    async def open(
        cls,
        backend: WorkstationBackend,
        *,
        context: WorkstationContext | None = None,
        record_ids: Sequence[str] = (),
        **kwargs,
    ) -> "LabelingSession":
        """Fetch the active taxonomies and load the first record of the working set."""
        taxonomies = await backend.list_taxonomies(active_only=True)
        session = cls(backend, taxonomies, context=context, record_ids=record_ids, **kwargs)
        if session.working_set:
            await session.load(session.working_set[0])
        return session

    # ---- view ----
    @property
    def active_taxonomy(self) -> Taxonomy:
        if not self.taxonomies:
            raise WorkstationError("No active taxonomies available.")
        return self.taxonomies[self.active_index]

    @property
    def record_id(self) -> str | None:
        return self.record.id if self.record is not None else None

    def _require_record(self) -> Sentence:
        if self.record is None:
            raise WorkstationError("No record loaded")
        return self.record

    def _require_selector(self) -> TaxonomyPathSelector:
        if self.selector is None:
            raise WorkstationError("No taxonomy open")
        return self.selector

    @property
    def labels(self) -> LabelPath:
        return self._require_selector().labels

    @property
    def can_submit(self) -> bool:
        return self.selector is not None and self.tracker.can_submit(self.active_taxonomy.key)

    @property
    def is_diverged(self) -> bool:
        """True when the active taxonomy's path no longer matches its AI suggestion."""
        if self.record is None or self.selector is None:
            return False
        return self.reconciler.is_diverged(self.record.id, self.active_taxonomy.key, self.selector.labels)

    @property
    def has_ai_suggestion(self) -> bool:
        if self.record is None:
            return False
        return self.reconciler.has_snapshot(self.record.id, self.active_taxonomy.key)

    # ---- loading ----
    async def load(self, record_id: str) -> Sentence:
        """Open a record: its labels per taxonomy, AI snapshots, and the first taxonomy at the root."""
        if self.record is not None and self.record.id != record_id:
            self.reconciler.forget(self.record.id)

        record = await self.backend.get_record(record_id)
        self.record = record
        self.labeling_started_at = datetime.now(timezone.utc)
        if record_id in self.working_set:
            self.position = self.working_set.index(record_id)
        set_log_context(record_id=record_id)

        self._persisted = {}
        for tax in self.taxonomies:
            labels = sort_path(a.to_selected_label() for a in record.annotations_for(tax.key))
            self._persisted[tax.key] = labels
            self.reconciler.observe_initial(record_id, tax.key, labels)
            self.tracker.update(tax.key, labels)
        self.tracker.server_completed = set()

        if self.taxonomies:
            self._open_taxonomy(0)
        logger.info(
            "Loaded record %s (%s, %s)",
            record_id,
            record.status.value,
            self.tracker.progress_text(),
        )
        return record

    def _open_taxonomy(self, index: int) -> None:
        tax = self.taxonomies[index]
        self.active_index = index
        selector = TaxonomyPathSelector(
            self.backend,
            tax,
            labels=self._persisted.get(tax.key, ()),
            context=self.context,
            debounce_s=self._debounce_s,
            sleep=self._sleep,
        )
        selector.subscribe(self._on_labels_changed)
        self.selector = selector
        self.tracker.update(tax.key, selector.labels)
        set_log_context(taxonomy_key=tax.key)

    def _on_labels_changed(self, taxonomy_key: str, labels: LabelPath) -> None:
        self.tracker.update(taxonomy_key, labels)

    def switch_taxonomy(self, index: int) -> None:
        """Open another taxonomy tab with its persisted labels, browsing from the root."""
        self._require_record()
        if not 0 <= index < len(self.taxonomies):
            raise IndexError(f"Taxonomy index {index} out of range (0..{len(self.taxonomies) - 1})")
        self._open_taxonomy(index)

    def restore_ai_suggestion(self) -> None:
        """Put the active taxonomy back to the AI suggestion it was loaded with."""
        record = self._require_record()
        labels = self.reconciler.restore(record.id, self.active_taxonomy.key)
        self._require_selector().replace_labels(labels)
        logger.info("Restored AI suggestion for %s", self.active_taxonomy.key)

    # ---- submission protocol ----
    @track(name="labeling.submit", capture_input=False)
    async def submit(self) -> SubmitOutcome | None:
        """
        Send the active taxonomy's path; it replaces that taxonomy's annotations on the record.

        Returns None when a submission is already in flight.

        Raises:
            SubmissionRejectedError: If the path is not submittable (nothing is sent)
            BackendError: If the server rejects the submission
        """
        record = self._require_record()
        selector = self._require_selector()
        tax = self.active_taxonomy

        if self._submitting:
            logger.debug("Submit ignored; a submission is already in flight")
            return None
        if not self.tracker.can_submit(tax.key):
            raise SubmissionRejectedError("Please select a complete path or mark as unknown")

        labels = selector.labels
        request = SubmissionRequest(
            status=RecordStatus.SUBMITTED,
            annotations=to_annotation_inputs(labels, tax.key),
            flagged=record.flagged,
            labeling_started_at=self.labeling_started_at,
        )

        self._submitting = True
        try:
            result = await self.backend.submit_annotations(record.id, request)
        finally:
            self._submitting = False

        # The server stores what was sent as user annotations
        persisted = tuple(lbl.model_copy(update={"source": LabelSource.USER}) for lbl in labels)
        self._persisted[tax.key] = persisted
        self.tracker.update(tax.key, persisted)
        self.tracker.apply_result(result)
        self.record = record.model_copy(update={"status": result.status})
        logger.info(
            "Submitted %s for record %s -> %s (%d/%d taxonomies)",
            tax.key,
            record.id,
            result.status.value,
            len(result.completed_taxonomies),
            len(self.taxonomies),
        )

        if not result.all_completed:
            next_key = self.tracker.next_incomplete_after(tax.key, result.completed_taxonomies)
            if next_key is not None:
                self.switch_taxonomy(self._index_of(next_key))
                return SubmitOutcome(result=result, next_taxonomy=next_key)

        next_id = await self.next_record()
        return SubmitOutcome(result=result, next_record=next_id, end_of_queue=next_id is None)

    async def skip(self) -> str | None:
        """Mark the record skipped (annotations untouched) and move to the next one."""
        record = self._require_record()
        request = SubmissionRequest(
            status=RecordStatus.SKIPPED,
            annotations=[],
            flagged=record.flagged,
            labeling_started_at=self.labeling_started_at,
        )
        result = await self.backend.submit_annotations(record.id, request)
        self.record = record.model_copy(update={"status": result.status})
        logger.info("Skipped record %s", record.id)
        return await self.next_record()

    async def toggle_flag(self) -> bool:
        """Flip the record's flag; status and annotations are left as they are."""
        record = self._require_record()
        flagged = not record.flagged
        request = SubmissionRequest(status=record.status, annotations=[], flagged=flagged)
        result = await self.backend.submit_annotations(record.id, request)
        self.record = record.model_copy(update={"flagged": flagged, "status": result.status})
        logger.info("Record %s flagged=%s", record.id, flagged)
        return flagged

    async def bulk_label(self, record_ids: Sequence[str], labels: Sequence[SelectedLabel] | None = None) -> int:
        """
        Apply one path of the active taxonomy to many records.

        Uses the current selection when `labels` is None. The same validation as
        submit applies; returns the number of records labelled.
        """
        tax = self.active_taxonomy
        path = sort_path(labels) if labels is not None else self._require_selector().labels
        if not record_ids:
            raise SubmissionRejectedError("Select at least one sentence.")

        scratch = CompletionTracker([tax])
        scratch.update(tax.key, path)
        if not scratch.can_submit(tax.key):
            raise SubmissionRejectedError("Please select a complete path or mark as unknown")

        count = await self.backend.bulk_label(
            record_ids,
            tax.key,
            to_annotation_inputs(path, tax.key),
            labeling_started_at=self.labeling_started_at,
        )
        logger.info("Bulk-labelled %d record(s) in %s", count, tax.key)
        return count

    # ---- working set ----
    def _index_of(self, taxonomy_key: str) -> int:
        return next(i for i, t in enumerate(self.taxonomies) if t.key == taxonomy_key)

    async def next_record(self) -> str | None:
        """Load the next record of the working set; None at the end of the queue."""
        if self.position + 1 >= len(self.working_set):
            logger.info("End of queue")
            return None
        next_id = self.working_set[self.position + 1]
        await self.load(next_id)
        return next_id

    async def previous_record(self) -> str | None:
        if self.position <= 0:
            return None
        prev_id = self.working_set[self.position - 1]
        await self.load(prev_id)
        return prev_id
