"""
Sequential dispatch of AI labeling jobs over a batch of records.

One job per active taxonomy, strictly one at a time: create, register, poll to
a terminal status, refresh the record list, then move to the next taxonomy.
Cancellation is cooperative and only takes effect between taxonomies.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, MutableSet, Sequence
from dataclasses import dataclass, field

from opik import track

from application.context import WorkstationContext
from application.job_watcher import ActiveJobPoller
from application.progress import ProgressDescriptor, SessionJob, new_session_id
from application.timers import Sleep
from domain.errors import (
    BackendError,
    JobCreationError,
    JobTimeoutError,
    PreconditionError,
    UnsyncedTaxonomiesError,
)
from domain.schemas import AIJob, JobStatus, Taxonomy
from infrastructure.backends import WorkstationBackend
from infrastructure.config.models import PollingConfig
from infrastructure.observability.logging import clear_taxonomy_context, set_log_context

logger = logging.getLogger(__name__)

RefreshCallback = Callable[[], Awaitable[None]]


@dataclass(frozen=True)
class JobOutcome:
    """Result of one taxonomy's job within a run."""

    taxonomy_key: str
    job_id: str
    job: AIJob | None = None
    error: JobTimeoutError | None = None

    @property
    def status(self) -> JobStatus | None:
        return self.job.status if self.job is not None else None

    @property
    def timed_out(self) -> bool:
        return self.error is not None


@dataclass(frozen=True)
class RunReport:
    session_id: str
    outcomes: tuple[JobOutcome, ...] = ()
    skipped: tuple[str, ...] = ()
    cancelled: bool = False

    def outcome_for(self, taxonomy_key: str) -> JobOutcome | None:
        return next((o for o in self.outcomes if o.taxonomy_key == taxonomy_key), None)


@dataclass
class _RunState:
    session_id: str
    outcomes: list[JobOutcome] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    cancelled: bool = False


def check_preconditions(record_ids: Sequence[str], taxonomies: Sequence[Taxonomy]) -> list[Taxonomy]:
    """
    Validate a run's inputs and return the active taxonomies in order.

    Raises:
        PreconditionError: If no record is selected or no taxonomy is active
        UnsyncedTaxonomiesError: If any active taxonomy is not synced with the AI service
    """
    if not record_ids:
        raise PreconditionError("Select at least one sentence.")
    active = [t for t in taxonomies if t.is_active]
    if not active:
        raise PreconditionError("No active taxonomies available.")
    unsynced = [t.key for t in active if not t.is_ai_synced]
    if unsynced:
        raise UnsyncedTaxonomiesError(unsynced)
    return active


class JobOrchestrator:
    """Runs one AI job per active taxonomy for a selection of records."""

    def __init__(
        self,
        backend: WorkstationBackend,
        *,
        context: WorkstationContext | None = None,
        polling: PollingConfig | None = None,
        poller: ActiveJobPoller | None = None,
        on_refresh: RefreshCallback | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.backend = backend
        self.context = context or WorkstationContext()
        self.polling = polling or PollingConfig()
        self.poller = poller
        self.on_refresh = on_refresh
        self._sleep = sleep
        self._cancel_requested = False
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def cancel(self) -> None:
        """Stop before the next taxonomy; the job in progress runs to completion."""
        self._cancel_requested = True
        logger.info("Will cancel remaining AI jobs after the current one completes.")

    def cancel_taxonomy(self, taxonomy_key: str) -> bool:
        """Withdraw one queued taxonomy from the running session."""
        return self.context.progress.withdraw(taxonomy_key)

    @track(name="ai_queue.wait_for_job", capture_input=False)
    async def wait_for_job(self, job_id: str, taxonomy_key: str) -> AIJob:
        """
        Poll a job until it reaches a terminal status.

        Failed polls are logged and count as an attempt.

        Raises:
            JobTimeoutError: If the job is still active after the attempt budget
        """
        max_attempts = self.polling.job_status_max_attempts
        for attempt in range(1, max_attempts + 1):
            try:
                job = await self.backend.get_job(job_id)
            except BackendError as e:
                logger.warning("Failed to fetch AI job status for %s (attempt %d): %s", taxonomy_key, attempt, e)
            else:
                if job.status.is_terminal:
                    return job
                logger.debug("Job %s for %s is %s (attempt %d)", job_id, taxonomy_key, job.status.value, attempt)
            await self._sleep(self.polling.job_status_interval_s)
        raise JobTimeoutError(job_id, taxonomy_key, max_attempts)

    async def _refresh(self) -> None:
        if self.on_refresh is None:
            return
        try:
            await self.on_refresh()
        except Exception:
            logger.exception("Record list refresh failed")

    async def dispatch(
        self,
        record_ids: Sequence[str],
        taxonomies: Sequence[Taxonomy],
        state: _RunState,
    ) -> AsyncIterator[JobOutcome]:
        """Yield one outcome per dispatched taxonomy, in order."""
        progress = self.context.progress
        keys = [t.key for t in taxonomies]
        withdrawn: set[str] = set()

        for i, key in enumerate(keys):
            if self._cancel_requested:
                state.cancelled = True
                state.skipped.extend(k for k in keys[i:] if k not in state.skipped)
                logger.info("Cancelled remaining AI jobs: %s", ", ".join(keys[i:]))
                return

            stored = progress.read()
            if stored is not None:
                withdrawn.update(k for k in keys[i:] if not stored.is_queued(k))
            if key in withdrawn:
                state.skipped.append(key)
                logger.info("Skipping withdrawn taxonomy %s", key)
                continue

            set_log_context(taxonomy_key=key)
            progress.publish(
                ProgressDescriptor(
                    session_id=state.session_id,
                    current=key,
                    remaining=tuple(k for k in keys[i + 1 :] if k not in withdrawn),
                )
            )

            try:
                job_id = await self.backend.create_job(key, record_ids)
            except BackendError as e:
                message = str(e) or f"Failed to start AI job for {key}"
                raise JobCreationError(key, message, outcomes=state.outcomes) from e
            logger.info("Started AI job %s for %s (%d records)", job_id, key, len(record_ids))

            progress.register_job(SessionJob(job_id=job_id, session_id=state.session_id, taxonomy_key=key))
            if self.poller is not None:
                self.poller.track(job_id, key)

            try:
                job = await self.wait_for_job(job_id, key)
            except JobTimeoutError as e:
                logger.error("%s", e)
                outcome = JobOutcome(taxonomy_key=key, job_id=job_id, error=e)
            else:
                level = logging.INFO if job.status is JobStatus.COMPLETED else logging.WARNING
                logger.log(level, "AI job %s for %s ended %s", job_id, key, job.status.value)
                outcome = JobOutcome(taxonomy_key=key, job_id=job_id, job=job)
            finally:
                if self.poller is not None:
                    self.poller.untrack(job_id)
                await self._refresh()

            state.outcomes.append(outcome)
            yield outcome

    @track(name="ai_queue.run", capture_input=False)
    async def run(
        self,
        record_ids: Sequence[str],
        taxonomies: Sequence[Taxonomy] | None = None,
        *,
        selection: MutableSet[str] | None = None,
    ) -> RunReport:
        """
        Send the records to AI, one taxonomy at a time.

        Args:
            record_ids: Records to label
            taxonomies: Taxonomies in tab order (fetched from the backend when None)
            selection: Selection to clear once the loop ends (not cleared on a creation failure)

        Returns:
            RunReport with one outcome per dispatched taxonomy

        Raises:
            PreconditionError: If there is nothing to send
            UnsyncedTaxonomiesError: If any active taxonomy needs a sync first
            JobCreationError: If a job could not be created (earlier jobs are kept)
        """
        record_ids = list(dict.fromkeys(record_ids))
        if not record_ids:
            raise PreconditionError("Select at least one sentence.")
        if taxonomies is None:
            taxonomies = await self.backend.list_taxonomies(active_only=True)
        active = check_preconditions(record_ids, taxonomies)

        if self._running:
            raise PreconditionError("An AI run is already in progress.")

        session_id = new_session_id()
        state = _RunState(session_id=session_id)
        progress = self.context.progress
        self._running = True
        self._cancel_requested = False

        set_log_context(session_id=session_id)
        progress.begin_session(session_id)
        progress.publish(ProgressDescriptor(session_id=session_id, remaining=tuple(t.key for t in active)))
        logger.info(
            "AI run %s: %d record(s) x %d taxonomies (%s)",
            session_id,
            len(record_ids),
            len(active),
            ", ".join(t.key for t in active),
        )

        try:
            async for outcome in self.dispatch(record_ids, active, state):
                logger.debug("Outcome for %s: %s", outcome.taxonomy_key, outcome.status or "timeout")
            if selection is not None:
                selection.clear()
        finally:
            self._running = False
            self._cancel_requested = False
            progress.publish(ProgressDescriptor(session_id=session_id, finished=True))
            clear_taxonomy_context()

        report = RunReport(
            session_id=session_id,
            outcomes=tuple(state.outcomes),
            skipped=tuple(state.skipped),
            cancelled=state.cancelled,
        )
        logger.info(
            "AI run %s finished: %d job(s), %d timed out, %d skipped%s",
            session_id,
            len(report.outcomes),
            sum(1 for o in report.outcomes if o.timed_out),
            len(report.skipped),
            " (cancelled)" if report.cancelled else "",
        )
        return report
