"""Background watcher of the active AI job set."""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable

from application.progress import ProgressChannel
from application.timers import Sleep, run_periodically
from domain.errors import BackendError
from domain.schemas import ACTIVE_JOB_STATUSES, AIJob
from infrastructure.backends import WorkstationBackend

logger = logging.getLogger(__name__)

FinishedCallback = Callable[[str, AIJob | None], Awaitable[None] | None]
RefreshCallback = Callable[[], Awaitable[None]]


class ActiveJobPoller:
    """
    Tracks job ids and notices when they leave the pending/processing set.

    Runs independently of the orchestrator's own per-job polling: jobs may be
    tracked from any source (an orchestrator run, or the registry of the last
    session via `track_session_jobs`). A tracked job absent from the active
    listing is treated as finished, untracked, and triggers one refresh per tick.
    """

    def __init__(
        self,
        backend: WorkstationBackend,
        *,
        interval_s: float = 5.0,
        limit: int = 100,
        on_finished: FinishedCallback | None = None,
        on_refresh: RefreshCallback | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.backend = backend
        self.interval_s = interval_s
        self.limit = limit
        self.on_finished = on_finished
        self.on_refresh = on_refresh
        self._sleep = sleep
        self.tracked: dict[str, str | None] = {}

    def track(self, job_id: str, taxonomy_key: str | None = None) -> None:
        self.tracked[job_id] = taxonomy_key

    def untrack(self, job_id: str) -> None:
        self.tracked.pop(job_id, None)

    def track_session_jobs(self, progress: ProgressChannel) -> int:
        """Track every job registered by the stored session; returns how many were added."""
        added = 0
        for job in progress.session_jobs():
            if job.job_id not in self.tracked:
                self.track(job.job_id, job.taxonomy_key or None)
                added += 1
        if added:
            logger.info("Watching %d job(s) from session %s", added, progress.current_session_id)
        return added

    @property
    def has_tracked_jobs(self) -> bool:
        return bool(self.tracked)

    async def active_jobs(self) -> list[AIJob]:
        return await self.backend.list_jobs(ACTIVE_JOB_STATUSES, limit=self.limit)

    async def poll_once(self) -> list[str]:
        """One tick: returns the ids of tracked jobs found finished."""
        if not self.tracked:
            return []

        active_ids = {job.id for job in await self.active_jobs()}
        finished = [job_id for job_id in self.tracked if job_id not in active_ids]

        for job_id in finished:
            taxonomy_key = self.tracked.pop(job_id, None)
            job: AIJob | None = None
            try:
                job = await self.backend.get_job(job_id)
            except BackendError as e:
                logger.warning("Job %s (%s) finished; final status unavailable: %s", job_id, taxonomy_key, e)
            else:
                logger.info(
                    "Job %s (%s) finished: %s (%s/%s processed, %s failed)",
                    job_id,
                    taxonomy_key or job.taxonomy_key,
                    job.status.value,
                    job.processed_sentences,
                    job.total_sentences,
                    job.failed_sentences,
                )

            if self.on_finished is not None:
                result = self.on_finished(job_id, job)
                if inspect.isawaitable(result):
                    await result

        if finished and self.on_refresh is not None:
            await self.on_refresh()
        return finished

    async def run(self, stop: asyncio.Event) -> int:
        """Poll every `interval_s` until `stop` is set; failures are logged and retried."""
        return await run_periodically(
            self.poll_once,
            self.interval_s,
            stop=stop,
            name="active-jobs",
            sleep=self._sleep,
        )
