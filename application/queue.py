"""Working set of records shown in the queue, with selection and periodic refresh."""

import asyncio
import logging
from collections.abc import Iterable
from datetime import datetime, timezone

from application.constants import QUEUE_PAGE_SIZE
from application.timers import Sleep, run_periodically
from domain.errors import BackendError
from domain.schemas import RecordPage, RecordStatus, Sentence
from infrastructure.backends import WorkstationBackend

logger = logging.getLogger(__name__)


class RecordListView:
    """
    One page of the record queue plus the user's selection.

    Refreshed after every AI job of an orchestrator run, when the job poller
    sees a job finish, and on a fixed interval while `run_auto_refresh` runs.
    """

    def __init__(
        self,
        backend: WorkstationBackend,
        *,
        status: RecordStatus | None = None,
        page_size: int = QUEUE_PAGE_SIZE,
        refresh_interval_s: float = 30.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.backend = backend
        self.status = status
        self.page_size = page_size
        self.refresh_interval_s = refresh_interval_s
        self._sleep = sleep

        self.page = 1
        self.items: list[Sentence] = []
        self.total = 0
        self.selected: set[str] = set()
        self.last_refresh: datetime | None = None

    @property
    def record_ids(self) -> list[str]:
        return [r.id for r in self.items]

    @property
    def pages(self) -> int:
        return max(1, -(-self.total // self.page_size))

    async def refresh(self) -> RecordPage:
        """Reload the current page; a failed fetch empties the view."""
        try:
            page = await self.backend.list_records(status=self.status, page=self.page, limit=self.page_size)
        except BackendError as e:
            logger.error("Failed to fetch queue: %s", e)
            page = RecordPage(items=[], total=0, page=self.page, limit=self.page_size)

        self.items = list(page.items)
        self.total = page.total
        self.last_refresh = datetime.now(timezone.utc)
        logger.debug("Queue refreshed: page %d, %d of %d record(s)", self.page, len(self.items), self.total)
        return page

    async def goto_page(self, page: int) -> RecordPage:
        self.page = max(1, page)
        return await self.refresh()

    # ---- selection ----
    def select(self, record_ids: Iterable[str]) -> None:
        self.selected.update(record_ids)

    def deselect(self, record_ids: Iterable[str]) -> None:
        self.selected.difference_update(record_ids)

    def select_page(self) -> None:
        self.selected.update(self.record_ids)

    def clear_selection(self) -> None:
        self.selected.clear()

    async def run_auto_refresh(self, stop: asyncio.Event) -> int:
        return await run_periodically(
            self.refresh,
            self.refresh_interval_s,
            stop=stop,
            name="queue-refresh",
            sleep=self._sleep,
        )
