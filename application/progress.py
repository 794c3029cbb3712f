"""
Session-scoped progress of an orchestrator run.

The orchestrator is the only writer. Status views (the `progress` CLI command,
the job poller) read the descriptor and the per-session job registry from the
same key-value store, ignoring anything written under another session id.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from application.constants import (
    AI_QUEUE_STATUS_KEY,
    AI_SESSION_JOBS_KEY,
    CURRENT_AI_SESSION_ID_KEY,
    SESSION_ID_PREFIX,
)
from infrastructure.store import KeyValueStore

logger = logging.getLogger(__name__)


_last_session_ms = 0


def new_session_id() -> str:
    """Run identifier in the `session-<epoch ms>` form, strictly increasing within a process."""
    global _last_session_ms
    _last_session_ms = max(int(time.time() * 1000), _last_session_ms + 1)
    return f"{SESSION_ID_PREFIX}{_last_session_ms}"


@dataclass(frozen=True)
class ProgressDescriptor:
    """Which taxonomy is being processed and which are still queued."""

    session_id: str
    current: str | None = None
    remaining: tuple[str, ...] = ()
    finished: bool = False

    def to_json(self) -> dict:
        return {
            "sessionId": self.session_id,
            "current": self.current,
            "remaining": list(self.remaining),
            "finished": self.finished,
        }

    @classmethod
    def from_json(cls, data: dict) -> "ProgressDescriptor":
        return cls(
            session_id=str(data.get("sessionId") or ""),
            current=data.get("current"),
            remaining=tuple(data.get("remaining") or ()),
            finished=bool(data.get("finished")),
        )

    def is_queued(self, taxonomy_key: str) -> bool:
        return taxonomy_key == self.current or taxonomy_key in self.remaining


@dataclass(frozen=True)
class SessionJob:
    """A job started by an orchestrator run."""

    job_id: str
    session_id: str
    taxonomy_key: str

    def to_json(self) -> dict:
        return {"jobId": self.job_id, "sessionId": self.session_id, "taxonomyKey": self.taxonomy_key}


Subscriber = Callable[[ProgressDescriptor], None]


class ProgressChannel:
    """Publish/subscribe channel for progress descriptors, persisted in a key-value store."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store
        self._subscribers: list[Subscriber] = []

    # ---- session ----
    def begin_session(self, session_id: str) -> None:
        """Make `session_id` current and drop registry entries of earlier sessions."""
        self.store.set(CURRENT_AI_SESSION_ID_KEY, session_id)
        jobs = self.store.get_json(AI_SESSION_JOBS_KEY, default=[])
        if not isinstance(jobs, list):
            jobs = []
        kept = [j for j in jobs if isinstance(j, dict) and j.get("sessionId") == session_id]
        if len(kept) != len(jobs):
            self.store.set_json(AI_SESSION_JOBS_KEY, kept)
            logger.debug("Dropped %d job(s) of earlier sessions from the registry", len(jobs) - len(kept))

    @property
    def current_session_id(self) -> str | None:
        return self.store.get(CURRENT_AI_SESSION_ID_KEY)

    # ---- descriptor ----
    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register an in-process subscriber; returns an unsubscribe function."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def publish(self, descriptor: ProgressDescriptor) -> None:
        self.store.set_json(AI_QUEUE_STATUS_KEY, descriptor.to_json())
        logger.debug(
            "Progress: current=%s remaining=%s finished=%s",
            descriptor.current,
            list(descriptor.remaining),
            descriptor.finished,
        )
        for callback in list(self._subscribers):
            try:
                callback(descriptor)
            except Exception:
                logger.exception("Progress subscriber failed")

    def read(self) -> ProgressDescriptor | None:
        """The stored descriptor, or None when absent or written by another session."""
        data = self.store.get_json(AI_QUEUE_STATUS_KEY)
        if not isinstance(data, dict):
            return None
        descriptor = ProgressDescriptor.from_json(data)
        if descriptor.session_id != self.current_session_id:
            return None
        return descriptor

    def withdraw(self, taxonomy_key: str) -> bool:
        """
        Remove a queued taxonomy from the current descriptor.

        The running orchestrator re-reads the descriptor before each taxonomy
        and skips keys that are no longer queued. The taxonomy in progress
        cannot be withdrawn. Returns True if the key was removed.
        """
        descriptor = self.read()
        if descriptor is None or taxonomy_key not in descriptor.remaining:
            return False
        remaining = tuple(k for k in descriptor.remaining if k != taxonomy_key)
        self.store.set_json(
            AI_QUEUE_STATUS_KEY,
            ProgressDescriptor(
                session_id=descriptor.session_id,
                current=descriptor.current,
                remaining=remaining,
                finished=descriptor.finished,
            ).to_json(),
        )
        logger.info("Withdrew %s from the AI queue", taxonomy_key)
        return True

    def withdraw_remaining(self) -> list[str]:
        """Withdraw every queued taxonomy; the one in progress still completes."""
        descriptor = self.read()
        if descriptor is None or descriptor.finished or not descriptor.remaining:
            return []
        withdrawn = list(descriptor.remaining)
        self.store.set_json(
            AI_QUEUE_STATUS_KEY,
            ProgressDescriptor(session_id=descriptor.session_id, current=descriptor.current).to_json(),
        )
        logger.info("Withdrew %s from the AI queue", ", ".join(withdrawn))
        return withdrawn

    def clear(self) -> None:
        self.store.delete(AI_QUEUE_STATUS_KEY)

    # ---- job registry ----
    def register_job(self, job: SessionJob) -> None:
        jobs = self.store.get_json(AI_SESSION_JOBS_KEY, default=[])
        if not isinstance(jobs, list):
            jobs = []
        jobs.append(job.to_json())
        self.store.set_json(AI_SESSION_JOBS_KEY, jobs)

    def session_jobs(self, session_id: str | None = None) -> list[SessionJob]:
        """Jobs registered under `session_id` (defaults to the current session)."""
        session_id = session_id or self.current_session_id
        jobs = self.store.get_json(AI_SESSION_JOBS_KEY, default=[])
        if not isinstance(jobs, list):
            return []
        return [
            SessionJob(
                job_id=str(j["jobId"]),
                session_id=str(j["sessionId"]),
                taxonomy_key=str(j.get("taxonomyKey") or ""),
            )
            for j in jobs
            if isinstance(j, dict) and j.get("sessionId") == session_id and j.get("jobId")
        ]
