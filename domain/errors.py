"""Error types raised by the labeling engine and the AI job orchestrator."""

from collections.abc import Sequence
from typing import Any


class WorkstationError(Exception):
    """Base class for all workstation errors."""


class SubmissionRejectedError(WorkstationError, ValueError):
    """Raised client-side when a label path cannot be submitted. Never reaches the backend."""


class PreconditionError(WorkstationError):
    """Raised before an orchestrator run starts when its inputs are unusable."""


class UnsyncedTaxonomiesError(PreconditionError):
    """One or more active taxonomies have not been synced with the AI service."""

    def __init__(self, taxonomy_keys: Sequence[str]) -> None:
        self.taxonomy_keys = list(taxonomy_keys)
        super().__init__(f"Sync required before sending to AI: {', '.join(self.taxonomy_keys)}")


class BackendError(WorkstationError):
    """A backend call failed (transport error, non-2xx response or malformed payload)."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class JobCreationError(WorkstationError):
    """Creating an AI job failed; fatal to the whole orchestrator run.

    `outcomes` holds the per-taxonomy outcomes gathered before the failure;
    those jobs are not retracted.
    """

    def __init__(self, taxonomy_key: str, message: str, *, outcomes: Sequence[Any] = ()) -> None:
        self.taxonomy_key = taxonomy_key
        self.outcomes = list(outcomes)
        super().__init__(message)


class JobTimeoutError(WorkstationError):
    """An AI job did not reach a terminal status within the polling budget."""

    def __init__(self, job_id: str, taxonomy_key: str, attempts: int) -> None:
        self.job_id = job_id
        self.taxonomy_key = taxonomy_key
        self.attempts = attempts
        super().__init__(f"AI job for {taxonomy_key} timed out.")
