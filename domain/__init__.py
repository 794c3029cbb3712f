"""
Domain layer: Business logic with minimal external dependencies.

Contains:
- schemas: Pydantic models for taxonomies, label paths, records and AI jobs
- taxonomy: Path rules, Unknown markers and the navigation state machine
- annotation: AI-suggestion reconciliation and completion tracking
- errors: Error hierarchy shared by every layer
"""

from domain.errors import (
    BackendError,
    JobCreationError,
    JobTimeoutError,
    PreconditionError,
    SubmissionRejectedError,
    UnsyncedTaxonomiesError,
    WorkstationError,
)
from domain.schemas import (
    AIJob,
    Annotation,
    AnnotationInput,
    JobStatus,
    LabelSource,
    RecordPage,
    RecordStatus,
    SelectedLabel,
    Sentence,
    SubmissionRequest,
    SubmissionResult,
    Taxonomy,
    TaxonomyNode,
)

__all__ = [
    # Models
    "Taxonomy",
    "TaxonomyNode",
    "SelectedLabel",
    "Annotation",
    "AnnotationInput",
    "Sentence",
    "SubmissionRequest",
    "SubmissionResult",
    "RecordPage",
    "AIJob",
    # Enums
    "LabelSource",
    "RecordStatus",
    "JobStatus",
    # Errors
    "WorkstationError",
    "SubmissionRejectedError",
    "PreconditionError",
    "UnsyncedTaxonomiesError",
    "BackendError",
    "JobCreationError",
    "JobTimeoutError",
]
