"""Pydantic models for taxonomies, label paths, records and AI jobs."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

# Sync statuses that count as "synced" (older servers report "success")
SYNCED_STATUSES = frozenset({"completed", "success"})

# Depth used when a taxonomy has none configured; backends override it via the
# `default_max_depth` validation context
DEFAULT_MAX_DEPTH = 5


class LabelSource(str, Enum):
    """Who produced a label."""

    USER = "user"
    AI = "ai"


class RecordStatus(str, Enum):
    """Lifecycle status of a record (sentence)."""

    PENDING = "pending"
    SUBMITTED = "submitted"
    SKIPPED = "skipped"


class JobStatus(str, Enum):
    """Lifecycle status of an AI labeling job, owned by the backend job runner."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_JOB_STATUSES


ACTIVE_JOB_STATUSES = (JobStatus.PENDING, JobStatus.PROCESSING)
TERMINAL_JOB_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})


class WireModel(BaseModel):
    """Base model accepting camelCase keys from the backend and snake_case from Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _code_to_str(value: Any) -> Any:
    # Older servers send numeric codes (e.g. -99); codes are strings everywhere else
    if value is None or isinstance(value, str):
        return value
    return str(value)


class TaxonomyNode(WireModel):
    """One node of a taxonomy tree, as served by the node lookup service."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    code: str
    label: str = ""
    level: int = Field(..., ge=1)
    parent_code: str | None = None
    is_leaf: bool = False
    definition: str | None = None
    examples: str | None = None

    @field_validator("code", "parent_code", mode="before")
    @classmethod
    def _coerce_codes(cls, v: Any) -> Any:
        return _code_to_str(v)

    @field_validator("is_leaf", mode="before")
    @classmethod
    def _null_leaf_is_false(cls, v: Any) -> Any:
        return bool(v)


class Taxonomy(WireModel):
    """A fixed-depth classification tree; records carry labels for several of these at once."""

    key: str
    display_name: str | None = None
    max_depth: int = Field(default=0, ge=1, validate_default=True)
    level_names: dict[str, str] | None = None
    is_active: bool = True
    last_ai_sync_status: str | None = Field(default=None, alias="lastAISyncStatus")

    @field_validator("max_depth", mode="before")
    @classmethod
    def _default_depth(cls, v: Any, info: ValidationInfo) -> Any:
        # The server stores 0/None for "not configured"
        if v:
            return v
        return (info.context or {}).get("default_max_depth", DEFAULT_MAX_DEPTH)

    @property
    def is_ai_synced(self) -> bool:
        return (self.last_ai_sync_status or "") in SYNCED_STATUSES

    def level_label(self, level: int, show_names: bool = True) -> str:
        """Human-readable name for a level, falling back to 'Level N'."""
        if show_names and self.level_names:
            name = self.level_names.get(str(level))
            if name:
                return name
        return f"Level {level}"


class SelectedLabel(WireModel):
    """One entry of a label path in an editing session (one record + one taxonomy)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    level: int = Field(..., ge=1)
    node_code: str
    taxonomy_key: str
    label: str | None = None
    definition: str | None = None
    examples: str | None = None
    is_leaf: bool = False
    source: LabelSource = LabelSource.USER
    confidence_score: float | None = None

    @field_validator("node_code", mode="before")
    @classmethod
    def _coerce_code(cls, v: Any) -> Any:
        return _code_to_str(v)


class AnnotationInput(WireModel):
    """Annotation payload item sent on submit (one per label)."""

    level: int
    node_code: str
    taxonomy_key: str

    @field_validator("node_code", mode="before")
    @classmethod
    def _coerce_code(cls, v: Any) -> Any:
        return _code_to_str(v)


class Annotation(WireModel):
    """Persisted annotation (or AI suggestion) attached to a record."""

    level: int
    node_code: str
    taxonomy_key: str
    source: LabelSource = LabelSource.USER
    created_by: str | None = None
    created_at: datetime | None = None
    node_label: str | None = None
    node_definition: str | None = None
    is_leaf: bool = False
    confidence_score: float | None = None

    @field_validator("node_code", mode="before")
    @classmethod
    def _coerce_code(cls, v: Any) -> Any:
        return _code_to_str(v)

    @field_validator("is_leaf", mode="before")
    @classmethod
    def _none_is_false(cls, v: Any) -> Any:
        return bool(v)

    def to_selected_label(self) -> SelectedLabel:
        return SelectedLabel(
            level=self.level,
            node_code=self.node_code,
            taxonomy_key=self.taxonomy_key,
            label=self.node_label,
            definition=self.node_definition,
            is_leaf=self.is_leaf,
            source=self.source,
            confidence_score=self.confidence_score,
        )


class Sentence(WireModel):
    """A text record to be labelled across every active taxonomy."""

    id: str
    fields: dict[str, str] = Field(default_factory=dict)
    status: RecordStatus = RecordStatus.PENDING
    flagged: bool = False
    annotations: list[Annotation] = Field(default_factory=list)
    last_edited_at: datetime | None = None

    def annotations_for(self, taxonomy_key: str) -> list[Annotation]:
        return sorted(
            (a for a in self.annotations if a.taxonomy_key == taxonomy_key),
            key=lambda a: a.level,
        )


class RecordPage(WireModel):
    """One page of the record queue."""

    items: list[Sentence] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 20


class SubmissionRequest(WireModel):
    """Body of a submit / skip / flag action for one record."""

    status: RecordStatus
    annotations: list[AnnotationInput] = Field(default_factory=list)
    flagged: bool | None = None
    labeling_started_at: datetime | None = None


class SubmissionResult(WireModel):
    """Server answer to a submission: resulting status and taxonomy completion."""

    status: RecordStatus
    completed_taxonomies: list[str] = Field(default_factory=list)
    all_completed: bool = False


class AIJob(WireModel):
    """An AI labeling job over a batch of records for one taxonomy."""

    id: str
    taxonomy_key: str | None = None
    sentence_ids: list[str] = Field(default_factory=list)
    status: JobStatus = JobStatus.PENDING
    total_sentences: int | None = None
    processed_sentences: int | None = None
    failed_sentences: int | None = None
    error: str | None = None

    @property
    def progress_percent(self) -> int:
        """Processed share of the job's records, rounded (0 when the total is unknown)."""
        if not self.total_sentences:
            return 0
        return round(100 * (self.processed_sentences or 0) / self.total_sentences)
