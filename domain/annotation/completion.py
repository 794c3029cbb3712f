"""Per-taxonomy completion and record status transitions."""

import logging
from collections.abc import Collection, Sequence
from enum import Enum

from domain.annotation.reconciler import ai_path_is_accepted
from domain.schemas import LabelSource, RecordStatus, SelectedLabel, SubmissionResult, Taxonomy
from domain.taxonomy.paths import LabelPath, deepest, has_terminal_end, is_terminal_label, sort_path

logger = logging.getLogger(__name__)


class RecordAction(str, Enum):
    """Actions of the submission protocol."""

    SUBMIT = "submit"
    SKIP = "skip"
    FLAG = "flag"


def is_taxonomy_complete(labels: Sequence[SelectedLabel], max_depth: int) -> bool:
    """
    A taxonomy is complete when the deepest selected label is user-sourced and terminal.

    AI-only paths never count, even when they are complete and terminal: completion
    requires a human action (see `can_submit` for the weaker submittable rule).
    """
    last = deepest(labels)
    return last is not None and last.source is LabelSource.USER and is_terminal_label(last, max_depth)


def can_submit(labels: Sequence[SelectedLabel], max_depth: int) -> bool:
    """True when the path may be sent: terminal end, reached by the user or accepted from AI."""
    if not has_terminal_end(labels, max_depth):
        return False
    return is_taxonomy_complete(labels, max_depth) or ai_path_is_accepted(labels, max_depth)


def next_status(current: RecordStatus, action: RecordAction, *, all_completed: bool) -> RecordStatus:
    """
    Record status after an action.

    - submit: submitted once every active taxonomy is complete, otherwise pending
    - skip: always skipped, independent of completion
    - flag: orthogonal, status unchanged
    """
    if action is RecordAction.SKIP:
        return RecordStatus.SKIPPED
    if action is RecordAction.FLAG:
        return current
    return RecordStatus.SUBMITTED if all_completed else RecordStatus.PENDING


class CompletionTracker:
    """Tracks the live label path of every active taxonomy of one record."""

    def __init__(self, taxonomies: Sequence[Taxonomy]) -> None:
        self.taxonomies = [t for t in taxonomies if t.is_active]
        self._by_key = {t.key: t for t in self.taxonomies}
        self._paths: dict[str, LabelPath] = {t.key: () for t in self.taxonomies}
        self.server_completed: set[str] = set()

    def _taxonomy(self, taxonomy_key: str) -> Taxonomy:
        try:
            return self._by_key[taxonomy_key]
        except KeyError as err:
            raise KeyError(f"Taxonomy '{taxonomy_key}' is not active") from err

    def update(self, taxonomy_key: str, labels: Sequence[SelectedLabel]) -> None:
        self._taxonomy(taxonomy_key)
        self._paths[taxonomy_key] = sort_path(labels)

    def path(self, taxonomy_key: str) -> LabelPath:
        return self._paths.get(taxonomy_key, ())

    def is_complete(self, taxonomy_key: str) -> bool:
        tax = self._taxonomy(taxonomy_key)
        return is_taxonomy_complete(self._paths[taxonomy_key], tax.max_depth)

    def can_submit(self, taxonomy_key: str) -> bool:
        tax = self._taxonomy(taxonomy_key)
        return can_submit(self._paths[taxonomy_key], tax.max_depth)

    @property
    def completed_taxonomies(self) -> list[str]:
        return [t.key for t in self.taxonomies if self.is_complete(t.key)]

    @property
    def all_completed(self) -> bool:
        return bool(self.taxonomies) and all(self.is_complete(t.key) for t in self.taxonomies)

    def incomplete_taxonomies(self) -> list[str]:
        return [t.key for t in self.taxonomies if not self.is_complete(t.key)]

    def next_incomplete_after(self, taxonomy_key: str, completed: Collection[str] | None = None) -> str | None:
        """
        First incomplete taxonomy after `taxonomy_key` in tab order, wrapping around.

        `completed` overrides the local completion rule (e.g. with the server's
        completed_taxonomies after a submission).
        """
        keys = [t.key for t in self.taxonomies]
        start = keys.index(taxonomy_key) + 1 if taxonomy_key in keys else 0
        for key in keys[start:] + keys[:start]:
            if key == taxonomy_key:
                continue
            done = key in completed if completed is not None else self.is_complete(key)
            if not done:
                return key
        return None

    def apply_result(self, result: SubmissionResult) -> None:
        """Adopt the server's view of completion after a submission."""
        self.server_completed = set(result.completed_taxonomies)
        logger.debug(
            "Server completion: %s (all_completed=%s)",
            sorted(self.server_completed),
            result.all_completed,
        )

    def progress_text(self) -> str:
        return f"{len(self.completed_taxonomies)}/{len(self.taxonomies)} taxonomies completed"
