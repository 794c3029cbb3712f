"""Reconciliation of AI-suggested label paths with human edits."""

import logging
from collections.abc import Sequence

from domain.schemas import LabelSource, SelectedLabel
from domain.taxonomy.paths import (
    LabelPath,
    count_by_source,
    deepest,
    is_contiguous,
    is_terminal_label,
    normalize_path,
    sort_path,
)

logger = logging.getLogger(__name__)

SnapshotKey = tuple[str, str]  # (record_id, taxonomy_key)


def ai_path_is_accepted(labels: Sequence[SelectedLabel], max_depth: int) -> bool:
    """
    Implicit-accept rule for AI suggestions.

    The AI-sourced labels alone must form a contiguous path 1..L whose label at
    L is terminal (leaf, Unknown marker, or L >= max_depth). Gapped or
    non-terminal AI paths never make a record submittable on their own.
    """
    ai_labels = sort_path(lbl for lbl in labels if lbl.source is LabelSource.AI)
    last = deepest(ai_labels)
    if last is None or not is_contiguous(ai_labels):
        return False
    return is_terminal_label(last, max_depth)


class AIAnnotationReconciler:
    """
    Keeps the first AI suggestion seen for each record+taxonomy as a reference point.

    Snapshots are written once per loaded record+taxonomy and are never
    overwritten by later edits; `forget()` drops them when the record is unloaded.
    """

    def __init__(self) -> None:
        self._snapshots: dict[SnapshotKey, LabelPath] = {}

    def observe_initial(self, record_id: str, taxonomy_key: str, labels: Sequence[SelectedLabel]) -> bool:
        """Store the AI-sourced part of the initial labels; returns True if a snapshot was taken."""
        key = (record_id, taxonomy_key)
        if key in self._snapshots:
            return False
        ai_labels = [lbl for lbl in labels if lbl.source is LabelSource.AI]
        if not ai_labels:
            return False
        self._snapshots[key] = sort_path(lbl.model_copy(deep=True) for lbl in ai_labels)
        logger.debug(
            "AI snapshot stored for record=%s taxonomy=%s (%d labels)",
            record_id,
            taxonomy_key,
            len(ai_labels),
        )
        return True

    def snapshot(self, record_id: str, taxonomy_key: str) -> LabelPath:
        return self._snapshots.get((record_id, taxonomy_key), ())

    def has_snapshot(self, record_id: str, taxonomy_key: str) -> bool:
        return (record_id, taxonomy_key) in self._snapshots

    def is_diverged(self, record_id: str, taxonomy_key: str, live: Sequence[SelectedLabel]) -> bool:
        """True when the live path no longer matches the stored AI suggestion."""
        snap = self._snapshots.get((record_id, taxonomy_key))
        if not snap:
            return False
        if normalize_path(live) != normalize_path(snap):
            return True
        return count_by_source(live, LabelSource.AI) < len(snap)

    def restore(self, record_id: str, taxonomy_key: str) -> list[SelectedLabel]:
        """Deep copies of the stored suggestion, ready to replace the live path."""
        snap = self._snapshots.get((record_id, taxonomy_key))
        if snap is None:
            raise KeyError(f"No AI suggestion stored for record={record_id} taxonomy={taxonomy_key}")
        return [lbl.model_copy(deep=True) for lbl in snap]

    def forget(self, record_id: str) -> None:
        for key in [k for k in self._snapshots if k[0] == record_id]:
            del self._snapshots[key]
