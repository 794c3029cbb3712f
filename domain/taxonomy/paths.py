"""
Label path rules shared by manual selection, AI-suggestion replay and submission.

A label path is the ordered sequence of SelectedLabels for one record and one
taxonomy. Valid paths are contiguous: their levels are exactly 1..k (k >= 0).
All functions in this module are pure.
"""

from collections.abc import Iterable, Sequence

from domain.schemas import LabelSource, SelectedLabel, Taxonomy, TaxonomyNode
from domain.taxonomy.unknown import UNKNOWN_LABEL, is_unknown_node_code, unknown_code_for_level

LabelPath = tuple[SelectedLabel, ...]
NormalizedPath = tuple[tuple[int, str], ...]


def is_terminal_node(node: TaxonomyNode, max_depth: int) -> bool:
    """A node ends the path if it is a leaf or sits at the taxonomy's deepest level."""
    return node.is_leaf or node.level >= max_depth


def is_terminal_label(label: SelectedLabel, max_depth: int) -> bool:
    """A label ends the path if it is a leaf, an Unknown marker, or at max depth."""
    return label.is_leaf or is_unknown_node_code(label.node_code) or label.level >= max_depth


def sort_path(labels: Iterable[SelectedLabel]) -> LabelPath:
    return tuple(sorted(labels, key=lambda lbl: lbl.level))


def levels_of(labels: Iterable[SelectedLabel]) -> list[int]:
    return sorted(lbl.level for lbl in labels)


def is_contiguous(labels: Iterable[SelectedLabel]) -> bool:
    """True when the levels present are exactly 1..k (the empty path included)."""
    levels = levels_of(labels)
    return levels == list(range(1, len(levels) + 1))


def deepest(labels: Sequence[SelectedLabel]) -> SelectedLabel | None:
    if not labels:
        return None
    return max(labels, key=lambda lbl: lbl.level)


def truncate_from(labels: Iterable[SelectedLabel], level: int) -> LabelPath:
    """Drop every label at `level` or deeper (the cascading removal rule)."""
    return sort_path(lbl for lbl in labels if lbl.level < level)


def normalize_path(labels: Iterable[SelectedLabel]) -> NormalizedPath:
    """Order-normalized (level, node_code) pairs, used for divergence checks."""
    return tuple(sorted((lbl.level, lbl.node_code) for lbl in labels))


def has_terminal_end(labels: Sequence[SelectedLabel], max_depth: int) -> bool:
    """True when the path is contiguous, non-empty and its deepest label is terminal."""
    last = deepest(labels)
    if last is None or not is_contiguous(labels):
        return False
    return is_terminal_label(last, max_depth)


def count_by_source(labels: Iterable[SelectedLabel], source: LabelSource) -> int:
    return sum(1 for lbl in labels if lbl.source is source)


def label_from_node(
    node: TaxonomyNode,
    taxonomy: Taxonomy,
    *,
    source: LabelSource = LabelSource.USER,
) -> SelectedLabel:
    return SelectedLabel(
        level=node.level,
        node_code=node.code,
        taxonomy_key=taxonomy.key,
        label=node.label,
        definition=node.definition,
        examples=node.examples,
        is_leaf=is_terminal_node(node, taxonomy.max_depth),
        source=source,
    )


def unknown_label(level: int, taxonomy_key: str) -> SelectedLabel:
    return SelectedLabel(
        level=level,
        node_code=unknown_code_for_level(level),
        taxonomy_key=taxonomy_key,
        label=UNKNOWN_LABEL,
        is_leaf=True,
        source=LabelSource.USER,
    )
