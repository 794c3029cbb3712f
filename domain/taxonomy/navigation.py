"""
Tree navigation state machine for one taxonomy on one record.

The selector is either Browsing a level under a parent, or Searching across
all levels (remembering where browsing resumes). Reducers take a PathState and
return a new one; they never perform I/O, so manual selection, search replay
and AI-suggestion restore all go through the same path rules.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field, replace

from domain.schemas import SelectedLabel, Taxonomy, TaxonomyNode
from domain.taxonomy.paths import (
    LabelPath,
    deepest,
    is_contiguous,
    is_terminal_label,
    label_from_node,
    sort_path,
    truncate_from,
    unknown_label,
)


@dataclass(frozen=True)
class Browsing:
    """Listing the children of `parent` at `level` (parent None means the taxonomy root)."""

    level: int = 1
    parent: str | None = None


@dataclass(frozen=True)
class Searching:
    """Listing search matches across every level."""

    query: str
    resume: Browsing = field(default_factory=Browsing)


NavigationMode = Browsing | Searching

ROOT = Browsing()


def contiguous_depth(labels: Sequence[SelectedLabel]) -> int:
    """Length of the gap-free prefix of levels starting at 1."""
    present = {lbl.level for lbl in labels}
    depth = 0
    while depth + 1 in present:
        depth += 1
    return depth


def position_after(labels: Sequence[SelectedLabel], max_depth: int) -> Browsing:
    """Where browsing continues once `labels` is the current path."""
    path = sort_path(labels)
    last = deepest(path)
    if last is None or not is_contiguous(path):
        return ROOT
    if is_terminal_label(last, max_depth):
        parent = path[-2].node_code if len(path) > 1 else None
        return Browsing(level=last.level, parent=parent)
    return Browsing(level=last.level + 1, parent=last.node_code)


@dataclass(frozen=True)
class PathState:
    taxonomy: Taxonomy
    labels: LabelPath = ()
    mode: NavigationMode = ROOT

    @property
    def browsing(self) -> Browsing:
        return self.mode if isinstance(self.mode, Browsing) else self.mode.resume

    @property
    def current_level(self) -> int:
        return self.browsing.level

    @property
    def current_parent(self) -> str | None:
        return self.browsing.parent

    @property
    def search_query(self) -> str:
        return self.mode.query if isinstance(self.mode, Searching) else ""

    @property
    def is_searching(self) -> bool:
        return isinstance(self.mode, Searching)

    @property
    def breadcrumb(self) -> LabelPath:
        """Selected ancestors of the level being browsed, root first."""
        return tuple(lbl for lbl in self.labels if lbl.level < self.browsing.level)

    def label_at(self, level: int) -> SelectedLabel | None:
        return next((lbl for lbl in self.labels if lbl.level == level), None)


def initial_state(taxonomy: Taxonomy, labels: Sequence[SelectedLabel] = ()) -> PathState:
    """Open a taxonomy at its root with the record's existing labels."""
    return PathState(taxonomy=taxonomy, labels=sort_path(labels), mode=ROOT)


def select_node(state: PathState, node: TaxonomyNode) -> PathState:
    """Select a node while browsing: cascade-remove its level and deeper, then append it."""
    reachable = contiguous_depth(state.labels) + 1
    if node.level > reachable:
        raise ValueError(
            f"Cannot select level {node.level} of {state.taxonomy.key} while level {reachable} is unset"
        )

    new_label = label_from_node(node, state.taxonomy)
    labels = truncate_from(state.labels, node.level) + (new_label,)

    if new_label.is_leaf:
        mode = Browsing(level=node.level, parent=node.parent_code)
    else:
        mode = Browsing(level=node.level + 1, parent=node.code)
    return replace(state, labels=labels, mode=mode)


def select_unknown(state: PathState) -> PathState:
    """Mark the level being browsed as Unknown; terminal, never advances depth."""
    level = min(state.current_level, contiguous_depth(state.labels) + 1)
    labels = truncate_from(state.labels, level) + (unknown_label(level, state.taxonomy.key),)
    return replace(state, labels=labels, mode=state.browsing)


def delete_label(state: PathState, level: int) -> PathState:
    """Remove the label at `level` and everything deeper, then browse below what remains."""
    if not any(lbl.level >= level for lbl in state.labels):
        return state

    remaining = truncate_from(state.labels, level)
    last = deepest(remaining)
    mode = Browsing(level=last.level + 1, parent=last.node_code) if last is not None else ROOT
    return replace(state, labels=remaining, mode=mode)


def navigate_up(state: PathState) -> PathState:
    """Pop the last breadcrumb entry; an empty breadcrumb falls back to the root."""
    crumbs = state.breadcrumb[:-1]
    if not crumbs:
        return replace(state, mode=ROOT)
    parent = crumbs[-1]
    return replace(state, mode=Browsing(level=parent.level + 1, parent=parent.node_code))


def focus_label(state: PathState, level: int) -> PathState:
    """Browse the alternatives of an already selected level without changing labels."""
    if state.label_at(level) is None:
        raise ValueError(f"No label selected at level {level}")
    above = state.label_at(level - 1)
    return replace(state, mode=Browsing(level=level, parent=above.node_code if above else None))


def start_search(state: PathState, query: str) -> PathState:
    query = query.strip()
    if not query:
        return clear_search(state)
    return replace(state, mode=Searching(query=query, resume=state.browsing))


def clear_search(state: PathState) -> PathState:
    return replace(state, mode=state.browsing)


def apply_path(state: PathState, path: Sequence[SelectedLabel]) -> PathState:
    """Replace the whole label set with a root-to-node path (search pick or restore)."""
    labels = sort_path(path)
    if not is_contiguous(labels):
        raise ValueError(f"Path for {state.taxonomy.key} is not contiguous: {[lbl.level for lbl in labels]}")
    return replace(state, labels=labels, mode=position_after(labels, state.taxonomy.max_depth))


def replace_labels(state: PathState, labels: Sequence[SelectedLabel]) -> PathState:
    """Replace the label set as-is (partial paths allowed) and leave search mode."""
    path = sort_path(labels)
    return replace(state, labels=path, mode=position_after(path, state.taxonomy.max_depth))
