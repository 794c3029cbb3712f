"""
Hierarchical path selection for one taxonomy on one record.

Wraps the pure navigation reducers with node lookups, debounced search,
ancestor reconstruction for search picks, and label-change listeners.
"""

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from application.constants import EMPTY_LEVEL_MESSAGE, SEARCH_DEBOUNCE_S
from application.context import WorkstationContext
from application.timers import Debouncer, Sleep
from domain.errors import BackendError
from domain.schemas import SelectedLabel, Taxonomy, TaxonomyNode
from domain.taxonomy import navigation as nav
from domain.taxonomy.paths import LabelPath, is_contiguous, label_from_node
from infrastructure.backends import WorkstationBackend

logger = logging.getLogger(__name__)

LabelListener = Callable[[str, LabelPath], None]


@dataclass(frozen=True)
class NodeListing:
    """Nodes offered for selection: a level under a parent, or search matches."""

    nodes: tuple[TaxonomyNode, ...] = ()
    level: int | None = None
    parent_code: str | None = None
    query: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    @property
    def empty_message(self) -> str | None:
        if self.nodes:
            return None
        if self.query:
            return f"No matches for '{self.query}'"
        return EMPTY_LEVEL_MESSAGE


class TaxonomyPathSelector:
    """
    Selection state for one taxonomy.

    Label changes are applied synchronously and pushed to every listener
    (completion tracking, divergence display) before the call returns.
    """

    def __init__(
        self,
        backend: WorkstationBackend,
        taxonomy: Taxonomy,
        *,
        labels: Sequence[SelectedLabel] = (),
        context: WorkstationContext | None = None,
        debounce_s: float = SEARCH_DEBOUNCE_S,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.backend = backend
        self.context = context
        self.state = nav.initial_state(taxonomy, labels)
        self._listeners: list[LabelListener] = []
        self._debouncer = Debouncer(debounce_s, sleep=sleep)

    # ---- read-only view ----
    @property
    def taxonomy(self) -> Taxonomy:
        return self.state.taxonomy

    @property
    def labels(self) -> LabelPath:
        return self.state.labels

    @property
    def current_level(self) -> int:
        return self.state.current_level

    @property
    def current_parent(self) -> str | None:
        return self.state.current_parent

    @property
    def breadcrumb(self) -> LabelPath:
        return self.state.breadcrumb

    @property
    def search_query(self) -> str:
        return self.state.search_query

    def level_label(self, level: int) -> str:
        show = self.context.show_level_names if self.context is not None else True
        return self.taxonomy.level_label(level, show)

    # ---- listeners ----
    def subscribe(self, listener: LabelListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _commit(self, state: nav.PathState) -> None:
        changed = state.labels != self.state.labels
        self.state = state
        if changed:
            for listener in list(self._listeners):
                listener(self.taxonomy.key, state.labels)

    # ---- node lookup ----
    async def list_nodes(self) -> NodeListing:
        """Children of the level being browsed; lookup failures yield an empty listing."""
        level, parent = self.current_level, self.current_parent
        try:
            nodes = await self.backend.list_nodes(self.taxonomy.key, level, parent)
        except BackendError as e:
            logger.error("Failed to load nodes for %s level %d: %s", self.taxonomy.key, level, e)
            nodes = []
        return NodeListing(nodes=tuple(nodes), level=level, parent_code=parent)

    async def _search_lookup(self, query: str) -> NodeListing:
        try:
            nodes = await self.backend.search_nodes(self.taxonomy.key, query)
        except BackendError as e:
            logger.error("Search failed for %s (q=%r): %s", self.taxonomy.key, query, e)
            nodes = []
        return NodeListing(nodes=tuple(nodes), query=query)

    # ---- selection ----
    def select_node(self, node: TaxonomyNode) -> None:
        self._commit(nav.select_node(self.state, node))

    def select_unknown(self) -> None:
        self._debouncer.cancel()
        self._commit(nav.select_unknown(self.state))

    def delete_label(self, level: int) -> None:
        self._debouncer.cancel()
        self._commit(nav.clear_search(nav.delete_label(self.state, level)))

    def navigate_up(self) -> None:
        self._commit(nav.navigate_up(self.state))

    def focus_label(self, level: int) -> None:
        self._debouncer.cancel()
        self._commit(nav.clear_search(nav.focus_label(self.state, level)))

    def replace_labels(self, labels: Sequence[SelectedLabel]) -> None:
        """Replace the whole label set (record load or AI-suggestion restore)."""
        self._debouncer.cancel()
        self._commit(nav.replace_labels(self.state, labels))

    def reset_navigation(self) -> None:
        self._debouncer.cancel()
        self._commit(nav.initial_state(self.taxonomy, self.labels))

    # ---- search ----
    async def search(self, query: str) -> NodeListing | None:
        """
        Debounced search across all levels.

        Returns the listing, or None when a later keystroke superseded this
        query. An empty query returns to browsing.
        """
        self._commit(nav.start_search(self.state, query))
        if not self.state.is_searching:
            self._debouncer.cancel()
            return await self.list_nodes()

        task = self._debouncer.schedule(self._search_lookup, self.state.search_query)
        try:
            return await task
        except asyncio.CancelledError:
            if task.cancelled() and not _current_task_cancelling():
                logger.debug("Search %r superseded", query)
                return None
            raise

    def clear_search(self) -> None:
        self._debouncer.cancel()
        self._commit(nav.clear_search(self.state))

    async def _build_full_path(self, node: TaxonomyNode) -> list[TaxonomyNode]:
        """Walk parent codes up to the root, one level lookup per step."""
        path = [node]
        current = node
        while current.parent_code is not None and current.level > 1:
            try:
                candidates = await self.backend.list_nodes(self.taxonomy.key, current.level - 1)
            except BackendError as e:
                logger.error("Failed to fetch parent of %s in %s: %s", current.code, self.taxonomy.key, e)
                break
            parent = next((n for n in candidates if n.code == current.parent_code), None)
            if parent is None:
                break
            path.insert(0, parent)
            current = parent
        return path

    async def select_search_result(self, node: TaxonomyNode) -> bool:
        """
        Replace the label set with the root-to-node path of a search match.

        Returns False (labels unchanged) when the ancestor chain cannot be
        resolved back to level 1.
        """
        path = await self._build_full_path(node)
        labels = [label_from_node(n, self.taxonomy) for n in path]
        if path[0].level != 1 or not is_contiguous(labels):
            logger.warning(
                "Could not resolve ancestors of %s (level %d) in %s; selection ignored",
                node.code,
                node.level,
                self.taxonomy.key,
            )
            return False
        self._debouncer.cancel()
        self._commit(nav.apply_path(self.state, labels))
        return True


def _current_task_cancelling() -> bool:
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0
