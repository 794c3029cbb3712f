"""Explicit per-session state shared by the labeling session, the orchestrator and status views."""

import logging
from dataclasses import dataclass, field

from application.constants import SHOW_LEVEL_NAMES_KEY
from application.progress import ProgressChannel
from infrastructure.store import InMemoryKeyValueStore, KeyValueStore

logger = logging.getLogger(__name__)


@dataclass
class WorkstationContext:
    """
    Session context passed to every component that needs shared state.

    Holds the key-value store, the progress channel writing into it, and
    user preferences persisted in the same store.
    """

    store: KeyValueStore = field(default_factory=InMemoryKeyValueStore)
    user_id: str | None = None
    progress: ProgressChannel = field(init=False)

    def __post_init__(self) -> None:
        self.progress = ProgressChannel(self.store)

    @property
    def show_level_names(self) -> bool:
        """Whether level headers show the taxonomy's custom level names (default on)."""
        value = self.store.get_json(SHOW_LEVEL_NAMES_KEY, default=True)
        return bool(value)

    @show_level_names.setter
    def show_level_names(self, value: bool) -> None:
        self.store.set_json(SHOW_LEVEL_NAMES_KEY, bool(value))
        logger.debug("show_level_names=%s", bool(value))
