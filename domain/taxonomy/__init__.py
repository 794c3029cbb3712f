"""
Taxonomy path handling: Unknown markers, path rules and tree navigation.

All functions in this module are pure (no I/O); node lookups happen in the
application layer.
"""

from domain.taxonomy.navigation import (
    Browsing,
    PathState,
    Searching,
    apply_path,
    clear_search,
    delete_label,
    focus_label,
    initial_state,
    navigate_up,
    replace_labels,
    select_node,
    select_unknown,
    start_search,
)
from domain.taxonomy.paths import is_contiguous, is_terminal_label, is_terminal_node, normalize_path
from domain.taxonomy.unknown import UNKNOWN_LABEL, is_unknown_node_code, unknown_code_for_level

__all__ = [
    "Browsing",
    "Searching",
    "PathState",
    "initial_state",
    "select_node",
    "select_unknown",
    "delete_label",
    "navigate_up",
    "focus_label",
    "start_search",
    "clear_search",
    "apply_path",
    "replace_labels",
    "is_contiguous",
    "is_terminal_label",
    "is_terminal_node",
    "normalize_path",
    "UNKNOWN_LABEL",
    "unknown_code_for_level",
    "is_unknown_node_code",
]
