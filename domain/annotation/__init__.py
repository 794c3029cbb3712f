"""
Annotation rules: AI-suggestion reconciliation and completion tracking.

Both modules are pure; they read label paths and never call the backend.
"""

from domain.annotation.completion import (
    CompletionTracker,
    RecordAction,
    can_submit,
    is_taxonomy_complete,
    next_status,
)
from domain.annotation.reconciler import AIAnnotationReconciler, ai_path_is_accepted

__all__ = [
    "AIAnnotationReconciler",
    "ai_path_is_accepted",
    "CompletionTracker",
    "RecordAction",
    "can_submit",
    "is_taxonomy_complete",
    "next_status",
]
