"""
Application layer: Use cases and workflow orchestration.

This layer coordinates between domain logic and infrastructure,
implementing the labeling session and the AI job orchestrator.

This module exposes the high-level entry points used by the CLI.
"""

from application.context import WorkstationContext
from application.job_watcher import ActiveJobPoller
from application.labeling import LabelingSession, SubmitOutcome
from application.orchestrator import JobOrchestrator, JobOutcome, RunReport, check_preconditions
from application.progress import ProgressChannel, ProgressDescriptor, SessionJob, new_session_id
from application.queue import RecordListView
from application.selector import NodeListing, TaxonomyPathSelector

__all__ = [
    # Main workflows
    "LabelingSession",
    "SubmitOutcome",
    "JobOrchestrator",
    "JobOutcome",
    "RunReport",
    "check_preconditions",
    # Selection
    "TaxonomyPathSelector",
    "NodeListing",
    # Session state and progress
    "WorkstationContext",
    "ProgressChannel",
    "ProgressDescriptor",
    "SessionJob",
    "new_session_id",
    # Background views
    "ActiveJobPoller",
    "RecordListView",
]
