import asyncio
from pathlib import Path

import pytest

from application.context import WorkstationContext
from application.job_watcher import ActiveJobPoller
from application.orchestrator import JobOrchestrator, check_preconditions
from domain.errors import JobCreationError, JobTimeoutError, PreconditionError, UnsyncedTaxonomiesError
from domain.schemas import JobStatus, LabelSource, Taxonomy
from infrastructure.backends.memory import InMemoryBackend
from infrastructure.config.models import PollingConfig
from infrastructure.store import JsonFileKeyValueStore


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _orchestrator(backend: InMemoryBackend, **kwargs) -> JobOrchestrator:
    kwargs.setdefault("polling", PollingConfig(job_status_interval_s=3, job_status_max_attempts=5))
    kwargs.setdefault("sleep", SleepRecorder())
    return JobOrchestrator(backend, **kwargs)


def _calls(backend: InMemoryBackend, method: str) -> list[tuple]:
    return [c for c in backend.calls if c[0] == method]


def test_one_job_per_active_taxonomy_strictly_in_sequence(backend: InMemoryBackend) -> None:
    refreshes: list[int] = []

    async def refresh() -> None:
        refreshes.append(len(backend.calls))

    context = WorkstationContext()
    selection = {"s1", "s2"}
    orchestrator = _orchestrator(backend, context=context, on_refresh=refresh)

    report = asyncio.run(orchestrator.run(["s1", "s2", "s1"], selection=selection))

    assert [o.taxonomy_key for o in report.outcomes] == ["isco", "sentiment"]
    assert all(o.status is JobStatus.COMPLETED for o in report.outcomes)
    assert [c[1:] for c in _calls(backend, "create_job")] == [("isco", ("s1", "s2")), ("sentiment", ("s1", "s2"))]

    # The second job is only created after the first one reached a terminal status
    methods = [c[0] for c in backend.calls]
    second_create = len(methods) - 1 - methods[::-1].index("create_job")
    assert backend.jobs["job-1"].status is JobStatus.COMPLETED
    assert "get_job" in methods[:second_create]
    assert len(refreshes) == 2
    assert refreshes[0] <= second_create

    assert selection == set()
    assert not orchestrator.is_running
    descriptor = context.progress.read()
    assert descriptor is not None and descriptor.finished
    assert [j.job_id for j in context.progress.session_jobs()] == ["job-1", "job-2"]


def test_inactive_taxonomies_are_not_sent(backend: InMemoryBackend) -> None:
    report = asyncio.run(_orchestrator(backend).run(["s1"]))

    assert "legacy" not in [o.taxonomy_key for o in report.outcomes]


def test_completed_job_writes_ai_suggestions(backend: InMemoryBackend) -> None:
    backend.job_scripts["isco"] = {
        "statuses": ["processing", "completed"],
        "suggestions": {"s1": [{"level": 1, "nodeCode": "2", "confidence": 0.6}]},
    }

    asyncio.run(_orchestrator(backend).run(["s1"]))

    suggestion = backend.suggestions[("s1", "isco")]
    assert [(a.node_code, a.source) for a in suggestion] == [("2", LabelSource.AI)]


def test_timeout_is_reported_and_the_next_taxonomy_still_runs(backend: InMemoryBackend) -> None:
    backend.job_scripts["isco"] = {"statuses": ["processing"] * 10}
    sleep = SleepRecorder()

    report = asyncio.run(_orchestrator(backend, sleep=sleep).run(["s1"]))

    isco, sentiment = report.outcomes
    assert isco.timed_out
    assert isinstance(isco.error, JobTimeoutError)
    assert str(isco.error) == "AI job for isco timed out."
    assert len([c for c in _calls(backend, "get_job") if c[1] == isco.job_id]) == 5
    assert sentiment.status is JobStatus.COMPLETED
    assert sleep.calls[:5] == [3, 3, 3, 3, 3]


def test_failed_polls_count_as_attempts(backend: InMemoryBackend) -> None:
    sleep = SleepRecorder()
    orchestrator = _orchestrator(backend, sleep=sleep)

    with pytest.raises(JobTimeoutError) as excinfo:
        asyncio.run(orchestrator.wait_for_job("missing", "isco"))

    assert excinfo.value.attempts == 5
    assert len(sleep.calls) == 5


def test_failed_job_is_an_outcome_not_an_error(backend: InMemoryBackend) -> None:
    backend.job_scripts["isco"] = {"statuses": ["failed"], "error": "model unavailable"}

    report = asyncio.run(_orchestrator(backend).run(["s1"]))

    outcome = report.outcome_for("isco")
    assert outcome.status is JobStatus.FAILED
    assert outcome.job.error == "model unavailable"
    assert report.outcome_for("sentiment").status is JobStatus.COMPLETED


def test_cancel_stops_before_the_next_taxonomy(backend: InMemoryBackend) -> None:
    orchestrator = _orchestrator(backend)

    async def refresh() -> None:
        orchestrator.cancel()

    orchestrator.on_refresh = refresh
    report = asyncio.run(orchestrator.run(["s1"]))

    assert report.cancelled
    assert [o.taxonomy_key for o in report.outcomes] == ["isco"]
    assert report.skipped == ("sentiment",)
    assert len(_calls(backend, "create_job")) == 1


def test_withdrawn_taxonomy_is_skipped(backend: InMemoryBackend) -> None:
    orchestrator = _orchestrator(backend)
    withdrawals: list[bool] = []

    async def refresh() -> None:
        if not withdrawals:
            withdrawals.append(orchestrator.cancel_taxonomy("isco"))
            withdrawals.append(orchestrator.cancel_taxonomy("sentiment"))

    orchestrator.on_refresh = refresh
    report = asyncio.run(orchestrator.run(["s1"]))

    assert withdrawals == [False, True]
    assert not report.cancelled
    assert [o.taxonomy_key for o in report.outcomes] == ["isco"]
    assert report.skipped == ("sentiment",)


def test_creation_failure_aborts_the_run_and_keeps_earlier_jobs(backend: InMemoryBackend) -> None:
    backend.job_scripts["sentiment"] = {"fail_create": True, "error": "AI service unavailable"}
    context = WorkstationContext()
    selection = {"s1"}
    orchestrator = _orchestrator(backend, context=context)

    with pytest.raises(JobCreationError) as excinfo:
        asyncio.run(orchestrator.run(["s1"], selection=selection))

    err = excinfo.value
    assert str(err) == "AI service unavailable"
    assert err.taxonomy_key == "sentiment"
    assert [o.taxonomy_key for o in err.outcomes] == ["isco"]
    assert selection == {"s1"}
    assert not orchestrator.is_running
    assert context.progress.read().finished


def test_unsynced_taxonomies_block_the_run(backend: InMemoryBackend) -> None:
    backend.taxonomies[1] = backend.taxonomies[1].model_copy(update={"last_ai_sync_status": "pending"})

    with pytest.raises(UnsyncedTaxonomiesError) as excinfo:
        asyncio.run(_orchestrator(backend).run(["s1"]))

    assert excinfo.value.taxonomy_keys == ["sentiment"]
    assert _calls(backend, "create_job") == []


def test_empty_selection_is_rejected_before_any_request(backend: InMemoryBackend) -> None:
    with pytest.raises(PreconditionError):
        asyncio.run(_orchestrator(backend).run([]))

    assert backend.calls == []


def test_check_preconditions_requires_an_active_taxonomy() -> None:
    with pytest.raises(PreconditionError):
        check_preconditions(["s1"], [Taxonomy(key="legacy", is_active=False)])

    active = check_preconditions(["s1"], [Taxonomy(key="isco", last_ai_sync_status="success")])
    assert [t.key for t in active] == ["isco"]


def test_jobs_are_tracked_by_the_poller_only_while_running(backend: InMemoryBackend) -> None:
    poller = ActiveJobPoller(backend)
    seen: list[dict] = []

    async def refresh() -> None:
        seen.append(dict(poller.tracked))

    orchestrator = _orchestrator(backend, poller=poller, on_refresh=refresh)
    asyncio.run(orchestrator.run(["s1"]))

    assert seen == [{}, {}]
    assert not poller.has_tracked_jobs


def test_cancel_during_polling_lets_the_current_job_finish(backend: InMemoryBackend) -> None:
    backend.job_scripts["isco"] = {"statuses": ["processing", "processing", "completed"]}
    refreshed: list[str] = []

    async def cancelling_sleep(_seconds: float) -> None:
        orchestrator.cancel()

    async def refresh() -> None:
        refreshed.append(backend.jobs["job-1"].status.value)

    orchestrator = _orchestrator(backend, sleep=cancelling_sleep, on_refresh=refresh)
    report = asyncio.run(orchestrator.run(["s1"]))

    assert report.cancelled
    assert report.outcome_for("isco").status is JobStatus.COMPLETED
    assert _calls(backend, "get_job") == [("get_job", "job-1")] * 3
    assert refreshed == ["completed"]
    assert report.skipped == ("sentiment",)


def test_repeated_runs_keep_only_the_latest_session_jobs(backend: InMemoryBackend) -> None:
    context = WorkstationContext()
    orchestrator = _orchestrator(backend, context=context)

    reports = [asyncio.run(orchestrator.run(["s1"])) for _ in range(3)]

    assert len({r.session_id for r in reports}) == 3
    assert len(context.store.get_json("aiSessionJobs")) == 2
    assert [j.job_id for j in context.progress.session_jobs()] == ["job-5", "job-6"]


def test_remaining_taxonomies_withdrawn_from_another_store_handle(backend: InMemoryBackend, tmp_path: Path) -> None:
    path = tmp_path / "session_store.json"
    other = WorkstationContext(store=JsonFileKeyValueStore(path))
    withdrawn: list[list[str]] = []

    async def withdrawing_sleep(_seconds: float) -> None:
        if not withdrawn:
            withdrawn.append(other.progress.withdraw_remaining())

    orchestrator = _orchestrator(
        backend, context=WorkstationContext(store=JsonFileKeyValueStore(path)), sleep=withdrawing_sleep
    )
    report = asyncio.run(orchestrator.run(["s1"]))

    assert withdrawn == [["sentiment"]]
    assert report.outcome_for("isco").status is JobStatus.COMPLETED
    assert report.skipped == ("sentiment",)
    assert len(_calls(backend, "create_job")) == 1
