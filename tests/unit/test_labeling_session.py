import asyncio

import pytest

from builders import no_sleep, node, user_label
from application.labeling import LabelingSession
from domain.errors import SubmissionRejectedError
from domain.schemas import LabelSource, RecordStatus
from infrastructure.backends.memory import InMemoryBackend


def _open(backend: InMemoryBackend, record_ids=("s1", "s2", "s3")) -> LabelingSession:
    return asyncio.run(LabelingSession.open(backend, record_ids=list(record_ids), debounce_s=0, sleep=no_sleep))


def _stored_codes(backend: InMemoryBackend, record_id: str, key: str) -> list[str]:
    return [a.node_code for a in backend.annotations.get((record_id, key), [])]


def _submits(backend: InMemoryBackend) -> list[tuple]:
    return [c for c in backend.calls if c[0] == "submit_annotations"]


def test_open_loads_first_record_on_first_active_taxonomy(backend: InMemoryBackend) -> None:
    session = _open(backend)

    assert session.record_id == "s1"
    assert [t.key for t in session.taxonomies] == ["isco", "sentiment"]
    assert session.active_taxonomy.key == "isco"
    assert session.labels == ()
    assert not session.can_submit


def test_submit_unknown_path_then_advance_to_next_incomplete_taxonomy(backend: InMemoryBackend) -> None:
    session = _open(backend)
    session.selector.select_node(node("1", 1))
    session.selector.select_node(node("12", 2, "1"))
    session.selector.select_unknown()
    assert session.can_submit

    outcome = asyncio.run(session.submit())

    assert outcome.result.status is RecordStatus.PENDING
    assert outcome.result.completed_taxonomies == ["isco"]
    assert outcome.next_taxonomy == "sentiment"
    assert session.active_taxonomy.key == "sentiment"
    assert _stored_codes(backend, "s1", "isco") == ["1", "12", "-999"]
    assert session.tracker.is_complete("isco")


def test_completing_every_taxonomy_submits_the_record_and_moves_on(backend: InMemoryBackend) -> None:
    session = _open(backend)
    session.selector.select_unknown()
    asyncio.run(session.submit())

    session.selector.select_node(node("X", 1, leaf=True))
    outcome = asyncio.run(session.submit())

    assert outcome.result.status is RecordStatus.SUBMITTED
    assert outcome.result.all_completed
    assert outcome.next_record == "s2"
    assert session.record_id == "s2"
    assert backend.records["s1"].status is RecordStatus.SUBMITTED


def test_resubmitting_replaces_only_that_taxonomys_annotations(backend: InMemoryBackend) -> None:
    session = _open(backend)
    session.selector.select_unknown()
    asyncio.run(session.submit())
    session.selector.select_node(node("X", 1, leaf=True))
    asyncio.run(session.submit())
    asyncio.run(session.previous_record())
    assert session.record_id == "s1"
    assert [lbl.node_code for lbl in session.labels] == ["-9"]

    session.selector.select_node(node("1", 1))
    session.selector.select_node(node("12", 2, "1"))
    session.selector.select_node(node("123", 3, "12", leaf=True))
    asyncio.run(session.submit())

    assert _stored_codes(backend, "s1", "isco") == ["1", "12", "123"]
    assert _stored_codes(backend, "s1", "sentiment") == ["X"]


def test_incomplete_path_is_rejected_without_a_request(backend: InMemoryBackend) -> None:
    session = _open(backend)
    session.selector.select_node(node("1", 1))

    with pytest.raises(SubmissionRejectedError):
        asyncio.run(session.submit())
    assert _submits(backend) == []


def test_second_submit_while_one_is_in_flight_is_ignored(backend: InMemoryBackend) -> None:
    session = _open(backend)
    session.selector.select_unknown()
    original = backend.submit_annotations

    async def slow_submit(record_id, request):
        for _ in range(3):
            await asyncio.sleep(0)
        return await original(record_id, request)

    backend.submit_annotations = slow_submit

    async def scenario():
        return await asyncio.gather(session.submit(), session.submit())

    first, second = asyncio.run(scenario())

    assert first is not None
    assert second is None
    assert len(_submits(backend)) == 1


def test_ai_suggestion_diverges_on_edit_and_restores(backend: InMemoryBackend) -> None:
    session = _open(backend, ["s2"])

    assert session.has_ai_suggestion
    assert not session.is_diverged
    assert session.can_submit
    assert not session.tracker.is_complete("isco")

    session.selector.delete_label(3)
    assert session.is_diverged
    assert not session.can_submit

    session.restore_ai_suggestion()
    assert not session.is_diverged
    assert [lbl.node_code for lbl in session.labels] == ["1", "12", "123"]
    assert all(lbl.source is LabelSource.AI for lbl in session.labels)

    asyncio.run(session.submit())
    stored = backend.annotations[("s2", "isco")]
    assert [a.node_code for a in stored] == ["1", "12", "123"]
    assert all(a.source is LabelSource.USER for a in stored)


def test_switching_tabs_reloads_persisted_labels_at_the_root(backend: InMemoryBackend) -> None:
    session = _open(backend)
    session.selector.select_node(node("1", 1))

    session.switch_taxonomy(1)
    session.switch_taxonomy(0)

    assert session.labels == ()
    assert session.selector.current_level == 1
    with pytest.raises(IndexError):
        session.switch_taxonomy(5)


def test_skip_marks_record_skipped_and_keeps_annotations(backend: InMemoryBackend) -> None:
    session = _open(backend)
    session.selector.select_unknown()
    asyncio.run(session.submit())

    next_id = asyncio.run(session.skip())

    assert next_id == "s2"
    assert backend.records["s1"].status is RecordStatus.SKIPPED
    assert _stored_codes(backend, "s1", "isco") == ["-9"]


def test_flag_toggles_without_touching_status(backend: InMemoryBackend) -> None:
    session = _open(backend)

    assert asyncio.run(session.toggle_flag()) is True
    assert backend.records["s1"].flagged is True
    assert backend.records["s1"].status is RecordStatus.PENDING
    assert session.record.flagged is True

    assert asyncio.run(session.toggle_flag()) is False
    assert backend.records["s1"].flagged is False


def test_end_of_queue(backend: InMemoryBackend) -> None:
    session = _open(backend, ["s1"])

    assert asyncio.run(session.next_record()) is None
    assert asyncio.run(session.previous_record()) is None
    assert session.record_id == "s1"


def test_bulk_label_applies_one_path_to_many_records(backend: InMemoryBackend) -> None:
    session = _open(backend)
    path = [user_label("1", 1), user_label("12", 2), user_label("123", 3, leaf=True)]

    count = asyncio.run(session.bulk_label(["s1", "s3"], path))

    assert count == 2
    assert _stored_codes(backend, "s3", "isco") == ["1", "12", "123"]
    assert backend.records["s3"].status is RecordStatus.SUBMITTED


def test_bulk_label_rejects_non_terminal_paths(backend: InMemoryBackend) -> None:
    session = _open(backend)

    with pytest.raises(SubmissionRejectedError):
        asyncio.run(session.bulk_label(["s1"], [user_label("1", 1)]))
    with pytest.raises(SubmissionRejectedError):
        asyncio.run(session.bulk_label([], [user_label("-9", 1)]))
