from pathlib import Path

from application.context import WorkstationContext
from application.progress import ProgressChannel, ProgressDescriptor, SessionJob, new_session_id
from infrastructure.store import InMemoryKeyValueStore, JsonFileKeyValueStore, make_store


def test_session_ids_have_the_session_prefix() -> None:
    assert new_session_id().startswith("session-")


def test_descriptor_round_trips_through_the_store() -> None:
    channel = ProgressChannel(InMemoryKeyValueStore())
    channel.begin_session("session-1")
    descriptor = ProgressDescriptor(session_id="session-1", current="isco", remaining=("sentiment",))

    channel.publish(descriptor)

    assert channel.read() == descriptor
    assert channel.store.get_json("aiQueueStatus") == {
        "sessionId": "session-1",
        "current": "isco",
        "remaining": ["sentiment"],
        "finished": False,
    }


def test_descriptor_from_another_session_is_ignored() -> None:
    channel = ProgressChannel(InMemoryKeyValueStore())
    channel.begin_session("session-1")
    channel.publish(ProgressDescriptor(session_id="session-1", current="isco"))

    channel.begin_session("session-2")

    assert channel.read() is None


def test_subscribers_are_notified_and_failures_do_not_stop_publishing() -> None:
    channel = ProgressChannel(InMemoryKeyValueStore())
    received: list[ProgressDescriptor] = []

    def broken(_: ProgressDescriptor) -> None:
        raise RuntimeError("boom")

    channel.subscribe(broken)
    unsubscribe = channel.subscribe(received.append)
    channel.publish(ProgressDescriptor(session_id="s"))
    unsubscribe()
    channel.publish(ProgressDescriptor(session_id="s", finished=True))

    assert received == [ProgressDescriptor(session_id="s")]


def test_withdraw_removes_queued_keys_only() -> None:
    channel = ProgressChannel(InMemoryKeyValueStore())
    channel.begin_session("session-1")
    channel.publish(ProgressDescriptor(session_id="session-1", current="isco", remaining=("sentiment", "topic")))

    assert not channel.withdraw("isco")
    assert channel.withdraw("topic")
    assert not channel.withdraw("topic")
    assert channel.read().remaining == ("sentiment",)
    assert channel.read().is_queued("isco")


def test_session_jobs_are_filtered_by_session() -> None:
    channel = ProgressChannel(InMemoryKeyValueStore())
    channel.begin_session("session-2")
    channel.register_job(SessionJob(job_id="job-1", session_id="session-1", taxonomy_key="isco"))
    channel.register_job(SessionJob(job_id="job-2", session_id="session-2", taxonomy_key="isco"))

    assert [j.job_id for j in channel.session_jobs()] == ["job-2"]
    assert [j.job_id for j in channel.session_jobs("session-1")] == ["job-1"]


def test_file_store_is_shared_between_instances(tmp_path: Path) -> None:
    path = tmp_path / "state" / "store.json"
    writer = WorkstationContext(store=make_store(path))
    reader = WorkstationContext(store=JsonFileKeyValueStore(path))

    writer.progress.begin_session("session-9")
    writer.progress.publish(ProgressDescriptor(session_id="session-9", remaining=("isco",)))
    writer.show_level_names = False

    assert reader.progress.read() == ProgressDescriptor(session_id="session-9", remaining=("isco",))
    assert reader.show_level_names is False


def test_corrupt_values_read_as_missing(tmp_path: Path) -> None:
    path = tmp_path / "store.json"
    path.write_text("not json", encoding="utf-8")
    store = JsonFileKeyValueStore(path)

    assert store.keys() == []
    store.set("aiQueueStatus", "{broken")
    assert store.get_json("aiQueueStatus", default="fallback") == "fallback"


def test_make_store_without_path_is_in_memory() -> None:
    assert isinstance(make_store(None), InMemoryKeyValueStore)


def test_begin_session_drops_jobs_of_earlier_sessions() -> None:
    channel = ProgressChannel(InMemoryKeyValueStore())
    channel.begin_session("session-1")
    channel.register_job(SessionJob(job_id="job-1", session_id="session-1", taxonomy_key="isco"))
    channel.register_job(SessionJob(job_id="job-2", session_id="session-1", taxonomy_key="sentiment"))

    channel.begin_session("session-2")
    channel.register_job(SessionJob(job_id="job-3", session_id="session-2", taxonomy_key="isco"))

    assert channel.session_jobs("session-1") == []
    assert channel.store.get_json("aiSessionJobs") == [
        {"jobId": "job-3", "sessionId": "session-2", "taxonomyKey": "isco"}
    ]


def test_session_ids_increase_within_a_process() -> None:
    first, second = new_session_id(), new_session_id()

    assert first != second
    assert int(second.removeprefix("session-")) > int(first.removeprefix("session-"))


def test_withdraw_remaining_keeps_the_current_taxonomy() -> None:
    channel = ProgressChannel(InMemoryKeyValueStore())
    channel.begin_session("session-1")
    channel.publish(ProgressDescriptor(session_id="session-1", current="isco", remaining=("sentiment", "topic")))

    assert channel.withdraw_remaining() == ["sentiment", "topic"]
    assert channel.read() == ProgressDescriptor(session_id="session-1", current="isco")
    assert channel.withdraw_remaining() == []
