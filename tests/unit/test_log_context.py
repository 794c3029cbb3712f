import logging

from infrastructure.observability.logging import (
    ContextInjectFilter,
    clear_taxonomy_context,
    get_log_context,
    make_session_tag,
    set_log_context,
)


def test_session_tag_is_short_and_stable() -> None:
    tag = make_session_tag("session-1700000000000")

    assert len(tag) == 8
    assert tag == make_session_tag("session-1700000000000")
    assert tag != make_session_tag("session-1700000000001")


def test_context_is_injected_into_records() -> None:
    set_log_context(session_id="session-1", taxonomy_key="isco", record_id="s1")
    record = logging.LogRecord("test", logging.INFO, __file__, 1, "msg", None, None)

    assert ContextInjectFilter().filter(record)
    assert record.session == make_session_tag("session-1")
    assert record.taxonomy == "isco"
    assert get_log_context()["record"] == "s1"

    clear_taxonomy_context()
    assert get_log_context()["taxonomy"] == "-"
    assert get_log_context()["session_id_full"] == "session-1"
