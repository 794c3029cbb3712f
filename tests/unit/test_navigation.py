import pytest

from builders import node, user_label
from domain.schemas import Taxonomy
from domain.taxonomy import navigation as nav


def _codes(state: nav.PathState) -> list[str]:
    return [lbl.node_code for lbl in state.labels]


def test_initial_state_browses_root_with_existing_labels(isco: Taxonomy) -> None:
    state = nav.initial_state(isco, [user_label("12", 2), user_label("1", 1)])

    assert _codes(state) == ["1", "12"]
    assert state.mode == nav.Browsing(level=1, parent=None)
    assert state.breadcrumb == ()


def test_select_non_leaf_descends_one_level(isco: Taxonomy) -> None:
    state = nav.select_node(nav.initial_state(isco), node("1", 1))

    assert _codes(state) == ["1"]
    assert state.current_level == 2
    assert state.current_parent == "1"
    assert [lbl.node_code for lbl in state.breadcrumb] == ["1"]


def test_select_leaf_stays_on_its_level(isco: Taxonomy) -> None:
    state = nav.initial_state(isco)
    for n in (node("1", 1), node("12", 2, "1"), node("123", 3, "12", leaf=True)):
        state = nav.select_node(state, n)

    assert _codes(state) == ["1", "12", "123"]
    assert state.mode == nav.Browsing(level=3, parent="12")


def test_reselecting_a_level_cascades_deeper_labels_away(isco: Taxonomy) -> None:
    state = nav.select_node(nav.select_node(nav.initial_state(isco), node("1", 1)), node("12", 2, "1"))

    state = nav.select_node(state, node("2", 1))

    assert _codes(state) == ["2"]
    assert state.mode == nav.Browsing(level=2, parent="2")


def test_select_node_refuses_gaps(isco: Taxonomy) -> None:
    with pytest.raises(ValueError):
        nav.select_node(nav.initial_state(isco), node("123", 3, "12"))


def test_select_unknown_uses_level_code_and_does_not_descend(isco: Taxonomy) -> None:
    state = nav.select_node(nav.select_node(nav.initial_state(isco), node("1", 1)), node("12", 2, "1"))

    state = nav.select_unknown(state)

    assert _codes(state) == ["1", "12", "-999"]
    assert state.mode == nav.Browsing(level=3, parent="12")


def test_select_unknown_at_root(isco: Taxonomy) -> None:
    state = nav.select_unknown(nav.initial_state(isco))

    assert _codes(state) == ["-9"]
    assert state.current_level == 1


def test_delete_label_truncates_and_browses_below_remaining(isco: Taxonomy) -> None:
    state = nav.initial_state(isco, [user_label("1", 1), user_label("12", 2), user_label("123", 3, leaf=True)])

    state = nav.delete_label(state, 2)

    assert _codes(state) == ["1"]
    assert state.mode == nav.Browsing(level=2, parent="1")
    assert nav.delete_label(state, 1).mode == nav.ROOT


def test_delete_label_without_labels_at_level_is_a_no_op(isco: Taxonomy) -> None:
    state = nav.initial_state(isco, [user_label("1", 1)])

    assert nav.delete_label(state, 3) is state


def test_navigate_up_pops_breadcrumb_then_falls_back_to_root(isco: Taxonomy) -> None:
    state = nav.select_node(nav.select_node(nav.initial_state(isco), node("1", 1)), node("12", 2, "1"))
    assert state.mode == nav.Browsing(level=3, parent="12")

    state = nav.navigate_up(state)
    assert state.mode == nav.Browsing(level=2, parent="1")
    assert _codes(state) == ["1", "12"]

    state = nav.navigate_up(state)
    assert state.mode == nav.ROOT
    assert nav.navigate_up(state).mode == nav.ROOT


def test_focus_label_browses_alternatives_without_changing_labels(isco: Taxonomy) -> None:
    state = nav.initial_state(isco, [user_label("1", 1), user_label("12", 2)])

    focused = nav.focus_label(state, 2)

    assert focused.mode == nav.Browsing(level=2, parent="1")
    assert focused.labels == state.labels
    with pytest.raises(ValueError):
        nav.focus_label(state, 3)


def test_search_remembers_where_browsing_resumes(isco: Taxonomy) -> None:
    state = nav.select_node(nav.initial_state(isco), node("1", 1))

    searching = nav.start_search(state, "  sales ")
    assert searching.is_searching
    assert searching.search_query == "sales"
    assert searching.current_level == 2

    assert nav.clear_search(searching).mode == nav.Browsing(level=2, parent="1")
    assert not nav.start_search(state, "   ").is_searching


def test_apply_path_rejects_gapped_paths(isco: Taxonomy) -> None:
    with pytest.raises(ValueError):
        nav.apply_path(nav.initial_state(isco), [user_label("1", 1), user_label("123", 3)])


def test_replace_labels_accepts_partial_paths(isco: Taxonomy) -> None:
    state = nav.replace_labels(nav.initial_state(isco), [user_label("1", 1)])

    assert state.mode == nav.Browsing(level=2, parent="1")
