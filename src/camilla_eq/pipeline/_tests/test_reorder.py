import pytest

from camilla_eq.pipeline.disabled_filters import DisabledFiltersOverlay, MemoryOverlayStore, step_key
from camilla_eq.pipeline.filter_enablement import disable_filter, enable_filter
from camilla_eq.pipeline.reorder import (
    FilterItem,
    array_move,
    insert_pipeline_step,
    moved_index,
    remap_disabled_filters_after_reorder,
    remove_pipeline_step,
    reorder_filter_names_in_step,
    reorder_filters_with_disabled,
    reorder_pipeline,
)
from camilla_eq.pipeline.steps import PipelineEditError


def _three_step_config() -> dict:
    return {
        "filters": {"A": {}, "B": {}, "C": {}},
        "mixers": {"m": {}},
        "pipeline": [
            {"type": "Filter", "channels": [0], "names": ["A", "B", "C"]},
            {"type": "Mixer", "name": "m"},
            {"type": "Filter", "channels": [1], "names": ["A"]},
        ],
    }


@pytest.mark.parametrize(
    "old, expected",
    [(0, 2), (1, 0), (2, 1), (3, 3)],
)
def test_moved_index_forward(old, expected) -> None:
    assert moved_index(old, 0, 2) == expected


@pytest.mark.parametrize(
    "old, expected",
    [(3, 1), (1, 2), (2, 3), (0, 0), (4, 4)],
)
def test_moved_index_backward(old, expected) -> None:
    assert moved_index(old, 3, 1) == expected


def test_moved_index_agrees_with_array_move() -> None:
    items = list(range(5))
    for src in range(5):
        for dst in range(5):
            moved = array_move(items, src, dst)
            for old in items:
                assert moved[moved_index(old, src, dst)] == old


def test_moving_step_carries_its_disabled_filters() -> None:
    overlay = DisabledFiltersOverlay()
    config = disable_filter(_three_step_config(), 0, "B", overlay)
    assert overlay.location("B", step_key([0], 0)).index == 1

    moved = reorder_pipeline(config, 0, 2, overlay)

    assert [step.get("name") or step["channels"] for step in moved["pipeline"]] == ["m", [1], [0]]
    assert overlay.location("B", step_key([0], 2)).index == 1
    assert overlay.location("B", step_key([0], 0)) is None
    assert config["pipeline"][0]["channels"] == [0]


def test_noop_move_writes_nothing() -> None:
    store = MemoryOverlayStore()
    overlay = DisabledFiltersOverlay(store)
    overlay.disable("A", step_key([0], 0), 0)
    store.document = None
    assert remap_disabled_filters_after_reorder(overlay, 1, 1) == 0
    assert store.document is None


def test_unrelated_steps_keep_their_keys() -> None:
    overlay = DisabledFiltersOverlay()
    overlay.disable("A", step_key([5], 4), 0)
    overlay.disable("B", "garbage-key", 0)
    assert remap_disabled_filters_after_reorder(overlay, 0, 2) == 0
    assert overlay.is_disabled("A", step_key([5], 4))
    assert overlay.is_disabled("B", "garbage-key")


def test_reorder_rejects_bad_indices() -> None:
    with pytest.raises(PipelineEditError):
        reorder_pipeline(_three_step_config(), 0, 3)


def test_insert_shifts_later_keys() -> None:
    overlay = DisabledFiltersOverlay()
    overlay.disable("A", step_key([1], 2), 0)
    overlay.disable("B", step_key([0], 0), 1)
    updated = insert_pipeline_step(_three_step_config(), 1, {"type": "Mixer", "name": "m"}, overlay)
    assert len(updated["pipeline"]) == 4
    assert overlay.is_disabled("A", step_key([1], 3))
    assert overlay.is_disabled("B", step_key([0], 0))


def test_insert_index_is_clamped() -> None:
    updated = insert_pipeline_step(_three_step_config(), 99, {"type": "Mixer", "name": "m"})
    assert updated["pipeline"][-1] == {"type": "Mixer", "name": "m"}


def test_remove_drops_overlay_of_deleted_step() -> None:
    overlay = DisabledFiltersOverlay()
    overlay.disable("B", step_key([0], 0), 1)
    overlay.disable("A", step_key([1], 2), 0)
    updated = remove_pipeline_step(_three_step_config(), 0, overlay)
    assert len(updated["pipeline"]) == 2
    assert overlay.filter_names() == ["A"]
    assert overlay.is_disabled("A", step_key([1], 1))


def test_reorder_filter_names_in_step() -> None:
    updated = reorder_filter_names_in_step(_three_step_config(), 0, 2, 0)
    assert updated["pipeline"][0]["names"] == ["C", "A", "B"]


def test_reorder_with_disabled_reports_new_full_indices() -> None:
    items = [FilterItem("A", False), FilterItem("B", True), FilterItem("C", False), FilterItem("D", True)]
    result = reorder_filters_with_disabled(items, 3, 0)
    assert result.enabled_names == ["A", "C"]
    assert result.disabled_indices == {"D": 0, "B": 2}


def test_reorder_filter_names_keeps_disabled_entries_in_place() -> None:
    overlay = DisabledFiltersOverlay()
    config = _three_step_config()
    config["pipeline"][0]["names"] = ["A", "B", "C", "D"]
    config = disable_filter(config, 0, "B", overlay)

    # active index 0 (A) to active index 2 (D): A lands after D in the full list
    updated = reorder_filter_names_in_step(config, 0, 0, 2, overlay)
    assert updated["pipeline"][0]["names"] == ["C", "D", "A"]
    assert overlay.location("B", step_key([0], 0)).index == 0

    restored = enable_filter(updated, 0, "B", overlay)
    assert restored["pipeline"][0]["names"] == ["B", "C", "D", "A"]


def test_reorder_filter_names_rejects_bad_indices() -> None:
    with pytest.raises(PipelineEditError, match="Invalid filter index: 3"):
        reorder_filter_names_in_step(_three_step_config(), 0, 0, 3)
