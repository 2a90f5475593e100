import itertools
import logging

import pytest

from camilla_eq.pipeline.disabled_filters import DisabledFiltersOverlay, FilterSlot, step_key
from camilla_eq.pipeline.filter_enablement import (
    disable_filter,
    disable_filter_everywhere,
    enable_filter,
    enable_filter_everywhere,
    filter_view,
    is_filter_enabled_everywhere,
    remove_filter_definition_if_orphaned,
    remove_filter_from_step,
    reorder_filters_in_step,
)
from camilla_eq.pipeline.steps import PipelineEditError

NAMES = ["A", "B", "C", "D"]


def _config(names=NAMES) -> dict:
    return {
        "filters": {name: {"type": "Gain"} for name in ["A", "B", "C", "D", "Bass"]},
        "mixers": {},
        "pipeline": [
            {"type": "Filter", "channels": [0], "names": list(names)},
            {"type": "Filter", "channel": 1, "names": ["Bass"]},
        ],
    }


@pytest.mark.parametrize(
    "disable_order, enable_order",
    [
        (("B", "D"), ("B", "D")),
        (("B", "D"), ("D", "B")),
        (("A", "B"), ("B", "A")),
        (("D", "A", "C"), ("A", "C", "D")),
    ],
)
def test_disable_enable_round_trip_restores_order(disable_order, enable_order) -> None:
    overlay = DisabledFiltersOverlay()
    config = _config()
    for name in disable_order:
        config = disable_filter(config, 0, name, overlay)
    assert config["pipeline"][0]["names"] == [n for n in NAMES if n not in disable_order]
    for name in enable_order:
        config = enable_filter(config, 0, name, overlay)
    assert config["pipeline"][0]["names"] == NAMES
    assert overlay.filter_names() == []


def test_round_trip_holds_for_every_pair_order() -> None:
    for disabled in itertools.permutations(NAMES, 2):
        for enabled in itertools.permutations(disabled):
            overlay = DisabledFiltersOverlay()
            config = _config()
            for name in disabled:
                config = disable_filter(config, 0, name, overlay)
            for name in enabled:
                config = enable_filter(config, 0, name, overlay)
            assert config["pipeline"][0]["names"] == NAMES, (disabled, enabled)


def test_edits_never_mutate_input() -> None:
    overlay = DisabledFiltersOverlay()
    config = _config()
    disable_filter(config, 0, "B", overlay)
    assert config["pipeline"][0]["names"] == NAMES


def test_disable_unknown_filter_raises() -> None:
    with pytest.raises(PipelineEditError, match='Filter "Z" not found in step 0'):
        disable_filter(_config(), 0, "Z", DisabledFiltersOverlay())


def test_enable_requires_recorded_location_unless_index_given() -> None:
    overlay = DisabledFiltersOverlay()
    with pytest.raises(PipelineEditError, match="is not disabled"):
        enable_filter(_config(["A"]), 0, "B", overlay)
    updated = enable_filter(_config(["A"]), 0, "B", overlay, insert_index=10)
    assert updated["pipeline"][0]["names"] == ["A", "B"]
    updated = enable_filter(_config(["A"]), 0, "B", overlay, insert_index=-4)
    assert updated["pipeline"][0]["names"] == ["B", "A"]


def test_filter_view_shows_disabled_in_place() -> None:
    overlay = DisabledFiltersOverlay()
    config = disable_filter(_config(), 0, "B", overlay)
    config = disable_filter(config, 0, "D", overlay)
    assert filter_view(config, 0, overlay) == [
        FilterSlot("A", False),
        FilterSlot("B", True),
        FilterSlot("C", False),
        FilterSlot("D", True),
    ]


def test_reorder_filters_in_step_moves_disabled_entries() -> None:
    overlay = DisabledFiltersOverlay()
    config = disable_filter(_config(), 0, "B", overlay)
    config = disable_filter(config, 0, "D", overlay)

    moved = reorder_filters_in_step(config, 0, 3, 0, overlay)

    assert moved["pipeline"][0]["names"] == ["A", "C"]
    assert [(slot.name, slot.disabled) for slot in filter_view(moved, 0, overlay)] == [
        ("D", True),
        ("A", False),
        ("B", True),
        ("C", False),
    ]
    restored = enable_filter(moved, 0, "D", overlay)
    assert restored["pipeline"][0]["names"] == ["D", "A", "C"]


def test_disable_and_enable_everywhere() -> None:
    overlay = DisabledFiltersOverlay()
    config = _config(["Bass", "A"])
    config = disable_filter_everywhere(config, "Bass", overlay)
    assert [step["names"] for step in config["pipeline"]] == [["A"], []]
    assert {loc.step_key for loc in overlay.locations_for_filter("Bass")} == {
        step_key([0], 0),
        step_key([1], 1),
    }
    assert not is_filter_enabled_everywhere("Bass", overlay)

    config = enable_filter_everywhere(config, "Bass", overlay)
    assert [step["names"] for step in config["pipeline"]] == [["Bass", "A"], ["Bass"]]
    assert is_filter_enabled_everywhere("Bass", overlay)


def test_enable_everywhere_skips_missing_steps(caplog) -> None:
    overlay = DisabledFiltersOverlay()
    overlay.mark_disabled("Bass", step_key([7], 9), 0)
    with caplog.at_level(logging.WARNING, logger="camilla_eq.pipeline.filter_enablement"):
        config = enable_filter_everywhere(_config(), "Bass", overlay)
    assert config["pipeline"][1]["names"] == ["Bass"]
    assert "Could not find step" in caplog.text
    assert overlay.filter_names() == []


def test_remove_disabled_filter_from_step_only_touches_overlay() -> None:
    overlay = DisabledFiltersOverlay()
    config = disable_filter(_config(), 0, "B", overlay)
    removed = remove_filter_from_step(config, 0, "B", overlay)
    assert removed["pipeline"][0]["names"] == ["A", "C", "D"]
    assert not overlay.is_disabled("B")


def test_removing_disabled_filter_shifts_later_disabled_entries() -> None:
    overlay = DisabledFiltersOverlay()
    config = _config(names=["A", "B", "C", "D", "E"])
    config = disable_filter(config, 0, "B", overlay)
    config = disable_filter(config, 0, "D", overlay)

    config = remove_filter_from_step(config, 0, "B", overlay)
    assert filter_view(config, 0, overlay) == [
        FilterSlot("A", False),
        FilterSlot("C", False),
        FilterSlot("D", True),
        FilterSlot("E", False),
    ]
    config = enable_filter(config, 0, "D", overlay)
    assert config["pipeline"][0]["names"] == ["A", "C", "D", "E"]


def test_removing_active_filter_shifts_later_disabled_entries() -> None:
    overlay = DisabledFiltersOverlay()
    config = disable_filter(_config(), 0, "C", overlay)

    config = remove_filter_from_step(config, 0, "A", overlay)
    assert overlay.location("C", step_key([0], 0)).index == 1
    config = enable_filter(config, 0, "C", overlay)
    assert config["pipeline"][0]["names"] == ["B", "C", "D"]


def test_removing_filter_leaves_other_steps_alone() -> None:
    overlay = DisabledFiltersOverlay()
    config = disable_filter(_config(), 0, "D", overlay)
    config = disable_filter(config, 1, "Bass", overlay)
    config = remove_filter_from_step(config, 0, "A", overlay)
    assert overlay.location("D", step_key([0], 0)).index == 2
    assert overlay.location("Bass", step_key([1], 1)).index == 0


def test_orphan_definition_removed_only_when_unreferenced() -> None:
    overlay = DisabledFiltersOverlay()
    config = _config()
    assert "A" in remove_filter_definition_if_orphaned(config, "A", overlay)["filters"]

    config = disable_filter(config, 0, "A", overlay)
    assert "A" in remove_filter_definition_if_orphaned(config, "A", overlay)["filters"]

    config = remove_filter_from_step(config, 0, "A", overlay)
    assert "A" not in remove_filter_definition_if_orphaned(config, "A", overlay)["filters"]
