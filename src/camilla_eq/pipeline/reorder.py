"""Pipeline reordering and the overlay key remapping that must follow it.

Overlay step keys embed the step's pipeline index, so every structural edit
of the pipeline (move, insert, delete) has a matching remap that rewrites the
keys of the affected steps.  The document helpers here deep-copy their input
and, when given an overlay, apply the remap in the same call.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, TypeVar

from camilla_eq.pipeline.disabled_filters import (
    DisabledFiltersOverlay,
    parse_step_key,
    reconstruct_filter_order,
    step_key,
)
from camilla_eq.pipeline.steps import PipelineEditError, clone_config, filter_step_at, normalize_pipeline_step

T = TypeVar("T")


def array_move(items: Sequence[T], from_index: int, to_index: int) -> List[T]:
    result = list(items)
    if from_index == to_index:
        return result
    moved = result.pop(from_index)
    result.insert(to_index, moved)
    return result


def moved_index(old_index: int, from_index: int, to_index: int) -> int:
    """Position of the step formerly at *old_index* after moving *from_index* to *to_index*."""

    if old_index == from_index:
        return to_index
    if from_index < to_index:
        if from_index < old_index <= to_index:
            return old_index - 1
    elif to_index <= old_index < from_index:
        return old_index + 1
    return old_index


def _remap_keys(overlay: DisabledFiltersOverlay, index_map: Callable[[int], Optional[int]]) -> int:
    def _rewrite(key: str) -> Optional[str]:
        parsed = parse_step_key(key)
        if parsed is None:
            # malformed keys are kept untouched
            return key
        channels, old_index = parsed
        new_index = index_map(old_index)
        if new_index is None:
            return None
        return step_key(channels, new_index)

    return overlay.rekey(_rewrite)


def remap_disabled_filters_after_reorder(
    overlay: DisabledFiltersOverlay, from_index: int, to_index: int
) -> int:
    """Rewrite overlay keys after a single-step move; a no-op move writes nothing."""

    if from_index == to_index:
        return 0
    return _remap_keys(overlay, lambda old: moved_index(old, from_index, to_index))


def remap_disabled_filters_after_insert(overlay: DisabledFiltersOverlay, index: int) -> int:
    return _remap_keys(overlay, lambda old: old + 1 if old >= index else old)


def remap_disabled_filters_after_remove(overlay: DisabledFiltersOverlay, index: int) -> int:
    """Shift keys after a step deletion; locations of the deleted step are dropped."""

    def _index_map(old: int) -> Optional[int]:
        if old == index:
            return None
        return old - 1 if old > index else old

    return _remap_keys(overlay, _index_map)


def _pipeline(config: Mapping[str, Any]) -> List[Any]:
    pipeline = config.get("pipeline")
    if not isinstance(pipeline, list):
        raise PipelineEditError("No pipeline in config")
    return pipeline


def reorder_pipeline(
    config: Mapping[str, Any],
    from_index: int,
    to_index: int,
    overlay: Optional[DisabledFiltersOverlay] = None,
) -> Dict[str, Any]:
    updated = clone_config(config)
    pipeline = _pipeline(updated)
    for idx in (from_index, to_index):
        if idx < 0 or idx >= len(pipeline):
            raise PipelineEditError(f"Invalid step index: {idx}")
    updated["pipeline"] = array_move(pipeline, from_index, to_index)
    if overlay is not None:
        remap_disabled_filters_after_reorder(overlay, from_index, to_index)
    return updated


def insert_pipeline_step(
    config: Mapping[str, Any],
    index: int,
    step: Mapping[str, Any],
    overlay: Optional[DisabledFiltersOverlay] = None,
) -> Dict[str, Any]:
    """Insert *step* at *index* (clamped to the pipeline bounds)."""

    updated = clone_config(config)
    pipeline = _pipeline(updated)
    clamped = max(0, min(len(pipeline), index))
    pipeline.insert(clamped, dict(step))
    if overlay is not None:
        remap_disabled_filters_after_insert(overlay, clamped)
    return updated


def remove_pipeline_step(
    config: Mapping[str, Any],
    step_index: int,
    overlay: Optional[DisabledFiltersOverlay] = None,
) -> Dict[str, Any]:
    updated = clone_config(config)
    pipeline = _pipeline(updated)
    if step_index < 0 or step_index >= len(pipeline):
        raise PipelineEditError(f"Invalid step index: {step_index}")
    del pipeline[step_index]
    if overlay is not None:
        remap_disabled_filters_after_remove(overlay, step_index)
    return updated


def reorder_filter_names_in_step(
    config: Mapping[str, Any],
    step_index: int,
    from_index: int,
    to_index: int,
    overlay: Optional[DisabledFiltersOverlay] = None,
) -> Dict[str, Any]:
    """Move an active filter within a step; indices refer to the active ``names`` list.

    With an overlay, the move is applied to the full list so the step's
    disabled entries keep their neighbours.
    """

    updated = clone_config(config)
    step = filter_step_at(updated, step_index)
    names = list(step.get("names") or [])
    for idx in (from_index, to_index):
        if idx < 0 or idx >= len(names):
            raise PipelineEditError(f"Invalid filter index: {idx}")
    if overlay is None:
        step["names"] = array_move(names, from_index, to_index)
        return updated

    key = step_key(_step_channels(step), step_index)
    view = reconstruct_filter_order(names, overlay.locations_for_step(key))
    active_positions = [pos for pos, slot in enumerate(view) if not slot.disabled]
    result = reorder_filters_with_disabled(
        [FilterItem(name=slot.name, disabled=slot.disabled) for slot in view],
        active_positions[from_index],
        active_positions[to_index],
    )
    step["names"] = result.enabled_names
    for name, index in result.disabled_indices.items():
        location = overlay.location(name, key)
        if location is not None and location.index != index:
            overlay.mark_disabled(name, key, index)
    return updated


def _step_channels(step: Mapping[str, Any]) -> Tuple[int, ...]:
    normalized = normalize_pipeline_step(step)
    return normalized.channels if normalized is not None and normalized.channels else ()


@dataclass(frozen=True)
class FilterItem:
    name: str
    disabled: bool


@dataclass(frozen=True)
class ReorderWithDisabledResult:
    enabled_names: List[str]
    disabled_indices: Dict[str, int]


def reorder_filters_with_disabled(
    filters: Sequence[FilterItem], from_index: int, to_index: int
) -> ReorderWithDisabledResult:
    """Move within the full (enabled + disabled) display list.

    Returns the new active ``names`` list and the new full-list index of every
    disabled entry.
    """

    reordered = array_move(filters, from_index, to_index)
    enabled: List[str] = []
    disabled: Dict[str, int] = {}
    for pos, item in enumerate(reordered):
        if item.disabled:
            disabled[item.name] = pos
        else:
            enabled.append(item.name)
    return ReorderWithDisabledResult(enabled_names=enabled, disabled_indices=disabled)
