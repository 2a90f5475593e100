"""Filter enable/disable and other per-step editing operations.

Every function takes a configuration document, returns an edited deep copy
and leaves the input untouched.  Overlay bookkeeping happens in the same call
so the document and the overlay never disagree about where a disabled filter
belongs.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from camilla_eq.pipeline.disabled_filters import (
    DisabledFilterLocation,
    DisabledFiltersOverlay,
    FilterSlot,
    reconstruct_filter_order,
    step_key,
)
from camilla_eq.pipeline.reorder import FilterItem, reorder_filters_with_disabled
from camilla_eq.pipeline.steps import (
    PipelineEditError,
    StepKind,
    clone_config,
    filter_step_at,
    normalize_pipeline_step,
)

logger = logging.getLogger(__name__)


def _key_for(step: Mapping[str, Any], step_index: int) -> str:
    normalized = normalize_pipeline_step(step)
    channels = normalized.channels if normalized is not None and normalized.channels else ()
    return step_key(channels, step_index)


def _active_insert_index(location: DisabledFilterLocation, step_locations: Sequence[DisabledFilterLocation]) -> int:
    # full-list index minus the other disabled entries that sit before it
    before = sum(
        1
        for other in step_locations
        if other.filter_name != location.filter_name and other.index < location.index
    )
    return location.index - before


def _remove_name(step: Dict[str, Any], step_index: int, filter_name: str) -> int:
    names = list(step.get("names") or [])
    try:
        index = names.index(filter_name)
    except ValueError:
        raise PipelineEditError(f'Filter "{filter_name}" not found in step {step_index}') from None
    del names[index]
    step["names"] = names
    return index


def _insert_name(step: Dict[str, Any], filter_name: str, insert_index: int) -> int:
    names = list(step.get("names") or [])
    clamped = max(0, min(len(names), insert_index))
    names.insert(clamped, filter_name)
    step["names"] = names
    return clamped


def disable_filter(
    config: Mapping[str, Any],
    step_index: int,
    filter_name: str,
    overlay: DisabledFiltersOverlay,
) -> Dict[str, Any]:
    """Remove *filter_name* from one step and remember its position."""

    updated = clone_config(config)
    step = filter_step_at(updated, step_index)
    key = _key_for(step, step_index)
    index = _remove_name(step, step_index, filter_name)
    overlay.disable(filter_name, key, index)
    return updated


def enable_filter(
    config: Mapping[str, Any],
    step_index: int,
    filter_name: str,
    overlay: DisabledFiltersOverlay,
    insert_index: Optional[int] = None,
) -> Dict[str, Any]:
    """Put *filter_name* back into one step.

    Without *insert_index* the position recorded at disable time is used.
    The insert position is clamped to the active list either way.
    """

    updated = clone_config(config)
    step = filter_step_at(updated, step_index)
    key = _key_for(step, step_index)
    if insert_index is None:
        location = overlay.location(filter_name, key)
        if location is None:
            raise PipelineEditError(f'Filter "{filter_name}" is not disabled in step {step_index}')
        insert_index = _active_insert_index(location, overlay.locations_for_step(key))
    _insert_name(step, filter_name, insert_index)
    overlay.enable(filter_name, key)
    return updated


def disable_filter_everywhere(
    config: Mapping[str, Any],
    filter_name: str,
    overlay: DisabledFiltersOverlay,
) -> Dict[str, Any]:
    updated = clone_config(config)
    for step_index, step in enumerate(updated.get("pipeline") or []):
        normalized = normalize_pipeline_step(step)
        if normalized is None or normalized.kind is not StepKind.FILTER:
            continue
        if filter_name not in (normalized.names or ()):
            continue
        key = step_key(normalized.channels or (), step_index)
        index = _remove_name(step, step_index, filter_name)
        overlay.disable(filter_name, key, index)
    return updated


def enable_filter_everywhere(
    config: Mapping[str, Any],
    filter_name: str,
    overlay: DisabledFiltersOverlay,
) -> Dict[str, Any]:
    """Restore *filter_name* into every step the overlay remembers."""

    updated = clone_config(config)
    locations = overlay.locations_for_filter(filter_name)
    if not locations:
        return updated

    steps_by_key: Dict[str, Dict[str, Any]] = {}
    for step_index, step in enumerate(updated.get("pipeline") or []):
        normalized = normalize_pipeline_step(step)
        if normalized is None or normalized.kind is not StepKind.FILTER:
            continue
        steps_by_key[step_key(normalized.channels or (), step_index)] = step

    for location in locations:
        step = steps_by_key.get(location.step_key)
        if step is None:
            logger.warning(
                'Could not find step with key "%s" to restore filter "%s"',
                location.step_key,
                filter_name,
            )
            continue
        insert_index = _active_insert_index(location, overlay.locations_for_step(location.step_key))
        _insert_name(step, filter_name, insert_index)

    overlay.enable_everywhere(filter_name)
    return updated


def is_filter_enabled_everywhere(filter_name: str, overlay: DisabledFiltersOverlay) -> bool:
    return not overlay.is_disabled(filter_name)


def remove_filter_from_step(
    config: Mapping[str, Any],
    step_index: int,
    filter_name: str,
    overlay: Optional[DisabledFiltersOverlay] = None,
) -> Dict[str, Any]:
    """Delete the reference outright (active or disabled) from one step.

    The step's full list loses a slot, so the remaining disabled entries of
    the step are re-recorded at their new positions.
    """

    updated = clone_config(config)
    step = filter_step_at(updated, step_index)
    key = _key_for(step, step_index)
    if overlay is None:
        _remove_name(step, step_index, filter_name)
        return updated

    view = reconstruct_filter_order(list(step.get("names") or []), overlay.locations_for_step(key))
    if overlay.enable(filter_name, key) is not None:
        removed = FilterSlot(name=filter_name, disabled=True)
    else:
        _remove_name(step, step_index, filter_name)
        removed = FilterSlot(name=filter_name, disabled=False)
    view.remove(removed)
    _store_disabled_positions(overlay, key, view)
    return updated


def _store_disabled_positions(overlay: DisabledFiltersOverlay, key: str, view: Sequence[FilterSlot]) -> None:
    for position, slot in enumerate(view):
        if not slot.disabled:
            continue
        location = overlay.location(slot.name, key)
        if location is not None and location.index != position:
            overlay.mark_disabled(slot.name, key, position)


def remove_filter_definition_if_orphaned(
    config: Mapping[str, Any],
    filter_name: str,
    overlay: Optional[DisabledFiltersOverlay] = None,
) -> Dict[str, Any]:
    """Drop the definition of *filter_name* when nothing references it.

    Disabled references recorded in *overlay* count as references.
    """

    for raw in config.get("pipeline") or []:
        step = normalize_pipeline_step(raw)
        if step is not None and step.kind is StepKind.FILTER and filter_name in (step.names or ()):
            return clone_config(config)
    if overlay is not None and overlay.is_disabled(filter_name):
        return clone_config(config)
    updated = clone_config(config)
    filters = updated.get("filters")
    if isinstance(filters, dict):
        filters.pop(filter_name, None)
    return updated


def filter_view(
    config: Mapping[str, Any],
    step_index: int,
    overlay: DisabledFiltersOverlay,
) -> List[FilterSlot]:
    """Full enabled + disabled filter order of one Filter step."""

    step = filter_step_at(config, step_index)
    key = _key_for(step, step_index)
    return reconstruct_filter_order(list(step.get("names") or []), overlay.locations_for_step(key))


def reorder_filters_in_step(
    config: Mapping[str, Any],
    step_index: int,
    from_index: int,
    to_index: int,
    overlay: DisabledFiltersOverlay,
) -> Dict[str, Any]:
    """Move an entry of the full display list and store the resulting order."""

    view = filter_view(config, step_index, overlay)
    for idx in (from_index, to_index):
        if idx < 0 or idx >= len(view):
            raise PipelineEditError(f"Invalid filter index: {idx}")
    result = reorder_filters_with_disabled(
        [FilterItem(name=slot.name, disabled=slot.disabled) for slot in view],
        from_index,
        to_index,
    )
    updated = clone_config(config)
    step = filter_step_at(updated, step_index)
    step["names"] = result.enabled_names
    key = _key_for(step, step_index)
    for name, index in result.disabled_indices.items():
        overlay.mark_disabled(name, key, index)
    return updated
