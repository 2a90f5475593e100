"""Factories for new pipeline blocks and whole-document definition cleanup."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Set

from camilla_eq.pipeline.disabled_filters import DisabledFiltersOverlay
from camilla_eq.pipeline.steps import (
    FILTER,
    MIXER,
    PipelineEditError,
    StepKind,
    clone_config,
    normalize_pipeline_step,
)


@dataclass(frozen=True)
class NewBlock:
    """A definition to store under ``section[name]`` plus the step that uses it."""

    name: str
    definition: Dict[str, Any]
    step: Dict[str, Any]


def create_new_filter_step(config: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    # channel 0 is always present on the capture side
    return {
        "type": FILTER,
        "channels": [0],
        "names": [],
        "description": "Filter Block",
        "bypassed": False,
    }


def _unique_name(existing: Mapping[str, Any], base: str, *, always_number: bool) -> str:
    if not always_number and base not in existing:
        return base
    counter = 1
    while f"{base}_{counter}" in existing:
        counter += 1
    return f"{base}_{counter}"


def _passthrough_source(channel: int) -> Dict[str, Any]:
    return {"channel": channel, "gain": 0, "inverted": False, "mute": False, "scale": "dB"}


def create_new_mixer_block(config: Mapping[str, Any]) -> NewBlock:
    """A 2 in / 2 out passthrough mixer named ``mixer_<n>``."""

    name = _unique_name(config.get("mixers") or {}, "mixer", always_number=True)
    definition = {
        "description": "Mixer",
        "channels": {"in": 2, "out": 2},
        "mapping": [
            {"dest": dest, "sources": [_passthrough_source(dest)], "mute": False}
            for dest in (0, 1)
        ],
    }
    step = {"type": MIXER, "name": name, "description": "Mixer", "bypassed": False}
    return NewBlock(name=name, definition=definition, step=step)


def create_new_processor_block(config: Mapping[str, Any], step_type: str, base_name: str) -> NewBlock:
    """Processor step of *step_type*; *base_name* gets a ``_<n>`` suffix only on collision.

    The definition is left empty for the caller to fill in.
    """

    name = _unique_name(config.get("processors") or {}, base_name, always_number=False)
    step = {"type": step_type, "name": name, "description": step_type, "bypassed": False}
    return NewBlock(name=name, definition={}, step=step)


def cleanup_orphan_definitions(
    config: Mapping[str, Any],
    overlay: Optional[DisabledFiltersOverlay] = None,
) -> Dict[str, Any]:
    """Drop mixer, processor and filter definitions no pipeline step uses.

    Filters only referenced through *overlay* (disabled everywhere) are kept.
    """

    updated = clone_config(config)
    mixers: Set[str] = set()
    processors: Set[str] = set()
    filters: Set[str] = set(overlay.filter_names()) if overlay is not None else set()
    for raw in updated.get("pipeline") or []:
        step = normalize_pipeline_step(raw)
        if step is None:
            continue
        if step.kind is StepKind.FILTER:
            filters.update(step.names or ())
        elif step.kind is StepKind.MIXER:
            if step.name:
                mixers.add(step.name)
        elif raw.get("name"):
            # any other step kind names a processor definition
            processors.add(str(raw["name"]))

    for section, referenced in (("mixers", mixers), ("processors", processors), ("filters", filters)):
        definitions = updated.get(section)
        if not isinstance(definitions, dict):
            continue
        for name in [name for name in definitions if name not in referenced]:
            del definitions[name]
    return updated


def set_processor_step_bypassed(config: Mapping[str, Any], step_index: int, bypassed: bool) -> Dict[str, Any]:
    updated = clone_config(config)
    pipeline = updated.get("pipeline")
    if not isinstance(pipeline, list) or step_index < 0 or step_index >= len(pipeline):
        raise PipelineEditError(f"Invalid pipeline step index: {step_index}")
    step = normalize_pipeline_step(pipeline[step_index])
    if step is None or step.kind is not StepKind.PROCESSOR:
        raise PipelineEditError(f"Pipeline step {step_index} is not a Processor step")
    pipeline[step_index]["bypassed"] = bool(bypassed)
    return updated
