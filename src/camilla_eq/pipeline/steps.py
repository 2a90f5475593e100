"""Pipeline step normalization and configuration document helpers.

CamillaDSP has accepted two spellings of a Filter step's channel target over
time: a single ``channel`` integer and a ``channels`` array.  Everything in
this package works on :class:`NormalizedStep`, which always carries the array
form.  Malformed input normalizes to ``None`` and callers skip it.
"""

from __future__ import annotations

import copy
import enum
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

FILTER = "Filter"
MIXER = "Mixer"
PROCESSOR = "Processor"


class PipelineEditError(ValueError):
    """Raised when an editing operation targets an invalid step or filter."""


class StepKind(enum.Enum):
    MIXER = MIXER
    FILTER = FILTER
    PROCESSOR = PROCESSOR
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class NormalizedStep:
    type: Any
    channels: Optional[Tuple[int, ...]] = None
    names: Optional[Tuple[str, ...]] = None
    name: Optional[str] = None
    bypassed: Optional[bool] = None

    @property
    def kind(self) -> StepKind:
        try:
            return StepKind(self.type)
        except ValueError:
            return StepKind.UNKNOWN

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type, "bypassed": self.bypassed}
        if self.channels is not None:
            data["channels"] = list(self.channels)
        if self.names is not None:
            data["names"] = list(self.names)
        if self.name is not None:
            data["name"] = self.name
        return data


def normalize_pipeline_step(step: Any) -> NormalizedStep | None:
    """Return the canonical form of *step*, or ``None`` if it is not an object."""

    if not isinstance(step, Mapping):
        return None

    channels: Optional[Tuple[int, ...]] = None
    raw_channels = step.get("channels")
    raw_channel = step.get("channel")
    # the array form wins when a step carries both
    if raw_channels is not None:
        if isinstance(raw_channels, (list, tuple)):
            channels = tuple(raw_channels)
        else:
            channels = (raw_channels,)
    elif raw_channel is not None:
        channels = (raw_channel,)

    step_type = step.get("type")
    names: Optional[Tuple[str, ...]] = None
    name: Optional[str] = None
    if step_type == FILTER and step.get("names") is not None:
        names = tuple(step["names"])
    elif step_type in (MIXER, PROCESSOR) and step.get("name"):
        name = str(step["name"])

    return NormalizedStep(
        type=step_type,
        channels=channels,
        names=names,
        name=name,
        bypassed=step.get("bypassed"),
    )


def filter_step_at(config: Mapping[str, Any], step_index: int) -> Dict[str, Any]:
    """Return the raw Filter step at *step_index* or raise :class:`PipelineEditError`."""

    pipeline = config.get("pipeline")
    if not isinstance(pipeline, list):
        raise PipelineEditError("No pipeline in config")
    if step_index < 0 or step_index >= len(pipeline):
        raise PipelineEditError(f"Invalid step index: {step_index}")
    step = pipeline[step_index]
    normalized = normalize_pipeline_step(step)
    if normalized is None or normalized.kind is not StepKind.FILTER:
        raise PipelineEditError(f"Pipeline step {step_index} is not a Filter step")
    return step


def clone_config(config: Mapping[str, Any]) -> Dict[str, Any]:
    return copy.deepcopy(dict(config))


def normalize_config(config: Mapping[str, Any] | None) -> Dict[str, Any]:
    """Fill the top-level sections a downloaded document may omit.

    Sections that are present are kept exactly as the engine reported them.
    """

    source = dict(config or {})
    normalized = dict(source)
    normalized["devices"] = source.get("devices") or {
        "capture": {"channels": 2},
        "playback": {"channels": 2},
    }
    normalized["filters"] = source.get("filters") or {}
    normalized["mixers"] = source.get("mixers") or {}
    normalized["pipeline"] = source.get("pipeline") or []
    normalized["processors"] = source.get("processors") or {}
    return normalized


def validate_config_references(config: Mapping[str, Any]) -> List[str]:
    """List the mixer and filter names the pipeline uses but never defines."""

    problems: List[str] = []
    mixers = config.get("mixers") or {}
    filters = config.get("filters") or {}
    for index, raw in enumerate(config.get("pipeline") or []):
        step = normalize_pipeline_step(raw)
        if step is None:
            continue
        if step.kind is StepKind.MIXER and step.name not in mixers:
            problems.append(f'Mixer "{step.name}" not found in config.mixers (step {index})')
        elif step.kind is StepKind.FILTER:
            for filter_name in step.names or ():
                if filter_name not in filters:
                    problems.append(f'Filter "{filter_name}" not found in config.filters (step {index})')
    return problems


@dataclass(frozen=True)
class MixerDestValidation:
    dest: Any
    errors: Tuple[str, ...]
    warnings: Tuple[str, ...]


@dataclass(frozen=True)
class MixerValidationResult:
    valid: bool
    per_dest: Tuple[MixerDestValidation, ...]


def validate_mixer_routing(mixer: Mapping[str, Any]) -> MixerValidationResult:
    """Flag silent destinations (errors) and summing destinations (warnings)."""

    per_dest: List[MixerDestValidation] = []
    has_errors = False
    for dest_mapping in mixer.get("mapping") or []:
        errors: List[str] = []
        warnings: List[str] = []
        unmuted = [src for src in dest_mapping.get("sources") or [] if not src.get("mute")]
        if not dest_mapping.get("mute") and not unmuted:
            errors.append("Silent channel: no unmuted sources")
            has_errors = True
        if len(unmuted) > 1:
            warnings.append(f"Summing {len(unmuted)} sources")
            if any((src.get("gain") or 0) > 0 for src in unmuted):
                warnings.append("Summing with gain > 0 dB (risk of clipping)")
        per_dest.append(
            MixerDestValidation(
                dest=dest_mapping.get("dest"),
                errors=tuple(errors),
                warnings=tuple(warnings),
            )
        )
    return MixerValidationResult(valid=not has_errors, per_dest=tuple(per_dest))
