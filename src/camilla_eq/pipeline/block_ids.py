"""Stable UI identities for pipeline steps.

Identity is derived from content rather than position or object identity, so
a block keeps its ID when it is dragged to another position or when the whole
document is replaced by a structurally identical copy.  For Filter steps the
signature includes the names disabled through the overlay: toggling a filter
off and on keeps the ID, adding or deleting one changes it.
"""

from __future__ import annotations

import itertools
import logging
from typing import Any, Dict, Iterator, Optional

from camilla_eq.pipeline.disabled_filters import DisabledFiltersOverlay, step_key
from camilla_eq.pipeline.steps import StepKind, normalize_pipeline_step

logger = logging.getLogger(__name__)


def step_signature(
    step: Any,
    step_index: int,
    overlay: Optional[DisabledFiltersOverlay] = None,
) -> str:
    normalized = normalize_pipeline_step(step)
    if normalized is None:
        return "Unknown:"
    if normalized.kind is StepKind.MIXER:
        return f"Mixer:{normalized.name or ''}"
    if normalized.kind is StepKind.FILTER:
        channels = sorted(normalized.channels or ())
        names = set(normalized.names or ())
        if overlay is not None:
            names.update(overlay.disabled_names_for_step(step_key(channels, step_index)))
        channel_part = ",".join(str(ch) for ch in channels)
        return f"Filter:{channel_part}:{','.join(sorted(names))}"
    return f"{normalized.type or 'Unknown'}:{normalized.name or ''}"


class BlockIdProvider:
    """Hand out ``block_<n>_<signature>`` IDs and resolve them back to steps."""

    def __init__(self, overlay: Optional[DisabledFiltersOverlay] = None) -> None:
        self.overlay = overlay
        self._counter: Iterator[int] = itertools.count(1)
        self._ids: Dict[str, str] = {}
        self._steps: Dict[str, Any] = {}

    def block_id(self, step: Any, step_index: int) -> str:
        signature = step_signature(step, step_index, self.overlay)
        block_id = self._ids.get(signature)
        if block_id is None:
            block_id = f"block_{next(self._counter)}_{signature}"
            self._ids[signature] = block_id
            logger.debug("Assigned %s at step %d", block_id, step_index)
        self._steps[block_id] = step
        return block_id

    def step_for_block_id(self, block_id: str) -> Any | None:
        """Most recently seen step object that produced *block_id*."""

        return self._steps.get(block_id)

    def __len__(self) -> int:
        return len(self._ids)

    def reset(self) -> None:
        self._ids.clear()
        self._steps.clear()
