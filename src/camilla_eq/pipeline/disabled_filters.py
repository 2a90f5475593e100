"""Soft-disable overlay for filter references inside Filter steps.

Disabling a filter removes its name from the step's active ``names`` list but
records where it was, so enabling it again puts it back in the same place and
the UI can still show it as present-but-off.  A filter can be disabled in
several steps at once (typically one step per channel), so the overlay maps
each filter name to a list of locations, at most one per step key.

Step keys look like ``Filter:ch0,1:idx2``: the sorted channel set plus the
step's pipeline index at the time of the edit.  They are insensitive to
channel order inside a step but not to the step's position, which is why
pipeline moves, inserts and deletions rewrite them (see :mod:`.reorder`).

The overlay lives outside the DSP document.  It is persisted through an
:class:`OverlayStore`; a store that fails to load or save is logged and the
overlay carries on with whatever it has in memory.
"""

from __future__ import annotations

import copy
import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple

logger = logging.getLogger(__name__)

STATE_VERSION = 2
LEGACY_STATE_VERSION = 1

_STEP_KEY_RE = re.compile(r"^Filter:ch(.*):idx(\d+)$")


def step_key(channels: Iterable[int], step_index: int) -> str:
    ordered = ",".join(str(ch) for ch in sorted(channels))
    return f"Filter:ch{ordered}:idx{int(step_index)}"


def parse_step_key(key: str) -> Tuple[Tuple[int, ...], int] | None:
    """Split *key* back into ``(channels, step_index)``; ``None`` if malformed."""

    match = _STEP_KEY_RE.match(key)
    if match is None:
        return None
    raw_channels, raw_index = match.groups()
    try:
        channels = tuple(int(part) for part in raw_channels.split(",")) if raw_channels else ()
    except ValueError:
        return None
    return channels, int(raw_index)


@dataclass(frozen=True)
class DisabledFilterLocation:
    step_key: str
    index: int
    filter_name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"stepKey": self.step_key, "index": self.index, "filterName": self.filter_name}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], filter_name: str | None = None) -> "DisabledFilterLocation":
        if not isinstance(data, Mapping):
            raise ValueError("disabled filter location must be a mapping")
        key = data.get("stepKey")
        if not isinstance(key, str):
            raise ValueError("disabled filter location requires a string 'stepKey'")
        index = int(data.get("index", 0))
        name = data.get("filterName") or filter_name
        if not name:
            raise ValueError("disabled filter location requires 'filterName'")
        return cls(step_key=key, index=index, filter_name=str(name))


@dataclass
class DisabledFiltersState:
    version: int = STATE_VERSION
    disabled: Dict[str, List[DisabledFilterLocation]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "disabled": {
                name: [loc.to_dict() for loc in locations]
                for name, locations in self.disabled.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Any) -> "DisabledFiltersState":
        """Decode a persisted document, migrating the single-location layout.

        Unknown versions and unreadable documents reset to an empty state.
        """

        if not isinstance(data, Mapping):
            logger.warning("Disabled filters state is not a mapping; resetting")
            return cls()
        version = data.get("version")
        raw_disabled = data.get("disabled")
        if not isinstance(raw_disabled, Mapping):
            raw_disabled = {}

        state = cls()
        if version == STATE_VERSION:
            for name, entries in raw_disabled.items():
                if not isinstance(entries, list):
                    continue
                state.disabled[str(name)] = _decode_locations(entries, str(name))
        elif version == LEGACY_STATE_VERSION:
            for name, entry in raw_disabled.items():
                state.disabled[str(name)] = _decode_locations([entry], str(name))
            logger.info("Migrated disabled filters state from version %s", LEGACY_STATE_VERSION)
        else:
            logger.warning("Disabled filters state version mismatch (%r); resetting", version)
            return cls()

        state.disabled = {name: locs for name, locs in state.disabled.items() if locs}
        return state


def _decode_locations(entries: Sequence[Any], filter_name: str) -> List[DisabledFilterLocation]:
    locations: List[DisabledFilterLocation] = []
    seen: set[str] = set()
    for entry in entries:
        try:
            location = DisabledFilterLocation.from_dict(entry, filter_name)
        except (TypeError, ValueError):
            logger.debug("Skipping malformed disabled filter entry: %r", entry)
            continue
        if location.step_key in seen:
            continue
        seen.add(location.step_key)
        locations.append(location)
    return locations


class OverlayStore(Protocol):
    def load(self) -> Optional[Mapping[str, Any]]: ...

    def save(self, document: Mapping[str, Any]) -> None: ...

    def clear(self) -> None: ...


class MemoryOverlayStore:
    """Keeps the persisted document in process memory."""

    def __init__(self, document: Optional[Mapping[str, Any]] = None) -> None:
        self.document: Optional[Dict[str, Any]] = copy.deepcopy(dict(document)) if document is not None else None

    def load(self) -> Optional[Mapping[str, Any]]:
        return copy.deepcopy(self.document)

    def save(self, document: Mapping[str, Any]) -> None:
        self.document = copy.deepcopy(dict(document))

    def clear(self) -> None:
        self.document = None


class JsonFileOverlayStore:
    """Persists the overlay document as JSON at *path*."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> Optional[Mapping[str, Any]]:
        if not self.path.exists():
            return None
        return json.loads(self.path.read_text(encoding="utf-8"))

    def save(self, document: Mapping[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(document, indent=2, sort_keys=True), encoding="utf-8")
        tmp.replace(self.path)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


class DisabledFiltersOverlay:
    """Versioned side table of soft-disabled filter references."""

    def __init__(self, store: Optional[OverlayStore] = None) -> None:
        self._store: OverlayStore = store if store is not None else MemoryOverlayStore()
        self._state = self._load()

    @property
    def store(self) -> OverlayStore:
        return self._store

    def reload(self) -> None:
        self._state = self._load()

    def snapshot(self) -> DisabledFiltersState:
        return copy.deepcopy(self._state)

    # ------------------------------------------------------------------
    def disable(self, filter_name: str, key: str, current_index: int) -> DisabledFilterLocation:
        """Record *filter_name* as removed from position *current_index* of the active list.

        *current_index* refers to the compacted list (disabled entries already
        removed); the stored index is the position in the full list.
        """

        original = int(current_index)
        # running count: compares against the bumped index, not a flat count of indices <= current_index
        for location in self.locations_for_step(key):
            if location.filter_name == filter_name:
                continue
            if location.index <= original:
                original += 1
        return self.mark_disabled(filter_name, key, original)

    def mark_disabled(self, filter_name: str, key: str, index: int) -> DisabledFilterLocation:
        location = DisabledFilterLocation(step_key=key, index=int(index), filter_name=filter_name)
        locations = self._state.disabled.setdefault(filter_name, [])
        for pos, existing in enumerate(locations):
            if existing.step_key == key:
                locations[pos] = location
                break
        else:
            locations.append(location)
        self._save()
        return location

    def enable(self, filter_name: str, key: str) -> DisabledFilterLocation | None:
        """Forget the location of *filter_name* in step *key*; returns it if present."""

        locations = self._state.disabled.get(filter_name)
        if not locations:
            return None
        removed = None
        for pos, existing in enumerate(locations):
            if existing.step_key == key:
                removed = locations.pop(pos)
                break
        if removed is None:
            return None
        if not locations:
            del self._state.disabled[filter_name]
        self._save()
        return removed

    def enable_everywhere(self, filter_name: str) -> List[DisabledFilterLocation]:
        locations = self._state.disabled.pop(filter_name, None)
        if not locations:
            return []
        self._save()
        return list(locations)

    # ------------------------------------------------------------------
    def locations_for_step(self, key: str) -> List[DisabledFilterLocation]:
        found = [
            location
            for locations in self._state.disabled.values()
            for location in locations
            if location.step_key == key
        ]
        found.sort(key=lambda location: location.index)
        return found

    def locations_for_filter(self, filter_name: str) -> List[DisabledFilterLocation]:
        return list(self._state.disabled.get(filter_name, ()))

    def location(self, filter_name: str, key: str) -> DisabledFilterLocation | None:
        for location in self._state.disabled.get(filter_name, ()):
            if location.step_key == key:
                return location
        return None

    def disabled_names_for_step(self, key: str) -> List[str]:
        return [location.filter_name for location in self.locations_for_step(key)]

    def is_disabled(self, filter_name: str, key: str | None = None) -> bool:
        if key is None:
            return bool(self._state.disabled.get(filter_name))
        return self.location(filter_name, key) is not None

    def filter_names(self) -> List[str]:
        return sorted(self._state.disabled)

    # ------------------------------------------------------------------
    def rekey(self, mapper: Callable[[str], Optional[str]]) -> int:
        """Rewrite every step key through *mapper*; ``None`` drops the location.

        Returns the number of locations changed or dropped.  Nothing is
        persisted when no location changes.
        """

        changed = 0
        updated: Dict[str, List[DisabledFilterLocation]] = {}
        for name, locations in self._state.disabled.items():
            kept: List[DisabledFilterLocation] = []
            for location in locations:
                new_key = mapper(location.step_key)
                if new_key is None:
                    changed += 1
                    continue
                if new_key != location.step_key:
                    changed += 1
                    location = DisabledFilterLocation(
                        step_key=new_key, index=location.index, filter_name=location.filter_name
                    )
                kept.append(location)
            if kept:
                updated[name] = kept
        if changed:
            self._state.disabled = updated
            self._save()
        return changed

    def clear(self) -> None:
        """Drop every disabled location and the persisted document."""

        self._state = DisabledFiltersState()
        try:
            self._store.clear()
        except Exception:
            logger.error("Error clearing disabled filters", exc_info=True)

    reset = clear

    # ------------------------------------------------------------------
    def _load(self) -> DisabledFiltersState:
        try:
            raw = self._store.load()
        except Exception:
            logger.error("Error loading disabled filters", exc_info=True)
            return DisabledFiltersState()
        if raw is None:
            return DisabledFiltersState()
        return DisabledFiltersState.from_dict(raw)

    def _save(self) -> None:
        try:
            self._store.save(self._state.to_dict())
        except Exception:
            logger.error("Error saving disabled filters", exc_info=True)


@dataclass(frozen=True)
class FilterSlot:
    name: str
    disabled: bool


def reconstruct_filter_order(
    active_names: Sequence[str],
    disabled: Sequence[DisabledFilterLocation],
) -> List[FilterSlot]:
    """Merge active names with disabled locations into the full display order.

    Disabled entries go to their recorded index (clamped to the last slot);
    on collision they move forward, then wrap to the first free slot so no
    entry is ever lost.  Active names fill the remaining slots left to right.
    """

    total = len(active_names) + len(disabled)
    slots: List[Optional[FilterSlot]] = [None] * total
    for location in sorted(disabled, key=lambda loc: loc.index):
        target = min(max(location.index, 0), total - 1)
        slot_index = target
        while slot_index < total and slots[slot_index] is not None:
            slot_index += 1
        if slot_index >= total:
            slot_index = slots.index(None)
        slots[slot_index] = FilterSlot(name=location.filter_name, disabled=True)

    active = iter(active_names)
    for pos in range(total):
        if slots[pos] is None:
            slots[pos] = FilterSlot(name=next(active), disabled=False)
    return [slot for slot in slots if slot is not None]
