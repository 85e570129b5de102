"""
Change Detector
===============

Compares a new observation against the stored snapshot and produces at
most one ChangeEvent per poll.

Two policies:
- Plain values (api / static_page): the first observation is a silent
  baseline; afterwards any difference after normalization is a change.
- Position feeds: positions are diffed as a set keyed by (address, asset).
  The first observation is reported once as "current holdings" so the user
  sees what is being tracked immediately.
"""

import json
import logging
from datetime import datetime
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple

from ..models import (
    ChangeEvent,
    DeltaKind,
    PositionDelta,
    PositionState,
    Snapshot,
    Target,
    TargetKind,
)
from .store import utc_now

logger = logging.getLogger(__name__)

# Values longer than this get an added/removed item breakdown when they
# look like comma-separated lists
LIST_DIFF_MIN_LENGTH = 100

# Longest rendering of a single value inside a description
MAX_VALUE_DISPLAY = 1000

# Titles quote both values inline only when they are this short
TITLE_VALUE_MAX = 40


# =============================================================================
# Normalization
# =============================================================================

def normalize(value: Any) -> Any:
    """
    Canonical, order-insensitive form of a structured value.

    Mapping key order never affects equality. Booleans are tagged so that
    true does not compare equal to 1. Numbers compare by value (1 == 1.0).
    """
    if isinstance(value, dict):
        return ("__map__", tuple(sorted((str(k), normalize(v)) for k, v in value.items())))
    if isinstance(value, (list, tuple)):
        return ("__seq__", tuple(normalize(v) for v in value))
    if isinstance(value, bool):
        return ("__bool__", value)
    return value


def values_equal(old: Any, new: Any) -> bool:
    return normalize(old) == normalize(new)


def format_value(value: Any) -> str:
    """Render an observation for humans."""
    if isinstance(value, str):
        text = value
    else:
        try:
            text = json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            text = repr(value)
    if len(text) > MAX_VALUE_DISPLAY:
        return text[:MAX_VALUE_DISPLAY] + "... (truncated)"
    return text


def describe_list_change(old_value: str, new_value: str) -> Optional[str]:
    """
    Added/removed breakdown for long comma-separated strings.

    Returns None when the values don't look like lists or nothing was
    added or removed (e.g. only the order changed).
    """
    if len(old_value) <= LIST_DIFF_MIN_LENGTH and len(new_value) <= LIST_DIFF_MIN_LENGTH:
        return None
    if "," not in old_value or "," not in new_value:
        return None

    old_items = [item.strip() for item in old_value.split(",")]
    new_items = [item.strip() for item in new_value.split(",")]

    added = [item for item in new_items if item not in old_items]
    removed = [item for item in old_items if item not in new_items]

    lines = []
    if added:
        lines.append(f"Added: {', '.join(added)}")
    if removed:
        lines.append(f"Removed: {', '.join(removed)}")
    return "\n".join(lines) or None


# =============================================================================
# Position Diff
# =============================================================================

def diff_positions(
    before: FrozenSet[PositionState],
    after: FrozenSet[PositionState],
) -> List[PositionDelta]:
    """
    Set-diff two position observations keyed by (address, asset).

    - Only in after: OPENED
    - Only in before: CLOSED
    - In both, side differs: SIDE_FLIPPED (even if size also changed)
    - In both, size differs: SIZE_CHANGED

    Entry price changes alone are not reported. Deltas are sorted by key.
    """
    old_by_key: Dict[Tuple[str, str], PositionState] = {p.key: p for p in before}
    new_by_key: Dict[Tuple[str, str], PositionState] = {p.key: p for p in after}

    deltas = []
    for key in sorted(set(old_by_key) | set(new_by_key)):
        old = old_by_key.get(key)
        new = new_by_key.get(key)

        if old is None:
            deltas.append(PositionDelta(key, DeltaKind.OPENED, None, new))
        elif new is None:
            deltas.append(PositionDelta(key, DeltaKind.CLOSED, old, None))
        elif old.side != new.side:
            deltas.append(PositionDelta(key, DeltaKind.SIDE_FLIPPED, old, new))
        elif old.size != new.size:
            deltas.append(PositionDelta(key, DeltaKind.SIZE_CHANGED, old, new))

    return deltas


# =============================================================================
# Detector
# =============================================================================

class ChangeDetector:
    """Turns (target, observation, snapshot) into an optional ChangeEvent."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock

    def compare(
        self,
        target: Target,
        observation: Any,
        snapshot: Optional[Snapshot],
    ) -> Optional[ChangeEvent]:
        if target.kind == TargetKind.POSITION_FEED:
            return self._compare_positions(target, observation, snapshot)
        return self._compare_values(target, observation, snapshot)

    # -------------------------------------------------------------------------
    # Plain values
    # -------------------------------------------------------------------------

    def _compare_values(
        self,
        target: Target,
        observation: Any,
        snapshot: Optional[Snapshot],
    ) -> Optional[ChangeEvent]:
        if snapshot is None:
            logger.debug(f"{target.id}: baseline captured")
            return None

        previous = snapshot.value
        if values_equal(previous, observation):
            return None

        old_text = format_value(previous)
        new_text = format_value(observation)

        if len(old_text) <= TITLE_VALUE_MAX and len(new_text) <= TITLE_VALUE_MAX:
            title = f"{target.label}: {old_text} -> {new_text}"
        else:
            title = f"{target.label} changed"

        lines = []
        if target.selector:
            lines.append(f"Selector: {target.selector}")
        if isinstance(previous, str) and isinstance(observation, str):
            breakdown = describe_list_change(previous, observation)
            if breakdown:
                lines.append(breakdown)
        lines.append(f"Previous value: {old_text}")
        lines.append(f"Current value: {new_text}")

        logger.info(f"Change detected for {target.id}")
        return ChangeEvent(
            target_id=target.id,
            previous_value=previous,
            new_value=observation,
            detected_at=self._clock(),
            title=title,
            description="\n".join(lines),
        )

    # -------------------------------------------------------------------------
    # Position feeds
    # -------------------------------------------------------------------------

    def _compare_positions(
        self,
        target: Target,
        observation: FrozenSet[PositionState],
        snapshot: Optional[Snapshot],
    ) -> Optional[ChangeEvent]:
        if snapshot is None:
            deltas = diff_positions(frozenset(), observation)
            title = f"Current holdings for {target.label}: {len(observation)} position(s)"
            lines = [d.describe() for d in deltas] or ["No open positions"]
            logger.info(f"{target.id}: baseline with {len(observation)} positions")
            return ChangeEvent(
                target_id=target.id,
                previous_value=None,
                new_value=observation,
                detected_at=self._clock(),
                title=title,
                description="\n".join(lines),
                deltas=tuple(deltas),
                is_baseline=True,
            )

        previous = snapshot.value
        deltas = diff_positions(previous, observation)
        if not deltas:
            return None

        counts: Dict[DeltaKind, int] = {}
        for delta in deltas:
            counts[delta.kind] = counts.get(delta.kind, 0) + 1
        summary = ", ".join(
            f"{count} {kind.value.replace('_', ' ')}" for kind, count in counts.items()
        )

        logger.info(f"{target.id}: {len(deltas)} position change(s)")
        return ChangeEvent(
            target_id=target.id,
            previous_value=previous,
            new_value=observation,
            detected_at=self._clock(),
            title=f"{target.label}: {summary}",
            description="\n".join(d.describe() for d in deltas),
            deltas=tuple(deltas),
        )
