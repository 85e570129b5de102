"""
Event Models
============

Snapshots, change events and per-target status records.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Tuple

from .position import PositionDelta


@dataclass(frozen=True)
class Snapshot:
    """Last-known observation for a target."""
    target_id: str
    value: Any
    captured_at: datetime
    version: int


@dataclass(frozen=True)
class ChangeEvent:
    """
    A detected difference between consecutive observations of a target.

    For position feeds, `deltas` carries every position change of the poll
    so one poll cycle is always one event.
    """
    target_id: str
    previous_value: Any
    new_value: Any
    detected_at: datetime
    title: str
    description: str
    deltas: Tuple[PositionDelta, ...] = field(default_factory=tuple)
    is_baseline: bool = False


class LoopState(Enum):
    """Polling loop state for one target."""
    IDLE = "idle"
    POLLING = "polling"
    BACKOFF = "backoff"
    STOPPED = "stopped"


@dataclass(frozen=True)
class TargetStatus:
    """Read-only status view of one target, for CLI/UI callers."""
    id: str
    last_poll_at: Optional[datetime]
    last_success_at: Optional[datetime]
    consecutive_failures: int
    degraded: bool
    state: LoopState = LoopState.IDLE
    last_error: Optional[str] = None
