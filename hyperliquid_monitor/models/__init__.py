"""
Shared Data Models
==================

This package contains dataclasses used across the project.
"""

from .position import PositionState, PositionDelta, DeltaKind
from .target import Target, TargetKind
from .events import Snapshot, ChangeEvent, TargetStatus, LoopState

__all__ = [
    "PositionState",
    "PositionDelta",
    "DeltaKind",
    "Target",
    "TargetKind",
    "Snapshot",
    "ChangeEvent",
    "TargetStatus",
    "LoopState",
]
