"""
Monitor Package
===============

The change-monitoring engine.

Components:
- store.py: SnapshotStore (versioned last-known values)
- detector.py: ChangeDetector (value and position-set comparison)
- dispatcher.py: NotificationDispatcher (per-channel throttling, coalescing, retries)
- scheduler.py: Scheduler (one polling loop per target, live commands)
- orchestrator.py: MonitorService (startup and graceful shutdown)
"""

from .store import SnapshotStore
from .detector import ChangeDetector, diff_positions
from .dispatcher import NotificationDispatcher, ChannelState
from .scheduler import Scheduler, AddTarget, RemoveTarget, UpdateChannel
from .orchestrator import MonitorService

__all__ = [
    "SnapshotStore",
    "ChangeDetector",
    "diff_positions",
    "NotificationDispatcher",
    "ChannelState",
    "Scheduler",
    "AddTarget",
    "RemoveTarget",
    "UpdateChannel",
    "MonitorService",
]
