"""
Snapshot Store
==============

In-memory mapping of target id -> last observed Snapshot.

Writes go through compare_and_set(), which is atomic per target key.
Reads are safe from any thread (a UI thread may poll status while the
asyncio loop writes).
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from ..errors import ConflictError
from ..models import Snapshot

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SnapshotStore:
    """
    Keyed snapshot storage with per-key compare-and-swap.

    A target with no snapshot is treated as version 0, so the first write
    must pass expected_version=0 and produces version 1.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self._snapshots: Dict[str, Snapshot] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, target_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(target_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[target_id] = lock
            return lock

    def get(self, target_id: str) -> Optional[Snapshot]:
        """Return the current snapshot for a target, or None before the baseline."""
        return self._snapshots.get(target_id)

    def version(self, target_id: str) -> int:
        snapshot = self._snapshots.get(target_id)
        return snapshot.version if snapshot else 0

    def compare_and_set(self, target_id: str, expected_version: int, new_value: Any) -> Snapshot:
        """
        Atomically replace a target's snapshot.

        Args:
            target_id: Target identifier
            expected_version: Version the writer last read (0 if none)
            new_value: Observation to store

        Returns:
            The new Snapshot

        Raises:
            ConflictError: another writer already advanced the version
        """
        with self._lock_for(target_id):
            current = self._snapshots.get(target_id)
            current_version = current.version if current else 0
            if current_version != expected_version:
                raise ConflictError(target_id, expected_version, current_version)

            snapshot = Snapshot(
                target_id=target_id,
                value=new_value,
                captured_at=self._clock(),
                version=current_version + 1,
            )
            self._snapshots[target_id] = snapshot
            return snapshot

    def remove(self, target_id: str) -> Optional[Snapshot]:
        """Drop a target's snapshot (target removed from configuration)."""
        with self._lock_for(target_id):
            removed = self._snapshots.pop(target_id, None)
        with self._registry_lock:
            self._locks.pop(target_id, None)
        if removed is not None:
            logger.debug(f"Removed snapshot for {target_id} at version {removed.version}")
        return removed

    def snapshot_ids(self) -> List[str]:
        return sorted(list(self._snapshots))

    def __len__(self) -> int:
        return len(self._snapshots)
