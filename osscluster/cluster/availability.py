"""
OSS Cluster Availability Tracker

Holds the latest health verdict for every backend node. Written only by
the health checker, read by the scheduler on every decision.
"""

from __future__ import annotations

import threading
from typing import Dict, List, Mapping

import structlog

logger = structlog.get_logger(__name__)


class AvailabilityTracker:
    """
    Mapping of node index to availability, initialised all-available.

    Every node index has exactly one entry for the tracker's lifetime;
    updates for unknown indices are rejected. Reads and update passes are
    serialised so a scheduling decision never observes a half-applied
    health check.
    """

    def __init__(self, size: int) -> None:
        if size < 1:
            raise ValueError("tracker needs at least one node")
        self._lock = threading.Lock()
        self._available: Dict[int, bool] = {i: True for i in range(size)}

    def __len__(self) -> int:
        return len(self._available)

    def is_available(self, index: int) -> bool:
        with self._lock:
            return self._available[index]

    def snapshot(self) -> Dict[int, bool]:
        """Return a consistent copy of the current state."""
        with self._lock:
            return dict(self._available)

    def update(self, states: Mapping[int, bool]) -> None:
        """Overwrite the given entries in a single atomic pass."""
        unknown = [i for i in states if i not in self._available]
        if unknown:
            raise KeyError(f"unknown node index: {unknown}")

        with self._lock:
            changed = {
                i: bool(ok)
                for i, ok in states.items()
                if self._available[i] != bool(ok)
            }
            for i, ok in states.items():
                self._available[i] = bool(ok)

        for i, ok in changed.items():
            logger.info("availability.changed", node_index=i, available=ok)

    def available_indices(self) -> List[int]:
        return [i for i, ok in sorted(self.snapshot().items()) if ok]

    def down_indices(self) -> List[int]:
        return [i for i, ok in sorted(self.snapshot().items()) if not ok]
