"""
OSS Cluster - Scheduling Strategies

Node selection for read operations and URL signing:
- Round-robin with a shared, lock-protected cursor
- Master-slave preferring the lowest-indexed available node

Both strategies always return a node. When every node is marked down
they fall back to node 0, the designated primary.
"""

from __future__ import annotations

import abc
import threading
from typing import TYPE_CHECKING, Dict, Sequence, Type

import structlog

from osscluster.types import BackendNode, SchedulingPolicy

if TYPE_CHECKING:
    from osscluster.cluster.availability import AvailabilityTracker

logger = structlog.get_logger(__name__)


# =============================================================================
# Abstract Base Strategy
# =============================================================================


class SchedulingStrategy(abc.ABC):
    """Abstract base class for scheduling strategies.

    Concrete strategies implement :meth:`choose`, which receives the full
    ordered node list and a consistent availability snapshot.
    """

    policy: SchedulingPolicy

    @abc.abstractmethod
    def choose(
        self,
        nodes: Sequence[BackendNode],
        availability: Dict[int, bool],
    ) -> BackendNode:
        """Select a node for the next operation.

        Args:
            nodes: All configured nodes, in configuration order.
            availability: Snapshot of node index to health state.

        Returns:
            The selected :class:`BackendNode`. Never ``None``.
        """

    def __repr__(self) -> str:  # pragma: no cover
        return f"<{self.__class__.__name__}>"


# =============================================================================
# Master-Slave Strategy
# =============================================================================


class MasterSlaveStrategy(SchedulingStrategy):
    """Always prefer the lowest-indexed available node."""

    policy = SchedulingPolicy.MASTER_SLAVE

    def choose(
        self,
        nodes: Sequence[BackendNode],
        availability: Dict[int, bool],
    ) -> BackendNode:
        for node in nodes:
            if availability.get(node.index, False):
                return node
        # all down, try the primary anyway
        logger.debug("master_slave.all_down", fallback=nodes[0].index)
        return nodes[0]


# =============================================================================
# Round-Robin Strategy
# =============================================================================


class RoundRobinStrategy(SchedulingStrategy):
    """Cycle through nodes, skipping unavailable ones.

    The cursor advances on every attempt, including attempts that land on
    an unavailable node, so healthy nodes share load evenly over time.
    At most ``len(nodes)`` attempts are made per call.
    """

    policy = SchedulingPolicy.ROUND_ROBIN

    def __init__(self) -> None:
        self._index: int = 0
        self._lock = threading.Lock()

    @property
    def cursor(self) -> int:
        return self._index

    def _next_index(self, size: int) -> int:
        with self._lock:
            index = self._index % size
            self._index = (index + 1) % size
            return index

    def choose(
        self,
        nodes: Sequence[BackendNode],
        availability: Dict[int, bool],
    ) -> BackendNode:
        size = len(nodes)
        for _ in range(size):
            node = nodes[self._next_index(size)]
            if availability.get(node.index, False):
                logger.debug("round_robin.selected", node_index=node.index, total=size)
                return node
        logger.debug("round_robin.all_down", fallback=nodes[0].index)
        return nodes[0]


# =============================================================================
# Registry
# =============================================================================


_STRATEGY_REGISTRY: Dict[SchedulingPolicy, Type[SchedulingStrategy]] = {
    SchedulingPolicy.ROUND_ROBIN: RoundRobinStrategy,
    SchedulingPolicy.MASTER_SLAVE: MasterSlaveStrategy,
}


def create_strategy(policy: SchedulingPolicy | str) -> SchedulingStrategy:
    """Instantiate the strategy for *policy*."""
    try:
        return _STRATEGY_REGISTRY[SchedulingPolicy(policy)]()
    except ValueError as exc:
        raise ValueError(f"unknown scheduling policy: {policy!r}") from exc


# =============================================================================
# Scheduler
# =============================================================================


class Scheduler:
    """Chooses a node under the configured policy, consulting availability."""

    def __init__(
        self,
        nodes: Sequence[BackendNode],
        tracker: AvailabilityTracker,
        policy: SchedulingPolicy | str = SchedulingPolicy.ROUND_ROBIN,
    ) -> None:
        if not nodes:
            raise ValueError("scheduler needs at least one node")
        self._nodes = tuple(nodes)
        self._tracker = tracker
        self._strategy = create_strategy(policy)

    @property
    def policy(self) -> SchedulingPolicy:
        return self._strategy.policy

    @property
    def strategy(self) -> SchedulingStrategy:
        return self._strategy

    @property
    def nodes(self) -> Sequence[BackendNode]:
        return self._nodes

    def choose_available(self) -> BackendNode:
        """Pick a node. Never fails; falls back to node 0."""
        return self._strategy.choose(self._nodes, self._tracker.snapshot())
