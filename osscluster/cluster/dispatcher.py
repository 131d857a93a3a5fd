"""
OSS Cluster Dispatcher

Executes object operations against the backend nodes:

- **Reads** go to one node picked by the scheduler. Transport and server
  failures fail over to the remaining nodes one at a time, in configured
  order; protocol answers (200-499) are returned to the caller as-is.
- **Writes** fan out to every node concurrently and only succeed when all
  nodes accept them. The result of node 0 is returned.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, List, Optional, Sequence

import structlog

from osscluster.errors import ClusterExhaustedError, is_retryable, status_of
from osscluster.types import READ_OPERATIONS, WRITE_OPERATIONS, BackendNode

if TYPE_CHECKING:
    from osscluster.balancing.strategies import Scheduler

logger = structlog.get_logger(__name__)


class Dispatcher:
    """Read failover and write fan-out over a fixed node list."""

    def __init__(self, nodes: Sequence[BackendNode], scheduler: Scheduler) -> None:
        self._nodes = tuple(nodes)
        self._scheduler = scheduler

    @property
    def nodes(self) -> Sequence[BackendNode]:
        return self._nodes

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def read(self, op: str, *args: Any, **kwargs: Any) -> Any:
        """
        Run read operation *op* with cross-node failover.

        Raises:
            Exception: the backend's own error for protocol answers.
            ClusterExhaustedError: every node failed with a retryable error.
        """
        if op not in READ_OPERATIONS:
            raise ValueError(f"not a read operation: {op!r}")

        primary = self._scheduler.choose_available()
        try:
            return await self._invoke(primary, op, args, kwargs)
        except Exception as exc:
            if not is_retryable(exc):
                raise
            last_error: BaseException = exc
            logger.warning(
                "dispatcher.read_failover",
                op=op,
                node=primary.name,
                status=status_of(exc),
                error=str(exc),
            )

        # retries are sequential so an overloaded cluster is not hit in parallel
        for node in self._nodes:
            if node is primary:
                continue
            try:
                return await self._invoke(node, op, args, kwargs)
            except Exception as exc:
                if not is_retryable(exc):
                    raise
                last_error = exc
                logger.warning(
                    "dispatcher.read_retry_failed",
                    op=op,
                    node=node.name,
                    status=status_of(exc),
                    error=str(exc),
                )

        logger.error("dispatcher.all_nodes_down", op=op, nodes=len(self._nodes))
        raise ClusterExhaustedError(last_error) from last_error

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def write(self, op: str, *args: Any, **kwargs: Any) -> Any:
        """
        Run write operation *op* on every node.

        All writes are awaited to completion before a failure is reported,
        so no write is left running after the call returns.

        Raises:
            Exception: the error of the lowest-indexed node that failed.
        """
        if op not in WRITE_OPERATIONS:
            raise ValueError(f"not a write operation: {op!r}")

        results = await asyncio.gather(
            *(self._invoke(node, op, args, kwargs) for node in self._nodes),
            return_exceptions=True,
        )

        failures: List[tuple[BackendNode, BaseException]] = [
            (node, result)
            for node, result in zip(self._nodes, results)
            if isinstance(result, BaseException)
        ]
        if failures:
            for node, error in failures:
                logger.warning(
                    "dispatcher.write_failed",
                    op=op,
                    node=node.name,
                    status=status_of(error),
                    error=str(error),
                )
            raise failures[0][1]

        return results[0]

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    async def _invoke(
        node: BackendNode,
        op: str,
        args: tuple,
        kwargs: Optional[dict],
    ) -> Any:
        method = getattr(node.client, op)
        return await method(*args, **(kwargs or {}))
