"""
OSS Cluster Health Checker

Heartbeat probe that decides which backend nodes are available:

1. On the first run, a small payload is written to a well-known probe
   object through the write path, proving every node accepts writes.
2. Every node is then asked for the probe object's metadata directly,
   bypassing the scheduler. Any protocol answer -- including 404 -- means
   the node is up; transport and server failures mean it is not.
3. A node is only marked down after ``attempts`` consecutive failures.
4. The tracker is overwritten for every node in one pass and, if any node
   is down, an :class:`AvailabilityCheckError` is handed to ``on_error``.

Only one check runs at a time; overlapping invocations return immediately.
"""

from __future__ import annotations

import socket
import time
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Sequence

import structlog

from osscluster.errors import AvailabilityCheckError, is_retryable, status_of
from osscluster.types import BackendNode, HealthReport

if TYPE_CHECKING:
    from osscluster.cluster.availability import AvailabilityTracker
    from osscluster.cluster.dispatcher import Dispatcher

logger = structlog.get_logger(__name__)

_DEFAULT_ATTEMPTS = 3
_FALLBACK_IP = "127.0.0.1"

ErrorCallback = Callable[[BaseException], Any]


def local_ip() -> str:
    """
    Return this host's primary IPv4 address.

    Connecting a UDP socket sends no packets; it only makes the kernel pick
    the outbound interface.
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("10.255.255.255", 1))
            return sock.getsockname()[0]
    except OSError:
        return _FALLBACK_IP


def probe_key_for(prefix: str, ip: Optional[str] = None) -> str:
    """Probe object key shared by every health check from this process."""
    return f"{prefix}/check.status.{ip or local_ip()}.txt"


class HealthChecker:
    """
    Availability prober for cluster nodes.

    Usage::

        checker = HealthChecker(nodes, tracker, dispatcher, probe_key)
        report = await checker.check_availability(first_run=True)
    """

    def __init__(
        self,
        nodes: Sequence[BackendNode],
        tracker: AvailabilityTracker,
        dispatcher: Dispatcher,
        probe_key: str,
        *,
        attempts: int = _DEFAULT_ATTEMPTS,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        self._nodes = tuple(nodes)
        self._tracker = tracker
        self._dispatcher = dispatcher
        self._probe_key = probe_key
        self._attempts = attempts
        self._on_error = on_error

        self._in_progress = False
        self._last_report: Optional[HealthReport] = None
        self._checks_run: int = 0

        logger.info(
            "health_checker.init",
            nodes=len(self._nodes),
            probe_key=probe_key,
            attempts=attempts,
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def probe_key(self) -> str:
        return self._probe_key

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    @property
    def last_report(self) -> Optional[HealthReport]:
        return self._last_report

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def check_availability(self, first_run: bool = False) -> Optional[HealthReport]:
        """
        Probe every node and update the availability tracker.

        Returns:
            The :class:`HealthReport` for this cycle, or ``None`` when another
            check was already running.
        """
        if self._in_progress:
            logger.debug("health_checker.skipped_in_progress")
            return None
        self._in_progress = True

        try:
            started = time.monotonic()
            report = HealthReport(first_run=first_run, started_at=datetime.now())

            if first_run:
                await self._write_probe()

            states: Dict[int, bool] = {}
            for node in self._nodes:
                available = await self.check_node(node)
                states[node.index] = available
                if not available:
                    report.down_urls.append(node.client.object_url(self._probe_key))

            self._tracker.update(states)
            report.available = states
            report.duration = time.monotonic() - started
            self._last_report = report
            self._checks_run += 1
        finally:
            self._in_progress = False

        if report.down_urls:
            error = AvailabilityCheckError(report.down_urls)
            logger.warning(
                "health_checker.nodes_down",
                count=error.count,
                down_urls=error.down_urls,
            )
            self._report_error(error)
        else:
            logger.debug("health_checker.all_available", nodes=len(self._nodes))

        return report

    async def check_node(self, node: BackendNode) -> bool:
        """Probe *node* up to ``attempts`` times; True on the first success."""
        for attempt in range(1, self._attempts + 1):
            if await self.probe_node(node):
                return True
            logger.debug(
                "health_checker.probe_failed",
                node=node.name,
                attempt=attempt,
                attempts=self._attempts,
            )
        return False

    async def probe_node(self, node: BackendNode) -> bool:
        """Single probe. 404 and other protocol answers count as available."""
        try:
            await node.client.head(self._probe_key)
        except Exception as exc:
            if is_retryable(exc):
                logger.debug(
                    "health_checker.probe_error",
                    node=node.name,
                    status=status_of(exc),
                    error=str(exc),
                )
                return False
        return True

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def get_summary(self) -> Dict[str, Any]:
        """Return a summary of the latest health state."""
        snapshot = self._tracker.snapshot()
        return {
            "probe_key": self._probe_key,
            "in_progress": self._in_progress,
            "checks_run": self._checks_run,
            "available": sum(1 for ok in snapshot.values() if ok),
            "down": [i for i, ok in sorted(snapshot.items()) if not ok],
            "last_report": self._last_report.to_dict() if self._last_report else None,
        }

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _write_probe(self) -> None:
        payload = f"check available started at {time.ctime()}".encode()
        try:
            await self._dispatcher.write("put", self._probe_key, payload)
        except Exception as exc:
            logger.warning(
                "health_checker.probe_write_failed",
                probe_key=self._probe_key,
                status=status_of(exc),
                error=str(exc),
            )
            self._report_error(exc)

    def _report_error(self, error: BaseException) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(error)
        except Exception:
            logger.exception("health_checker.error_callback_failed")
