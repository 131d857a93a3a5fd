"""
OSS Cluster Routing

Public API surface for the cluster sub-package:

- :class:`ClusterClient`       -- facade exposing object operations and
  lifecycle (start, ready, close)
- :class:`Dispatcher`          -- read failover and write fan-out
- :class:`HealthChecker`       -- heartbeat probe with per-node retries
- :class:`AvailabilityTracker` -- latest health verdict per node
"""

from __future__ import annotations

from osscluster.cluster.availability import AvailabilityTracker
from osscluster.cluster.client import ClusterClient
from osscluster.cluster.dispatcher import Dispatcher
from osscluster.cluster.health import HealthChecker, local_ip, probe_key_for

__all__ = [
    "AvailabilityTracker",
    "ClusterClient",
    "Dispatcher",
    "HealthChecker",
    "local_ip",
    "probe_key_for",
]
