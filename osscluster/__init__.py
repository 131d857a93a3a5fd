"""
OSS Cluster - Client-side cluster router for object storage

Fronts several independent storage endpoints with one logical handle:

- **Read failover**: reads go to one scheduled node and fail over to the
  others on transport or server errors
- **Write fan-out**: writes go to every node and must succeed everywhere
- **Heartbeat**: a periodic probe keeps per-node availability current
- **Scheduling**: round-robin or master-slave node selection
"""

__version__ = "1.0.0"

from osscluster.cluster.client import ClusterClient
from osscluster.config import ClusterConfig, ClusterSettings, EndpointConfig
from osscluster.errors import (
    AvailabilityCheckError,
    BackendError,
    ClusterClosedError,
    ClusterError,
    ClusterExhaustedError,
    ConfigurationError,
)
from osscluster.types import BackendClient, BackendNode, HealthReport, SchedulingPolicy

__all__ = [
    "ClusterClient",
    "ClusterConfig",
    "ClusterSettings",
    "EndpointConfig",
    "SchedulingPolicy",
    "BackendClient",
    "BackendNode",
    "HealthReport",
    "ClusterError",
    "BackendError",
    "ConfigurationError",
    "ClusterClosedError",
    "ClusterExhaustedError",
    "AvailabilityCheckError",
    "__version__",
]
