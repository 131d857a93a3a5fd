"""
OSS Cluster - Scheduling

Node selection for reads and URL signing:
- Round-robin over available nodes with a shared cursor
- Master-slave preferring the lowest-indexed available node
"""

from osscluster.balancing.strategies import (
    MasterSlaveStrategy,
    RoundRobinStrategy,
    Scheduler,
    SchedulingStrategy,
    create_strategy,
)

__all__ = [
    "Scheduler",
    "SchedulingStrategy",
    "RoundRobinStrategy",
    "MasterSlaveStrategy",
    "create_strategy",
]
