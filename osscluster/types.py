"""
OSS Cluster Types

Type definitions shared by the cluster router:
- Scheduling policies
- The backend client contract every endpoint handle must satisfy
- Backend node handles
- Health check reports
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import (
    Any,
    Dict,
    FrozenSet,
    List,
    Protocol,
    runtime_checkable,
)


# =============================================================================
# Scheduling
# =============================================================================


class SchedulingPolicy(str, Enum):
    """How a node is picked for a read operation."""
    ROUND_ROBIN = "roundRobin"
    MASTER_SLAVE = "masterSlave"


# =============================================================================
# Operations
# =============================================================================

# Served by a single node, failing over to the others on transport errors.
READ_OPERATIONS: FrozenSet[str] = frozenset({
    "head",
    "get",
    "get_stream",
    "list",
})

# Fanned out to every node; all of them must accept the write.
WRITE_OPERATIONS: FrozenSet[str] = frozenset({
    "put",
    "put_stream",
    "delete",
    "delete_multi",
    "copy",
    "put_meta",
})


# =============================================================================
# Backend Contract
# =============================================================================


@runtime_checkable
class BackendClient(Protocol):
    """
    Operations a single storage endpoint handle must expose.

    Failures are raised as exceptions carrying a ``status`` attribute
    (an HTTP-like integer, or ``None`` for transport failures).
    """

    async def head(self, key: str, *args: Any, **kwargs: Any) -> Any: ...

    async def get(self, key: str, *args: Any, **kwargs: Any) -> Any: ...

    async def get_stream(self, key: str, *args: Any, **kwargs: Any) -> Any: ...

    async def list(self, *args: Any, **kwargs: Any) -> Any: ...

    async def put(self, key: str, content: Any, *args: Any, **kwargs: Any) -> Any: ...

    async def put_stream(self, key: str, stream: Any, *args: Any, **kwargs: Any) -> Any: ...

    async def delete(self, key: str, *args: Any, **kwargs: Any) -> Any: ...

    async def delete_multi(self, keys: List[str], *args: Any, **kwargs: Any) -> Any: ...

    async def copy(self, dest: str, src: str, *args: Any, **kwargs: Any) -> Any: ...

    async def put_meta(self, key: str, meta: Dict[str, Any], *args: Any, **kwargs: Any) -> Any: ...

    def signature_url(self, key: str, *args: Any, **kwargs: Any) -> str: ...

    def object_url(self, key: str) -> str: ...


# =============================================================================
# Nodes
# =============================================================================


@dataclass(frozen=True, eq=False)
class BackendNode:
    """One configured endpoint. Never mutated after construction."""
    index: int
    client: Any
    name: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            object.__setattr__(self, "name", f"node-{self.index}")

    def __repr__(self) -> str:
        return f"BackendNode(index={self.index}, name={self.name!r})"


# =============================================================================
# Health
# =============================================================================


@dataclass
class HealthReport:
    """Outcome of one availability check cycle."""
    available: Dict[int, bool] = field(default_factory=dict)
    down_urls: List[str] = field(default_factory=list)
    first_run: bool = False
    started_at: datetime = field(default_factory=datetime.now)
    duration: float = 0.0

    @property
    def down_count(self) -> int:
        return sum(1 for ok in self.available.values() if not ok)

    @property
    def all_available(self) -> bool:
        return all(self.available.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "available": dict(self.available),
            "down_urls": list(self.down_urls),
            "down_count": self.down_count,
            "first_run": self.first_run,
            "started_at": self.started_at.isoformat(),
            "duration": round(self.duration, 4),
        }
