"""
Shared fixtures for the cluster router tests.

Provides an in-memory backend whose failures can be scripted per
operation, plus helpers that wire nodes, tracker, scheduler and
dispatcher together without a full client.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from typing import Any, Deque, Dict, List, Optional, Tuple

import pytest

from osscluster.balancing.strategies import Scheduler
from osscluster.cluster.availability import AvailabilityTracker
from osscluster.cluster.dispatcher import Dispatcher
from osscluster.errors import BackendError
from osscluster.types import BackendNode, SchedulingPolicy


class FakeBackend:
    """In-memory stand-in for one storage endpoint."""

    def __init__(self, name: str, options: Optional[Dict[str, Any]] = None) -> None:
        self.name = name
        self.options = options or {}
        self.objects: Dict[str, Any] = {}
        self.calls: List[Tuple[str, tuple]] = []
        self.gate: Optional[asyncio.Event] = None
        self._scripted: Dict[str, Deque[BaseException]] = defaultdict(deque)
        self._always: Dict[str, BaseException] = {}

    # -- scripting ------------------------------------------------------

    def fail(self, op: str, error: BaseException, times: Optional[int] = None) -> None:
        """Make *op* raise *error* the next *times* calls, or forever."""
        if times is None:
            self._always[op] = error
        else:
            self._scripted[op].extend([error] * times)

    def recover(self, op: Optional[str] = None) -> None:
        if op is None:
            self._always.clear()
            self._scripted.clear()
        else:
            self._always.pop(op, None)
            self._scripted.pop(op, None)

    def count(self, op: str) -> int:
        return sum(1 for name, _ in self.calls if name == op)

    async def _enter(self, op: str, *args: Any) -> None:
        self.calls.append((op, args))
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if self._scripted[op]:
            raise self._scripted[op].popleft()
        if op in self._always:
            raise self._always[op]

    def _receipt(self, key: Any) -> Dict[str, Any]:
        return {"name": key, "node": self.name, "status": 200}

    def _not_found(self, key: str) -> BackendError:
        return BackendError(f"Object not exists: {key}", status=404, code="NoSuchKey")

    # -- reads ----------------------------------------------------------

    async def head(self, key: str, *args: Any, **kwargs: Any) -> Any:
        await self._enter("head", key)
        if key not in self.objects:
            raise self._not_found(key)
        return {"name": key, "node": self.name, "size": len(self.objects[key])}

    async def get(self, key: str, *args: Any, **kwargs: Any) -> Any:
        await self._enter("get", key)
        if key not in self.objects:
            raise self._not_found(key)
        return {"content": self.objects[key], "node": self.name}

    async def get_stream(self, key: str, *args: Any, **kwargs: Any) -> Any:
        await self._enter("get_stream", key)
        if key not in self.objects:
            raise self._not_found(key)
        return {"stream": iter([self.objects[key]]), "node": self.name}

    async def list(self, *args: Any, **kwargs: Any) -> Any:
        await self._enter("list", *args)
        return {"objects": sorted(self.objects), "node": self.name}

    # -- writes ---------------------------------------------------------

    async def put(self, key: str, content: Any, *args: Any, **kwargs: Any) -> Any:
        await self._enter("put", key, content)
        self.objects[key] = content
        return self._receipt(key)

    async def put_stream(self, key: str, stream: Any, *args: Any, **kwargs: Any) -> Any:
        await self._enter("put_stream", key)
        self.objects[key] = b"".join(stream)
        return self._receipt(key)

    async def delete(self, key: str, *args: Any, **kwargs: Any) -> Any:
        await self._enter("delete", key)
        self.objects.pop(key, None)
        return self._receipt(key)

    async def delete_multi(self, keys: List[str], *args: Any, **kwargs: Any) -> Any:
        await self._enter("delete_multi", tuple(keys))
        for key in keys:
            self.objects.pop(key, None)
        return {"deleted": list(keys), "node": self.name}

    async def copy(self, dest: str, src: str, *args: Any, **kwargs: Any) -> Any:
        await self._enter("copy", dest, src)
        if src not in self.objects:
            raise self._not_found(src)
        self.objects[dest] = self.objects[src]
        return self._receipt(dest)

    async def put_meta(self, key: str, meta: Dict[str, Any], *args: Any, **kwargs: Any) -> Any:
        await self._enter("put_meta", key, meta)
        return self._receipt(key)

    # -- local ----------------------------------------------------------

    def signature_url(self, key: str, *args: Any, **kwargs: Any) -> str:
        return f"http://{self.name}/{key}?Signature=fake"

    def object_url(self, key: str) -> str:
        return f"http://{self.name}/{key}"


def server_error(status: int = 500) -> BackendError:
    return BackendError("Internal Server Error", status=status, code="InternalError")


def build_nodes(count: int) -> List[BackendNode]:
    names = "abcdefghij"
    return [
        BackendNode(index=i, client=FakeBackend(names[i]), name=names[i])
        for i in range(count)
    ]


def build_router(
    count: int = 3,
    policy: SchedulingPolicy = SchedulingPolicy.ROUND_ROBIN,
) -> Tuple[List[BackendNode], AvailabilityTracker, Scheduler, Dispatcher]:
    nodes = build_nodes(count)
    tracker = AvailabilityTracker(count)
    scheduler = Scheduler(nodes, tracker, policy)
    dispatcher = Dispatcher(nodes, scheduler)
    return nodes, tracker, scheduler, dispatcher


class BackendFactory:
    """Records every backend the client builds, in order."""

    def __init__(self) -> None:
        self.backends: List[FakeBackend] = []

    def __call__(self, options: Dict[str, Any]) -> FakeBackend:
        backend = FakeBackend(options.get("endpoint", f"node-{len(self.backends)}"), options)
        self.backends.append(backend)
        return backend


@pytest.fixture
def factory() -> BackendFactory:
    return BackendFactory()


@pytest.fixture
def cluster_options() -> Dict[str, Any]:
    return {
        "cluster": [
            {"endpoint": "a", "bucket": "bucket-a"},
            {"endpoint": "b", "bucket": "bucket-b"},
            {"endpoint": "c", "bucket": "bucket-c"},
        ],
        "heartbeat_interval_ms": 60000,
    }
