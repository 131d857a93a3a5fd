"""
OSS Cluster Client

One logical object-storage handle fronting N independent endpoints:
- Reads routed to a single node with failover across the others
- Writes fanned out to every node
- Background heartbeat keeping node availability current
- ``ready`` / ``error`` events for the embedding application
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

import structlog

from osscluster.balancing.strategies import Scheduler
from osscluster.cluster.availability import AvailabilityTracker
from osscluster.cluster.dispatcher import Dispatcher
from osscluster.cluster.health import HealthChecker, probe_key_for
from osscluster.config import ClusterConfig, load_cluster_config
from osscluster.errors import ClusterClosedError
from osscluster.types import BackendClient, BackendNode, SchedulingPolicy

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Type aliases
# ---------------------------------------------------------------------------
ClientFactory = Callable[[Dict[str, Any]], Any]
EventHandler = Callable[..., Any]

EVENTS = ("ready", "error")


class ClusterClient:
    """
    Cluster-aware object storage client.

    Usage::

        client = ClusterClient(
            {"cluster": [{"endpoint": "a"}, {"endpoint": "b"}]},
            client_factory=make_backend,
        )
        client.on("error", report_error)
        async with client:
            await client.ready()
            await client.put("key", b"data")
            data = await client.get("key")

    Args:
        options: A :class:`ClusterConfig` or a mapping of options.
        client_factory: Called once per endpoint, in configuration order,
            with that endpoint's options; returns the backend client.

    Raises:
        ConfigurationError: the endpoint list is missing or empty.
    """

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def __init__(self, options: Any, client_factory: ClientFactory) -> None:
        self._config: ClusterConfig = load_cluster_config(options)

        self._nodes: tuple[BackendNode, ...] = tuple(
            BackendNode(
                index=i,
                client=client_factory(self._config.endpoint_options(i)),
                name=endpoint.display_name,
            )
            for i, endpoint in enumerate(self._config.cluster)
        )

        self._tracker = AvailabilityTracker(len(self._nodes))
        self._scheduler = Scheduler(self._nodes, self._tracker, self._config.schedule)
        self._dispatcher = Dispatcher(self._nodes, self._scheduler)
        self._health = HealthChecker(
            self._nodes,
            self._tracker,
            self._dispatcher,
            probe_key_for(self._config.probe_prefix),
            attempts=self._config.probe_attempts,
            on_error=self._handle_error,
        )

        # Lifecycle
        self._started = False
        self._closed = False
        self._is_ready = False
        self._ready_event = asyncio.Event()
        self._heartbeat_task: Optional[asyncio.Task[None]] = None
        self._background: Set[asyncio.Task[Any]] = set()

        # Event handlers
        self._event_handlers: Dict[str, List[EventHandler]] = {
            event: [] for event in EVENTS
        }

        logger.info(
            "cluster_client.init",
            nodes=[node.name for node in self._nodes],
            schedule=self._scheduler.policy.value,
            heartbeat_interval=self._config.heartbeat_interval,
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> ClusterConfig:
        return self._config

    @property
    def nodes(self) -> Sequence[BackendNode]:
        return self._nodes

    @property
    def policy(self) -> SchedulingPolicy:
        return self._scheduler.policy

    @property
    def availability(self) -> Dict[int, bool]:
        return self._tracker.snapshot()

    @property
    def health(self) -> HealthChecker:
        return self._health

    @property
    def is_ready(self) -> bool:
        return self._is_ready

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Run the first health check and start the heartbeat."""
        self._ensure_open()
        if self._started:
            return
        self._started = True

        self._spawn(self._init())
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())
        logger.info("cluster_client.started", nodes=len(self._nodes))

    async def ready(self, timeout: Optional[float] = None) -> None:
        """Wait until the first health check has completed."""
        if not self._started:
            await self.start()
        await asyncio.wait_for(self._ready_event.wait(), timeout)

    def close(self) -> None:
        """
        Stop the heartbeat. Idempotent.

        The timer never fires again once this returns. Operations and
        checks already running are left to finish.
        """
        if self._closed:
            return
        self._closed = True
        if self._heartbeat_task is not None and not self._heartbeat_task.done():
            self._heartbeat_task.cancel()
        self._heartbeat_task = None
        logger.info("cluster_client.closed")

    async def __aenter__(self) -> ClusterClient:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on(self, event: str, handler: EventHandler) -> None:
        """Register *handler* for ``"ready"`` or ``"error"``."""
        if event not in self._event_handlers:
            raise ValueError(f"unknown event: {event!r}")
        self._event_handlers[event].append(handler)

    def _emit(self, event: str, *args: Any) -> None:
        """Call every handler for *event*; async handlers run as tasks."""
        for handler in self._event_handlers.get(event, []):
            try:
                result = handler(*args)
                if inspect.isawaitable(result):
                    self._spawn(self._await_handler(event, result))
            except Exception:
                logger.exception("cluster_client.event_handler_error", event_name=event)

    async def _await_handler(self, event: str, awaitable: Any) -> None:
        try:
            await awaitable
        except Exception:
            logger.exception("cluster_client.event_handler_error", event_name=event)

    def _handle_error(self, error: BaseException) -> None:
        if not self._event_handlers["error"]:
            logger.error(
                "cluster_client.unhandled_error",
                error_type=type(error).__name__,
                error=str(error),
            )
        self._emit("error", error)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def choose_available(self) -> BackendClient:
        """Backend client of the node the scheduler picks next."""
        self._ensure_open()
        return self._scheduler.choose_available().client

    def signature_url(self, key: str, *args: Any, **kwargs: Any) -> str:
        """Sign a URL on one scheduled node. Local computation, no failover."""
        return self.choose_available().signature_url(key, *args, **kwargs)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def head(self, key: str, *args: Any, **kwargs: Any) -> Any:
        return await self._read("head", key, *args, **kwargs)

    async def get(self, key: str, *args: Any, **kwargs: Any) -> Any:
        return await self._read("get", key, *args, **kwargs)

    async def get_stream(self, key: str, *args: Any, **kwargs: Any) -> Any:
        return await self._read("get_stream", key, *args, **kwargs)

    async def list(self, *args: Any, **kwargs: Any) -> Any:
        return await self._read("list", *args, **kwargs)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def put(self, key: str, content: Any, *args: Any, **kwargs: Any) -> Any:
        return await self._write("put", key, content, *args, **kwargs)

    async def put_stream(self, key: str, stream: Any, *args: Any, **kwargs: Any) -> Any:
        return await self._write("put_stream", key, stream, *args, **kwargs)

    async def delete(self, key: str, *args: Any, **kwargs: Any) -> Any:
        return await self._write("delete", key, *args, **kwargs)

    async def delete_multi(self, keys: Sequence[str], *args: Any, **kwargs: Any) -> Any:
        return await self._write("delete_multi", keys, *args, **kwargs)

    async def copy(self, dest: str, src: str, *args: Any, **kwargs: Any) -> Any:
        return await self._write("copy", dest, src, *args, **kwargs)

    async def put_meta(self, key: str, meta: Dict[str, Any], *args: Any, **kwargs: Any) -> Any:
        return await self._write("put_meta", key, meta, *args, **kwargs)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        """Return a diagnostic view of the cluster."""
        snapshot = self._tracker.snapshot()
        return {
            "schedule": self._scheduler.policy.value,
            "ready": self._is_ready,
            "closed": self._closed,
            "heartbeat_interval": self._config.heartbeat_interval,
            "nodes": [
                {
                    "index": node.index,
                    "name": node.name,
                    "available": snapshot[node.index],
                }
                for node in self._nodes
            ],
            "health": self._health.get_summary(),
        }

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _ensure_open(self) -> None:
        if self._closed:
            raise ClusterClosedError()

    async def _read(self, op: str, *args: Any, **kwargs: Any) -> Any:
        self._ensure_open()
        return await self._dispatcher.read(op, *args, **kwargs)

    async def _write(self, op: str, *args: Any, **kwargs: Any) -> Any:
        self._ensure_open()
        return await self._dispatcher.write(op, *args, **kwargs)

    def _spawn(self, coro: Any) -> asyncio.Task[Any]:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _init(self) -> None:
        """First health check; flips the ready latch once it completes."""
        try:
            await self._health.check_availability(first_run=True)
        except Exception as exc:
            logger.exception("cluster_client.init_failed")
            self._handle_error(exc)
            return
        self._mark_ready()

    def _mark_ready(self) -> None:
        if self._is_ready:
            return
        self._is_ready = True
        self._ready_event.set()
        logger.info("cluster_client.ready", availability=self._tracker.snapshot())
        self._emit("ready")

    async def _heartbeat_loop(self) -> None:
        """Fire a health check every heartbeat interval until closed."""
        while not self._closed:
            try:
                await asyncio.sleep(self._config.heartbeat_interval)
            except asyncio.CancelledError:
                break
            if self._closed:
                break
            # a firing while a check is still running is a no-op
            self._spawn(self._run_check())

    async def _run_check(self) -> None:
        try:
            await self._health.check_availability()
        except Exception as exc:
            logger.exception("cluster_client.health_check_error")
            self._handle_error(exc)
