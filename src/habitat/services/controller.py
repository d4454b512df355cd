"""Watch-driven controller loop for Jobs."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable, Iterator
from typing import Any

from kubernetes import watch
from kubernetes.client.exceptions import ApiException

from habitat.core.config import Settings, get_settings
from habitat.models.job import API_VERSION, GROUP, KIND, PLURAL, VERSION
from habitat.services.cluster import ClusterClient, ClusterError, get_cluster_client
from habitat.services.desired_state import TASK_OWNER_LABEL
from habitat.services.reconciler import JobReconciler

logger = logging.getLogger(__name__)

# Pause before re-opening a watch that failed
WATCH_RETRY_SECONDS = 5.0

# How long stop() waits for each watch thread to exit
WATCH_JOIN_SECONDS = 5.0

WatchEvents = Callable[[watch.Watch, str | None], Iterator[tuple[str | None, str | None]]]


class ControllerStartupError(Exception):
    """Raised when the controller cannot start, e.g. the Job CRD is missing."""

    pass


class WorkQueue:
    """Keyed work queue with at most one in-flight item per key.

    A key added while it is queued is coalesced. A key added while it is
    being processed is marked dirty and re-queued once :meth:`done` is
    called, so the same Job is never reconciled concurrently.

    Must be used from a single event loop.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        self._dirty: set[str] = set()
        self._processing: set[str] = set()
        self._timers: set[asyncio.TimerHandle] = set()
        self._shutting_down = False

    def __len__(self) -> int:
        return self._queue.qsize()

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    def add(self, key: str) -> None:
        if self._shutting_down or key in self._dirty:
            return
        self._dirty.add(key)
        if key in self._processing:
            return
        self._queue.put_nowait(key)

    def add_after(self, key: str, delay: float) -> None:
        """Add ``key`` once ``delay`` seconds have passed."""
        if self._shutting_down:
            return
        loop = asyncio.get_running_loop()
        handle: asyncio.TimerHandle

        def fire() -> None:
            self._timers.discard(handle)
            self.add(key)

        handle = loop.call_later(delay, fire)
        self._timers.add(handle)

    async def get(self) -> str | None:
        """Wait for the next key; None once the queue is shut down."""
        key = await self._queue.get()
        if key is None or self._shutting_down:
            return None
        self._processing.add(key)
        self._dirty.discard(key)
        return key

    def done(self, key: str) -> None:
        self._processing.discard(key)
        if key in self._dirty and not self._shutting_down:
            self._queue.put_nowait(key)

    def shutdown(self, waiters: int) -> None:
        """Stop accepting keys, drop pending ones and wake ``waiters`` blocked getters."""
        self._shutting_down = True
        for handle in self._timers:
            handle.cancel()
        self._timers.clear()
        for _ in range(waiters):
            self._queue.put_nowait(None)


def job_key(obj: dict[str, Any]) -> str | None:
    """Queue key for a Job watch object."""
    metadata = obj.get("metadata") or {}
    if not metadata.get("name"):
        return None
    return f"{metadata.get('namespace') or 'default'}/{metadata['name']}"


def owner_job_key(pod: Any) -> str | None:
    """Queue key of the Job controlling a pod, if any."""
    for ref in pod.metadata.owner_references or []:
        if ref.controller and ref.kind == KIND and ref.api_version == API_VERSION:
            return f"{pod.metadata.namespace}/{ref.name}"
    return None


class JobController:
    """Runs reconciles for Jobs as watch events arrive.

    Two watch threads (Jobs, and Pods carrying the owner label) feed keys
    into a :class:`WorkQueue`; worker tasks pull keys and run the blocking
    reconcile in the default executor. Different Jobs reconcile in parallel,
    the same Job never does.

    Example:
        ```python
        controller = JobController()
        await controller.start()  # Fails fast if the CRD is missing
        # ... application runs ...
        await controller.stop()
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        cluster: ClusterClient | None = None,
        reconciler: JobReconciler | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            settings: Application settings (uses default if not provided)
            cluster: Optional ClusterClient instance
            reconciler: Optional JobReconciler instance
        """
        self.settings = settings or get_settings()
        self._cluster = cluster
        self._reconciler = reconciler
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: WorkQueue | None = None
        self._workers: list[asyncio.Task] = []
        self._watches: list[watch.Watch] = []
        self._watch_threads: list[threading.Thread] = []
        self._watch_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._running = False

    @property
    def cluster(self) -> ClusterClient:
        """Get the cluster client instance."""
        if self._cluster is None:
            self._cluster = get_cluster_client()
        return self._cluster

    @property
    def reconciler(self) -> JobReconciler:
        """Get the reconciler instance."""
        if self._reconciler is None:
            self._reconciler = JobReconciler(settings=self.settings, cluster=self.cluster)
        return self._reconciler

    @property
    def is_running(self) -> bool:
        """Check if the controller is running."""
        return self._running

    @property
    def queue_depth(self) -> int:
        return len(self._queue) if self._queue is not None else 0

    async def start(self, watch_events: bool = True) -> None:
        """Check the CRD, then start workers and (optionally) watches.

        Raises:
            ControllerStartupError: If the Job resource is not served
        """
        if self._running:
            logger.warning("Job controller is already running")
            return

        self._loop = asyncio.get_running_loop()
        try:
            await self._loop.run_in_executor(None, self.cluster.check_jobs_installed)
        except ClusterError as e:
            raise ControllerStartupError(str(e)) from e

        self._queue = WorkQueue()
        self._stop_event.clear()
        self._running = True
        self._workers = [
            asyncio.create_task(self._worker(i)) for i in range(self.settings.workers)
        ]
        if watch_events:
            self._start_watch("jobs", self._job_events)
            self._start_watch("pods", self._pod_events)

        logger.info(
            "Job controller started with %d workers (namespace=%s)",
            self.settings.workers,
            self.settings.namespace or "*",
        )

    async def stop(self) -> None:
        """Stop watching, drain workers and let in-flight reconciles finish."""
        if not self._running:
            return

        self._running = False
        self._stop_event.set()
        with self._watch_lock:
            for w in self._watches:
                w.stop()

        if self._queue is not None:
            self._queue.shutdown(len(self._workers))
        if self._workers:
            await asyncio.gather(*self._workers)
        self._workers = []

        # A stopped watch only notices on its next event or server timeout
        assert self._loop is not None
        for thread in self._watch_threads:
            await self._loop.run_in_executor(None, thread.join, WATCH_JOIN_SECONDS)
            if thread.is_alive():
                logger.warning("Watch thread %s did not exit in time", thread.name)
        self._watch_threads = []

        logger.info("Job controller stopped")

    def enqueue(self, key: str) -> None:
        """Schedule a reconcile of ``key``; safe to call from any thread."""
        if self._loop is None or self._queue is None or not self._running:
            return
        self._loop.call_soon_threadsafe(self._queue.add, key)

    async def _worker(self, worker_id: int) -> None:
        assert self._loop is not None and self._queue is not None
        queue = self._queue
        while True:
            key = await queue.get()
            if key is None:
                break
            namespace, name = key.split("/", 1)
            try:
                action = await self._loop.run_in_executor(
                    None, self.reconciler.reconcile, namespace, name
                )
            except Exception as e:
                logger.error(f"Worker {worker_id} failed reconciling {key}: {e}")
                action = None
            finally:
                queue.done(key)

            if action is not None and action.requeue_after is not None:
                queue.add_after(key, action.requeue_after)

    # ------------------------------------------------------------------
    # Watches
    # ------------------------------------------------------------------

    def _start_watch(self, name: str, events: WatchEvents) -> None:
        thread = threading.Thread(
            target=self._watch_loop, args=(name, events), name=f"watch-{name}", daemon=True
        )
        thread.start()
        self._watch_threads.append(thread)

    def _watch_loop(self, name: str, events: WatchEvents) -> None:
        """Keep a watch open until stop, resuming from the last seen version.

        The first stream (no resource version) replays every existing object
        as ADDED, which queues an initial reconcile for each Job.
        """
        resource_version: str | None = None
        while not self._stop_event.is_set():
            w = watch.Watch()
            with self._watch_lock:
                if self._stop_event.is_set():
                    break
                self._watches.append(w)
            try:
                for key, resource_version in events(w, resource_version):
                    if key is not None:
                        self.enqueue(key)
            except ApiException as e:
                if e.status == 410:
                    logger.info("Watch on %s expired, relisting", name)
                    resource_version = None
                    continue
                logger.warning(
                    "Watch on %s failed: %s (%s), reconnecting", name, e.status, e.reason
                )
                self._stop_event.wait(WATCH_RETRY_SECONDS)
            except Exception as e:
                logger.warning(f"Unexpected error on {name} watch: {e}")
                self._stop_event.wait(WATCH_RETRY_SECONDS)
            finally:
                with self._watch_lock:
                    self._watches.remove(w)

    def _job_events(
        self, w: watch.Watch, resource_version: str | None
    ) -> Iterator[tuple[str | None, str | None]]:
        namespace = self.settings.namespace
        custom_api = self.cluster.custom_api
        kwargs: dict[str, Any] = {"timeout_seconds": self.settings.watch_timeout_seconds}
        if resource_version:
            kwargs["resource_version"] = resource_version
        if namespace:
            stream = w.stream(
                custom_api.list_namespaced_custom_object,
                GROUP,
                VERSION,
                namespace,
                PLURAL,
                **kwargs,
            )
        else:
            stream = w.stream(
                custom_api.list_cluster_custom_object, GROUP, VERSION, PLURAL, **kwargs
            )
        for event in stream:
            obj = event["object"]
            yield job_key(obj), (obj.get("metadata") or {}).get("resourceVersion")

    def _pod_events(
        self, w: watch.Watch, resource_version: str | None
    ) -> Iterator[tuple[str | None, str | None]]:
        namespace = self.settings.namespace
        core_api = self.cluster.core_api
        kwargs: dict[str, Any] = {
            "label_selector": TASK_OWNER_LABEL,
            "timeout_seconds": self.settings.watch_timeout_seconds,
        }
        if resource_version:
            kwargs["resource_version"] = resource_version
        if namespace:
            stream = w.stream(core_api.list_namespaced_pod, namespace, **kwargs)
        else:
            stream = w.stream(core_api.list_pod_for_all_namespaces, **kwargs)
        for event in stream:
            pod = event["object"]
            yield owner_job_key(pod), pod.metadata.resource_version


# Global controller instance
_job_controller: JobController | None = None


def get_job_controller() -> JobController:
    """Get the global JobController instance."""
    global _job_controller
    if _job_controller is None:
        _job_controller = JobController()
    return _job_controller
