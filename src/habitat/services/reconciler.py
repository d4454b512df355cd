"""Reconciliation of Jobs into Pods behind a finalizer."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import ValidationError

from habitat.core.config import Settings, get_settings
from habitat.core.telemetry import get_tracer
from habitat.models.job import Job, JobStatus
from habitat.services.cluster import ClusterClient, ClusterError, get_cluster_client
from habitat.services.desired_state import (
    TASK_NAME_LABEL,
    build_min_owned_pods,
    owner_selector,
)
from habitat.services.diagnostics import DiagnosticsRecorder, get_diagnostics_recorder
from habitat.services.pod_state import TERMINATING, PodCounts, classify_pod, derive_phase
from habitat.services.reclaim import is_excess
from habitat.services.status import StatusReporter, build_status

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

FINALIZER_NAME = "controller.batch.habitat"


class ReconcileError(Exception):
    """Raised when a reconcile cannot complete and must be retried."""

    pass


class FinalizerError(ReconcileError):
    """Raised when the controller's finalizer cannot be added or removed."""

    pass


class JobParseError(Exception):
    """Raised when a stored Job does not match the Job schema."""

    pass


@dataclass(frozen=True)
class Action:
    """What the work queue should do with a key after a reconcile.

    ``requeue_after`` of None means wait for the next watch event.
    """

    requeue_after: float | None = None

    @classmethod
    def await_change(cls) -> Action:
        return cls()

    @classmethod
    def requeue(cls, seconds: float) -> Action:
        return cls(requeue_after=seconds)


class FinalizerStrategy(Protocol):
    """Operations a resource plugs into the finalizer driver."""

    def apply(self, job: Job) -> Action: ...

    def cleanup(self, job: Job) -> Action: ...

    def error_policy(self, key: str, error: Exception) -> Action: ...


def parse_job(obj: dict[str, Any]) -> Job:
    try:
        return Job.model_validate(obj)
    except ValidationError as e:
        raise JobParseError(str(e)) from e


def add_finalizer(cluster: ClusterClient, job: Job) -> None:
    """Append the controller's finalizer, guarded against concurrent edits."""
    finalizers = job.metadata.finalizers
    if not finalizers:
        operations = [
            {"op": "test", "path": "/metadata/finalizers", "value": finalizers},
            {"op": "add", "path": "/metadata/finalizers", "value": [FINALIZER_NAME]},
        ]
    else:
        operations = [
            {"op": "test", "path": "/metadata/finalizers", "value": finalizers},
            {"op": "add", "path": "/metadata/finalizers/-", "value": FINALIZER_NAME},
        ]
    try:
        cluster.json_patch_job(job.namespace, job.name, operations)
    except ClusterError as e:
        raise FinalizerError(f"Failed to add finalizer to job {job.key}: {e}") from e
    logger.debug("Added finalizer to job %s", job.key)


def remove_finalizer(cluster: ClusterClient, job: Job) -> None:
    """Remove the controller's finalizer so the API server can delete the Job."""
    finalizers = job.metadata.finalizers or []
    index = finalizers.index(FINALIZER_NAME)
    operations = [
        {"op": "test", "path": f"/metadata/finalizers/{index}", "value": FINALIZER_NAME},
        {"op": "remove", "path": f"/metadata/finalizers/{index}"},
    ]
    try:
        cluster.json_patch_job(job.namespace, job.name, operations)
    except ClusterError as e:
        raise FinalizerError(f"Failed to remove finalizer from job {job.key}: {e}") from e
    logger.debug("Removed finalizer from job %s", job.key)


def run_finalizer(cluster: ClusterClient, strategy: FinalizerStrategy, job: Job) -> Action:
    """Dispatch a Job to apply or cleanup according to the finalizer protocol.

    - live Job without the finalizer: add it and wait for the resulting event
    - live Job with the finalizer: apply
    - deleted Job with the finalizer: cleanup, then remove the finalizer
    - deleted Job without the finalizer: nothing left to do
    """
    has_finalizer = FINALIZER_NAME in (job.metadata.finalizers or [])

    if job.metadata.deletion_timestamp is None:
        if not has_finalizer:
            add_finalizer(cluster, job)
            return Action.await_change()
        return strategy.apply(job)

    if has_finalizer:
        action = strategy.cleanup(job)
        remove_finalizer(cluster, job)
        return action

    return Action.await_change()


class JobReconciler:
    """Converges one Job's pods to its spec and reports status.

    Each call to :meth:`reconcile` reloads the Job and its pods from the API
    server, so it can be re-run from scratch after any partial failure: it
    only creates missing pods and deletes excess ones.

    Example:
        ```python
        reconciler = JobReconciler()
        action = reconciler.reconcile("default", "train")
        if action.requeue_after:
            ...
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        cluster: ClusterClient | None = None,
        status_reporter: StatusReporter | None = None,
        diagnostics: DiagnosticsRecorder | None = None,
    ) -> None:
        """Initialize the reconciler.

        Args:
            settings: Application settings (uses default if not provided)
            cluster: Optional ClusterClient instance
            status_reporter: Optional StatusReporter instance
            diagnostics: Optional DiagnosticsRecorder instance
        """
        self.settings = settings or get_settings()
        self._cluster = cluster
        self._status_reporter = status_reporter
        self._diagnostics = diagnostics

    @property
    def cluster(self) -> ClusterClient:
        """Get the cluster client instance."""
        if self._cluster is None:
            self._cluster = get_cluster_client()
        return self._cluster

    @property
    def status_reporter(self) -> StatusReporter:
        """Get the status reporter instance."""
        if self._status_reporter is None:
            self._status_reporter = StatusReporter(self.cluster)
        return self._status_reporter

    @property
    def diagnostics(self) -> DiagnosticsRecorder:
        """Get the diagnostics recorder instance."""
        if self._diagnostics is None:
            self._diagnostics = get_diagnostics_recorder()
        return self._diagnostics

    def reconcile(self, namespace: str, name: str) -> Action:
        """Reconcile the Job ``namespace/name``.

        Never raises: failures are logged and turned into a requeue action.
        """
        key = f"{namespace}/{name}"
        with tracer.start_as_current_span("reconcile", attributes={"habitat.job": key}):
            try:
                obj = self.cluster.get_job(namespace, name)
                if obj is None:
                    logger.debug("Job %s no longer exists", key)
                    return Action.await_change()
                job = parse_job(obj)
                return run_finalizer(self.cluster, self, job)
            except JobParseError as e:
                logger.error("Job %s does not match the Job schema: %s", key, e)
                return Action.await_change()
            except Exception as e:
                return self.error_policy(key, e)

    def apply(self, job: Job) -> Action:
        """Create missing pods, reclaim excess ones and refresh status."""
        logger.info("Reconciling job %s", job.key)

        if job.is_terminal:
            return Action.await_change()

        if job.status is None:
            self._record_creation(job)

        owned_pods = {
            pod.metadata.name: pod
            for pod in self.cluster.list_owned_pods(job.namespace, owner_selector(job))
        }

        for desired in build_min_owned_pods(job):
            name = desired["metadata"]["name"]
            if name not in owned_pods:
                self.cluster.create_pod(job.namespace, desired)
                logger.info("Created pod %s/%s", job.namespace, name)

        counts = PodCounts()
        for pod in owned_pods.values():
            bucket = classify_pod(pod)
            counts.add(bucket)
            # Already-terminating pods have a delete in flight
            if bucket != TERMINATING and is_excess(pod, job):
                self.cluster.delete_pod(job.namespace, pod.metadata.name)
                task_name = pod.metadata.labels[TASK_NAME_LABEL]
                logger.info(
                    "Task '%s' max parallelism is %d, reclaimed pod %s/%s",
                    task_name,
                    job.task(task_name).parallelism.max,
                    job.namespace,
                    pod.metadata.name,
                )
                # Counted under its reported phase and as terminating
                counts.add(TERMINATING)

        phase = derive_phase(counts)
        status = build_status(counts, phase, job.status)
        self.status_reporter.report_if_changed(job, status)
        return Action.await_change()

    def cleanup(self, job: Job) -> Action:
        """Hook run before the finalizer is removed.

        Owned pods are removed by garbage collection through their owner
        references, so nothing is deleted here.
        """
        logger.info("Job %s deleted, releasing finalizer", job.key)
        return Action.await_change()

    def error_policy(self, key: str, error: Exception) -> Action:
        """Retry after a fixed delay, whatever the error."""
        logger.warning(
            "Reconcile of job %s failed, retrying in %ss: %s",
            key,
            self.settings.requeue_seconds,
            error,
        )
        return Action.requeue(self.settings.requeue_seconds)

    def _record_creation(self, job: Job) -> None:
        """Publish the creation event and stamp the zero-valued status."""
        self.cluster.publish_event(
            job,
            reason="CreateJob",
            note=f"Creating Job `{job.name}`",
            action="Reconciling",
            reporter=self.diagnostics.reporter,
        )
        self.diagnostics.record_event()
        self.status_reporter.report(job, JobStatus.initial().to_manifest())
