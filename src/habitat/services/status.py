"""Status subresource updates for Jobs."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from habitat.models.job import Job, JobStatus, JobStatusPhase
from habitat.services.cluster import ClusterClient, get_cluster_client
from habitat.services.pod_state import PodCounts

logger = logging.getLogger(__name__)


def format_time(moment: datetime) -> str:
    """Format a timestamp the way metav1.Time serializes."""
    return moment.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def build_status(
    counts: PodCounts,
    phase: JobStatusPhase | None,
    current: JobStatus | None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Build the status fields to write for one reconcile.

    Counts are always written. ``phase`` is included only when one was
    derived. ``startTime`` is stamped when the Job first runs and
    ``completionTime`` when it first finishes; recorded times are kept.
    """
    now = now or datetime.now(UTC)
    status: dict[str, Any] = counts.as_status()
    if phase is None:
        return status

    status["phase"] = phase.value
    if phase == JobStatusPhase.RUNNING and (current is None or current.start_time is None):
        status["startTime"] = format_time(now)
    if phase in (JobStatusPhase.SUCCEEDED, JobStatusPhase.FAILED) and (
        current is None or current.completion_time is None
    ):
        status["completionTime"] = format_time(now)
    return status


def status_changed(current: JobStatus | None, status: dict[str, Any]) -> bool:
    """Whether writing ``status`` would change the stored status."""
    if current is None:
        return True
    stored = current.to_manifest()
    return any(stored.get(field) != value for field, value in status.items())


class StatusReporter:
    """Writes Job status through a merge patch on the status subresource.

    Only ``status`` is ever sent, so spec and metadata are never touched. The
    work queue ensures a single in-flight patch per Job.
    """

    def __init__(self, cluster: ClusterClient | None = None) -> None:
        self._cluster = cluster

    @property
    def cluster(self) -> ClusterClient:
        if self._cluster is None:
            self._cluster = get_cluster_client()
        return self._cluster

    def report(self, job: Job, status: dict[str, Any]) -> None:
        """Merge ``status`` into the Job's status subresource."""
        self.cluster.patch_job_status(job.namespace, job.name, {"status": status})
        logger.debug("Patched status of job %s: %s", job.key, status)

    def report_if_changed(self, job: Job, status: dict[str, Any]) -> bool:
        """Patch only when the observed status differs; returns whether it patched."""
        if not status_changed(job.status, status):
            return False
        self.report(job, status)
        return True
