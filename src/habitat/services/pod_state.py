"""Aggregation of observed pod phases into a Job phase."""

from dataclasses import asdict, dataclass

from kubernetes.client import V1Pod

from habitat.models.job import JobStatusPhase

PENDING = "pending"
RUNNING = "running"
SUCCEEDED = "succeeded"
FAILED = "failed"
TERMINATING = "terminating"

# Pod status.phase -> counter
_POD_PHASES = {
    "Pending": PENDING,
    "Running": RUNNING,
    "Succeeded": SUCCEEDED,
    "Failed": FAILED,
}


def classify_pod(pod: V1Pod) -> str | None:
    """Bucket a pod for counting.

    A deletion timestamp wins over whatever phase the pod reports. Pods in an
    unknown or missing phase are not counted.
    """
    if pod.metadata is not None and pod.metadata.deletion_timestamp is not None:
        return TERMINATING
    if pod.status is None or pod.status.phase is None:
        return None
    return _POD_PHASES.get(pod.status.phase)


@dataclass
class PodCounts:
    """Per-bucket pod counts for one reconcile."""

    pending: int = 0
    running: int = 0
    succeeded: int = 0
    failed: int = 0
    terminating: int = 0

    def add(self, bucket: str | None) -> None:
        if bucket is not None:
            setattr(self, bucket, getattr(self, bucket) + 1)

    def as_status(self) -> dict[str, int]:
        return asdict(self)


def derive_phase(counts: PodCounts) -> JobStatusPhase | None:
    """Derive the Job phase from pod counts; first matching rule wins.

    Returns None when no rule matches, meaning the current phase is kept.
    """
    if counts.running > 0:
        return JobStatusPhase.RUNNING
    if (
        counts.pending == 0
        and counts.terminating == 0
        and counts.failed == 0
        and counts.succeeded > 0
    ):
        return JobStatusPhase.SUCCEEDED
    if counts.pending == 0 and counts.failed > 0:
        return JobStatusPhase.FAILED
    if counts.pending > 0:
        return JobStatusPhase.PENDING
    return None
