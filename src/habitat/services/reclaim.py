"""Elastic shrink: finding pods beyond a task's maximum parallelism."""

from kubernetes.client import V1Pod

from habitat.models.job import Job
from habitat.services.desired_state import REPLICA_INDEX_LABEL, TASK_NAME_LABEL


def replica_index(pod: V1Pod) -> int | None:
    """Read a pod's replica index.

    The ``habitat-replica-index`` label is authoritative. Pods created before
    the label existed fall back to the trailing ``-N`` segment of the name.
    """
    labels = pod.metadata.labels or {}
    raw = labels.get(REPLICA_INDEX_LABEL)
    if raw is None:
        raw = (pod.metadata.name or "").rsplit("-", 1)[-1]
    try:
        index = int(raw)
    except ValueError:
        return None
    return index if index >= 0 else None


def is_excess(pod: V1Pod, job: Job) -> bool:
    """Whether a pod exceeds its task's ``parallelism.max``.

    Replicas below ``parallelism.min`` are never excess, even for a spec that
    skipped admission and has ``min > max``. Pods with no readable index or
    whose task is not in the Job spec are left alone.
    """
    labels = pod.metadata.labels or {}
    task_name = labels.get(TASK_NAME_LABEL)
    if task_name is None:
        return False
    task = job.task(task_name)
    if task is None:
        return False
    index = replica_index(pod)
    if index is None:
        return False
    return index >= task.parallelism.max and index >= task.parallelism.min
