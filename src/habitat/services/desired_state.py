"""Projection of a Job spec onto the minimal set of pods it requires."""

from typing import Any

from habitat.models.job import Job, TaskSpec

# Correlation labels stamped on every pod the controller creates
TASK_OWNER_LABEL = "habitat-task-owner"
TASK_NAME_LABEL = "habitat-task"
REPLICA_INDEX_LABEL = "habitat-replica-index"


def owner_selector(job: Job) -> str:
    """Label selector matching every pod owned by a Job."""
    return f"{TASK_OWNER_LABEL}={job.name}"


def pod_name(task: TaskSpec, index: int) -> str:
    return f"{task.name}-{index}"


def task_pod_spec(job: Job, task: TaskSpec) -> dict[str, Any]:
    """The pod spec for a task, routed to the Job's scheduler when one is set."""
    spec = task.template.spec.to_manifest()
    if job.spec.scheduler_name:
        spec["schedulerName"] = job.spec.scheduler_name
    return spec


def task_pod_labels(job: Job, task: TaskSpec, index: int) -> dict[str, str]:
    """Template labels merged with the controller's correlation labels."""
    labels = dict(task.template.metadata.labels or {}) if task.template.metadata else {}
    labels[TASK_OWNER_LABEL] = job.name
    labels[TASK_NAME_LABEL] = task.name
    labels[REPLICA_INDEX_LABEL] = str(index)
    return labels


def task_pod_annotations(task: TaskSpec) -> dict[str, str] | None:
    if task.template.metadata is None or task.template.metadata.annotations is None:
        return None
    return dict(task.template.metadata.annotations)


def build_task_pod(job: Job, task: TaskSpec, index: int) -> dict[str, Any]:
    """Build replica ``index`` of ``task``, owned by ``job``.

    The pod is a plain manifest so the template's containers and volumes
    reach the API server exactly as the user wrote them.
    """
    metadata: dict[str, Any] = {
        "name": pod_name(task, index),
        "namespace": job.namespace,
        "labels": task_pod_labels(job, task, index),
        "ownerReferences": [job.controller_owner_ref()],
    }
    annotations = task_pod_annotations(task)
    if annotations:
        metadata["annotations"] = annotations
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": metadata,
        "spec": task_pod_spec(job, task),
    }


def build_min_owned_pods(job: Job) -> list[dict[str, Any]]:
    """Build the floor of pods a Job needs: ``parallelism.min`` per task.

    Pure function of the Job spec; it never looks at cluster state. Pods beyond
    ``min`` that already exist are neither recreated nor removed here.
    """
    return [
        build_task_pod(job, task, index)
        for task in job.spec.tasks
        for index in range(task.parallelism.min)
    ]
