"""Pytest configuration and shared factories for habitat tests."""

from datetime import UTC, datetime
from typing import Any

import pytest
from kubernetes.client import V1ObjectMeta, V1OwnerReference, V1Pod, V1PodStatus

from habitat.core.config import get_settings
from habitat.models.job import API_VERSION, KIND
from habitat.services.desired_state import (
    REPLICA_INDEX_LABEL,
    TASK_NAME_LABEL,
    TASK_OWNER_LABEL,
)
from habitat.services.reconciler import FINALIZER_NAME


def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line(
        "markers",
        "live_cluster: marks tests that require a reachable Kubernetes cluster",
    )


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Make every test read settings from its own environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def task_dict(name: str, min_replicas: int, max_replicas: int) -> dict[str, Any]:
    return {
        "name": name,
        "parallelism": {"min": min_replicas, "max": max_replicas},
        "template": {
            "metadata": {"labels": {"app": name}},
            "spec": {"containers": [{"name": "main", "image": "busybox"}]},
        },
    }


@pytest.fixture
def make_job():
    """Factory for Job objects as returned by the custom objects API."""

    def factory(
        name: str = "train",
        namespace: str = "default",
        tasks: tuple[tuple[str, int, int], ...] = (("worker", 1, 2),),
        status: dict[str, Any] | None = None,
        finalizers: list[str] | None = None,
        deletion_timestamp: str | None = None,
        **spec_fields: Any,
    ) -> dict[str, Any]:
        metadata: dict[str, Any] = {
            "name": name,
            "namespace": namespace,
            "uid": f"{name}-uid",
            "resourceVersion": "100",
            "finalizers": [FINALIZER_NAME] if finalizers is None else finalizers,
        }
        if deletion_timestamp is not None:
            metadata["deletionTimestamp"] = deletion_timestamp
        job: dict[str, Any] = {
            "apiVersion": API_VERSION,
            "kind": KIND,
            "metadata": metadata,
            "spec": {"tasks": [task_dict(*task) for task in tasks], **spec_fields},
        }
        if status is not None:
            job["status"] = status
        return job

    return factory


@pytest.fixture
def make_pod():
    """Factory for pods owned by a Job."""

    def factory(
        task: str = "worker",
        index: int = 0,
        phase: str | None = "Running",
        job: str = "train",
        namespace: str = "default",
        deleting: bool = False,
        index_label: bool = True,
        name: str | None = None,
    ) -> V1Pod:
        labels = {TASK_OWNER_LABEL: job, TASK_NAME_LABEL: task}
        if index_label:
            labels[REPLICA_INDEX_LABEL] = str(index)
        return V1Pod(
            metadata=V1ObjectMeta(
                name=name or f"{task}-{index}",
                namespace=namespace,
                labels=labels,
                deletion_timestamp=datetime.now(UTC) if deleting else None,
                owner_references=[
                    V1OwnerReference(
                        api_version=API_VERSION,
                        kind=KIND,
                        name=job,
                        uid=f"{job}-uid",
                        controller=True,
                    )
                ],
            ),
            status=V1PodStatus(phase=phase),
        )

    return factory
