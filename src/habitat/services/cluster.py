"""Kubernetes API access for Jobs, Pods and Events."""

from __future__ import annotations

import json
import logging
import socket
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from kubernetes import client, config
from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import HTTPError

from habitat.models.job import GROUP, PLURAL, VERSION, Job

if TYPE_CHECKING:
    from kubernetes.client import CoreV1Api, CustomObjectsApi, EventsV1Api, V1Pod

logger = logging.getLogger(__name__)

MERGE_PATCH = "application/merge-patch+json"


class ClusterError(RuntimeError):
    """Raised when a Kubernetes API call fails.

    Attributes:
        status: HTTP status returned by the API server, if any
        body: Decoded response body (a metav1.Status dict) when available
    """

    def __init__(self, message: str, status: int | None = None, body: Any = None) -> None:
        super().__init__(message)
        self.status = status
        self.body = body

    @classmethod
    def from_api_exception(cls, action: str, e: ApiException) -> ClusterError:
        body: Any = None
        if e.body:
            try:
                body = json.loads(e.body)
            except (TypeError, ValueError):
                body = e.body
        return cls(f"Failed to {action}: {e.reason}", status=e.status, body=body)


class ClusterClient:
    """Thin wrapper over the official client for the calls the controller makes.

    Clients are created on first use so that importing this module never
    touches the kubeconfig.

    Example:
        ```python
        cluster = ClusterClient()
        pods = cluster.list_owned_pods("default", "habitat-task-owner=train")
        cluster.delete_pod("default", "worker-3")
        ```
    """

    def __init__(self) -> None:
        """Initialize the cluster client with lazy-loaded API clients."""
        self._core_api: CoreV1Api | None = None
        self._custom_api: CustomObjectsApi | None = None
        self._events_api: EventsV1Api | None = None
        self._initialized = False

    def _ensure_initialized(self) -> None:
        """Load configuration and create API clients if not already done."""
        if self._initialized:
            return

        try:
            config.load_incluster_config()
            logger.info("Loaded in-cluster Kubernetes configuration")
        except config.ConfigException:
            try:
                config.load_kube_config()
                logger.info("Loaded kubeconfig Kubernetes configuration")
            except config.ConfigException as e:
                logger.warning("Failed to load Kubernetes configuration: %s", e)
                raise ClusterError("No Kubernetes configuration available") from e

        self._core_api = client.CoreV1Api()
        self._custom_api = client.CustomObjectsApi()
        self._events_api = client.EventsV1Api()
        self._initialized = True

    @property
    def core_api(self) -> CoreV1Api:
        """Get the CoreV1 API client."""
        self._ensure_initialized()
        assert self._core_api is not None
        return self._core_api

    @property
    def custom_api(self) -> CustomObjectsApi:
        """Get the CustomObjects API client."""
        self._ensure_initialized()
        assert self._custom_api is not None
        return self._custom_api

    @property
    def events_api(self) -> EventsV1Api:
        """Get the events.k8s.io/v1 API client."""
        self._ensure_initialized()
        assert self._events_api is not None
        return self._events_api

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def check_jobs_installed(self) -> None:
        """List at most one Job to prove the custom resource is served.

        Raises:
            ClusterError: If the CRD is missing or the API is unreachable
        """
        try:
            self.custom_api.list_cluster_custom_object(GROUP, VERSION, PLURAL, limit=1)
        except ApiException as e:
            raise ClusterError.from_api_exception("list jobs (is habitat installed?)", e) from e

    def get_job(self, namespace: str, name: str) -> dict[str, Any] | None:
        """Read a Job, returning None if it no longer exists."""
        try:
            return self.custom_api.get_namespaced_custom_object(
                GROUP, VERSION, namespace, PLURAL, name
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise ClusterError.from_api_exception(f"get job {namespace}/{name}", e) from e

    def patch_job_status(self, namespace: str, name: str, body: dict[str, Any]) -> None:
        """Merge-patch the status subresource of a Job."""
        try:
            self.custom_api.patch_namespaced_custom_object_status(
                GROUP,
                VERSION,
                namespace,
                PLURAL,
                name,
                body,
                _content_type=MERGE_PATCH,
            )
        except ApiException as e:
            action = f"patch status of job {namespace}/{name}"
            raise ClusterError.from_api_exception(action, e) from e

    def json_patch_job(self, namespace: str, name: str, operations: list[dict[str, Any]]) -> None:
        """Apply a JSON patch (RFC 6902) to a Job's main resource."""
        try:
            self.custom_api.patch_namespaced_custom_object(
                GROUP, VERSION, namespace, PLURAL, name, operations
            )
        except ApiException as e:
            raise ClusterError.from_api_exception(f"patch job {namespace}/{name}", e) from e

    # ------------------------------------------------------------------
    # Pods
    # ------------------------------------------------------------------

    def list_owned_pods(self, namespace: str, label_selector: str) -> list[V1Pod]:
        """List pods in a namespace matching a label selector."""
        try:
            pods = self.core_api.list_namespaced_pod(
                namespace=namespace, label_selector=label_selector
            )
        except ApiException as e:
            raise ClusterError.from_api_exception(f"list pods in {namespace}", e) from e
        return list(pods.items)

    def create_pod(self, namespace: str, pod: dict[str, Any]) -> None:
        try:
            self.core_api.create_namespaced_pod(namespace=namespace, body=pod)
        except ApiException as e:
            action = f"create pod {namespace}/{pod['metadata']['name']}"
            raise ClusterError.from_api_exception(action, e) from e

    def delete_pod(self, namespace: str, name: str) -> bool:
        """Delete a pod.

        Returns:
            False if the pod was already gone, True otherwise
        """
        try:
            self.core_api.delete_namespaced_pod(name=name, namespace=namespace)
            return True
        except ApiException as e:
            if e.status == 404:
                logger.debug("Pod %s/%s already deleted", namespace, name)
                return False
            raise ClusterError.from_api_exception(f"delete pod {namespace}/{name}", e) from e

    def dry_run_create_pod(self, namespace: str, pod: dict[str, Any]) -> None:
        """Submit a pod for server-side validation without persisting it."""
        try:
            self.core_api.create_namespaced_pod(namespace=namespace, body=pod, dry_run="All")
        except ApiException as e:
            raise ClusterError.from_api_exception("dry-run pod", e) from e
        except HTTPError as e:
            raise ClusterError(f"Failed to dry-run pod: {e}") from e

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def publish_event(
        self,
        job: Job,
        reason: str,
        note: str,
        action: str,
        reporter: str,
        event_type: str = "Normal",
    ) -> None:
        """Record an events.k8s.io/v1 Event regarding a Job."""
        now = datetime.now(UTC)
        body = {
            "apiVersion": "events.k8s.io/v1",
            "kind": "Event",
            "metadata": {"generateName": f"{job.name}.", "namespace": job.namespace},
            "eventTime": now.strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "type": event_type,
            "reason": reason,
            "note": note,
            "action": action,
            "reportingController": reporter,
            "reportingInstance": f"{reporter}-{socket.gethostname()}",
            "regarding": job.object_ref(),
        }
        try:
            self.events_api.create_namespaced_event(namespace=job.namespace, body=body)
        except ApiException as e:
            raise ClusterError.from_api_exception(f"publish event for job {job.key}", e) from e


# Global singleton instance
_cluster_client: ClusterClient | None = None


def get_cluster_client() -> ClusterClient:
    """Get the global ClusterClient instance."""
    global _cluster_client
    if _cluster_client is None:
        _cluster_client = ClusterClient()
    return _cluster_client
