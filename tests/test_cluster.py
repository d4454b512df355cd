"""Tests for ClusterClient."""

import json
from unittest.mock import MagicMock

import pytest
from kubernetes.client.exceptions import ApiException

from habitat.models.job import GROUP, PLURAL, VERSION, Job
from habitat.services.cluster import MERGE_PATCH, ClusterClient, ClusterError


@pytest.fixture
def mock_core_api():
    """Create a mock CoreV1Api."""
    return MagicMock()


@pytest.fixture
def mock_custom_api():
    """Create a mock CustomObjectsApi."""
    return MagicMock()


@pytest.fixture
def mock_events_api():
    """Create a mock EventsV1Api."""
    return MagicMock()


@pytest.fixture
def cluster(mock_core_api, mock_custom_api, mock_events_api):
    """Create a ClusterClient with mocked API clients."""
    cluster = ClusterClient()
    cluster._core_api = mock_core_api
    cluster._custom_api = mock_custom_api
    cluster._events_api = mock_events_api
    cluster._initialized = True
    return cluster


def api_exception(status: int, body: dict | None = None) -> ApiException:
    e = ApiException(status=status, reason="Error")
    if body is not None:
        e.body = json.dumps(body)
    return e


class TestClusterError:
    """Tests for ClusterError conversion."""

    def test_decodes_status_body(self):
        """Test that the metav1.Status body is decoded."""
        error = ClusterError.from_api_exception(
            "create pod", api_exception(422, {"message": "Pod is invalid"})
        )
        assert error.status == 422
        assert error.body == {"message": "Pod is invalid"}
        assert "create pod" in str(error)

    def test_keeps_raw_body(self):
        """Test that a non-JSON body is kept as-is."""
        e = ApiException(status=500, reason="Error")
        e.body = "oops"
        assert ClusterError.from_api_exception("x", e).body == "oops"


class TestJobs:
    """Tests for Job access."""

    def test_check_jobs_installed(self, cluster, mock_custom_api):
        """Test that a missing CRD raises ClusterError."""
        mock_custom_api.list_cluster_custom_object.side_effect = api_exception(404)

        with pytest.raises(ClusterError) as exc_info:
            cluster.check_jobs_installed()

        assert exc_info.value.status == 404
        mock_custom_api.list_cluster_custom_object.assert_called_once_with(
            GROUP, VERSION, PLURAL, limit=1
        )

    def test_get_missing_job(self, cluster, mock_custom_api):
        """Test that a deleted Job reads as None."""
        mock_custom_api.get_namespaced_custom_object.side_effect = api_exception(404)
        assert cluster.get_job("default", "train") is None

    def test_get_job_error(self, cluster, mock_custom_api):
        """Test that other errors propagate."""
        mock_custom_api.get_namespaced_custom_object.side_effect = api_exception(500)
        with pytest.raises(ClusterError):
            cluster.get_job("default", "train")

    def test_patch_status_uses_merge_patch(self, cluster, mock_custom_api):
        """Test that status is merge-patched on the status subresource."""
        cluster.patch_job_status("default", "train", {"status": {"running": 1}})

        mock_custom_api.patch_namespaced_custom_object_status.assert_called_once_with(
            GROUP,
            VERSION,
            "default",
            PLURAL,
            "train",
            {"status": {"running": 1}},
            _content_type=MERGE_PATCH,
        )


class TestPods:
    """Tests for Pod access."""

    def test_delete_missing_pod(self, cluster, mock_core_api):
        """Test that deleting an already-deleted pod is not an error."""
        mock_core_api.delete_namespaced_pod.side_effect = api_exception(404)
        assert cluster.delete_pod("default", "worker-2") is False

    def test_delete_pod(self, cluster, mock_core_api):
        """Test deleting a pod."""
        assert cluster.delete_pod("default", "worker-2") is True
        mock_core_api.delete_namespaced_pod.assert_called_once_with(
            name="worker-2", namespace="default"
        )

    def test_list_owned_pods(self, cluster, mock_core_api):
        """Test listing pods by label selector."""
        mock_core_api.list_namespaced_pod.return_value = MagicMock(items=["a", "b"])

        pods = cluster.list_owned_pods("default", "habitat-task-owner=train")

        assert pods == ["a", "b"]
        mock_core_api.list_namespaced_pod.assert_called_once_with(
            namespace="default", label_selector="habitat-task-owner=train"
        )

    def test_create_pod_sends_manifest(self, cluster, mock_core_api):
        """Test that a pod manifest is sent to the API server as is."""
        pod = {"kind": "Pod", "metadata": {"name": "worker-0"}, "spec": {"containers": []}}

        cluster.create_pod("default", pod)

        mock_core_api.create_namespaced_pod.assert_called_once_with(
            namespace="default", body=pod
        )

    def test_create_pod_error_names_pod(self, cluster, mock_core_api):
        """Test that a rejected create is reported with the pod's key."""
        mock_core_api.create_namespaced_pod.side_effect = api_exception(409)

        with pytest.raises(ClusterError) as exc_info:
            cluster.create_pod("default", {"kind": "Pod", "metadata": {"name": "worker-0"}})

        assert exc_info.value.status == 409
        assert "create pod default/worker-0" in str(exc_info.value)

    def test_dry_run(self, cluster, mock_core_api):
        """Test that dry runs are not persisted."""
        cluster.dry_run_create_pod("default", {"kind": "Pod"})
        mock_core_api.create_namespaced_pod.assert_called_once_with(
            namespace="default", body={"kind": "Pod"}, dry_run="All"
        )


class TestEvents:
    """Tests for event publishing."""

    def test_publish_event(self, cluster, mock_events_api, make_job):
        """Test the events.k8s.io/v1 body regarding a Job."""
        job = Job.model_validate(make_job())

        cluster.publish_event(
            job,
            reason="CreateJob",
            note="Creating Job `train`",
            action="Reconciling",
            reporter="habitat-controller",
        )

        kwargs = mock_events_api.create_namespaced_event.call_args.kwargs
        body = kwargs["body"]
        assert kwargs["namespace"] == "default"
        assert body["type"] == "Normal"
        assert body["reason"] == "CreateJob"
        assert body["note"] == "Creating Job `train`"
        assert body["reportingController"] == "habitat-controller"
        assert body["regarding"]["name"] == "train"
        assert body["regarding"]["uid"] == "train-uid"
