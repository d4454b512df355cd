"""Tests for the work queue and JobController."""

import asyncio
from unittest.mock import MagicMock

import pytest
from kubernetes.client import V1ObjectMeta, V1OwnerReference, V1Pod

from habitat.core.config import Settings
from habitat.models.job import API_VERSION, KIND
from habitat.services.cluster import ClusterError
from habitat.services.controller import (
    WATCH_JOIN_SECONDS,
    ControllerStartupError,
    JobController,
    WorkQueue,
    job_key,
    owner_job_key,
)
from habitat.services.reconciler import Action


class TestWorkQueue:
    """Tests for WorkQueue semantics."""

    @pytest.mark.asyncio
    async def test_add_coalesces(self):
        """Test that a key queued twice is processed once."""
        queue = WorkQueue()
        queue.add("default/a")
        queue.add("default/a")
        queue.add("default/b")
        assert len(queue) == 2

    @pytest.mark.asyncio
    async def test_key_in_flight_requeued_on_done(self):
        """Test that a key added while processing waits for done()."""
        queue = WorkQueue()
        queue.add("default/a")
        key = await queue.get()
        assert key == "default/a"

        queue.add("default/a")
        assert len(queue) == 0

        queue.done("default/a")
        assert len(queue) == 1

    @pytest.mark.asyncio
    async def test_done_without_readd(self):
        """Test that finishing a key does not requeue it."""
        queue = WorkQueue()
        queue.add("default/a")
        await queue.get()
        queue.done("default/a")
        assert len(queue) == 0

    @pytest.mark.asyncio
    async def test_add_after(self):
        """Test that delayed keys appear after the delay."""
        queue = WorkQueue()
        queue.add_after("default/a", 0.01)
        assert len(queue) == 0
        await asyncio.sleep(0.05)
        assert len(queue) == 1

    @pytest.mark.asyncio
    async def test_shutdown(self):
        """Test that shutdown drops pending keys and wakes getters."""
        queue = WorkQueue()
        queue.add("default/a")
        queue.add_after("default/b", 0.01)

        queue.shutdown(waiters=1)

        assert await queue.get() is None
        queue.add("default/c")
        await asyncio.sleep(0.05)
        assert queue.shutting_down


class TestKeys:
    """Tests for watch object keys."""

    def test_job_key(self):
        """Test keys for Job watch objects."""
        assert job_key({"metadata": {"name": "train", "namespace": "ns"}}) == "ns/train"
        assert job_key({"metadata": {"name": "train"}}) == "default/train"
        assert job_key({"metadata": {}}) is None

    def test_owner_job_key(self):
        """Test that pods map to the Job controlling them."""
        pod = V1Pod(
            metadata=V1ObjectMeta(
                name="worker-0",
                namespace="ns",
                owner_references=[
                    V1OwnerReference(
                        api_version="apps/v1", kind="ReplicaSet", name="rs", uid="1"
                    ),
                    V1OwnerReference(
                        api_version=API_VERSION,
                        kind=KIND,
                        name="train",
                        uid="2",
                        controller=True,
                    ),
                ],
            )
        )
        assert owner_job_key(pod) == "ns/train"

    def test_owner_job_key_unowned(self):
        """Test that pods without a Job owner are ignored."""
        pod = V1Pod(metadata=V1ObjectMeta(name="other", namespace="ns"))
        assert owner_job_key(pod) is None


class TestJobController:
    """Tests for JobController start, dispatch and stop."""

    @pytest.fixture
    def mock_cluster(self):
        return MagicMock()

    @pytest.fixture
    def mock_reconciler(self):
        reconciler = MagicMock()
        reconciler.reconcile.return_value = Action.await_change()
        return reconciler

    @pytest.fixture
    def controller(self, mock_cluster, mock_reconciler):
        settings = Settings(workers=2, otel_enabled=False)
        return JobController(settings=settings, cluster=mock_cluster, reconciler=mock_reconciler)

    @pytest.mark.asyncio
    async def test_start_fails_without_crd(self, controller, mock_cluster):
        """Test that a missing CRD aborts startup."""
        mock_cluster.check_jobs_installed.side_effect = ClusterError("not found", status=404)

        with pytest.raises(ControllerStartupError):
            await controller.start(watch_events=False)

        assert controller.is_running is False

    @pytest.mark.asyncio
    async def test_enqueue_runs_reconcile(self, controller, mock_reconciler):
        """Test that an enqueued key is reconciled by a worker."""
        await controller.start(watch_events=False)
        try:
            assert controller.is_running is True
            controller.enqueue("default/train")
            await asyncio.sleep(0.1)
        finally:
            await controller.stop()

        mock_reconciler.reconcile.assert_called_once_with("default", "train")
        assert controller.is_running is False

    @pytest.mark.asyncio
    async def test_requeue_after(self, controller, mock_reconciler):
        """Test that a requeue action schedules another reconcile."""
        mock_reconciler.reconcile.side_effect = [Action.requeue(0.01)] + [
            Action.await_change()
        ] * 10

        await controller.start(watch_events=False)
        try:
            controller.enqueue("default/train")
            await asyncio.sleep(0.2)
        finally:
            await controller.stop()

        assert mock_reconciler.reconcile.call_count == 2

    @pytest.mark.asyncio
    async def test_reconcile_exception_does_not_kill_worker(self, controller, mock_reconciler):
        """Test that a raising reconcile leaves the worker serving keys."""
        mock_reconciler.reconcile.side_effect = [RuntimeError("boom"), Action.await_change()]

        await controller.start(watch_events=False)
        try:
            controller.enqueue("default/a")
            await asyncio.sleep(0.1)
            controller.enqueue("default/b")
            await asyncio.sleep(0.1)
        finally:
            await controller.stop()

        assert mock_reconciler.reconcile.call_count == 2

    @pytest.mark.asyncio
    async def test_enqueue_ignored_when_stopped(self, controller, mock_reconciler):
        """Test that keys are dropped when the controller is not running."""
        controller.enqueue("default/train")
        assert controller.queue_depth == 0
        mock_reconciler.reconcile.assert_not_called()

    @pytest.mark.asyncio
    async def test_stop_joins_watch_threads(self, controller, mock_reconciler):
        """Test that watch events are queued and stop waits for the watch threads."""

        def job_events(w, resource_version):
            yield "default/train", "101"
            controller._stop_event.wait(WATCH_JOIN_SECONDS)

        def pod_events(w, resource_version):
            controller._stop_event.wait(WATCH_JOIN_SECONDS)
            yield from ()

        controller._job_events = job_events
        controller._pod_events = pod_events

        await controller.start()
        threads = list(controller._watch_threads)
        try:
            assert [thread.name for thread in threads] == ["watch-jobs", "watch-pods"]
            await asyncio.sleep(0.1)
        finally:
            await controller.stop()

        mock_reconciler.reconcile.assert_called_once_with("default", "train")
        assert not any(thread.is_alive() for thread in threads)
        assert controller._watch_threads == []
