"""Admission control for Jobs: local rules and dry-run template checks."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from habitat.core.config import Settings, get_settings
from habitat.models.admission import AdmissionRequest, AdmissionResponse, AdmissionReview
from habitat.models.job import Job, TaskSpec
from habitat.services.cluster import ClusterClient, ClusterError, get_cluster_client
from habitat.services.desired_state import task_pod_annotations, task_pod_spec

logger = logging.getLogger(__name__)

JobCheck = Callable[[Job, AdmissionRequest], None]


class JobValidationError(Exception):
    """Raised when a Job violates an admission rule."""

    pass


def format_validation_error(error: ValidationError) -> str:
    """Flatten a pydantic error into ``loc: message`` pairs."""
    return "; ".join(
        f"{'.'.join(str(part) for part in detail['loc'])}: {detail['msg']}"
        for detail in error.errors()
    )


def validate_job(job: Job, require_tasks: bool = True) -> None:
    """Check a Job against the structural admission rules.

    Rules are checked in order and the first violation is raised.

    Raises:
        JobValidationError: With a message naming the violated rule
    """
    if require_tasks and not job.spec.tasks:
        raise JobValidationError("no task specified")

    for task in job.spec.tasks:
        if task.parallelism.min > task.parallelism.max:
            raise JobValidationError(
                f"task `{task.name}` parallelism.min can't greater than parallelism.max"
            )

    if job.spec.priority is not None and job.spec.priority_class_name is not None:
        raise JobValidationError("can't specify both priority and priorityClassName")


class TemplateDryRunValidator:
    """Validates task templates with the API server's own pod validation.

    Each task's template becomes a standalone Pod created with
    ``dryRun=All``. Field errors are reported against the Job's path
    (``spec.tasks[i].template...``), not the synthesized pod's.
    """

    def __init__(self, cluster: ClusterClient | None = None) -> None:
        self._cluster = cluster

    @property
    def cluster(self) -> ClusterClient:
        if self._cluster is None:
            self._cluster = get_cluster_client()
        return self._cluster

    @staticmethod
    def dry_run_pod_name(job: Job, task: TaskSpec) -> str:
        base = job.metadata.name or job.metadata.generate_name or "job"
        return f"{base.rstrip('-')}-{task.name}-dry-run"

    def build_pod(self, job: Job, task: TaskSpec, namespace: str) -> dict[str, Any]:
        metadata: dict[str, Any] = {
            "name": self.dry_run_pod_name(job, task),
            "namespace": namespace,
        }
        if task.template.metadata is not None and task.template.metadata.labels:
            metadata["labels"] = dict(task.template.metadata.labels)
        annotations = task_pod_annotations(task)
        if annotations:
            metadata["annotations"] = annotations
        return {
            "apiVersion": "v1",
            "kind": "Pod",
            "metadata": metadata,
            "spec": task_pod_spec(job, task),
        }

    def validate(self, job: Job, namespace: str) -> None:
        """Dry-run every task template in order.

        Raises:
            JobValidationError: For the first template the API server rejects
        """
        for index, task in enumerate(job.spec.tasks):
            pod = self.build_pod(job, task, namespace)
            try:
                self.cluster.dry_run_create_pod(namespace, pod)
            except ClusterError as e:
                raise JobValidationError(self.describe_failure(index, e)) from e

    @staticmethod
    def describe_failure(index: int, error: ClusterError) -> str:
        """Rewrite an API error so it points into the Job's task list."""
        prefix = f"spec.tasks[{index}].template"
        body = error.body if isinstance(error.body, dict) else {}
        causes = (body.get("details") or {}).get("causes") or []
        messages = [
            f"{prefix}.{cause['field']}: {cause.get('message', 'invalid value')}"
            if cause.get("field")
            else f"{prefix}: {cause.get('message', 'invalid value')}"
            for cause in causes
        ]
        if messages:
            return "; ".join(messages)
        return f"{prefix}: {body.get('message') or error}"


class AdmissionService:
    """Turns AdmissionReview requests into allow/deny responses.

    Example:
        ```python
        service = get_admission_service()
        review = service.validate(raw_body)
        return review.to_manifest()
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        dry_run_validator: TemplateDryRunValidator | None = None,
    ) -> None:
        """Initialize the admission service.

        Args:
            settings: Application settings (uses default if not provided)
            dry_run_validator: Optional TemplateDryRunValidator instance
        """
        self.settings = settings or get_settings()
        self._dry_run_validator = dry_run_validator

    @property
    def dry_run_validator(self) -> TemplateDryRunValidator:
        if self._dry_run_validator is None:
            self._dry_run_validator = TemplateDryRunValidator()
        return self._dry_run_validator

    def parse_review(self, body: bytes | str) -> AdmissionRequest:
        """Parse a raw AdmissionReview body.

        Raises:
            ValueError: If the body is not a review carrying a request
        """
        try:
            review = AdmissionReview.model_validate_json(body)
        except ValidationError as e:
            raise ValueError(format_validation_error(e)) from e
        if review.request is None:
            raise ValueError("no request found in AdmissionReview")
        return review.request

    def validate(self, body: bytes | str) -> AdmissionReview:
        """Handle a ``/validate`` review."""
        return self._review(body, self._validate_job)

    def mutate(self, body: bytes | str) -> AdmissionReview:
        """Handle a ``/mutate`` review; Jobs are passed through unchanged."""
        return self._review(body, None)

    def _review(self, body: bytes | str, check: JobCheck | None) -> AdmissionReview:
        try:
            request = self.parse_review(body)
        except ValueError as e:
            logger.error("Invalid admission request: %s", e)
            return AdmissionResponse.invalid(str(e)).into_review()

        response = AdmissionResponse.from_request(request)
        # object is only absent for DELETE, which is not registered
        if request.object is None:
            return response.into_review()

        name = request.name or (request.object.get("metadata") or {}).get("name", "")
        try:
            job = Job.model_validate(request.object)
        except ValidationError as e:
            logger.warning("Invalid job: %s on %s (%s)", request.operation, name, e)
            return response.deny(format_validation_error(e)).into_review()

        if check is not None:
            try:
                check(job, request)
            except JobValidationError as e:
                logger.warning("Denied: %s on job %s (%s)", request.operation, name, e)
                return response.deny(str(e)).into_review()

        logger.info("Accepted: %s on job %s", request.operation, name)
        return response.into_review()

    def _validate_job(self, job: Job, request: AdmissionRequest) -> None:
        validate_job(job, require_tasks=self.settings.require_tasks)
        if self.settings.template_dry_run:
            namespace = request.namespace or job.metadata.namespace or "default"
            self.dry_run_validator.validate(job, namespace)


# Global service instance
_admission_service: AdmissionService | None = None


def get_admission_service() -> AdmissionService:
    """Get the global AdmissionService instance."""
    global _admission_service
    if _admission_service is None:
        _admission_service = AdmissionService()
    return _admission_service
