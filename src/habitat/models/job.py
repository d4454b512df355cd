"""Pydantic models for the habitat Job custom resource."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Custom resource coordinates
GROUP = "batch.habitat"
VERSION = "beta1"
PLURAL = "jobs"
KIND = "Job"
API_VERSION = f"{GROUP}/{VERSION}"


class JobStatusPhase(str, Enum):
    """Lifecycle phase of a Job."""

    PENDING = "Pending"  # One or more pods not yet scheduled
    RUNNING = "Running"  # At least one pod is running
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    TERMINATING = "Terminating"  # Terminated, waiting for pods to be released
    TERMINATED = "Terminated"  # Ended unexpectedly


TERMINAL_PHASES = frozenset(
    {JobStatusPhase.SUCCEEDED, JobStatusPhase.FAILED, JobStatusPhase.TERMINATED}
)


class ObjectMeta(BaseModel):
    """The subset of Kubernetes object metadata the controller reads."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str | None = None
    generate_name: str | None = Field(default=None, alias="generateName")
    namespace: str | None = None
    uid: str | None = None
    labels: dict[str, str] | None = None
    annotations: dict[str, str] | None = None
    finalizers: list[str] | None = None
    owner_references: list[dict[str, Any]] | None = Field(default=None, alias="ownerReferences")
    resource_version: str | None = Field(default=None, alias="resourceVersion")
    creation_timestamp: str | None = Field(default=None, alias="creationTimestamp")
    deletion_timestamp: str | None = Field(default=None, alias="deletionTimestamp")


class ParallelismSpec(BaseModel):
    """Elastic replica bounds of a task."""

    min: int = Field(ge=0)
    max: int = Field(ge=0)


class PodMeta(BaseModel):
    """Labels and annotations copied onto every pod of a task."""

    labels: dict[str, str] | None = None
    annotations: dict[str, str] | None = None


class PodSpec(BaseModel):
    """Restricted pod specification.

    Only the fields below are accepted from a task template. Scheduling fields
    (affinity, tolerations, node selectors) are left to the scheduler named by
    the Job's ``schedulerName`` and are dropped on parse. Containers and
    volumes are passed to the cluster as-is.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    containers: list[dict[str, Any]]
    init_containers: list[dict[str, Any]] | None = Field(default=None, alias="initContainers")
    image_pull_secrets: list[dict[str, Any]] | None = Field(
        default=None, alias="imagePullSecrets"
    )
    restart_policy: str | None = Field(default=None, alias="restartPolicy")
    security_context: dict[str, Any] | None = Field(default=None, alias="securityContext")
    service_account: str | None = Field(default=None, alias="serviceAccount")
    service_account_name: str | None = Field(default=None, alias="serviceAccountName")
    set_hostname_as_fqdn: bool | None = Field(default=None, alias="setHostnameAsFQDN")
    share_process_namespace: bool | None = Field(default=None, alias="shareProcessNamespace")
    subdomain: str | None = None
    termination_grace_period_seconds: int | None = Field(
        default=None, alias="terminationGracePeriodSeconds"
    )
    volumes: list[dict[str, Any]] | None = None

    def to_manifest(self) -> dict[str, Any]:
        """Serialize to the camelCase dict the Kubernetes API expects."""
        return self.model_dump(by_alias=True, exclude_none=True)


class PodTemplate(BaseModel):
    """Template from which every pod of a task is stamped out."""

    metadata: PodMeta | None = None
    spec: PodSpec


class TaskSpec(BaseModel):
    """A named, homogeneous group of replica pods."""

    name: str
    parallelism: ParallelismSpec
    template: PodTemplate


class JobSpec(BaseModel):
    """User intent for a Job.

    Attributes:
        scheduler_name: Scheduler that places the Job's pods (cluster default if unset)
        tasks: Ordered task list; order only matters for error paths
        priority: Priority value
        priority_class_name: Priority class; mutually exclusive with ``priority``
    """

    model_config = ConfigDict(populate_by_name=True)

    scheduler_name: str | None = Field(default=None, alias="schedulerName")
    tasks: list[TaskSpec] = Field(default_factory=list)
    priority: int | None = Field(default=None, ge=0)
    priority_class_name: str | None = Field(default=None, alias="priorityClassName")


class JobStatus(BaseModel):
    """Observed state of a Job, owned by the controller.

    Timestamps are kept as the RFC3339 strings the API server stores.
    """

    model_config = ConfigDict(populate_by_name=True)

    phase: JobStatusPhase = JobStatusPhase.PENDING
    start_time: str | None = Field(default=None, alias="startTime")
    completion_time: str | None = Field(default=None, alias="completionTime")
    pending: int | None = None
    running: int | None = None
    terminating: int | None = None
    succeeded: int | None = None
    failed: int | None = None

    @classmethod
    def initial(cls) -> "JobStatus":
        """Zero-valued status written on the first reconcile."""
        return cls(pending=0, running=0, terminating=0, succeeded=0, failed=0)

    def to_manifest(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Job(BaseModel):
    """The ``batch.habitat/beta1`` Job custom resource.

    Example:
        ```python
        job = Job.model_validate(custom_api.get_namespaced_custom_object(...))
        if job.is_terminal:
            ...
        ```
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    api_version: str = Field(default=API_VERSION, alias="apiVersion")
    kind: str = KIND
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    spec: JobSpec
    status: JobStatus | None = None

    @property
    def name(self) -> str:
        return self.metadata.name or ""

    @property
    def namespace(self) -> str:
        return self.metadata.namespace or "default"

    @property
    def key(self) -> str:
        """Work queue key, ``namespace/name``."""
        return f"{self.namespace}/{self.name}"

    @property
    def is_terminal(self) -> bool:
        return self.status is not None and self.status.phase in TERMINAL_PHASES

    def task(self, name: str) -> TaskSpec | None:
        """Look up a task by name."""
        for task in self.spec.tasks:
            if task.name == name:
                return task
        return None

    def controller_owner_ref(self) -> dict[str, Any]:
        """Owner reference marking this Job as the managing controller."""
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "name": self.name,
            "uid": self.metadata.uid,
            "controller": True,
            "blockOwnerDeletion": True,
        }

    def object_ref(self) -> dict[str, Any]:
        """Reference to this Job for use in events."""
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "name": self.name,
            "namespace": self.namespace,
            "uid": self.metadata.uid,
            "resourceVersion": self.metadata.resource_version,
        }
