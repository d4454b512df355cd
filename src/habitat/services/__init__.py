"""Service layer: reconciliation, admission and cluster access."""

from habitat.services.admission import (
    AdmissionService,
    JobValidationError,
    TemplateDryRunValidator,
    get_admission_service,
    validate_job,
)
from habitat.services.cluster import ClusterClient, ClusterError, get_cluster_client
from habitat.services.controller import (
    ControllerStartupError,
    JobController,
    WorkQueue,
    get_job_controller,
)
from habitat.services.desired_state import build_min_owned_pods
from habitat.services.diagnostics import (
    Diagnostics,
    DiagnosticsRecorder,
    get_diagnostics_recorder,
)
from habitat.services.pod_state import PodCounts, classify_pod, derive_phase
from habitat.services.reclaim import is_excess, replica_index
from habitat.services.reconciler import (
    FINALIZER_NAME,
    Action,
    FinalizerError,
    JobParseError,
    JobReconciler,
    ReconcileError,
)
from habitat.services.status import StatusReporter, build_status

__all__ = [
    "FINALIZER_NAME",
    "Action",
    "AdmissionService",
    "ClusterClient",
    "ClusterError",
    "ControllerStartupError",
    "Diagnostics",
    "DiagnosticsRecorder",
    "FinalizerError",
    "JobController",
    "JobParseError",
    "JobReconciler",
    "JobValidationError",
    "PodCounts",
    "ReconcileError",
    "StatusReporter",
    "TemplateDryRunValidator",
    "WorkQueue",
    "build_min_owned_pods",
    "build_status",
    "classify_pod",
    "derive_phase",
    "get_admission_service",
    "get_cluster_client",
    "get_diagnostics_recorder",
    "get_job_controller",
    "is_excess",
    "replica_index",
    "validate_job",
]
