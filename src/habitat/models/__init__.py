"""Pydantic models for the Job resource and admission envelopes."""

from habitat.models.admission import (
    AdmissionRequest,
    AdmissionResponse,
    AdmissionReview,
    AdmissionStatus,
)
from habitat.models.job import (
    API_VERSION,
    GROUP,
    KIND,
    PLURAL,
    TERMINAL_PHASES,
    VERSION,
    Job,
    JobSpec,
    JobStatus,
    JobStatusPhase,
    ObjectMeta,
    ParallelismSpec,
    PodMeta,
    PodSpec,
    PodTemplate,
    TaskSpec,
)

__all__ = [
    "API_VERSION",
    "AdmissionRequest",
    "AdmissionResponse",
    "AdmissionReview",
    "AdmissionStatus",
    "GROUP",
    "Job",
    "JobSpec",
    "JobStatus",
    "JobStatusPhase",
    "KIND",
    "ObjectMeta",
    "PLURAL",
    "ParallelismSpec",
    "PodMeta",
    "PodSpec",
    "PodTemplate",
    "TERMINAL_PHASES",
    "TaskSpec",
    "VERSION",
]
