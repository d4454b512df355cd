"""Readiness and diagnostics endpoints of the controller process."""

from datetime import UTC, datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from habitat.services.controller import JobController, get_job_controller
from habitat.services.diagnostics import DiagnosticsRecorder, get_diagnostics_recorder

ControllerDep = Annotated[JobController, Depends(get_job_controller)]
DiagnosticsDep = Annotated[DiagnosticsRecorder, Depends(get_diagnostics_recorder)]

router = APIRouter(tags=["diagnostics"])


class ReadinessResponse(BaseModel):
    """Readiness check response with component status."""

    status: str
    timestamp: datetime
    checks: dict[str, Any]


class DiagnosticsResponse(BaseModel):
    """Response model for controller diagnostics."""

    model_config = ConfigDict(populate_by_name=True)

    last_event: datetime = Field(alias="lastEvent")
    reporter: str
    queue_depth: int = Field(alias="queueDepth")


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(controller: ControllerDep) -> ReadinessResponse:
    """Readiness check polled by Kubernetes before routing traffic.

    Ready once the controller has verified the CRD and started its workers.
    """
    checks: dict[str, Any] = {
        "controller": {"status": "ok" if controller.is_running else "error"},
    }
    all_ok = all(check.get("status") == "ok" for check in checks.values())

    return ReadinessResponse(
        status="ready" if all_ok else "not_ready",
        timestamp=datetime.now(UTC),
        checks=checks,
    )


@router.get("/diagnostics")
async def get_diagnostics(
    controller: ControllerDep, recorder: DiagnosticsDep
) -> dict[str, Any]:
    """Last event time and reporter identity of the controller."""
    snapshot = recorder.snapshot()
    response = DiagnosticsResponse(
        last_event=snapshot.last_event,
        reporter=snapshot.reporter,
        queue_depth=controller.queue_depth,
    )
    return response.model_dump(mode="json", by_alias=True)
