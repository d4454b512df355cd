"""Admission webhook endpoints for Jobs."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from habitat.services.admission import AdmissionService, get_admission_service

AdmissionServiceDep = Annotated[AdmissionService, Depends(get_admission_service)]

router = APIRouter(tags=["admission"])


@router.post("/validate")
async def validate(request: Request, service: AdmissionServiceDep) -> dict[str, Any]:
    """Validate a Job create/update.

    The raw body is parsed by the service so that a malformed review yields
    an ``invalid`` AdmissionReview instead of a 422. The dry-run template
    check talks to the API server, so it runs in the threadpool.
    """
    body = await request.body()
    review = await run_in_threadpool(service.validate, body)
    return review.to_manifest()


@router.post("/mutate")
async def mutate(request: Request, service: AdmissionServiceDep) -> dict[str, Any]:
    """Mutating hook; Jobs are currently admitted unchanged."""
    body = await request.body()
    return service.mutate(body).to_manifest()
