"""Rental application routes: submit, review, withdraw, read."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from rentflow.app.providers import get_application_service
from rentflow.app.routes.auth import get_caller
from rentflow.domain.identity import CallerIdentity
from rentflow.domain.models import Application
from rentflow.domain.schemas import (
    ApplicationAnalysis,
    ApplicationCreate,
    ApplicationResponse,
    ApplicationReview,
)
from rentflow.infra.database import get_db
from rentflow.services.application_service import ApplicationService, analysis_for

router = APIRouter(prefix="/api/applications", tags=["applications"])


def _to_response(application: Application) -> ApplicationResponse:
    response = ApplicationResponse.model_validate(application)
    response.analysis = ApplicationAnalysis(**analysis_for(application))
    return response


@router.post("", response_model=ApplicationResponse, status_code=201)
async def submit_application(
    data: ApplicationCreate,
    caller: CallerIdentity = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    service: ApplicationService = Depends(get_application_service),
):
    application = await service.submit(db, caller, data)
    return _to_response(application)


@router.get("", response_model=list[ApplicationResponse])
async def list_applications(
    property_id: Optional[str] = Query(default=None),
    caller: CallerIdentity = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    service: ApplicationService = Depends(get_application_service),
):
    applications = await service.list_applications(db, caller, property_id=property_id)
    return [_to_response(a) for a in applications]


@router.get("/{application_id}", response_model=ApplicationResponse)
async def get_application(
    application_id: str,
    caller: CallerIdentity = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    service: ApplicationService = Depends(get_application_service),
):
    return _to_response(await service.get(db, caller, application_id))


@router.post("/{application_id}/review", response_model=ApplicationResponse)
async def review_application(
    application_id: str,
    data: ApplicationReview,
    caller: CallerIdentity = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    service: ApplicationService = Depends(get_application_service),
):
    application = await service.review(db, caller, application_id, data.decision, data.notes)
    return _to_response(application)


@router.post("/{application_id}/under-review", response_model=ApplicationResponse)
async def mark_under_review(
    application_id: str,
    caller: CallerIdentity = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    service: ApplicationService = Depends(get_application_service),
):
    return _to_response(await service.mark_under_review(db, caller, application_id))


@router.post("/{application_id}/withdraw", response_model=ApplicationResponse)
async def withdraw_application(
    application_id: str,
    caller: CallerIdentity = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    service: ApplicationService = Depends(get_application_service),
):
    return _to_response(await service.withdraw(db, caller, application_id))
