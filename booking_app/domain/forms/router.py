"""Booking form router - FastAPI endpoints for the form editor"""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from ...auth import OrganizationContext, get_organization_context
from ...database import get_db
from .schemas import (
    FormCreate,
    FormDetailResponse,
    FormListResponse,
    FormResponse,
    FormUpdate,
    Pagination,
    PublicFormResponse,
)
from .service import FormService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/forms", tags=["Forms"])


def get_form_service(db: Session = Depends(get_db)) -> FormService:
    """Dependency injection for FormService"""
    return FormService(db)


def _detail(service: FormService, form) -> FormDetailResponse:
    response = FormResponse.from_model(form)
    return FormDetailResponse(
        **response.model_dump(), bookingFlow=service.get_booking_flow(form).to_json()
    )


# ============================================================================
# PUBLIC
# ============================================================================


@router.get("/public/{organization_slug}/{form_slug}", response_model=PublicFormResponse)
async def get_public_form(
    organization_slug: str,
    form_slug: str,
    service: FormService = Depends(get_form_service),
):
    """Active form for the hosted booking page (no auth)"""
    form, organization = service.get_public_form(organization_slug, form_slug)
    return PublicFormResponse(
        id=form.id,
        name=form.name,
        slug=form.slug,
        organizationId=organization.id,
        organizationName=organization.name,
        organizationSlug=organization.slug,
        bookingFlow=service.get_booking_flow(form).to_json(),
    )


# ============================================================================
# CORE CRUD OPERATIONS
# ============================================================================


@router.get("", response_model=FormListResponse)
async def list_forms(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    search: Optional[str] = Query(None),
    isActive: Optional[bool] = Query(None),
    context: OrganizationContext = Depends(get_organization_context),
    service: FormService = Depends(get_form_service),
):
    forms, total = service.list_forms(context, limit, offset, search, isActive)
    return FormListResponse(
        forms=[FormResponse.from_model(form) for form in forms],
        pagination=Pagination(limit=limit, offset=offset, total=total, hasMore=offset + limit < total),
    )


@router.post("", response_model=FormDetailResponse, status_code=201)
async def create_form(
    data: Optional[FormCreate] = Body(None),
    context: OrganizationContext = Depends(get_organization_context),
    service: FormService = Depends(get_form_service),
):
    form = service.create_form(data or FormCreate(), context)
    return _detail(service, form)


@router.get("/{form_id}", response_model=FormDetailResponse)
async def get_form(
    form_id: str,
    context: OrganizationContext = Depends(get_organization_context),
    service: FormService = Depends(get_form_service),
):
    return _detail(service, service.get_form(form_id, context))


@router.patch("/{form_id}", response_model=FormDetailResponse)
async def update_form(
    form_id: str,
    data: FormUpdate,
    context: OrganizationContext = Depends(get_organization_context),
    service: FormService = Depends(get_form_service),
):
    """Autosave endpoint used by the editor"""
    return _detail(service, service.update_form(form_id, data, context))


@router.post("/{form_id}/actions", response_model=FormDetailResponse)
async def apply_form_action(
    form_id: str,
    action: dict = Body(...),
    context: OrganizationContext = Depends(get_organization_context),
    service: FormService = Depends(get_form_service),
):
    """Apply a single editor action (ADD_NODE, REORDER_NODES, ...) server-side"""
    return _detail(service, service.apply_action(form_id, action, context))


@router.delete("/{form_id}")
async def delete_form(
    form_id: str,
    context: OrganizationContext = Depends(get_organization_context),
    service: FormService = Depends(get_form_service),
):
    return service.delete_form(form_id, context)


@router.post("/{form_id}/restore", response_model=FormDetailResponse)
async def restore_form(
    form_id: str,
    context: OrganizationContext = Depends(get_organization_context),
    service: FormService = Depends(get_form_service),
):
    return _detail(service, service.restore_form(form_id, context))


@router.post("/{form_id}/duplicate", response_model=FormDetailResponse, status_code=201)
async def duplicate_form(
    form_id: str,
    context: OrganizationContext = Depends(get_organization_context),
    service: FormService = Depends(get_form_service),
):
    return _detail(service, service.duplicate_form(form_id, context))
