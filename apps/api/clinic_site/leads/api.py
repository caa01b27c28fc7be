from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from clinic_site.core.context import RequestContext, get_request_context
from clinic_site.core.database import get_db
from clinic_site.core.rbac import require_manager
from clinic_site.core.security import AccessTokenClaims
from clinic_site.leads.schemas import (
    DeviceLeadCreate,
    FormAccepted,
    GenericLeadCreate,
    LeadListQuery,
    LeadPage,
    LeadRead,
    LeadRequestContext,
    LeadSourceType,
    LeadStatus,
    LeadStatusUpdate,
    ServiceLeadCreate,
)
from clinic_site.leads.service import MAX_PAGE_SIZE, lead_service


forms_router = APIRouter(prefix="/forms", tags=["forms"])
admin_router = APIRouter(prefix="/admin/leads", tags=["admin.leads"])


def get_lead_context(ctx: RequestContext = Depends(get_request_context)) -> LeadRequestContext:
    return LeadRequestContext(ip=ctx.client_ip, referer=ctx.referer)


@forms_router.post("/contact", response_model=FormAccepted, status_code=status.HTTP_201_CREATED)
def submit_contact_form(
    payload: GenericLeadCreate,
    db: Session = Depends(get_db),
    ctx: LeadRequestContext = Depends(get_lead_context),
) -> FormAccepted:
    lead_service.create_generic_lead(db, payload, ctx)
    return FormAccepted()


@forms_router.post("/service", response_model=FormAccepted, status_code=status.HTTP_201_CREATED)
def submit_service_form(
    payload: ServiceLeadCreate,
    db: Session = Depends(get_db),
    ctx: LeadRequestContext = Depends(get_lead_context),
) -> FormAccepted:
    lead_service.create_service_lead(db, payload, ctx)
    return FormAccepted()


@forms_router.post("/device", response_model=FormAccepted, status_code=status.HTTP_201_CREATED)
def submit_device_form(
    payload: DeviceLeadCreate,
    db: Session = Depends(get_db),
    ctx: LeadRequestContext = Depends(get_lead_context),
) -> FormAccepted:
    lead_service.create_device_lead(db, payload, ctx)
    return FormAccepted()


@admin_router.get("", response_model=LeadPage)
def list_leads(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=MAX_PAGE_SIZE),
    status_filter: LeadStatus | None = Query(default=None, alias="status"),
    source_type: LeadSourceType | None = Query(default=None, alias="sourceType"),
    service_id: int | None = Query(default=None, alias="serviceId"),
    device_id: int | None = Query(default=None, alias="deviceId"),
    search: str | None = Query(default=None, max_length=255),
    created_from: datetime | None = Query(default=None, alias="from"),
    created_to: datetime | None = Query(default=None, alias="to"),
    db: Session = Depends(get_db),
    _: AccessTokenClaims = Depends(require_manager),
) -> LeadPage:
    return lead_service.get_leads(
        db,
        LeadListQuery(
            page=page,
            limit=limit,
            status=status_filter,
            source_type=source_type,
            service_id=service_id,
            device_id=device_id,
            search=search,
            created_from=created_from,
            created_to=created_to,
        ),
    )


@admin_router.patch("/{lead_id}/status", response_model=LeadRead)
def update_lead_status(
    lead_id: int,
    payload: LeadStatusUpdate,
    db: Session = Depends(get_db),
    claims: AccessTokenClaims = Depends(require_manager),
) -> LeadRead:
    return lead_service.update_lead_status(db, lead_id, payload.status, actor_user_id=str(claims.user_id))
