from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Select, func, or_, select
from sqlalchemy.orm import Session

from clinic_site import audit, events
from clinic_site.catalog.repository import DeviceRepository, ServiceRepository
from clinic_site.core.config import get_settings
from clinic_site.core.errors import BadRequestError, NotFoundError
from clinic_site.leads.models import LEAD_STATUSES, Lead
from clinic_site.leads.schemas import (
    DeviceLeadCreate,
    GenericLeadCreate,
    LeadFormBase,
    LeadListQuery,
    LeadPage,
    LeadRead,
    LeadRequestContext,
    ServiceLeadCreate,
)
from clinic_site.metrics import observe_lead_created


logger = logging.getLogger("clinic_site.leads")

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@dataclass(slots=True)
class LeadService:
    service_repository: ServiceRepository = field(default_factory=ServiceRepository)
    device_repository: DeviceRepository = field(default_factory=DeviceRepository)

    # -------- public forms --------

    def create_generic_lead(self, session: Session, dto: GenericLeadCreate, ctx: LeadRequestContext) -> LeadRead:
        return self._create(session, dto, ctx, source_type=dto.source)

    def create_service_lead(self, session: Session, dto: ServiceLeadCreate, ctx: LeadRequestContext) -> LeadRead:
        if dto.service_id is not None:
            service = self.service_repository.get_published_by_id(session, dto.service_id)
        elif dto.service_slug:
            service = self.service_repository.get_published_by_slug(session, dto.service_slug)
        else:
            raise BadRequestError("serviceId or serviceSlug is required")

        if service is None:
            raise BadRequestError("service not found")
        return self._create(session, dto, ctx, source_type="SERVICE", service_id=service.id)

    def create_device_lead(self, session: Session, dto: DeviceLeadCreate, ctx: LeadRequestContext) -> LeadRead:
        if dto.device_id is not None:
            device = self.device_repository.get_published_by_id(session, dto.device_id)
        elif dto.device_slug:
            device = self.device_repository.get_published_by_slug(session, dto.device_slug)
        else:
            raise BadRequestError("deviceId or deviceSlug is required")

        if device is None:
            raise BadRequestError("device not found")
        return self._create(session, dto, ctx, source_type="DEVICE", device_id=device.id)

    # -------- admin --------

    def get_leads(self, session: Session, query: LeadListQuery) -> LeadPage:
        page = query.page if query.page and query.page > 0 else 1
        limit = query.limit if query.limit and 0 < query.limit <= MAX_PAGE_SIZE else DEFAULT_PAGE_SIZE

        stmt = self._apply_filters(select(Lead), query)
        total = session.scalar(self._apply_filters(select(func.count(Lead.id)), query)) or 0
        rows = session.scalars(
            stmt.order_by(Lead.created_at.desc(), Lead.id.desc()).offset((page - 1) * limit).limit(limit)
        ).all()

        return LeadPage(
            items=[LeadRead.model_validate(row) for row in rows],
            total=total,
            page=page,
            limit=limit,
            pages=math.ceil(total / limit) if total else 0,
        )

    def update_lead_status(
        self,
        session: Session,
        lead_id: int,
        new_status: str,
        *,
        actor_user_id: str | None = None,
    ) -> LeadRead:
        if new_status not in LEAD_STATUSES:
            raise BadRequestError("invalid lead status")

        lead = session.get(Lead, lead_id)
        if lead is None:
            raise NotFoundError("lead not found")

        previous_status = lead.status
        lead.status = new_status
        session.commit()
        session.refresh(lead)

        audit.record(
            "lead",
            str(lead.id),
            "status_changed",
            before={"status": previous_status},
            after={"status": lead.status},
            actor_user_id=actor_user_id,
        )
        events.publish(
            "lead.status_changed",
            {"lead_id": lead.id, "previous_status": previous_status, "status": lead.status},
        )
        logger.info(
            "lead.status_changed",
            extra={"lead_id": lead.id, "previous_status": previous_status, "status": lead.status},
        )
        return LeadRead.model_validate(lead)

    # -------- internals --------

    def _create(
        self,
        session: Session,
        dto: LeadFormBase,
        ctx: LeadRequestContext,
        *,
        source_type: str,
        service_id: int | None = None,
        device_id: int | None = None,
    ) -> LeadRead:
        if get_settings().lead_require_pdn_consent and dto.pdn_consent is not True:
            raise BadRequestError("personal data processing consent is required")

        lead = Lead(
            source_type=source_type,
            service_id=service_id,
            device_id=device_id,
            name=dto.name,
            phone=dto.phone,
            message=dto.message,
            utm_source=dto.utm_source,
            utm_medium=dto.utm_medium,
            utm_campaign=dto.utm_campaign,
            referer=ctx.referer,
            ip_address=ctx.ip,
            pdn_consent=bool(dto.pdn_consent),
            status="NEW",
        )
        session.add(lead)
        session.commit()
        session.refresh(lead)

        observe_lead_created(source_type)
        events.publish("lead.created", {"lead_id": lead.id, "source_type": source_type})
        logger.info("lead.created", extra={"lead_id": lead.id, "source_type": source_type})
        return LeadRead.model_validate(lead)

    @staticmethod
    def _apply_filters(stmt: Select[Any], query: LeadListQuery) -> Select[Any]:
        if query.status:
            stmt = stmt.where(Lead.status == query.status)
        if query.source_type:
            stmt = stmt.where(Lead.source_type == query.source_type)
        if query.service_id is not None:
            stmt = stmt.where(Lead.service_id == query.service_id)
        if query.device_id is not None:
            stmt = stmt.where(Lead.device_id == query.device_id)

        search = (query.search or "").strip()
        if search:
            pattern = f"%{_escape_like(search)}%"
            stmt = stmt.where(
                or_(
                    Lead.name.ilike(pattern, escape="\\"),
                    Lead.phone.ilike(pattern, escape="\\"),
                    Lead.utm_source.ilike(pattern, escape="\\"),
                    Lead.utm_campaign.ilike(pattern, escape="\\"),
                )
            )

        if query.created_from is not None:
            stmt = stmt.where(Lead.created_at >= _as_utc(query.created_from))
        if query.created_to is not None:
            stmt = stmt.where(Lead.created_at <= _as_utc(query.created_to))
        return stmt


lead_service = LeadService()
