from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from pydantic import Field

from clinic_site.core.schemas import CamelModel


LeadStatus = Literal["NEW", "IN_PROGRESS", "DONE"]
LeadSourceType = Literal["HOME", "CONTACTS", "SERVICE", "DEVICE", "OTHER"]
GenericLeadSource = Literal["HOME", "CONTACTS", "OTHER"]


@dataclass(slots=True)
class LeadRequestContext:
    ip: str
    referer: str | None = None


class LeadFormBase(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    phone: str = Field(min_length=3, max_length=64)
    message: str | None = Field(default=None, max_length=5000)
    pdn_consent: bool | None = None
    utm_source: str | None = Field(default=None, max_length=255)
    utm_medium: str | None = Field(default=None, max_length=255)
    utm_campaign: str | None = Field(default=None, max_length=255)


class GenericLeadCreate(LeadFormBase):
    source: GenericLeadSource


class ServiceLeadCreate(LeadFormBase):
    service_id: int | None = Field(default=None, gt=0)
    service_slug: str | None = None


class DeviceLeadCreate(LeadFormBase):
    device_id: int | None = Field(default=None, gt=0)
    device_slug: str | None = None


class FormAccepted(CamelModel):
    ok: bool = True


class LeadStatusUpdate(CamelModel):
    status: str


@dataclass(slots=True)
class LeadListQuery:
    page: int = 1
    limit: int = 20
    status: LeadStatus | None = None
    source_type: LeadSourceType | None = None
    service_id: int | None = None
    device_id: int | None = None
    search: str | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None


class ServiceRef(CamelModel):
    id: int
    name: str
    slug: str


class DeviceRef(CamelModel):
    id: int
    brand: str
    model: str
    slug: str


class LeadRead(CamelModel):
    id: int
    source_type: LeadSourceType
    service_id: int | None
    device_id: int | None
    name: str
    phone: str
    message: str | None
    utm_source: str | None
    utm_medium: str | None
    utm_campaign: str | None
    referer: str | None
    ip_address: str
    pdn_consent: bool
    status: LeadStatus
    created_at: datetime
    updated_at: datetime
    service: ServiceRef | None = None
    device: DeviceRef | None = None


class LeadPage(CamelModel):
    items: list[LeadRead]
    total: int
    page: int
    limit: int
    pages: int
