from clinic_site.leads.api import admin_router, forms_router
from clinic_site.leads.models import LEAD_SOURCE_TYPES, LEAD_STATUSES, Lead
from clinic_site.leads.schemas import (
    DeviceLeadCreate,
    GenericLeadCreate,
    LeadListQuery,
    LeadPage,
    LeadRead,
    LeadRequestContext,
    ServiceLeadCreate,
)
from clinic_site.leads.service import LeadService, lead_service

__all__ = [
    "admin_router",
    "forms_router",
    "Lead",
    "LEAD_SOURCE_TYPES",
    "LEAD_STATUSES",
    "GenericLeadCreate",
    "ServiceLeadCreate",
    "DeviceLeadCreate",
    "LeadListQuery",
    "LeadPage",
    "LeadRead",
    "LeadRequestContext",
    "LeadService",
    "lead_service",
]
