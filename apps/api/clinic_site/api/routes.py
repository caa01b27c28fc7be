from fastapi import APIRouter
from fastapi.responses import Response

from clinic_site.auth.api import router as auth_router
from clinic_site.core.config import get_settings
from clinic_site.core.errors import NotFoundError
from clinic_site.leads.api import admin_router as admin_leads_router
from clinic_site.leads.api import forms_router
from clinic_site.metrics import generate_metrics_payload, metrics_content_type

router = APIRouter()
router.include_router(auth_router)
router.include_router(forms_router)
router.include_router(admin_leads_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/metrics", tags=["system"])
def metrics() -> Response:
    if not get_settings().metrics_enabled:
        raise NotFoundError("not found")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
