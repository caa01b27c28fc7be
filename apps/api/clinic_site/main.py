from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from clinic_site.api.routes import router as api_router
from clinic_site.core.config import get_settings
from clinic_site.core.context import RequestContextMiddleware
from clinic_site.core.errors import register_exception_handlers
from clinic_site.events import EventEnvelope, event_bus
from clinic_site.logging import configure_logging
from clinic_site.middleware.correlation_id import CorrelationIdMiddleware
from clinic_site.middleware.request_logging import RequestLoggingMiddleware
from clinic_site.otel import get_fastapi_server_request_hook, setup_otel


configure_logging()
logger = logging.getLogger("clinic_site.lifecycle")


def _on_lead_event(envelope: EventEnvelope) -> None:
    logger.info(
        "lead_event",
        extra={
            "event_name": envelope.event_type,
            "lead_id": envelope.payload.get("lead_id"),
            "status": envelope.payload.get("status"),
        },
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    event_bus.subscribe("lead.created", _on_lead_event)
    event_bus.subscribe("lead.status_changed", _on_lead_event)
    logger.info("system_started", extra={"event_name": "system.started"})
    yield
    event_bus.unsubscribe("lead.created", _on_lead_event)
    event_bus.unsubscribe("lead.status_changed", _on_lead_event)


settings = get_settings()

app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestContextMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Correlation-Id"],
    expose_headers=["X-Correlation-Id"],
)
register_exception_handlers(app)
app.include_router(api_router)

if settings.otel_enabled:
    setup_otel(settings.app_name, settings.otel_exporter_otlp_endpoint)

    if not getattr(app, "_is_instrumented_by_opentelemetry", False):
        FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
