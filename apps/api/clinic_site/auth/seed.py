from __future__ import annotations

import logging

from clinic_site.auth.service import AuthService, auth_service
from clinic_site.core.config import get_settings
from clinic_site.core.database import SessionLocal
from clinic_site.logging import configure_logging


logger = logging.getLogger("clinic_site.seed")


def seed_admin(service: AuthService = auth_service) -> int:
    settings = get_settings()
    with SessionLocal() as session:
        user = service.ensure_admin(session, email=settings.admin_email, password=settings.admin_password)
        logger.info("seed.admin_ensured", extra={"user_id": user.id})
        return user.id


if __name__ == "__main__":
    configure_logging()
    seed_admin()
