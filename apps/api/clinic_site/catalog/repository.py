from __future__ import annotations

from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from clinic_site.catalog.models import Device, Service


ModelT = TypeVar("ModelT", Service, Device)


class PublishedLookupRepository(Generic[ModelT]):
    """Read-only lookups of catalog rows that are visible on the public site."""

    model: Any = None

    def get_published_by_id(self, session: Session, entity_id: int) -> ModelT | None:
        return session.scalar(
            select(self.model).where(self.model.id == entity_id, self.model.is_published.is_(True))
        )

    def get_published_by_slug(self, session: Session, slug: str) -> ModelT | None:
        return session.scalar(
            select(self.model).where(self.model.slug == slug, self.model.is_published.is_(True))
        )


class ServiceRepository(PublishedLookupRepository[Service]):
    model = Service


class DeviceRepository(PublishedLookupRepository[Device]):
    model = Device
