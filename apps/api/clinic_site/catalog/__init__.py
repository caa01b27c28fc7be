from clinic_site.catalog.models import Device, Service
from clinic_site.catalog.repository import DeviceRepository, ServiceRepository

__all__ = [
    "Device",
    "Service",
    "DeviceRepository",
    "ServiceRepository",
]
