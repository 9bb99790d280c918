"""Service catalog with hourly base rates and default durations.

In production this would be read from the marketplace's services
collection; rates are in whole rupees per hour.
"""

import logging
from decimal import Decimal
from typing import Optional, TypedDict

logger = logging.getLogger(__name__)


class ServiceRecord(TypedDict):
    """A bookable service offered on the marketplace."""

    id: str
    name: str
    category: str
    hourly_rate: Decimal
    default_duration_hours: Decimal
    emergency_available: bool


SERVICE_CATALOG: dict[str, ServiceRecord] = {
    "plumbing": {
        "id": "plumbing",
        "name": "Plumbing Service",
        "category": "plumber",
        "hourly_rate": Decimal("500"),
        "default_duration_hours": Decimal("1"),
        "emergency_available": True,
    },
    "electrical": {
        "id": "electrical",
        "name": "Electrical Service",
        "category": "electrician",
        "hourly_rate": Decimal("600"),
        "default_duration_hours": Decimal("1"),
        "emergency_available": True,
    },
    "home-cleaning": {
        "id": "home-cleaning",
        "name": "Home Deep Cleaning",
        "category": "cleaner",
        "hourly_rate": Decimal("350"),
        "default_duration_hours": Decimal("3"),
        "emergency_available": False,
    },
    "ac-repair": {
        "id": "ac-repair",
        "name": "AC Repair",
        "category": "technician",
        "hourly_rate": Decimal("700"),
        "default_duration_hours": Decimal("1.5"),
        "emergency_available": True,
    },
    "carpentry": {
        "id": "carpentry",
        "name": "Carpentry",
        "category": "carpenter",
        "hourly_rate": Decimal("450"),
        "default_duration_hours": Decimal("2"),
        "emergency_available": False,
    },
}


class ServiceCatalog:
    """Lookup over a service table; the default table is the mock catalog."""

    def __init__(self, services: Optional[dict[str, ServiceRecord]] = None) -> None:
        self._services = dict(SERVICE_CATALOG if services is None else services)

    def get_service(self, service_id: str) -> Optional[ServiceRecord]:
        """Return the service record, or None when unknown."""
        return self._services.get(service_id.strip().lower())

    def all_services(self) -> list[ServiceRecord]:
        return list(self._services.values())
