"""Availability service - Fetches SimPro data and computes bookable slots"""

import asyncio
import calendar
import hashlib
import json
import logging
from dataclasses import asdict
from datetime import date, datetime, timezone
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ...cache import build_availability_key, cache
from ...config import AVAILABILITY_CACHE_TTL
from ...errors import ProviderError
from ...models import Organization, OrganizationEmployee
from ..employees.repository import EmployeeRepository
from ..integrations.simpro.client import SimproClient
from ..integrations.simpro.schemas import SimproSchedule
from ..integrations.simpro.tokens import get_simpro_client_for_organization
from .calculator import (
    AvailableEmployee,
    EmployeeAvailability,
    OrganizationCalendar,
    available_employees_for_slot,
    calculate_month_availability,
    drop_expired_slots,
)
from .schemas import AvailabilityRequest, AvailabilityServiceSettings, SlotEmployeesRequest

logger = logging.getLogger(__name__)


def _settings_hash(settings: AvailabilityServiceSettings, simpro_ids: list[int]) -> str:
    canonical = asdict(settings.to_settings())
    canonical["unavailable_dates"] = sorted(canonical["unavailable_dates"])
    payload = {"settings": canonical, "employees": sorted(simpro_ids)}
    return hashlib.sha256(json.dumps(payload, sort_keys=True).encode()).hexdigest()[:16]


class AvailabilityService:
    """Service layer for public slot availability"""

    def __init__(
        self,
        db: Session,
        client_factory=get_simpro_client_for_organization,
        cache_ttl: int = AVAILABILITY_CACHE_TTL,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.db = db
        self.repo = EmployeeRepository()
        self.client_factory = client_factory
        self.cache_ttl = cache_ttl
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _get_organization(self, organization_id: str) -> Optional[Organization]:
        return self.db.query(Organization).filter(Organization.id == organization_id).first()

    def _assigned_employees(
        self, service_id: str, organization_id: str, settings: AvailabilityServiceSettings
    ) -> tuple[list[OrganizationEmployee], set[int]]:
        """Active assigned employees and the SimPro ids of the default ones"""
        assignments = self.repo.get_service_assignments(self.db, organization_id, service_id)
        default_ids = {a.employee.simpro_employee_id for a in assignments if a.is_default}

        if settings.assignedEmployeeIds:
            employees = self.repo.get_employees_by_ids(self.db, organization_id, settings.assignedEmployeeIds)
        else:
            employees = [a.employee for a in assignments]

        active = [e for e in employees if e.is_active and not e.is_removed]
        return active, default_ids

    # ------------------------------------------------------------------
    # Provider data
    # ------------------------------------------------------------------

    async def _fetch_provider_data(
        self, client: SimproClient, simpro_ids: list[int], start: date, end: date
    ) -> tuple[dict[int, EmployeeAvailability], list[SimproSchedule]]:
        """
        Employee details (concurrently) and the schedules for a date range

        Raises:
            ProviderError: If every employee fetch failed or schedules are unavailable
        """
        employee_task = asyncio.gather(
            *(client.get_employee(simpro_id) for simpro_id in simpro_ids), return_exceptions=True
        )
        schedules_task = client.get_schedules(start.isoformat(), end.isoformat())
        results, schedules = await asyncio.gather(employee_task, schedules_task)

        employees: dict[int, EmployeeAvailability] = {}
        failures = []
        for simpro_id, result in zip(simpro_ids, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.warning(f"⚠️ Could not fetch SimPro employee {simpro_id}: {result}")
                failures.append(result)
                continue
            employees[simpro_id] = EmployeeAvailability.from_simpro(result)

        if failures and not employees:
            first = failures[0]
            if isinstance(first, ProviderError):
                raise first
            raise ProviderError(
                "Unable to load employee availability from SimPro", details={"failedEmployees": len(failures)}
            )

        relevant = set(simpro_ids)
        return employees, [s for s in schedules if s.staff_id in relevant]

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def get_service_availability(self, service_id: str, request: AvailabilityRequest) -> dict[str, list[str]]:
        organization = self._get_organization(request.organizationId)
        if not organization:
            logger.warning(f"⚠️ Availability requested for unknown organization {request.organizationId}")
            return {}

        employees, _ = self._assigned_employees(service_id, organization.id, request.serviceSettings)
        if not employees:
            logger.info(f"ℹ️ No active employees assigned to service {service_id}")
            return {}

        simpro_ids = sorted({e.simpro_employee_id for e in employees})
        cache_key = build_availability_key(
            organization.id,
            service_id,
            request.year,
            request.month,
            _settings_hash(request.serviceSettings, simpro_ids),
        )
        org_calendar = OrganizationCalendar.from_organization(organization)
        settings = request.serviceSettings.to_settings()

        cached = cache.get(cache_key)
        if cached is not None:
            logger.debug(f"📦 Availability cache hit for service {service_id}")
            # Slots may have slipped inside the minimum notice since they were cached
            return drop_expired_slots(cached, settings, org_calendar, self.clock())

        start = date(request.year, request.month, 1)
        end = date(request.year, request.month, calendar.monthrange(request.year, request.month)[1])

        async with self.client_factory(self.db, organization.id) as client:
            employee_data, schedules = await self._fetch_provider_data(client, simpro_ids, start, end)

        availability = calculate_month_availability(
            employee_data,
            schedules,
            request.year,
            request.month,
            settings,
            org_calendar,
            self.clock(),
        )
        cache.set(cache_key, availability, ttl=self.cache_ttl)

        logger.info(
            f"✅ Availability for service {service_id}: {len(availability)} day(s), "
            f"{sum(len(slots) for slots in availability.values())} slot(s)"
        )
        return availability

    async def get_available_employees(self, service_id: str, request: SlotEmployeesRequest) -> list[AvailableEmployee]:
        organization = self._get_organization(request.organizationId)
        if not organization:
            return []

        employees, default_ids = self._assigned_employees(service_id, organization.id, request.serviceSettings)
        if not employees:
            return []

        simpro_ids = sorted({e.simpro_employee_id for e in employees})
        async with self.client_factory(self.db, organization.id) as client:
            employee_data, schedules = await self._fetch_provider_data(
                client, simpro_ids, request.date, request.date
            )

        return available_employees_for_slot(
            employee_data,
            schedules,
            request.date,
            request.time,
            request.serviceSettings.to_settings(),
            OrganizationCalendar.from_organization(organization),
            self.clock(),
            default_ids,
        )
