"""Employee service - SimPro employee sync and service assignments"""

import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ...auth import OrganizationContext
from ...cache import invalidate_availability_cache
from ...errors import AppError, ConflictError, NotFoundError, ValidationFailedError
from ...models import OrganizationEmployee, ServiceEmployee, utcnow
from ..integrations.simpro.client import SimproClient
from ..integrations.simpro.tokens import get_simpro_client_for_organization
from .repository import EmployeeRepository
from .schemas import SyncResult

logger = logging.getLogger(__name__)

SimproClientFactory = Callable[[Session, str], SimproClient]


class EmployeeService:
    """Service layer for organization employees"""

    def __init__(self, db: Session, client_factory: SimproClientFactory = get_simpro_client_for_organization):
        self.db = db
        self.repo = EmployeeRepository()
        self.client_factory = client_factory

    def list_employees(self, context: OrganizationContext, include_removed: bool = False) -> list[OrganizationEmployee]:
        return self.repo.get_employees(self.db, context.organization_id, include_removed)

    async def sync_employees(self, context: OrganizationContext) -> SyncResult:
        """
        Pull employees from SimPro into organization_employees

        Existing rows keep their isActive preference; new rows start active.
        Employees missing from SimPro (or inactive there) are flagged removed.
        """
        organization_id = context.organization_id
        logger.info(f"🔄 Syncing SimPro employees for organization {organization_id}")

        try:
            async with self.client_factory(self.db, organization_id) as client:
                provider_employees = await client.get_employees()
        except AppError as e:
            logger.error(f"❌ Employee sync failed for organization {organization_id}: {e.message}")
            self.repo.record_sync_error(self.db, organization_id, e.message)
            raise
        except Exception as e:
            logger.exception(f"❌ Unexpected employee sync failure for organization {organization_id}")
            self.repo.record_sync_error(self.db, organization_id, str(e))
            raise

        now = utcnow()
        existing = self.repo.get_by_simpro_ids(self.db, organization_id)
        seen: set[int] = set()
        added = updated = removed = 0

        for provider_employee in provider_employees:
            if provider_employee.Active is False:
                continue
            if provider_employee.ID in seen:
                # Pages can shift while SimPro is being paged through
                logger.warning(f"⚠️ SimPro listed employee {provider_employee.ID} twice, keeping the first entry")
                continue
            seen.add(provider_employee.ID)
            row = existing.get(provider_employee.ID)
            if row is None:
                self.db.add(
                    OrganizationEmployee(
                        organization_id=organization_id,
                        simpro_employee_id=provider_employee.ID,
                        simpro_employee_name=provider_employee.Name or f"Employee {provider_employee.ID}",
                        simpro_employee_email=provider_employee.Email,
                        display_on_schedule=provider_employee.DisplayOnSchedule is not False,
                        is_active=True,
                        is_removed=False,
                        last_sync_at=now,
                    )
                )
                added += 1
            else:
                row.simpro_employee_name = provider_employee.Name or row.simpro_employee_name
                row.simpro_employee_email = provider_employee.Email
                if provider_employee.DisplayOnSchedule is not None:
                    row.display_on_schedule = provider_employee.DisplayOnSchedule
                row.is_removed = False
                row.last_sync_at = now
                row.sync_error = None
                updated += 1

        for simpro_id, row in existing.items():
            if simpro_id in seen or row.is_removed:
                continue
            row.is_removed = True
            row.is_active = False
            row.last_sync_at = now
            row.sync_error = None
            removed += 1

        self.db.commit()
        invalidate_availability_cache(organization_id)

        logger.info(
            f"✅ Employee sync complete for organization {organization_id}: "
            f"{added} added, {updated} updated, {removed} removed"
        )
        return SyncResult(added=added, updated=updated, removed=removed, total=len(seen), syncedAt=now)

    async def get_provider_company(self, context: OrganizationContext) -> dict:
        """The SimPro company the organization's connection points at"""
        async with self.client_factory(self.db, context.organization_id) as client:
            company = await client.get_company()
            build_name = client.build_name
        return {
            "connected": True,
            "companyId": company.get("ID"),
            "name": company.get("Name"),
            "buildName": build_name,
        }

    def toggle_employee(self, employee_id: str, is_active: bool, context: OrganizationContext) -> OrganizationEmployee:
        employee = self.repo.get_employee(self.db, employee_id, context.organization_id)
        if not employee:
            raise NotFoundError.for_resource("Employee", employee_id)
        if employee.is_removed and is_active:
            raise ConflictError(
                "Employee no longer exists in SimPro and cannot be activated", code="EMPLOYEE_REMOVED"
            )

        employee = self.repo.update_employee(self.db, employee, is_active=is_active)
        invalidate_availability_cache(context.organization_id)
        logger.info(f"✅ Employee {employee_id} is_active set to {is_active}")
        return employee

    def assign_employees_to_service(
        self,
        service_id: str,
        employee_ids: list[str],
        context: OrganizationContext,
        default_employee_id: Optional[str] = None,
    ) -> list[ServiceEmployee]:
        """Replace the employees assigned to a service node"""
        unique_ids = list(dict.fromkeys(employee_ids))
        found = {e.id: e for e in self.repo.get_employees_by_ids(self.db, context.organization_id, unique_ids)}

        issues = [
            {"code": "UNKNOWN_EMPLOYEE", "message": f"Employee {employee_id} not found", "field": "employeeIds"}
            for employee_id in unique_ids
            if employee_id not in found
        ]
        issues.extend(
            {"code": "EMPLOYEE_REMOVED", "message": f"Employee {e.id} was removed from SimPro", "field": "employeeIds"}
            for e in found.values()
            if e.is_removed
        )
        if default_employee_id and default_employee_id not in found:
            issues.append(
                {
                    "code": "INVALID_DEFAULT",
                    "message": "Default employee must be one of the assigned employees",
                    "field": "defaultEmployeeId",
                }
            )
        if issues:
            raise ValidationFailedError("Invalid employee assignment", issues)

        self.repo.replace_service_assignments(
            self.db, context.organization_id, service_id, unique_ids, default_employee_id
        )
        invalidate_availability_cache(context.organization_id)
        logger.info(f"✅ Assigned {len(unique_ids)} employee(s) to service {service_id}")
        return self.get_service_employees(service_id, context.organization_id)

    def get_service_employees(self, service_id: str, organization_id: str) -> list[ServiceEmployee]:
        """Active assignments, default employee first"""
        return self.repo.get_service_assignments(self.db, organization_id, service_id)
