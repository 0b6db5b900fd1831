"""Employee router - FastAPI endpoints for employees and service assignments"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import OrganizationContext, get_organization_context, require_admin
from ...database import get_db
from .schemas import (
    EmployeeListResponse,
    EmployeeResponse,
    EmployeeToggle,
    ProviderCompanyResponse,
    ServiceEmployeeAssignment,
    ServiceEmployeeResponse,
    SyncResult,
)
from .service import EmployeeService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/employees", tags=["Employees"])
service_router = APIRouter(prefix="/services", tags=["Employees"])


def get_employee_service(db: Session = Depends(get_db)) -> EmployeeService:
    """Dependency injection for EmployeeService"""
    return EmployeeService(db)


@router.get("", response_model=EmployeeListResponse)
async def list_employees(
    includeRemoved: bool = Query(False),
    context: OrganizationContext = Depends(get_organization_context),
    service: EmployeeService = Depends(get_employee_service),
):
    employees = service.list_employees(context, includeRemoved)
    sync_times = [e.last_sync_at for e in employees if e.last_sync_at]
    return EmployeeListResponse(
        employees=[EmployeeResponse.from_model(e) for e in employees],
        lastSyncAt=max(sync_times) if sync_times else None,
    )


@router.post("/sync", response_model=SyncResult)
async def sync_employees(
    context: OrganizationContext = Depends(require_admin),
    service: EmployeeService = Depends(get_employee_service),
):
    """Pull the employee list from SimPro (admins and owners only)"""
    return await service.sync_employees(context)


@router.get("/simpro/company", response_model=ProviderCompanyResponse)
async def get_simpro_company(
    context: OrganizationContext = Depends(require_admin),
    service: EmployeeService = Depends(get_employee_service),
):
    """Check the SimPro connection the employee sync will use"""
    return await service.get_provider_company(context)


@router.patch("/{employee_id}", response_model=EmployeeResponse)
async def toggle_employee(
    employee_id: str,
    data: EmployeeToggle,
    context: OrganizationContext = Depends(require_admin),
    service: EmployeeService = Depends(get_employee_service),
):
    return EmployeeResponse.from_model(service.toggle_employee(employee_id, data.isActive, context))


# ============================================================================
# SERVICE ASSIGNMENTS
# ============================================================================


@service_router.put("/{service_id}/employees", response_model=list[ServiceEmployeeResponse])
async def assign_service_employees(
    service_id: str,
    data: ServiceEmployeeAssignment,
    context: OrganizationContext = Depends(require_admin),
    service: EmployeeService = Depends(get_employee_service),
):
    assignments = service.assign_employees_to_service(
        service_id, data.employeeIds, context, data.defaultEmployeeId
    )
    return [ServiceEmployeeResponse.from_assignment(a) for a in assignments]


@service_router.get("/{service_id}/employees", response_model=list[ServiceEmployeeResponse])
async def get_service_employees(
    service_id: str,
    context: OrganizationContext = Depends(get_organization_context),
    service: EmployeeService = Depends(get_employee_service),
):
    assignments = service.get_service_employees(service_id, context.organization_id)
    return [ServiceEmployeeResponse.from_assignment(a) for a in assignments]
