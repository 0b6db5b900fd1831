"""Availability router - Public slot availability endpoints used by the booking page"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...database import get_db
from .schemas import AvailabilityRequest, AvailableEmployeeResponse, SlotEmployeesRequest
from .service import AvailabilityService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/public/services", tags=["Availability"])


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    """Dependency injection for AvailabilityService"""
    return AvailabilityService(db)


@router.post("/{service_id}/availability", response_model=dict[str, list[str]])
async def get_service_availability(
    service_id: str,
    data: AvailabilityRequest,
    service: AvailabilityService = Depends(get_availability_service),
):
    """Bookable slots per date for a month: {"2026-10-21": ["9:00am", "9:30am"]}"""
    logger.info(f"📅 Availability request for service {service_id} ({data.year}-{data.month:02d})")
    return await service.get_service_availability(service_id, data)


@router.post("/{service_id}/availability/employees", response_model=list[AvailableEmployeeResponse])
async def get_available_employees(
    service_id: str,
    data: SlotEmployeesRequest,
    service: AvailabilityService = Depends(get_availability_service),
):
    """Employees who can take one slot, default employees first"""
    employees = await service.get_available_employees(service_id, data)
    return [
        AvailableEmployeeResponse(employeeId=e.employee_id, employeeName=e.employee_name, isDefault=e.is_default)
        for e in employees
    ]
