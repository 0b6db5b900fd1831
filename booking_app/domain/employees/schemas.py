"""Employee schemas - Pydantic models for employee endpoints"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class EmployeeResponse(BaseModel):
    id: str
    organizationId: str
    simproEmployeeId: int
    name: str
    email: Optional[str] = None
    isActive: bool
    isRemoved: bool = False
    displayOnSchedule: bool = True
    lastSyncAt: Optional[datetime] = None
    syncError: Optional[str] = None

    @classmethod
    def from_model(cls, employee) -> "EmployeeResponse":
        return cls(
            id=employee.id,
            organizationId=employee.organization_id,
            simproEmployeeId=employee.simpro_employee_id,
            name=employee.simpro_employee_name,
            email=employee.simpro_employee_email,
            isActive=employee.is_active,
            isRemoved=employee.is_removed,
            displayOnSchedule=employee.display_on_schedule,
            lastSyncAt=employee.last_sync_at,
            syncError=employee.sync_error,
        )


class EmployeeListResponse(BaseModel):
    employees: list[EmployeeResponse]
    lastSyncAt: Optional[datetime] = None


class EmployeeToggle(BaseModel):
    isActive: bool


class SyncResult(BaseModel):
    success: bool = True
    added: int = 0
    updated: int = 0
    removed: int = 0
    total: int = 0
    syncedAt: datetime


class ServiceEmployeeAssignment(BaseModel):
    employeeIds: list[str] = Field(default_factory=list)
    defaultEmployeeId: Optional[str] = None


class ServiceEmployeeResponse(EmployeeResponse):
    isDefault: bool = False

    @classmethod
    def from_assignment(cls, assignment) -> "ServiceEmployeeResponse":
        base = EmployeeResponse.from_model(assignment.employee)
        return cls(**base.model_dump(), isDefault=assignment.is_default)


class ProviderCompanyResponse(BaseModel):
    connected: bool
    companyId: Optional[int] = None
    name: Optional[str] = None
    buildName: Optional[str] = None
