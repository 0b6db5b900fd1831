"""Availability schemas - Public availability request/response models"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ...config import DEFAULT_MAX_ADVANCE_DAYS
from .calculator import ServiceSettings, slot_to_minutes

DEFAULT_DURATION = 30
DEFAULT_INTERVAL = 30
DEFAULT_BUFFER_TIME = 15
DEFAULT_MINIMUM_NOTICE = 0


class AvailabilityServiceSettings(BaseModel):
    """Scheduling fields of a service node; the booking page posts the node as-is"""

    model_config = ConfigDict(extra="allow")

    duration: Optional[int] = None
    interval: Optional[int] = None
    bookingInterval: Optional[int] = None
    bufferTime: Optional[int] = None
    minimumNotice: Optional[float] = None
    minimumNoticeUnit: Optional[str] = None
    maxAdvanceDays: Optional[int] = None
    rollingDays: Optional[int] = None
    unavailableDates: Optional[list[str]] = None
    assignedEmployeeIds: list[str] = Field(default_factory=list)

    @field_validator("assignedEmployeeIds", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return v or []

    def to_settings(self) -> ServiceSettings:
        notice = self.minimumNotice or DEFAULT_MINIMUM_NOTICE
        if self.minimumNoticeUnit == "days":
            notice *= 24
        return ServiceSettings(
            duration=self.duration if self.duration and self.duration > 0 else DEFAULT_DURATION,
            interval=(self.interval or self.bookingInterval or DEFAULT_INTERVAL),
            buffer_time=self.bufferTime if self.bufferTime is not None else DEFAULT_BUFFER_TIME,
            minimum_notice_hours=max(notice, 0),
            max_advance_days=self.maxAdvanceDays or self.rollingDays or DEFAULT_MAX_ADVANCE_DAYS,
            unavailable_dates=frozenset(self.unavailableDates or []),
        )


class AvailabilityRequest(BaseModel):
    year: int = Field(..., ge=2000, le=2100)
    month: int = Field(..., ge=1, le=12)
    organizationId: str
    serviceSettings: AvailabilityServiceSettings


class SlotEmployeesRequest(BaseModel):
    date: date
    time: str
    organizationId: str
    serviceSettings: AvailabilityServiceSettings

    @field_validator("time")
    @classmethod
    def valid_slot(cls, v: str) -> str:
        slot_to_minutes(v)
        return v.strip().lower()


class AvailableEmployeeResponse(BaseModel):
    employeeId: int
    employeeName: str
    isDefault: bool
