"""SimPro API payloads (only the fields this service reads)"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SimproTokens(BaseModel):
    access_token: str
    refresh_token: str
    access_token_expires_at: datetime
    refresh_token_expires_at: datetime


class SimproAvailability(BaseModel):
    """Recurring weekly working block; StartDate holds a weekday name such as "Monday" """

    model_config = ConfigDict(extra="allow")

    StartDate: str
    StartTime: str  # "09:00"
    EndDate: Optional[str] = None
    EndTime: str  # "17:00"


class SimproEmployee(BaseModel):
    model_config = ConfigDict(extra="allow")

    ID: int
    Name: str = ""
    Email: Optional[str] = None
    Active: Optional[bool] = None
    DisplayOnSchedule: Optional[bool] = None
    Availability: list[SimproAvailability] = Field(default_factory=list)

    @field_validator("Availability", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return v or []


class SimproStaff(BaseModel):
    model_config = ConfigDict(extra="allow")

    ID: int
    Name: Optional[str] = None


class SimproScheduleBlock(BaseModel):
    model_config = ConfigDict(extra="allow")

    StartTime: str  # "10:30"
    EndTime: str  # "11:00"
    Hrs: Optional[float] = None


class SimproSchedule(BaseModel):
    model_config = ConfigDict(extra="allow")

    ID: Optional[int] = None
    Type: Optional[str] = None
    Reference: Optional[str] = None
    Staff: Optional[SimproStaff] = None
    Date: str  # "2026-10-21"
    Blocks: list[SimproScheduleBlock] = Field(default_factory=list)

    @field_validator("Staff", mode="before")
    @classmethod
    def staff_from_id(cls, v):
        # Some endpoints return the bare staff id
        if isinstance(v, int):
            return {"ID": v}
        return v

    @field_validator("Blocks", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return v or []

    @property
    def staff_id(self) -> Optional[int]:
        return self.Staff.ID if self.Staff else None
