"""
Slot availability calculation

Pure functions over already-fetched SimPro data. A slot is offered when at
least one assigned employee works that weekday, is inside the organization's
business hours, has no schedule block (widened by the buffer) overlapping it,
and the slot starts between now + minimum notice and the booking horizon.
Times are wall-clock minutes in the organization's timezone.
"""

import calendar
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ...config import DEFAULT_MAX_ADVANCE_DAYS, DEFAULT_TIMEZONE
from ..integrations.simpro.schemas import SimproEmployee, SimproSchedule

logger = logging.getLogger(__name__)

WEEKDAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
MINUTES_PER_DAY = 24 * 60
SLOT_PATTERN = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*(am|pm)\s*$", re.IGNORECASE)

Period = tuple[int, int]


# ============================================================================
# TIME HELPERS
# ============================================================================


def time_to_minutes(value: str) -> int:
    """'09:30' (or '09:30:00') -> 570"""
    parts = value.strip().split(":")
    return int(parts[0]) * 60 + int(parts[1])


def minutes_to_slot(minutes: int) -> str:
    """570 -> '9:30am'"""
    hours, mins = divmod(minutes, 60)
    suffix = "pm" if hours >= 12 else "am"
    hours = hours % 12 or 12
    return f"{hours}:{mins:02d}{suffix}"


def slot_to_minutes(slot: str) -> int:
    """'9:30am' -> 570"""
    match = SLOT_PATTERN.match(slot)
    if not match:
        raise ValueError(f"Invalid time slot: {slot!r}")
    hours, mins, period = int(match.group(1)), int(match.group(2)), match.group(3).lower()
    if hours > 12 or mins > 59:
        raise ValueError(f"Invalid time slot: {slot!r}")
    if period == "pm" and hours != 12:
        hours += 12
    elif period == "am" and hours == 12:
        hours = 0
    return hours * 60 + mins


def merge_periods(periods: Iterable[Period]) -> list[Period]:
    """Merge overlapping or touching periods; result is sorted"""
    merged: list[Period] = []
    for start, end in sorted(periods):
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def intersect_periods(a: list[Period], b: list[Period]) -> list[Period]:
    result = []
    for a_start, a_end in a:
        for b_start, b_end in b:
            start, end = max(a_start, b_start), min(a_end, b_end)
            if start < end:
                result.append((start, end))
    return merge_periods(result)


# ============================================================================
# INPUT MODELS
# ============================================================================


@dataclass(frozen=True)
class ServiceSettings:
    duration: int = 30  # minutes
    interval: int = 30  # minutes between slot starts
    buffer_time: int = 15  # minutes kept free around existing bookings
    minimum_notice_hours: float = 0
    max_advance_days: int = DEFAULT_MAX_ADVANCE_DAYS
    unavailable_dates: frozenset = frozenset()


@dataclass
class EmployeeAvailability:
    """Weekly working blocks of one SimPro employee, keyed by weekday name"""

    employee_id: int
    employee_name: str
    working_days: dict[str, list[Period]] = field(default_factory=dict)

    @classmethod
    def from_simpro(cls, employee: SimproEmployee) -> "EmployeeAvailability":
        working_days: dict[str, list[Period]] = {}
        for block in employee.Availability:
            try:
                period = (time_to_minutes(block.StartTime), time_to_minutes(block.EndTime))
            except (ValueError, IndexError):
                logger.warning(f"⚠️ Skipping malformed availability block for employee {employee.ID}")
                continue
            working_days.setdefault(block.StartDate.strip().capitalize(), []).append(period)
        return cls(employee_id=employee.ID, employee_name=employee.Name, working_days=working_days)


def resolve_timezone(name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo(name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"⚠️ Unknown timezone {name!r}, falling back to {DEFAULT_TIMEZONE}")
        return ZoneInfo(DEFAULT_TIMEZONE)


@dataclass
class OrganizationCalendar:
    """Business hours and off-work periods of an organization"""

    tz: ZoneInfo = field(default_factory=lambda: ZoneInfo(DEFAULT_TIMEZONE))
    day_schedules: Optional[dict] = None
    off_work_periods: list = field(default_factory=list)

    @classmethod
    def from_organization(cls, organization) -> "OrganizationCalendar":
        return cls(
            tz=resolve_timezone(organization.timezone),
            day_schedules=organization.day_schedules,
            off_work_periods=organization.off_work_periods or [],
        )

    def business_hours(self, day: date) -> list[Period]:
        """Open periods for a date; no configured schedule means the whole day"""
        if not self.day_schedules:
            return [(0, MINUTES_PER_DAY)]
        entry = self.day_schedules.get(WEEKDAY_NAMES[day.weekday()].lower())
        if not entry or not entry.get("enabled", True):
            return []
        try:
            return [(time_to_minutes(entry["startTime"]), time_to_minutes(entry["endTime"]))]
        except (KeyError, ValueError, IndexError):
            logger.warning(f"⚠️ Malformed business hours for {WEEKDAY_NAMES[day.weekday()]}")
            return []

    def closed_periods(self, day: date) -> list[Period]:
        """Off-work periods covering a date, as minute ranges"""
        periods = []
        iso = day.isoformat()
        for period in self.off_work_periods:
            start_date = period.get("startDate")
            end_date = period.get("endDate") or start_date
            if not start_date or not (start_date <= iso <= end_date):
                continue
            if period.get("allDay", True) or not period.get("startTime"):
                periods.append((0, MINUTES_PER_DAY))
            else:
                try:
                    periods.append(
                        (time_to_minutes(period["startTime"]), time_to_minutes(period.get("endTime") or "23:59"))
                    )
                except (ValueError, IndexError):
                    logger.warning(f"⚠️ Skipping malformed off-work period on {iso}")
        return merge_periods(periods)


@dataclass(frozen=True)
class AvailableEmployee:
    employee_id: int
    employee_name: str
    is_default: bool = False


# ============================================================================
# CALCULATION
# ============================================================================


def busy_periods(schedules: list[SimproSchedule], employee_id: int, day: date, buffer_time: int) -> list[Period]:
    """Schedule blocks for one employee and date, widened by the buffer and merged"""
    iso = day.isoformat()
    periods = []
    for schedule in schedules:
        if schedule.Date != iso or schedule.staff_id != employee_id:
            continue
        for block in schedule.Blocks:
            try:
                start, end = time_to_minutes(block.StartTime), time_to_minutes(block.EndTime)
            except (ValueError, IndexError):
                logger.warning(
                    f"⚠️ Skipping malformed schedule block {block.StartTime!r}-{block.EndTime!r} for employee {employee_id}"
                )
                continue
            periods.append((start - buffer_time, end + buffer_time))
    return merge_periods(periods)


def _overlaps(start: int, end: int, periods: list[Period]) -> bool:
    return any(start < p_end and end > p_start for p_start, p_end in periods)


class _Window:
    """Earliest and latest bookable instants"""

    def __init__(self, settings: ServiceSettings, now: datetime):
        self.earliest = now + timedelta(hours=settings.minimum_notice_hours)
        self.latest = now + timedelta(days=settings.max_advance_days)

    def allows(self, slot_start: datetime) -> bool:
        return self.earliest <= slot_start <= self.latest


def _slot_datetime(day: date, minutes: int, tz: ZoneInfo) -> datetime:
    hours, mins = divmod(minutes, 60)
    return datetime.combine(day, time(hours, mins), tzinfo=tz)


def employee_slots_for_date(
    employee: EmployeeAvailability,
    schedules: list[SimproSchedule],
    day: date,
    settings: ServiceSettings,
    org_calendar: OrganizationCalendar,
    now: datetime,
) -> list[int]:
    """Slot start minutes one employee can take on a date"""
    working = employee.working_days.get(WEEKDAY_NAMES[day.weekday()])
    if not working or day.isoformat() in settings.unavailable_dates:
        return []

    open_periods = intersect_periods(merge_periods(working), org_calendar.business_hours(day))
    if not open_periods:
        return []

    blocked = merge_periods(
        busy_periods(schedules, employee.employee_id, day, settings.buffer_time)
        + org_calendar.closed_periods(day)
    )
    window = _Window(settings, now)
    step = max(settings.interval, 1)

    slots = []
    for period_start, period_end in open_periods:
        current = period_start
        while current + settings.duration <= period_end:
            slot_end = current + settings.duration
            if not _overlaps(current, slot_end, blocked) and window.allows(
                _slot_datetime(day, current, org_calendar.tz)
            ):
                slots.append(current)
            current += step
    return slots


def calculate_slots_for_date(
    employees: dict[int, EmployeeAvailability],
    schedules: list[SimproSchedule],
    day: date,
    settings: ServiceSettings,
    org_calendar: OrganizationCalendar,
    now: datetime,
) -> list[str]:
    """Union of every employee's slots for a date, chronological"""
    all_slots: set[int] = set()
    for employee in employees.values():
        all_slots.update(employee_slots_for_date(employee, schedules, day, settings, org_calendar, now))
    return [minutes_to_slot(minutes) for minutes in sorted(all_slots)]


def calculate_month_availability(
    employees: dict[int, EmployeeAvailability],
    schedules: list[SimproSchedule],
    year: int,
    month: int,
    settings: ServiceSettings,
    org_calendar: Optional[OrganizationCalendar] = None,
    now: Optional[datetime] = None,
) -> dict[str, list[str]]:
    """
    Map of 'YYYY-MM-DD' -> ['9:00am', ...] for a month

    Days before today (organization timezone) and days without any slot are omitted.
    """
    if not employees:
        return {}

    org_calendar = org_calendar or OrganizationCalendar()
    now = now or datetime.now(timezone.utc)
    today = now.astimezone(org_calendar.tz).date()

    availability: dict[str, list[str]] = {}
    for day_number in range(1, calendar.monthrange(year, month)[1] + 1):
        day = date(year, month, day_number)
        if day < today:
            continue
        slots = calculate_slots_for_date(employees, schedules, day, settings, org_calendar, now)
        if slots:
            availability[day.isoformat()] = slots
    return availability


def drop_expired_slots(
    availability: dict[str, list[str]],
    settings: ServiceSettings,
    org_calendar: OrganizationCalendar,
    now: datetime,
) -> dict[str, list[str]]:
    """Re-apply the minimum notice cutoff to a month map computed earlier"""
    earliest = _Window(settings, now).earliest
    today = now.astimezone(org_calendar.tz).date()

    current: dict[str, list[str]] = {}
    for iso, slots in availability.items():
        day = date.fromisoformat(iso)
        if day < today:
            continue
        kept = [slot for slot in slots if _slot_datetime(day, slot_to_minutes(slot), org_calendar.tz) >= earliest]
        if kept:
            current[iso] = kept
    return current


def available_employees_for_slot(
    employees: dict[int, EmployeeAvailability],
    schedules: list[SimproSchedule],
    day: date,
    start_time: str,
    settings: ServiceSettings,
    org_calendar: Optional[OrganizationCalendar] = None,
    now: Optional[datetime] = None,
    default_employee_ids: Optional[set[int]] = None,
) -> list[AvailableEmployee]:
    """Employees free for one slot, default employees first then by SimPro id"""
    org_calendar = org_calendar or OrganizationCalendar()
    now = now or datetime.now(timezone.utc)
    default_employee_ids = default_employee_ids or set()
    start = slot_to_minutes(start_time)

    available = [
        AvailableEmployee(
            employee_id=employee.employee_id,
            employee_name=employee.employee_name,
            is_default=employee.employee_id in default_employee_ids,
        )
        for employee in employees.values()
        if start in employee_slots_for_date(employee, schedules, day, settings, org_calendar, now)
    ]
    available.sort(key=lambda e: (not e.is_default, e.employee_id))
    return available
