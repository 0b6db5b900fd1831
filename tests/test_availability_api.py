"""Tests for the public availability endpoints."""

import calendar
import os
import subprocess
import sys
from datetime import date, datetime, timezone

import pytest
from fastapi import Depends
from sqlalchemy.orm import Session

from booking_app.database import get_db
from booking_app.domain.availability import service as availability_module
from booking_app.domain.availability.calculator import WEEKDAY_NAMES
from booking_app.domain.availability.router import get_availability_service
from booking_app.domain.availability.service import AvailabilityService
from booking_app.main import app
from booking_app.models import OrganizationEmployee, ServiceEmployee
from conftest import FakeSimpro, simpro_factory

SETTINGS = {"duration": 60, "interval": 60, "bufferTime": 0, "maxAdvanceDays": 400}


def next_month() -> tuple[int, int]:
    today = date.today()
    return (today.year + 1, 1) if today.month == 12 else (today.year, today.month + 1)


def simpro_employee(employee_id: int, name: str) -> dict:
    return {
        "ID": employee_id,
        "Name": name,
        "Availability": [
            {"StartDate": day, "StartTime": "09:00", "EndDate": day, "EndTime": "10:00"} for day in WEEKDAY_NAMES
        ],
    }


@pytest.fixture
def fake_simpro():
    return FakeSimpro(employees=[simpro_employee(1, "Alice"), simpro_employee(2, "Bob")])


@pytest.fixture
def use_fake_simpro(fake_simpro):
    def service_with_fake(db: Session = Depends(get_db)):
        return AvailabilityService(db, client_factory=simpro_factory(fake_simpro))

    app.dependency_overrides[get_availability_service] = service_with_fake
    return fake_simpro


@pytest.fixture
def staff(db, organization):
    alice = OrganizationEmployee(organization_id=organization.id, simpro_employee_id=1, simpro_employee_name="Alice")
    bob = OrganizationEmployee(organization_id=organization.id, simpro_employee_id=2, simpro_employee_name="Bob")
    db.add_all([alice, bob])
    db.flush()
    db.add_all(
        [
            ServiceEmployee(service_id="standard", organization_employee_id=alice.id),
            ServiceEmployee(service_id="standard", organization_employee_id=bob.id, is_default=True),
        ]
    )
    db.commit()
    return {"alice": alice, "bob": bob}


def month_request(organization_id: str, **settings) -> dict:
    year, month = next_month()
    return {
        "year": year,
        "month": month,
        "organizationId": organization_id,
        "serviceSettings": {**SETTINGS, **settings},
    }


class TestMonthAvailability:
    async def test_every_day_of_next_month(self, client, organization, staff, use_fake_simpro):
        response = await client.post("/public/services/standard/availability", json=month_request(organization.id))

        assert response.status_code == 200
        year, month = next_month()
        body = response.json()
        assert len(body) == calendar.monthrange(year, month)[1]
        assert set(map(tuple, body.values())) == {("9:00am",)}

        schedule_request = next(r for r in use_fake_simpro.requests if r.url.path.endswith("/schedules/"))
        last_day = calendar.monthrange(year, month)[1]
        assert schedule_request.url.params["Date"] == (
            f"between({year}-{month:02d}-01,{year}-{month:02d}-{last_day:02d})"
        )

    async def test_busy_day_is_dropped_only_when_everyone_is_busy(self, client, db, organization, staff, use_fake_simpro):
        year, month = next_month()
        first, second = f"{year}-{month:02d}-01", f"{year}-{month:02d}-02"
        block = [{"StartTime": "09:00", "EndTime": "10:00"}]
        use_fake_simpro.schedules = [
            {"ID": 1, "Staff": {"ID": 1}, "Date": first, "Blocks": block},
            {"ID": 2, "Staff": {"ID": 1}, "Date": second, "Blocks": block},
            {"ID": 3, "Staff": {"ID": 2}, "Date": second, "Blocks": block},
        ]

        body = (await client.post("/public/services/standard/availability", json=month_request(organization.id))).json()

        assert body[first] == ["9:00am"]
        assert second not in body

    async def test_unknown_organization(self, client, use_fake_simpro):
        response = await client.post("/public/services/standard/availability", json=month_request("missing-org"))
        assert response.status_code == 200
        assert response.json() == {}
        assert use_fake_simpro.requests == []

    async def test_no_assigned_employees(self, client, organization, use_fake_simpro):
        response = await client.post("/public/services/other/availability", json=month_request(organization.id))
        assert response.json() == {}
        assert use_fake_simpro.requests == []

    async def test_inactive_employees_are_skipped(self, client, db, organization, staff, use_fake_simpro):
        staff["bob"].is_active = False
        db.commit()

        await client.post("/public/services/standard/availability", json=month_request(organization.id))

        detail_paths = {r.url.path for r in use_fake_simpro.requests if not r.url.path.endswith("/")}
        assert detail_paths == {"/api/v1.0/companies/0/employees/1"}

    async def test_assigned_ids_in_settings_override_assignments(self, client, organization, staff, use_fake_simpro):
        payload = month_request(organization.id, assignedEmployeeIds=[staff["alice"].id])

        await client.post("/public/services/standard/availability", json=payload)

        detail_paths = {r.url.path for r in use_fake_simpro.requests if not r.url.path.endswith("/")}
        assert detail_paths == {"/api/v1.0/companies/0/employees/1"}

    async def test_one_employee_failing_still_returns_slots(self, client, organization, staff, use_fake_simpro):
        use_fake_simpro.failing_employee_ids = {2}

        response = await client.post("/public/services/standard/availability", json=month_request(organization.id))

        assert response.status_code == 200
        assert response.json()

    async def test_all_employees_failing(self, client, organization, staff, use_fake_simpro):
        use_fake_simpro.failing_employee_ids = {1, 2}

        response = await client.post("/public/services/standard/availability", json=month_request(organization.id))

        assert response.status_code == 503
        assert response.json()["code"] == "PROVIDER_UNAVAILABLE"

    async def test_schedule_failure(self, client, organization, staff, use_fake_simpro):
        use_fake_simpro.fail_schedules = True

        response = await client.post("/public/services/standard/availability", json=month_request(organization.id))

        assert response.status_code == 503
        assert response.json()["retryable"] is True

    async def test_simpro_not_connected(self, client, organization, staff):
        response = await client.post("/public/services/standard/availability", json=month_request(organization.id))
        assert response.status_code == 404
        assert response.json()["code"] == "SIMPRO_NOT_CONNECTED"

    @pytest.mark.parametrize("field,value", [("month", 13), ("year", 1999)])
    async def test_rejects_out_of_range_dates(self, client, organization, field, value):
        payload = {**month_request(organization.id), field: value}
        response = await client.post("/public/services/standard/availability", json=payload)
        assert response.status_code == 422


class TestSlotEmployees:
    def slot_request(self, organization_id: str, time: str = "9:00am") -> dict:
        year, month = next_month()
        return {
            "date": f"{year}-{month:02d}-01",
            "time": time,
            "organizationId": organization_id,
            "serviceSettings": SETTINGS,
        }

    async def test_defaults_first(self, client, organization, staff, use_fake_simpro):
        response = await client.post(
            "/public/services/standard/availability/employees", json=self.slot_request(organization.id)
        )

        assert response.status_code == 200
        assert response.json() == [
            {"employeeId": 2, "employeeName": "Bob", "isDefault": True},
            {"employeeId": 1, "employeeName": "Alice", "isDefault": False},
        ]

    async def test_busy_employee_is_excluded(self, client, organization, staff, use_fake_simpro):
        year, month = next_month()
        use_fake_simpro.schedules = [
            {"ID": 1, "Staff": 2, "Date": f"{year}-{month:02d}-01", "Blocks": [{"StartTime": "09:30", "EndTime": "10:00"}]}
        ]

        response = await client.post(
            "/public/services/standard/availability/employees", json=self.slot_request(organization.id)
        )

        assert [e["employeeId"] for e in response.json()] == [1]

    async def test_slot_outside_working_hours(self, client, organization, staff, use_fake_simpro):
        response = await client.post(
            "/public/services/standard/availability/employees", json=self.slot_request(organization.id, "3:00pm")
        )
        assert response.json() == []

    async def test_invalid_time(self, client, organization):
        response = await client.post(
            "/public/services/standard/availability/employees", json=self.slot_request(organization.id, "25:99")
        )
        assert response.status_code == 422


class DictCache:
    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def set(self, key, value, ttl=3600):
        self.store[key] = value
        return True


class TestCachedAvailability:
    @pytest.fixture
    def clock(self, monkeypatch, fake_simpro):
        """Frozen, settable clock plus a working cache for the availability service"""
        current = {"now": datetime(2030, 11, 1, 8, 0, tzinfo=timezone.utc)}
        monkeypatch.setattr(availability_module, "cache", DictCache())

        def service_with_clock(db: Session = Depends(get_db)):
            return AvailabilityService(
                db, client_factory=simpro_factory(fake_simpro), clock=lambda: current["now"]
            )

        app.dependency_overrides[get_availability_service] = service_with_clock
        return current

    async def test_cached_slots_respect_minimum_notice(self, client, organization, staff, fake_simpro, clock):
        payload = {**month_request(organization.id), "year": 2030, "month": 11}

        first = (await client.post("/public/services/standard/availability", json=payload)).json()
        assert first["2030-11-01"] == ["9:00am"]
        provider_calls = len(fake_simpro.requests)

        clock["now"] = datetime(2030, 11, 1, 9, 30, tzinfo=timezone.utc)
        second = (await client.post("/public/services/standard/availability", json=payload)).json()

        assert len(fake_simpro.requests) == provider_calls
        assert "2030-11-01" not in second
        assert second["2030-11-02"] == ["9:00am"]

    def test_cache_key_is_stable_across_processes(self):
        script = (
            "from booking_app.domain.availability.schemas import AvailabilityServiceSettings\n"
            "from booking_app.domain.availability.service import _settings_hash\n"
            "dates = [f'2030-11-{day:02d}' for day in range(1, 13)]\n"
            "print(_settings_hash(AvailabilityServiceSettings(unavailableDates=dates), [2, 1]))\n"
        )
        hashes = set()
        for seed in ("1", "2", "3", "4"):
            env = {**os.environ, "PYTHONHASHSEED": seed}
            result = subprocess.run(
                [sys.executable, "-c", script],
                env=env,
                cwd=os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
                capture_output=True,
                text=True,
                check=True,
            )
            hashes.add(result.stdout.strip())
        assert len(hashes) == 1
