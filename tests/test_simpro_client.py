"""Tests for the SimPro API client."""

from urllib.parse import parse_qs

import httpx
import pytest

from booking_app.errors import ProviderAuthError, ProviderError
from conftest import make_simpro_client

EMPLOYEE = {"ID": 7, "Name": "Alice", "Availability": [{"StartDate": "Monday", "StartTime": "09:00", "EndTime": "17:00"}]}


def token_response(access="access-2", refresh="refresh-2") -> httpx.Response:
    return httpx.Response(200, json={"access_token": access, "refresh_token": refresh, "expires_in": 3600})


class TestTokenRefresh:
    async def test_expired_token_is_refreshed_once_and_request_replayed(self):
        seen_tokens = []
        refresh_bodies = []
        persisted = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/oauth2/token":
                refresh_bodies.append(parse_qs(request.content.decode()))
                return token_response()
            seen_tokens.append(request.headers["Authorization"])
            if request.headers["Authorization"] == "Bearer access-1":
                return httpx.Response(401, json={"errors": ["expired"]})
            return httpx.Response(200, json=EMPLOYEE)

        async def on_refresh(tokens):
            persisted.append(tokens)

        async with make_simpro_client(handler, on_token_refresh=on_refresh) as client:
            employee = await client.get_employee(7)

            assert employee.Name == "Alice"
            assert seen_tokens == ["Bearer access-1", "Bearer access-2"]
            assert refresh_bodies[0]["grant_type"] == ["refresh_token"]
            assert refresh_bodies[0]["refresh_token"] == ["refresh-1"]
            assert client.access_token == "access-2"
            assert client.refresh_token == "refresh-2"
            assert [t.access_token for t in persisted] == ["access-2"]
            assert persisted[0].refresh_token_expires_at > persisted[0].access_token_expires_at

    async def test_second_401_raises_auth_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/oauth2/token":
                return token_response()
            return httpx.Response(401)

        async with make_simpro_client(handler) as client:
            with pytest.raises(ProviderAuthError) as exc_info:
                await client.get_company()

        assert exc_info.value.status_code == 401
        assert exc_info.value.provider_status == 401

    async def test_rejected_refresh_raises_auth_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/oauth2/token":
                return httpx.Response(400, json={"error": "invalid_grant"})
            return httpx.Response(401)

        async with make_simpro_client(handler) as client:
            with pytest.raises(ProviderAuthError, match="invalid_grant"):
                await client.get_company()

    async def test_incomplete_token_response(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"access_token": "only-access"})

        async with make_simpro_client(handler) as client:
            with pytest.raises(ProviderError) as exc_info:
                await client.refresh_access_token()

        assert exc_info.value.retryable is False
        assert exc_info.value.status_code == 502

    async def test_persist_failure_keeps_new_tokens(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return token_response()

        async def broken_persist(tokens):
            raise RuntimeError("database down")

        async with make_simpro_client(handler, on_token_refresh=broken_persist) as client:
            tokens = await client.refresh_access_token()

            assert tokens.access_token == "access-2"
            assert client.access_token == "access-2"

    async def test_stale_token_skips_duplicate_refresh(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.path)
            return token_response()

        async with make_simpro_client(handler) as client:
            await client.refresh_access_token(stale_token="access-1")
            await client.refresh_access_token(stale_token="access-1")

        assert calls == ["/oauth2/token"]


class TestRetries:
    @pytest.mark.parametrize("status", [429, 503])
    async def test_retryable_status_then_success(self, status):
        responses = [httpx.Response(status), httpx.Response(status), httpx.Response(200, json={"ID": 0})]

        def handler(request: httpx.Request) -> httpx.Response:
            return responses.pop(0)

        async with make_simpro_client(handler, max_retries=3) as client:
            assert await client.get_company() == {"ID": 0}
        assert responses == []

    async def test_retries_exhausted(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(500)

        async with make_simpro_client(handler, max_retries=3) as client:
            with pytest.raises(ProviderError) as exc_info:
                await client.get_company()

        assert len(calls) == 3
        error = exc_info.value
        assert error.status_code == 503
        assert error.retryable is True
        assert error.to_dict()["details"]["providerStatus"] == 500

    async def test_transport_errors_are_retried(self):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json={"ID": 0})

        async with make_simpro_client(handler, max_retries=2) as client:
            assert await client.get_company() == {"ID": 0}
        assert len(attempts) == 2

    async def test_client_errors_are_not_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(404, json={"errors": ["missing"]})

        async with make_simpro_client(handler) as client:
            with pytest.raises(ProviderError) as exc_info:
                await client.get_employee(99)

        assert len(calls) == 1
        assert exc_info.value.status_code == 502
        assert exc_info.value.retryable is False

    def test_backoff_honours_retry_after_and_cap(self):
        client = make_simpro_client(lambda r: httpx.Response(200), retry_base_delay=0.5, retry_max_delay=4)
        assert [client._backoff(n) for n in (1, 2, 3, 4, 5)] == [0.5, 1, 2, 4, 4]
        assert client._backoff(1, "2") == 2
        assert client._backoff(1, "120") == 4
        assert client._backoff(2, "soon") == 1


class TestEndpoints:
    async def test_employees_follow_pagination(self):
        pages = {
            "1": [{"ID": 1, "Name": "Alice"}, {"ID": 2, "Name": "Bob"}],
            "2": [{"ID": 3, "Name": "Carol", "Active": False}],
        }

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["pageSize"] == "250"
            assert "DisplayOnSchedule" in request.url.params["columns"]
            return httpx.Response(200, json=pages[request.url.params["page"]], headers={"Result-Pages": "2"})

        async with make_simpro_client(handler) as client:
            employees = await client.get_employees()

        assert [e.ID for e in employees] == [1, 2, 3]
        assert employees[2].Active is False

    async def test_schedule_query(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                200,
                json=[{"ID": 5, "Staff": 7, "Date": "2026-11-02", "Blocks": [{"StartTime": "10:00", "EndTime": "11:00"}]}],
            )

        async with make_simpro_client(handler) as client:
            schedules = await client.get_schedules("2026-11-01", "2026-11-30", staff_id=7)

        params = requests[0].url.params
        assert requests[0].url.host == "sparkle.simprosuite.com"
        assert params["Date"] == "between(2026-11-01,2026-11-30)"
        assert params["Staff.ID"] == "7"
        assert schedules[0].staff_id == 7
        assert schedules[0].Blocks[0].StartTime == "10:00"
