"""Tests for the editor session against the real API app."""

import pytest
import pytest_asyncio
from httpx import ASGITransport

from booking_app.editor.autosave import AutosaveOptions, SaveStatus
from booking_app.editor.client import FormsApiClient, FormsApiError
from booking_app.editor.session import FormEditorSession
from booking_app.main import app

SLOW_DEBOUNCE = AutosaveOptions(debounce_ms=60_000, max_retries=1, retry_delay_ms=1, max_retry_delay_ms=1)

SERVICE_NODE = {"id": "windows", "type": "service", "label": "Windows", "price": 80, "description": "Inside and out"}


@pytest_asyncio.fixture
async def form_id(client, auth_headers):
    response = await client.post("/forms", json={"name": "Window cleaning"}, headers=auth_headers)
    return response.json()["id"]


@pytest_asyncio.fixture
async def api_client(client, owner_token, organization):
    async with FormsApiClient(
        "http://test", owner_token, organization.id, transport=ASGITransport(app=app)
    ) as api:
        yield api


class TestFormsApiClient:
    async def test_load_booking_flow(self, api_client, form_id):
        flow = await api_client.get_booking_flow(form_id)
        assert flow.id == form_id
        assert flow.internalName == "Window cleaning"

    async def test_error_carries_status_and_body(self, api_client):
        with pytest.raises(FormsApiError) as exc_info:
            await api_client.get_booking_flow("missing")
        assert exc_info.value.status_code == 404
        assert exc_info.value.body["code"] == "NOT_FOUND"


class TestFormEditorSession:
    async def test_dispatch_then_save(self, api_client, client, auth_headers, form_id):
        session = FormEditorSession(api_client, form_id, options=SLOW_DEBOUNCE)
        state = await session.load()
        assert state.status == "loaded"

        session.dispatch({"type": "ADD_NODE", "parentId": "root", "node": SERVICE_NODE})
        assert session.save_state.is_dirty
        assert await session.save_now() is True
        await session.close(flush=False)

        stored = (await client.get(f"/forms/{form_id}", headers=auth_headers)).json()
        assert [c["id"] for c in stored["bookingFlow"]["serviceTree"]["children"]] == ["windows"]

    async def test_invalid_edit_is_kept_locally_but_not_saved(self, api_client, client, auth_headers, form_id):
        session = FormEditorSession(api_client, form_id, options=SLOW_DEBOUNCE)
        await session.load()

        session.dispatch({"type": "ADD_NODE", "parentId": "root", "node": {**SERVICE_NODE, "price": "lots"}})
        assert await session.save_now() is False

        assert session.save_state.status == SaveStatus.ERROR
        assert session.data.serviceTree.children[0].price == "lots"
        stored = (await client.get(f"/forms/{form_id}", headers=auth_headers)).json()
        assert stored["bookingFlow"]["serviceTree"]["children"] == []
        await session.close(flush=False)

    async def test_close_flushes_pending_edit(self, api_client, client, auth_headers, form_id):
        session = FormEditorSession(api_client, form_id, options=SLOW_DEBOUNCE)
        await session.load()
        session.dispatch({"type": "UPDATE_FORM_SETTINGS", "settings": {"theme": "dark"}})

        await session.close(flush=True)

        stored = (await client.get(f"/forms/{form_id}", headers=auth_headers)).json()
        assert stored["theme"] == "dark"

    async def test_no_op_action_does_not_dirty(self, api_client, form_id):
        session = FormEditorSession(api_client, form_id, options=SLOW_DEBOUNCE)
        await session.load()

        session.dispatch({"type": "REMOVE_NODE", "nodeId": "missing"})

        assert not session.save_state.is_dirty
        await session.close(flush=False)

    async def test_load_failure_sets_error_state(self, api_client):
        session = FormEditorSession(api_client, "missing")
        state = await session.load()

        assert state.status == "error"
        assert "not found" in state.error
        assert session.save_state is None
        session.dispatch({"type": "REMOVE_NODE", "nodeId": "root"})
        assert session.state is state
