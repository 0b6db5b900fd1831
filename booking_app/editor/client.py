"""
HTTP client the editor uses to load and autosave a form
"""
import logging
from typing import Optional

import httpx

from ..domain.forms.schemas import BookingFlowData, booking_flow_from_config

logger = logging.getLogger(__name__)


class FormsApiError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[dict] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body or {}


class FormsApiClient:
    """Thin async wrapper over GET/PATCH /forms/{id}"""

    def __init__(
        self,
        base_url: str,
        session_token: str,
        organization_id: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Authorization": f"Bearer {session_token}"}
        if organization_id:
            headers["X-Organization-Id"] = organization_id
        self._client = httpx.AsyncClient(
            base_url=base_url, headers=headers, timeout=timeout, transport=transport
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"❌ {method} {path} failed: {e}")
            raise FormsApiError(f"Network error: {e}") from e

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {"error": response.text}
            message = body.get("error") or body.get("detail") or f"HTTP {response.status_code}"
            raise FormsApiError(str(message), response.status_code, body)

        return response.json()

    async def get_booking_flow(self, form_id: str) -> BookingFlowData:
        form = await self._request("GET", f"/forms/{form_id}")
        return booking_flow_from_config(form.get("bookingFlow"), form["id"], form["name"], form["slug"])

    async def save_booking_flow(self, form_id: str, data: BookingFlowData) -> BookingFlowData:
        payload = {"formConfig": data.to_json()}
        if data.internalName:
            payload["name"] = data.internalName
        form = await self._request("PATCH", f"/forms/{form_id}", json=payload)
        return booking_flow_from_config(form.get("bookingFlow"), form["id"], form["name"], form["slug"])
