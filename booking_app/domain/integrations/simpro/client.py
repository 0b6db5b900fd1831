"""
SimPro REST API client
Handles OAuth token refresh, retry with backoff and typed responses
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional

import httpx

from ....config import (
    SIMPRO_CLIENT_ID,
    SIMPRO_CLIENT_SECRET,
    SIMPRO_DEFAULT_DOMAIN,
    SIMPRO_MAX_RETRIES,
    SIMPRO_REFRESH_TOKEN_LIFETIME_DAYS,
    SIMPRO_REQUEST_TIMEOUT,
    SIMPRO_RETRY_BASE_DELAY,
    SIMPRO_RETRY_MAX_DELAY,
)
from ....errors import ProviderAuthError, ProviderError
from .schemas import SimproEmployee, SimproSchedule, SimproTokens

logger = logging.getLogger(__name__)

TokenRefreshCallback = Callable[[SimproTokens], Awaitable[None]]

PAGE_SIZE = 250


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SimproClient:
    """Async client for one SimPro build, authenticated with a user's OAuth tokens"""

    def __init__(
        self,
        access_token: str,
        refresh_token: str,
        build_name: str,
        domain: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        on_token_refresh: Optional[TokenRefreshCallback] = None,
        timeout: float = SIMPRO_REQUEST_TIMEOUT,
        max_retries: int = SIMPRO_MAX_RETRIES,
        retry_base_delay: float = SIMPRO_RETRY_BASE_DELAY,
        retry_max_delay: float = SIMPRO_RETRY_MAX_DELAY,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.build_name = build_name
        self.domain = domain or SIMPRO_DEFAULT_DOMAIN
        self.base_url = f"https://{build_name}.{self.domain}/api/v1.0"
        self.token_url = f"https://{build_name}.{self.domain}/oauth2/token"
        self.client_id = client_id or SIMPRO_CLIENT_ID
        self.client_secret = client_secret or SIMPRO_CLIENT_SECRET
        self.on_token_refresh = on_token_refresh
        self.max_retries = max(1, max_retries)
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay

        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._refresh_lock = asyncio.Lock()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        await self._http.aclose()

    # ------------------------------------------------------------------ OAuth

    async def refresh_access_token(self, stale_token: Optional[str] = None) -> SimproTokens:
        """
        Exchange the refresh token for a new token pair and persist it via the callback.

        Concurrent callers that saw the same stale access token share one refresh.
        """
        async with self._refresh_lock:
            if stale_token is not None and stale_token != self.access_token:
                logger.debug("🔄 SimPro token already refreshed by a concurrent request")
                return self._current_tokens

            if not self.refresh_token:
                raise ProviderAuthError("No SimPro refresh token available")

            logger.info(f"🔄 Refreshing SimPro access token for build {self.build_name}")
            try:
                response = await self._http.post(
                    self.token_url,
                    data={
                        "grant_type": "refresh_token",
                        "refresh_token": self.refresh_token,
                        "client_id": self.client_id or "",
                        "client_secret": self.client_secret or "",
                    },
                )
            except httpx.TransportError as e:
                logger.error(f"❌ SimPro token refresh request failed: {e}")
                raise ProviderError(f"SimPro token refresh failed: {e}") from e

            try:
                payload = response.json()
            except ValueError:
                payload = {}

            if response.status_code != 200:
                reason = payload.get("error_description") or payload.get("error") or response.reason_phrase
                logger.error(f"❌ SimPro token refresh rejected ({response.status_code}): {reason}")
                raise ProviderAuthError(
                    f"Failed to refresh SimPro token: {reason}", provider_status=response.status_code
                )

            if not payload.get("access_token") or not payload.get("refresh_token"):
                raise ProviderError(
                    "Invalid token response: missing access_token or refresh_token", retryable=False
                )

            now = _utcnow()
            self.access_token = payload["access_token"]
            self.refresh_token = payload["refresh_token"]
            self._access_expires_at = now + timedelta(seconds=int(payload.get("expires_in", 3600)))
            tokens = self._current_tokens
            logger.info("✅ SimPro token refreshed")

            if self.on_token_refresh is not None:
                try:
                    await self.on_token_refresh(tokens)
                except Exception as e:
                    # The new tokens stay usable in memory for this client
                    logger.error(f"❌ Failed to persist refreshed SimPro tokens: {e}")
            else:
                logger.warning("⚠️ No token refresh callback - refreshed SimPro tokens will not be persisted")

            return tokens

    @property
    def _current_tokens(self) -> SimproTokens:
        now = _utcnow()
        return SimproTokens(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            access_token_expires_at=getattr(self, "_access_expires_at", now + timedelta(hours=1)),
            refresh_token_expires_at=now + timedelta(days=SIMPRO_REFRESH_TOKEN_LIFETIME_DAYS),
        )

    # --------------------------------------------------------------- requests

    def _backoff(self, attempt: int, retry_after: Optional[str] = None) -> float:
        if retry_after:
            try:
                return min(float(retry_after), self.retry_max_delay)
            except ValueError:
                pass
        return min(self.retry_base_delay * (2 ** (attempt - 1)), self.retry_max_delay)

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        """One logical request: refresh once on 401, retry 429/5xx/transport errors with backoff"""
        url = path if path.startswith("http") else f"{self.base_url}{path}"
        refreshed = False
        attempt = 0

        while True:
            attempt += 1
            token_used = self.access_token
            try:
                response = await self._http.request(
                    method,
                    url,
                    headers={"Authorization": f"Bearer {token_used}", "Content-Type": "application/json"},
                    **kwargs,
                )
            except httpx.TransportError as e:
                if attempt >= self.max_retries:
                    logger.error(f"❌ SimPro {method} {path} failed after {attempt} attempt(s): {e}")
                    raise ProviderError(f"SimPro request failed: {e}", details={"endpoint": path}) from e
                delay = self._backoff(attempt)
                logger.warning(f"⚠️ SimPro {method} {path} transport error ({e}), retrying in {delay:.2f}s")
                await asyncio.sleep(delay)
                continue

            if response.status_code == 401:
                if refreshed:
                    raise ProviderAuthError(
                        "Authentication failed: unable to refresh SimPro access token",
                        provider_status=401,
                        details={"endpoint": path},
                    )
                await self.refresh_access_token(stale_token=token_used)
                refreshed = True
                attempt -= 1  # the refresh round trip does not use up a retry
                continue

            if response.status_code == 429 or response.status_code >= 500:
                if attempt >= self.max_retries:
                    logger.error(
                        f"❌ SimPro {method} {path} returned {response.status_code} after {attempt} attempt(s)"
                    )
                    raise ProviderError(
                        f"SimPro API unavailable ({response.status_code})",
                        provider_status=response.status_code,
                        details={"endpoint": path},
                    )
                delay = self._backoff(attempt, response.headers.get("Retry-After"))
                logger.warning(
                    f"⚠️ SimPro {method} {path} returned {response.status_code}, retrying in {delay:.2f}s"
                )
                await asyncio.sleep(delay)
                continue

            if response.status_code >= 400:
                raise ProviderError(
                    f"SimPro API request failed: {response.reason_phrase} ({response.status_code})",
                    provider_status=response.status_code,
                    details={"endpoint": path, "body": response.text[:500]},
                    retryable=False,
                )

            return response

    async def _get(self, path: str, params: Optional[dict] = None) -> Any:
        response = await self._send("GET", path, params=params)
        if not response.content:
            return None
        return response.json()

    async def _get_all(self, path: str, params: Optional[dict] = None) -> list:
        """Follow SimPro's Result-Pages header across pages"""
        params = dict(params or {})
        params.setdefault("pageSize", PAGE_SIZE)
        page = 1
        items: list = []
        while True:
            response = await self._send("GET", path, params={**params, "page": page})
            body = response.json() if response.content else []
            items.extend(body or [])
            total_pages = int(response.headers.get("Result-Pages", "1") or 1)
            if page >= total_pages:
                return items
            page += 1

    # -------------------------------------------------------------- endpoints

    async def get_company(self, company_id: str = "0") -> dict:
        return await self._get(f"/companies/{company_id}")

    async def get_employees(self) -> list[SimproEmployee]:
        rows = await self._get_all("/companies/0/employees/", {"columns": "ID,Name,Email,Active,DisplayOnSchedule"})
        return [SimproEmployee.model_validate(row) for row in rows]

    async def get_employee(self, employee_id: int) -> SimproEmployee:
        """Employee details including the weekly Availability blocks"""
        row = await self._get(f"/companies/0/employees/{employee_id}")
        return SimproEmployee.model_validate(row)

    async def get_schedules(
        self, start_date: str, end_date: str, staff_id: Optional[int] = None
    ) -> list[SimproSchedule]:
        params = {"Date": f"between({start_date},{end_date})"}
        if staff_id:
            params["Staff.ID"] = staff_id
        logger.info(f"📅 Fetching SimPro schedules {start_date} → {end_date}")
        rows = await self._get_all("/companies/0/schedules/", params)
        return [SimproSchedule.model_validate(row) for row in rows]
