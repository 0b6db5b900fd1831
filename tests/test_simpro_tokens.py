"""Tests for SimPro credential storage and proactive token rotation."""

from datetime import timedelta

import httpx
import pytest

from booking_app.domain.integrations.simpro.tokens import (
    accounts_due_for_refresh,
    get_simpro_account,
    get_simpro_client_for_organization,
    refresh_account_tokens,
)
from booking_app.errors import NotFoundError, ProviderAuthError
from booking_app.models import utcnow
from booking_app.security_utils import decrypt_token


def token_endpoint(request: httpx.Request) -> httpx.Response:
    assert request.url.path == "/oauth2/token"
    return httpx.Response(200, json={"access_token": "new-access", "refresh_token": "new-refresh", "expires_in": 3600})


class TestClientForOrganization:
    def test_not_connected(self, db, organization, owner):
        with pytest.raises(NotFoundError) as exc_info:
            get_simpro_client_for_organization(db, organization.id)
        assert exc_info.value.code == "SIMPRO_NOT_CONNECTED"

    async def test_client_uses_decrypted_tokens(self, db, organization, simpro_account):
        async with get_simpro_client_for_organization(db, organization.id) as client:
            assert client.access_token == "stored-access"
            assert client.refresh_token == "stored-refresh"
            assert client.base_url == "https://sparkle.simprosuite.com/api/v1.0"

    def test_missing_build_name(self, db, organization, simpro_account):
        simpro_account.build_name = None
        db.commit()
        with pytest.raises(ProviderAuthError):
            get_simpro_client_for_organization(db, organization.id)

    def test_account_lookup_is_scoped_to_members(self, db, simpro_account):
        assert get_simpro_account(db, "another-org") is None


class TestTokenRotation:
    async def test_refresh_persists_encrypted_tokens(self, db, simpro_account):
        ok = await refresh_account_tokens(db, simpro_account, transport=httpx.MockTransport(token_endpoint))

        assert ok is True
        db.refresh(simpro_account)
        assert decrypt_token(simpro_account.access_token) == "new-access"
        assert decrypt_token(simpro_account.refresh_token) == "new-refresh"
        assert simpro_account.access_token != "new-access"
        assert simpro_account.refresh_token_expires_at > utcnow() + timedelta(days=7)
        assert simpro_account.last_refresh_error is None

    async def test_failed_refresh_is_recorded(self, db, simpro_account):
        transport = httpx.MockTransport(lambda request: httpx.Response(400, json={"error": "invalid_grant"}))

        ok = await refresh_account_tokens(db, simpro_account, transport=transport)

        assert ok is False
        db.refresh(simpro_account)
        assert "invalid_grant" in simpro_account.last_refresh_error
        assert decrypt_token(simpro_account.access_token) == "stored-access"

    def test_accounts_due_for_refresh(self, db, simpro_account):
        assert accounts_due_for_refresh(db) == [simpro_account]

        simpro_account.refresh_token_expires_at = utcnow() + timedelta(days=30)
        db.commit()
        assert accounts_due_for_refresh(db) == []

        simpro_account.refresh_token_expires_at = utcnow() + timedelta(days=2)
        db.commit()
        assert accounts_due_for_refresh(db) == [simpro_account]
