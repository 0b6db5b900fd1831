"""
SimPro credential storage
Loads the organization's linked SimPro account and persists refreshed tokens
"""
import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ....config import SIMPRO_TOKEN_REFRESH_WINDOW_DAYS
from ....errors import NotFoundError, ProviderAuthError
from ....models import Member, ProviderAccount, utcnow
from ....security_utils import decrypt_token, encrypt_token
from .client import SimproClient
from .schemas import SimproTokens

logger = logging.getLogger(__name__)

SIMPRO_PROVIDER_ID = "simpro"


def get_simpro_account(db: Session, organization_id: str) -> Optional[ProviderAccount]:
    """First member of the organization that has linked a SimPro account"""
    return (
        db.query(ProviderAccount)
        .join(Member, Member.user_id == ProviderAccount.user_id)
        .filter(
            Member.organization_id == organization_id,
            ProviderAccount.provider_id == SIMPRO_PROVIDER_ID,
            ProviderAccount.access_token.isnot(None),
        )
        .order_by(Member.created_at.asc())
        .first()
    )


def save_tokens(db: Session, account: ProviderAccount, tokens: SimproTokens) -> None:
    account.access_token = encrypt_token(tokens.access_token)
    account.refresh_token = encrypt_token(tokens.refresh_token)
    account.access_token_expires_at = tokens.access_token_expires_at
    account.refresh_token_expires_at = tokens.refresh_token_expires_at
    account.last_refresh_error = None
    db.commit()


def build_client_for_account(db: Session, account: ProviderAccount, **client_kwargs) -> SimproClient:
    """SimproClient for a stored account; refreshed tokens are written back to the row"""
    if not account.build_name:
        raise ProviderAuthError("SimPro account is missing its build name")

    try:
        access_token = decrypt_token(account.access_token)
        refresh_token = decrypt_token(account.refresh_token) if account.refresh_token else ""
    except ValueError as e:
        raise ProviderAuthError("Stored SimPro credentials are unreadable; reconnect SimPro") from e

    async def persist(tokens: SimproTokens) -> None:
        save_tokens(db, account, tokens)
        logger.info(f"💾 Saved refreshed SimPro tokens for account {account.id}")

    return SimproClient(
        access_token=access_token,
        refresh_token=refresh_token,
        build_name=account.build_name,
        domain=account.domain,
        on_token_refresh=persist,
        **client_kwargs,
    )


def get_simpro_client_for_organization(db: Session, organization_id: str, **client_kwargs) -> SimproClient:
    """
    Authenticated SimPro client for an organization

    Raises:
        NotFoundError: If no member of the organization has connected SimPro
    """
    account = get_simpro_account(db, organization_id)
    if not account:
        logger.warning(f"⚠️ No SimPro account linked for organization {organization_id}")
        raise NotFoundError(
            "SimPro is not connected for this organization", code="SIMPRO_NOT_CONNECTED"
        )
    return build_client_for_account(db, account, **client_kwargs)


def accounts_due_for_refresh(db: Session, window_days: int = SIMPRO_TOKEN_REFRESH_WINDOW_DAYS) -> list[ProviderAccount]:
    """SimPro accounts whose refresh token expires within the window (or has no recorded expiry)"""
    cutoff = utcnow() + timedelta(days=window_days)
    return (
        db.query(ProviderAccount)
        .filter(
            ProviderAccount.provider_id == SIMPRO_PROVIDER_ID,
            ProviderAccount.refresh_token.isnot(None),
        )
        .filter(
            (ProviderAccount.refresh_token_expires_at.is_(None))
            | (ProviderAccount.refresh_token_expires_at <= cutoff)
        )
        .all()
    )


async def refresh_account_tokens(db: Session, account: ProviderAccount, **client_kwargs) -> bool:
    """Proactively rotate one account's tokens; failures are recorded on the row"""
    try:
        async with build_client_for_account(db, account, **client_kwargs) as client:
            await client.refresh_access_token()
        return True
    except Exception as e:
        logger.error(f"❌ SimPro token refresh failed for account {account.id}: {e}")
        account.last_refresh_error = str(e)[:1000]
        db.commit()
        return False
