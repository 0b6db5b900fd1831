"""
Request authentication and organization context

Sessions are issued by the external auth service and stored in the shared
`sessions` table. This module only reads them: a bearer token resolves to a
session, the session to a user, and the user plus the requested organization
to an OrganizationContext that is passed explicitly into services.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .database import get_db
from .errors import AuthenticationError, AuthorizationError
from .models import AuthSession, Member, Organization, User, utcnow

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

ADMIN_ROLES = ("owner", "admin")


@dataclass
class OrganizationContext:
    user: User
    organization: Organization
    role: str

    @property
    def organization_id(self) -> str:
        return self.organization.id

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


def get_current_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> AuthSession:
    """Resolve the bearer token to a live session"""
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    token = credentials.credentials
    session = db.query(AuthSession).filter(AuthSession.token == token).first()
    if not session:
        logger.warning("⚠️ Unknown session token presented")
        raise AuthenticationError("Invalid or expired session")

    if session.expires_at <= utcnow():
        logger.info(f"🔒 Session {session.id} expired at {session.expires_at}")
        raise AuthenticationError("Invalid or expired session")

    return session


def get_current_user(session: AuthSession = Depends(get_current_session)) -> User:
    return session.user


def get_organization_context(
    session: AuthSession = Depends(get_current_session),
    x_organization_id: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> OrganizationContext:
    """Membership check for the organization named in X-Organization-Id (or the session's active one)"""
    organization_id = x_organization_id or session.active_organization_id
    if not organization_id:
        raise AuthorizationError("No active organization selected", code="NO_ACTIVE_ORGANIZATION")

    membership = (
        db.query(Member)
        .filter(Member.organization_id == organization_id, Member.user_id == session.user_id)
        .first()
    )
    if not membership:
        logger.warning(
            f"⚠️ User {session.user_id} attempted access to organization {organization_id} without membership"
        )
        raise AuthorizationError("You are not a member of this organization")

    return OrganizationContext(
        user=session.user,
        organization=membership.organization,
        role=membership.role,
    )


def require_admin(context: OrganizationContext = Depends(get_organization_context)) -> OrganizationContext:
    if not context.is_admin:
        raise AuthorizationError(
            "Only organization owners and admins can perform this action",
            details={"role": context.role},
        )
    return context
