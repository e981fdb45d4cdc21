"""
API Dependencies

Reusable FastAPI dependencies for authentication and authorization.

get_current_user is where a request's database session gets its tenant
context: once the token is verified against the request's organization,
the session is bound to that organization and every later query in the
request is filtered by it.
"""
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from ethicsdesk.database import get_db
from ethicsdesk.models.organization import Organization
from ethicsdesk.models.session import UserSession
from ethicsdesk.models.user import User, UserRole, ADMIN_ROLES, CASE_MANAGER_ROLES
from ethicsdesk.core.security import decode_access_token, verify_token_organization
from ethicsdesk.core.exceptions import AuthenticationError, TenantIsolationError
from ethicsdesk.core.permissions import require_roles
from ethicsdesk.core.tenancy import set_organization
from ethicsdesk.utils.logging import log_security_event
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer()


def get_current_organization(request: Request) -> Organization:
    """
    Organization resolved by TenantMiddleware.

    Missing state means the route was not covered by the middleware,
    which is a configuration error.
    """
    organization = getattr(request.state, "organization", None)
    if not organization:
        logger.error("No organization in request state - middleware may have failed")
        raise TenantIsolationError("Organization context not available")
    return organization


async def get_token_payload(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> dict:
    payload = decode_access_token(credentials.credentials)
    if not payload:
        raise AuthenticationError("Invalid or expired token")
    if not payload.get("sub") or not payload.get("session_id"):
        raise AuthenticationError("Invalid token payload")
    return payload


async def get_current_user(
    payload: dict = Depends(get_token_payload),
    db: Session = Depends(get_db),
    organization: Organization = Depends(get_current_organization)
) -> User:
    """
    Get current authenticated user.

    1. Token organization must match the request organization
    2. Session is bound to that organization
    3. User and login session must exist and be active
    """
    user_id = payload["sub"]

    if not verify_token_organization(payload, organization.id):
        log_security_event(
            "tenant_isolation_violation",
            {
                "user_id": user_id,
                "organization_id": organization.id,
                "token_organization_id": payload.get("organization_id"),
            },
            logger
        )
        raise TenantIsolationError("Token organization mismatch")

    set_organization(db, organization.id)

    user = db.query(User).filter(
        User.id == user_id,
        User.organization_id == organization.id
    ).first()

    if not user:
        logger.warning(f"User not found: {user_id} in organization {organization.id}")
        raise AuthenticationError("User not found")

    if not user.is_active:
        raise AuthenticationError("User account is inactive")

    user_session = db.query(UserSession).filter(
        UserSession.id == payload["session_id"],
        UserSession.user_id == user.id
    ).first()
    if user_session is None or not user_session.is_valid():
        raise AuthenticationError("Session has expired or been revoked")

    return user


async def get_current_session_id(payload: dict = Depends(get_token_payload)) -> str:
    return payload["session_id"]


async def require_admin(current_user: User = Depends(get_current_user)) -> User:
    """Administrative roles only."""
    require_roles(current_user, ADMIN_ROLES)
    return current_user


async def require_case_manager(current_user: User = Depends(get_current_user)) -> User:
    """Roles that work cases: pipeline, outcome, merge."""
    require_roles(current_user, CASE_MANAGER_ROLES)
    return current_user


async def require_operator(current_user: User = Depends(get_current_user)) -> User:
    """Hotline operators."""
    require_roles(current_user, {UserRole.OPERATOR})
    return current_user
