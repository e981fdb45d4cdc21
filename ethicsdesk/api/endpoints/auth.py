"""
Authentication Endpoints

Login, token refresh and logout.

Login and refresh run before the request has a tenant context; the
organization comes from the request body (login) or the signed refresh
token (refresh).
"""
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from ethicsdesk.database import get_db
from ethicsdesk.models.user import User
from ethicsdesk.schemas.auth import LoginRequest, RefreshRequest, Token
from ethicsdesk.schemas.user import UserResponse
from ethicsdesk.api.deps import get_current_user, get_current_session_id
from ethicsdesk.services.auth import AuthService, TokenPair
from ethicsdesk.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


def _client_details(request: Request):
    return (
        request.headers.get("User-Agent"),
        request.client.host if request.client else None,
    )


def _token_response(tokens: TokenPair) -> Token:
    return Token(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_type="bearer",
        expires_in=tokens.expires_in,
    )


@router.post("/login", response_model=Token)
async def login(
    credentials: LoginRequest,
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Authenticate a user within an organization.

    Returns an access token and a refresh token bound to a new session.
    Failures are indistinguishable to the caller.
    """
    user_agent, ip_address = _client_details(request)
    tokens = AuthService(db).login(
        credentials.organization_slug,
        credentials.email,
        credentials.password,
        user_agent=user_agent,
        ip_address=ip_address,
    )
    return _token_response(tokens)


@router.post("/refresh", response_model=Token)
async def refresh_token(
    body: RefreshRequest,
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Rotate a refresh token.

    The presented token's session is revoked; replaying it afterwards fails.
    """
    user_agent, ip_address = _client_details(request)
    tokens = AuthService(db).refresh(body.refresh_token, user_agent=user_agent, ip_address=ip_address)
    return _token_response(tokens)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    current_user: User = Depends(get_current_user),
    session_id: str = Depends(get_current_session_id),
    db: Session = Depends(get_db)
):
    """Revoke the session behind the presented access token."""
    AuthService(db).logout(current_user, session_id)
    logger.info(f"User logged out: {current_user.id}")
    return None


@router.get("/me", response_model=UserResponse)
async def me(current_user: User = Depends(get_current_user)):
    return current_user
