"""
Authentication Service

Login, refresh-token rotation and logout.

Login and refresh are the bootstrap paths: they run before any tenant
context exists, so the user/session lookups happen inside
bypass_rls(...). Once the user is known, the session is bound to the
user's organization and every write from then on is tenant-checked.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ethicsdesk.config import get_settings
from ethicsdesk.core.exceptions import AuthenticationError
from ethicsdesk.core.security import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    verify_password,
)
from ethicsdesk.core.tenancy import BypassReason, bypass_rls, set_organization
from ethicsdesk.models.audit_log import AuditEntityType, ActorType
from ethicsdesk.models.organization import Organization
from ethicsdesk.models.session import UserSession
from ethicsdesk.models.user import User
from ethicsdesk.services.activity import ActivityService
from ethicsdesk.utils.logging import get_logger, log_security_event

logger = get_logger(__name__)
settings = get_settings()

INVALID_CREDENTIALS = "Invalid credentials"


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int
    session_id: str


class AuthService:
    def __init__(self, db: Session, activity: Optional[ActivityService] = None):
        self.db = db
        self.activity = activity or ActivityService(db)

    def login(
        self,
        organization_slug: str,
        email: str,
        password: str,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> TokenPair:
        """
        Authenticate within one organization and open a session.

        Every failure raises the same generic AuthenticationError so the
        response never reveals which organizations or emails exist.
        """
        organization = self.db.query(Organization).filter(
            Organization.slug == organization_slug
        ).first()
        if organization is None or not organization.is_active:
            log_security_event(
                "failed_login",
                {"reason": "organization_unavailable", "organization_slug": organization_slug},
                logger
            )
            raise AuthenticationError(INVALID_CREDENTIALS)

        with bypass_rls(self.db, BypassReason.LOGIN, organization_slug=organization_slug):
            user = self.db.query(User).filter(
                User.organization_id == organization.id,
                func.lower(User.email) == email.lower()
            ).first()

            failure = None
            if user is None:
                failure = "user_not_found"
            elif not verify_password(password, user.password_hash):
                failure = "invalid_password"
            elif not user.is_active:
                failure = "user_inactive"

            if failure:
                log_security_event(
                    "failed_login",
                    {"reason": failure, "organization_id": organization.id},
                    logger
                )
                self.activity.log(
                    entity_type=AuditEntityType.USER,
                    entity_id=user.id if user else organization.id,
                    action="login_failed",
                    organization_id=organization.id,
                    actor_type=ActorType.SYSTEM,
                    action_description=f"Failed login attempt for {email}",
                    context={"reason": failure},
                    ip_address=ip_address,
                    user_agent=user_agent,
                )
                self.db.commit()
                raise AuthenticationError(INVALID_CREDENTIALS)

        # objects loaded under the bypass are detached when it ends
        set_organization(self.db, organization.id)
        user = self.db.get(User, user.id)

        user.last_login_at = datetime.utcnow()
        user_session = self._open_session(user, user_agent, ip_address)
        self.activity.log(
            entity_type=AuditEntityType.USER,
            entity_id=user.id,
            action="login",
            organization_id=organization.id,
            actor_user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.db.commit()

        logger.info(
            f"Successful login: user={user.id}",
            extra={"organization_id": organization.id, "user_id": user.id}
        )
        return self._issue_tokens(user, user_session)

    def refresh(self, refresh_token: str, user_agent: Optional[str] = None, ip_address: Optional[str] = None) -> TokenPair:
        """
        Exchange a refresh token for a new token pair.

        The old session is revoked and the new one links back to it. A
        refresh token whose session is already revoked is treated as
        stolen.
        """
        payload = decode_refresh_token(refresh_token)
        if not payload:
            raise AuthenticationError("Invalid or expired refresh token")

        session_id = payload.get("session_id")
        organization_id = payload.get("organization_id")

        with bypass_rls(self.db, BypassReason.TOKEN_REFRESH, session_id=session_id):
            old_session = self.db.query(UserSession).filter(
                UserSession.id == session_id,
                UserSession.organization_id == organization_id
            ).first()
            user = old_session.user if old_session else None

        if old_session is None or user is None:
            raise AuthenticationError("Invalid or expired refresh token")

        if not old_session.is_valid():
            log_security_event(
                "refresh_token_reuse",
                {"organization_id": organization_id, "user_id": user.id},
                logger
            )
            raise AuthenticationError("Invalid or expired refresh token")

        if not user.is_active:
            raise AuthenticationError("User account is inactive")

        set_organization(self.db, organization_id)
        old_session = self.db.get(UserSession, old_session.id)
        user = self.db.get(User, user.id)

        old_session.revoke()
        new_session = self._open_session(user, user_agent, ip_address, previous_session_id=old_session.id)
        self.db.commit()

        return self._issue_tokens(user, new_session)

    def logout(self, user: User, session_id: str) -> None:
        user_session = self.db.query(UserSession).filter(
            UserSession.id == session_id,
            UserSession.user_id == user.id,
            UserSession.organization_id == user.organization_id
        ).first()
        if user_session is None:
            return

        user_session.revoke()
        self.activity.log(
            entity_type=AuditEntityType.SESSION,
            entity_id=user_session.id,
            action="logout",
            organization_id=user.organization_id,
            actor_user_id=user.id,
            action_description=f"{user.full_name} logged out",
        )
        self.db.commit()

    def _open_session(
        self,
        user: User,
        user_agent: Optional[str],
        ip_address: Optional[str],
        previous_session_id: Optional[str] = None,
    ) -> UserSession:
        user_session = UserSession(
            organization_id=user.organization_id,
            user_id=user.id,
            user_agent=user_agent,
            ip_address=ip_address,
            expires_at=datetime.utcnow() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
            previous_session_id=previous_session_id,
        )
        self.db.add(user_session)
        self.db.flush()
        return user_session

    @staticmethod
    def _issue_tokens(user: User, user_session: UserSession) -> TokenPair:
        claims = {
            "sub": user.id,
            "organization_id": user.organization_id,
            "session_id": user_session.id,
        }
        return TokenPair(
            access_token=create_access_token({**claims, "role": user.role.value}),
            refresh_token=create_refresh_token(claims),
            expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            session_id=user_session.id,
        )
