"""
Session Model

Login sessions backing refresh tokens. Refreshing rotates the session:
the old row is revoked and the new one points back at it through
previous_session_id.
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from ethicsdesk.database import Base
from ethicsdesk.core.tenancy import TenantScoped
import uuid


class UserSession(TenantScoped, Base):
    __tablename__ = "sessions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    user_agent = Column(String(512), nullable=True)
    ip_address = Column(String(64), nullable=True)

    expires_at = Column(DateTime, nullable=False)
    revoked_at = Column(DateTime, nullable=True)
    previous_session_id = Column(String(36), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="sessions")

    __table_args__ = (
        Index('idx_session_org_user', 'organization_id', 'user_id'),
    )

    def __repr__(self):
        return f"<UserSession {self.id} user={self.user_id}>"

    def is_valid(self, now: datetime = None) -> bool:
        now = now or datetime.utcnow()
        return self.revoked_at is None and self.expires_at > now

    def revoke(self):
        if self.revoked_at is None:
            self.revoked_at = datetime.utcnow()
