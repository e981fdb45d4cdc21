"""
User Model

Users belong to exactly one organization and carry a single role.

Tenant-scoped: a user row is only visible through a session whose tenant
context matches its organization_id (or that is running under bypass).
"""
from sqlalchemy import Column, String, Boolean, DateTime, Index, Enum as SQLEnum
from sqlalchemy.orm import relationship
from datetime import datetime
from ethicsdesk.database import Base
from ethicsdesk.core.tenancy import TenantScoped
import uuid
import enum


class UserRole(str, enum.Enum):
    """Platform roles."""
    SYSTEM_ADMIN = "SYSTEM_ADMIN"
    COMPLIANCE_OFFICER = "COMPLIANCE_OFFICER"
    TRIAGE_LEAD = "TRIAGE_LEAD"
    INVESTIGATOR = "INVESTIGATOR"
    POLICY_AUTHOR = "POLICY_AUTHOR"
    POLICY_REVIEWER = "POLICY_REVIEWER"
    DEPARTMENT_ADMIN = "DEPARTMENT_ADMIN"
    MANAGER = "MANAGER"
    EMPLOYEE = "EMPLOYEE"
    OPERATOR = "OPERATOR"


# Roles allowed to work cases (pipeline, outcome, merge)
CASE_MANAGER_ROLES = frozenset({
    UserRole.SYSTEM_ADMIN,
    UserRole.COMPLIANCE_OFFICER,
    UserRole.TRIAGE_LEAD,
    UserRole.INVESTIGATOR,
})

# Roles allowed to administer users within the organization
ADMIN_ROLES = frozenset({
    UserRole.SYSTEM_ADMIN,
    UserRole.COMPLIANCE_OFFICER,
})


class User(TenantScoped, Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    email = Column(String(255), nullable=False, index=True)
    # NULL for SSO-only accounts
    password_hash = Column(String(255), nullable=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)

    role = Column(
        SQLEnum(UserRole, name="user_role"),
        default=UserRole.EMPLOYEE,
        nullable=False,
        index=True
    )

    is_active = Column(Boolean, default=True, nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    last_login_at = Column(DateTime, nullable=True)

    organization = relationship("Organization", back_populates="users")
    sessions = relationship("UserSession", back_populates="user", passive_deletes=True)

    __table_args__ = (
        # Same email may exist in different organizations
        Index('idx_user_org_email', 'organization_id', 'email', unique=True),
        Index('idx_user_org_active', 'organization_id', 'is_active'),
        Index('idx_user_org_role', 'organization_id', 'role'),
    )

    def __repr__(self):
        return f"<User {self.email} (organization={self.organization_id})>"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def can_manage_cases(self) -> bool:
        return self.role in CASE_MANAGER_ROLES

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES
