"""
Audit Log Model

Append-only record of every mutation. Written by ActivityService; never
updated after insert.

actor_name is denormalized so entries stay readable after the user is
deleted (actor_user_id is nulled by ON DELETE SET NULL).
"""
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Index, JSON, Enum as SQLEnum
from datetime import datetime
from ethicsdesk.database import Base
from ethicsdesk.core.tenancy import TenantScoped
import uuid
import enum


class AuditEntityType(str, enum.Enum):
    CASE = "CASE"
    USER = "USER"
    ORGANIZATION = "ORGANIZATION"
    ATTACHMENT = "ATTACHMENT"
    SESSION = "SESSION"


class AuditActionCategory(str, enum.Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    ACCESS = "ACCESS"
    SECURITY = "SECURITY"
    SYSTEM = "SYSTEM"


class ActorType(str, enum.Enum):
    USER = "USER"
    SYSTEM = "SYSTEM"
    ANONYMOUS = "ANONYMOUS"
    INTEGRATION = "INTEGRATION"


class AuditLog(TenantScoped, Base):
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    entity_type = Column(SQLEnum(AuditEntityType, name="audit_entity_type"), nullable=False)
    entity_id = Column(String(36), nullable=False)

    action = Column(String(100), nullable=False)
    action_category = Column(SQLEnum(AuditActionCategory, name="audit_action_category"), nullable=False)
    action_description = Column(Text, nullable=False)

    actor_user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    actor_type = Column(SQLEnum(ActorType, name="actor_type"), nullable=False)
    actor_name = Column(String(255), nullable=True)

    changes = Column(JSON, nullable=True)
    context = Column(JSON, nullable=True)

    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    request_id = Column(String(64), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index('idx_audit_org_entity', 'organization_id', 'entity_type', 'entity_id', 'created_at'),
        Index('idx_audit_org_created', 'organization_id', 'created_at'),
        Index('idx_audit_org_action', 'organization_id', 'action'),
    )

    def __repr__(self):
        return f"<AuditLog {self.action} {self.entity_type}:{self.entity_id}>"
