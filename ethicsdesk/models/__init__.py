"""
Database Models

Every model except Organization is tenant-scoped (TenantScoped mixin) and
filtered by the session's tenant context. This is enforced at both the
application and the database level.
"""
from ethicsdesk.models.organization import Organization
from ethicsdesk.models.user import User, UserRole
from ethicsdesk.models.session import UserSession
from ethicsdesk.models.case import (
    Case,
    CaseStatus,
    CaseOutcome,
    SourceChannel,
    ReporterType,
    Severity,
)
from ethicsdesk.models.audit_log import AuditLog, AuditEntityType, AuditActionCategory, ActorType
from ethicsdesk.models.attachment import Attachment

__all__ = [
    "Organization",
    "User",
    "UserRole",
    "UserSession",
    "Case",
    "CaseStatus",
    "CaseOutcome",
    "SourceChannel",
    "ReporterType",
    "Severity",
    "AuditLog",
    "AuditEntityType",
    "AuditActionCategory",
    "ActorType",
    "Attachment",
]
