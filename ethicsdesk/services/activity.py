"""
Activity Service

Audit logging for every mutation in the platform.

Logging is non-blocking: a failed audit write is logged and swallowed so
it never breaks the operation being audited. Each insert runs inside a
SAVEPOINT, so a failure rolls back only the audit row and leaves the
caller's transaction usable. The caller's own pending changes are flushed
first, outside the SAVEPOINT, so their errors still reach the caller.
An entry for an organization the session may not write to is skipped.

Actor names are denormalized onto the entry so the log stays readable
after the acting user is deleted.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ethicsdesk.core.tenancy import get_tenant_context
from ethicsdesk.models.audit_log import AuditLog, AuditEntityType, AuditActionCategory, ActorType
from ethicsdesk.models.user import User
from ethicsdesk.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 20

_ACTION_CATEGORIES = {
    "created": AuditActionCategory.CREATE,
    "deleted": AuditActionCategory.DELETE,
    "viewed": AuditActionCategory.ACCESS,
    "exported": AuditActionCategory.ACCESS,
    "login": AuditActionCategory.SECURITY,
    "login_failed": AuditActionCategory.SECURITY,
    "logout": AuditActionCategory.SECURITY,
    "synced": AuditActionCategory.SYSTEM,
}


@dataclass
class DescriptionContext:
    """Inputs for a generated activity description."""
    action: str
    entity_type: str
    actor_name: Optional[str] = None
    actor_type: Optional[ActorType] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    assignee_name: Optional[str] = None
    changed_fields: List[str] = field(default_factory=list)
    format: Optional[str] = None
    reason: Optional[str] = None
    count: Optional[int] = None
    location: Optional[str] = None
    email: Optional[str] = None


class ActivityDescriptionGenerator:
    """Stateless natural-language descriptions for audit entries."""

    def generate(self, context: DescriptionContext) -> str:
        actor = self.resolve_actor_name(context)
        action = context.action
        entity = context.entity_type

        if action == "created":
            return f"{actor} created {entity}"
        if action == "updated":
            if context.count is not None and context.count > 1:
                return f"{actor} updated {context.count} fields on {entity}"
            if context.changed_fields:
                return f"{actor} updated {', '.join(context.changed_fields)} on {entity}"
            return f"{actor} updated {entity}"
        if action == "deleted":
            return f"{actor} deleted {entity}"
        if action == "archived":
            return f"{actor} archived {entity}"
        if action == "status_changed":
            if context.old_value and context.new_value:
                return f"{actor} changed status from {context.old_value} to {context.new_value}"
            if context.new_value:
                return f"{actor} changed status to {context.new_value}"
            return f"{actor} changed status"
        if action == "assigned":
            if context.assignee_name:
                return f"{actor} assigned {entity} to {context.assignee_name}"
            return f"{actor} assigned {entity}"
        if action == "unassigned":
            if context.assignee_name:
                return f"{actor} unassigned {entity} from {context.assignee_name}"
            return f"{actor} unassigned {entity}"
        if action == "commented":
            return f"{actor} added comment on {entity}"
        if action == "viewed":
            return f"{actor} viewed {entity}"
        if action == "exported":
            if context.format:
                return f"{actor} exported {entity} to {context.format}"
            return f"{actor} exported {entity}"
        if action == "approved":
            return f"{actor} approved {entity}"
        if action == "rejected":
            if context.reason:
                return f"{actor} rejected {entity}: {context.reason}"
            return f"{actor} rejected {entity}"
        if action == "login":
            if context.location:
                return f"{actor} logged in from {context.location}"
            return f"{actor} logged in"
        if action == "login_failed":
            if context.email:
                return f"Failed login attempt for {context.email}"
            return "Failed login attempt"

        return f"{actor} performed {action} on {entity}"

    @staticmethod
    def resolve_actor_name(context: DescriptionContext) -> str:
        actor_type = context.actor_type
        if actor_type == ActorType.SYSTEM:
            return "System"
        if context.actor_name:
            return context.actor_name
        if actor_type == ActorType.ANONYMOUS:
            return "Anonymous reporter"
        if actor_type == ActorType.INTEGRATION:
            return "Integration"
        return "User"


def infer_action_category(action: str) -> AuditActionCategory:
    return _ACTION_CATEGORIES.get(action, AuditActionCategory.UPDATE)


def format_entity_type(entity_type: AuditEntityType) -> str:
    """CASE -> case"""
    return entity_type.value.lower().replace("_", " ")


class ActivityService:
    """
    Writes and queries audit log entries.

    All queries run through the caller's session and are therefore already
    limited to the session's organization; organization_id is still passed
    explicitly so entries are always stamped with the right tenant.
    """

    def __init__(self, db: Session, generator: Optional[ActivityDescriptionGenerator] = None):
        self.db = db
        self.generator = generator or ActivityDescriptionGenerator()

    def log(
        self,
        entity_type: AuditEntityType,
        entity_id: str,
        action: str,
        organization_id: str,
        actor_user_id: Optional[str] = None,
        actor_type: Optional[ActorType] = None,
        action_description: Optional[str] = None,
        action_category: Optional[AuditActionCategory] = None,
        changes: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> Optional[AuditLog]:
        """
        Record an audit entry. Returns the entry, or None if it could not
        be written.
        """
        self.db.flush()

        if not get_tenant_context(self.db).allows(organization_id):
            logger.error(
                f"Refused to log activity {action} on {entity_type}:{entity_id} "
                f"outside the current organization",
                extra={"organization_id": organization_id}
            )
            return None

        try:
            resolved_actor_type = actor_type or (ActorType.USER if actor_user_id else ActorType.SYSTEM)
            actor_name = self._resolve_actor_name(actor_user_id, organization_id)

            if not action_description:
                old_value, new_value = _first_change(changes)
                action_description = self.generator.generate(DescriptionContext(
                    action=action,
                    entity_type=format_entity_type(entity_type),
                    actor_name=actor_name,
                    actor_type=resolved_actor_type,
                    old_value=old_value,
                    new_value=new_value,
                ))

            entry = AuditLog(
                organization_id=organization_id,
                entity_type=entity_type,
                entity_id=entity_id,
                action=action,
                action_category=action_category or infer_action_category(action),
                action_description=action_description,
                actor_user_id=actor_user_id,
                actor_type=resolved_actor_type,
                actor_name=actor_name,
                changes=changes,
                context=context,
                ip_address=ip_address,
                user_agent=user_agent,
                request_id=request_id,
            )
            with self.db.begin_nested():
                self.db.add(entry)
        except (SQLAlchemyError, ValueError) as e:
            logger.error(
                f"Failed to log activity {action} on {entity_type}:{entity_id}: {e}",
                exc_info=True,
                extra={"organization_id": organization_id}
            )
            return None

        logger.debug(f"Activity logged: {action_description} [{entity_type.value}:{entity_id}]")
        return entry

    def _resolve_actor_name(self, actor_user_id: Optional[str], organization_id: str) -> Optional[str]:
        if not actor_user_id:
            return None
        user = self.db.query(User).filter(
            User.id == actor_user_id, User.organization_id == organization_id
        ).first()
        if user is None:
            return None
        return user.full_name

    def get_entity_timeline(
        self,
        entity_type: AuditEntityType,
        entity_id: str,
        organization_id: str,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> Dict[str, Any]:
        """All activity for one entity, newest first."""
        query = self.db.query(AuditLog).filter(
            AuditLog.organization_id == organization_id,
            AuditLog.entity_type == entity_type,
            AuditLog.entity_id == entity_id,
        )
        return self._paginate(query, page, limit)

    def get_organization_activity(
        self,
        organization_id: str,
        action: Optional[str] = None,
        action_category: Optional[AuditActionCategory] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> Dict[str, Any]:
        """Recent activity across the organization."""
        query = self.db.query(AuditLog).filter(AuditLog.organization_id == organization_id)
        if action:
            query = query.filter(AuditLog.action == action)
        if action_category:
            query = query.filter(AuditLog.action_category == action_category)
        query = _date_range(query, start_date, end_date)
        return self._paginate(query, page, limit)

    def get_user_activity(
        self,
        actor_user_id: str,
        organization_id: str,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> Dict[str, Any]:
        """Activity performed by one user."""
        query = self.db.query(AuditLog).filter(
            AuditLog.organization_id == organization_id,
            AuditLog.actor_user_id == actor_user_id,
        )
        query = _date_range(query, start_date, end_date)
        return self._paginate(query, page, limit)

    def _paginate(self, query, page: int, limit: int) -> Dict[str, Any]:
        total = query.count()
        items = (
            query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return {
            "items": items,
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit) if limit else 0,
        }


def _first_change(changes: Optional[Dict[str, Any]]):
    """Pull the first old/new value pair out of a {"old_value": {...}, "new_value": {...}} diff."""
    if not changes:
        return None, None
    old = changes.get("old_value") or {}
    new = changes.get("new_value") or {}
    old_value = str(next(iter(old.values()))) if old else None
    new_value = str(next(iter(new.values()))) if new else None
    return old_value, new_value


def _date_range(query, start_date: Optional[datetime], end_date: Optional[datetime]):
    if start_date:
        query = query.filter(AuditLog.created_at >= start_date)
    if end_date:
        query = query.filter(AuditLog.created_at <= end_date)
    return query
