"""
Activity Schemas

Response models for audit log queries.
"""
from pydantic import BaseModel
from typing import Any, Dict, Optional
from datetime import datetime
from ethicsdesk.models.audit_log import AuditEntityType, AuditActionCategory, ActorType


class AuditLogResponse(BaseModel):
    id: str
    organization_id: str
    entity_type: AuditEntityType
    entity_id: str
    action: str
    action_category: AuditActionCategory
    action_description: str
    actor_user_id: Optional[str]
    actor_type: ActorType
    actor_name: Optional[str]
    changes: Optional[Dict[str, Any]]
    context: Optional[Dict[str, Any]]
    created_at: datetime

    class Config:
        from_attributes = True


class ActivityListResponse(BaseModel):
    """Paginated activity feed."""
    items: list[AuditLogResponse]
    total: int
    page: int
    limit: int
    total_pages: int
