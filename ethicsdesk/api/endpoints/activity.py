"""
Activity Endpoints

Read access to the audit log of the current organization.
"""
from datetime import datetime
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from ethicsdesk.database import get_db
from ethicsdesk.models.audit_log import AuditEntityType, AuditActionCategory
from ethicsdesk.models.organization import Organization
from ethicsdesk.models.user import User
from ethicsdesk.schemas.activity import ActivityListResponse
from ethicsdesk.api.deps import get_current_organization, require_admin, require_case_manager
from ethicsdesk.services.activity import ActivityService

router = APIRouter(prefix="/activity", tags=["activity"])


@router.get("", response_model=ActivityListResponse)
async def get_organization_activity(
    action: Optional[str] = Query(None),
    action_category: Optional[AuditActionCategory] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(require_admin),
    organization: Organization = Depends(get_current_organization),
    db: Session = Depends(get_db)
):
    """Organization-wide feed. Admin roles only."""
    return ActivityService(db).get_organization_activity(
        organization.id,
        action=action,
        action_category=action_category,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )


@router.get("/entity/{entity_type}/{entity_id}", response_model=ActivityListResponse)
async def get_entity_timeline(
    entity_type: AuditEntityType,
    entity_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(require_case_manager),
    organization: Organization = Depends(get_current_organization),
    db: Session = Depends(get_db)
):
    return ActivityService(db).get_entity_timeline(
        entity_type, entity_id, organization.id, page=page, limit=limit
    )


@router.get("/users/{user_id}", response_model=ActivityListResponse)
async def get_user_activity(
    user_id: str,
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(require_admin),
    organization: Organization = Depends(get_current_organization),
    db: Session = Depends(get_db)
):
    return ActivityService(db).get_user_activity(
        user_id,
        organization.id,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
