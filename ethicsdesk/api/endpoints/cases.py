"""
Case Endpoints

Case management for compliance staff: listing, creation, status,
pipeline stage, outcome and merge.

All endpoints require a case-working role. Cases of other organizations
are invisible to the session and come back as 404.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional

from ethicsdesk.database import get_db
from ethicsdesk.models.case import CaseStatus, CaseOutcome
from ethicsdesk.models.organization import Organization
from ethicsdesk.models.user import User
from ethicsdesk.schemas.case import (
    CaseCreate,
    CaseResponse,
    CaseListResponse,
    CaseStatusUpdate,
    PipelineStageUpdate,
    OutcomeUpdate,
    MergeRequest,
    CanMergeResponse,
    PipelineHistoryEntry,
    MergeHistoryEntry,
)
from ethicsdesk.api.deps import get_current_organization, require_case_manager
from ethicsdesk.services.cases import CaseService
from ethicsdesk.services.case_pipeline import CasePipelineService
from ethicsdesk.services.case_merge import CaseMergeService

router = APIRouter(prefix="/cases", tags=["cases"])


@router.get("", response_model=CaseListResponse)
async def list_cases(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    case_status: Optional[CaseStatus] = Query(None, alias="status"),
    pipeline_stage: Optional[str] = Query(None),
    outcome: Optional[CaseOutcome] = Query(None),
    include_merged: bool = Query(False),
    current_user: User = Depends(require_case_manager),
    organization: Organization = Depends(get_current_organization),
    db: Session = Depends(get_db)
):
    """List cases, newest first. Merged cases are hidden unless include_merged."""
    cases, total = CaseService(db).list_cases(
        organization.id,
        status=case_status,
        pipeline_stage=pipeline_stage,
        outcome=outcome,
        include_merged=include_merged,
        page=page,
        page_size=page_size,
    )
    return CaseListResponse(cases=cases, total=total, page=page, page_size=page_size)


@router.post("", response_model=CaseResponse, status_code=status.HTTP_201_CREATED)
async def create_case(
    case_data: CaseCreate,
    current_user: User = Depends(require_case_manager),
    organization: Organization = Depends(get_current_organization),
    db: Session = Depends(get_db)
):
    case = CaseService(db).create_case(organization.id, case_data, actor_id=current_user.id)
    db.commit()
    return case


@router.get("/reference/{reference_number}", response_model=CaseResponse)
async def get_case_by_reference(
    reference_number: str,
    current_user: User = Depends(require_case_manager),
    organization: Organization = Depends(get_current_organization),
    db: Session = Depends(get_db)
):
    return CaseService(db).get_by_reference(organization.id, reference_number)


@router.get("/{case_id}", response_model=CaseResponse)
async def get_case(
    case_id: str,
    current_user: User = Depends(require_case_manager),
    organization: Organization = Depends(get_current_organization),
    db: Session = Depends(get_db)
):
    return CaseService(db).get_case(organization.id, case_id)


@router.patch("/{case_id}/status", response_model=CaseResponse)
async def update_case_status(
    case_id: str,
    body: CaseStatusUpdate,
    current_user: User = Depends(require_case_manager),
    organization: Organization = Depends(get_current_organization),
    db: Session = Depends(get_db)
):
    case = CaseService(db).update_status(organization.id, case_id, body.status, body.rationale, current_user.id)
    db.commit()
    return case


@router.post("/{case_id}/pipeline-stage", response_model=CaseResponse)
async def move_to_stage(
    case_id: str,
    body: PipelineStageUpdate,
    current_user: User = Depends(require_case_manager),
    organization: Organization = Depends(get_current_organization),
    db: Session = Depends(get_db)
):
    case = CasePipelineService(db).move_to_stage(
        organization.id, case_id, body.stage, body.notes, current_user.id
    )
    db.commit()
    return case


@router.post("/{case_id}/outcome", response_model=CaseResponse)
async def set_outcome(
    case_id: str,
    body: OutcomeUpdate,
    current_user: User = Depends(require_case_manager),
    organization: Organization = Depends(get_current_organization),
    db: Session = Depends(get_db)
):
    case = CasePipelineService(db).set_outcome(
        organization.id, case_id, body.outcome, body.notes, current_user.id
    )
    db.commit()
    return case


@router.get("/{case_id}/pipeline-history", response_model=List[PipelineHistoryEntry])
async def get_pipeline_history(
    case_id: str,
    current_user: User = Depends(require_case_manager),
    organization: Organization = Depends(get_current_organization),
    db: Session = Depends(get_db)
):
    return CasePipelineService(db).get_pipeline_history(organization.id, case_id)


@router.post("/{case_id}/merge", response_model=CaseResponse)
async def merge_case(
    case_id: str,
    body: MergeRequest,
    current_user: User = Depends(require_case_manager),
    organization: Organization = Depends(get_current_organization),
    db: Session = Depends(get_db)
):
    """Merge this case into body.target_case_id. Returns the target."""
    target = CaseMergeService(db).merge(
        organization.id, case_id, body.target_case_id, body.reason, current_user.id
    )
    db.commit()
    return target


@router.get("/{case_id}/can-merge", response_model=CanMergeResponse)
async def can_merge(
    case_id: str,
    target_case_id: str = Query(...),
    current_user: User = Depends(require_case_manager),
    organization: Organization = Depends(get_current_organization),
    db: Session = Depends(get_db)
):
    allowed, reason = CaseMergeService(db).can_merge(organization.id, case_id, target_case_id)
    return CanMergeResponse(can_merge=allowed, reason=reason)


@router.get("/{case_id}/merge-history", response_model=List[MergeHistoryEntry])
async def get_merge_history(
    case_id: str,
    current_user: User = Depends(require_case_manager),
    organization: Organization = Depends(get_current_organization),
    db: Session = Depends(get_db)
):
    return CaseMergeService(db).get_merge_history(organization.id, case_id)


@router.get("/{case_id}/primary", response_model=CaseResponse)
async def get_primary_case(
    case_id: str,
    current_user: User = Depends(require_case_manager),
    organization: Organization = Depends(get_current_organization),
    db: Session = Depends(get_db)
):
    """The case this one was (transitively) merged into, or itself."""
    return CaseMergeService(db).get_primary_case(organization.id, case_id)
