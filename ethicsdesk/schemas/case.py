"""
Case Schemas

Request/response models for cases and their pipeline, outcome and merge
workflows.
"""
from pydantic import BaseModel, EmailStr, Field
from typing import Optional
from datetime import datetime
from ethicsdesk.models.case import CaseStatus, CaseOutcome, SourceChannel, ReporterType, Severity


class CaseCreate(BaseModel):
    """Schema for creating a case directly (staff entry)."""
    details: str = Field(..., min_length=1)
    summary: Optional[str] = None
    severity: Severity = Severity.MEDIUM
    source_channel: SourceChannel = SourceChannel.DIRECT_ENTRY
    reporter_type: ReporterType = ReporterType.IDENTIFIED
    reporter_name: Optional[str] = Field(None, max_length=255)
    reporter_email: Optional[EmailStr] = None
    reporter_phone: Optional[str] = Field(None, max_length=50)
    pipeline_id: Optional[str] = Field(None, max_length=100)


class CaseStatusUpdate(BaseModel):
    status: CaseStatus
    rationale: Optional[str] = None


class PipelineStageUpdate(BaseModel):
    stage: str = Field(..., min_length=1, max_length=100)
    notes: Optional[str] = None


class OutcomeUpdate(BaseModel):
    outcome: CaseOutcome
    notes: str = Field(..., min_length=1)


class MergeRequest(BaseModel):
    target_case_id: str
    reason: str = Field(..., min_length=1)


class CanMergeResponse(BaseModel):
    can_merge: bool
    reason: Optional[str] = None


class CaseResponse(BaseModel):
    """Case response schema."""
    id: str
    organization_id: str
    reference_number: str
    status: CaseStatus
    status_rationale: Optional[str]
    source_channel: SourceChannel
    reporter_type: ReporterType
    severity: Severity
    details: str
    summary: Optional[str]

    pipeline_id: Optional[str]
    pipeline_stage: Optional[str]
    pipeline_stage_at: Optional[datetime]
    pipeline_stage_by_id: Optional[str]

    outcome: Optional[CaseOutcome]
    outcome_notes: Optional[str]
    outcome_at: Optional[datetime]
    outcome_by_id: Optional[str]

    is_merged: bool
    merged_into_case_id: Optional[str]
    merged_at: Optional[datetime]
    merged_by_id: Optional[str]
    merged_reason: Optional[str]

    created_by_id: Optional[str]
    updated_by_id: Optional[str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class CaseListResponse(BaseModel):
    """Paginated list of cases."""
    cases: list[CaseResponse]
    total: int
    page: int
    page_size: int


class PipelineHistoryEntry(BaseModel):
    stage: Optional[str]
    previous_stage: Optional[str]
    changed_at: datetime
    changed_by: Optional[str]
    notes: Optional[str]


class MergeHistoryEntry(BaseModel):
    case_id: str
    reference_number: str
    merged_at: Optional[datetime]
    merged_by_id: Optional[str]
    merged_reason: Optional[str]
