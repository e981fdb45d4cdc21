"""
Portal Schemas

Request/response models for the public ethics portal, the operator
hotline console and the employee self-service portal.
"""
from pydantic import BaseModel, EmailStr, Field
from typing import Optional
from datetime import datetime
from ethicsdesk.models.case import CaseStatus, ReporterType, Severity


class ReporterContact(BaseModel):
    name: Optional[str] = Field(None, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)


class EthicsReportSubmit(BaseModel):
    """Public report submission. Anonymous unless the reporter opts in."""
    details: str = Field(..., min_length=1)
    summary: Optional[str] = None
    reporter_type: ReporterType = ReporterType.ANONYMOUS
    reporter_contact: Optional[ReporterContact] = None
    is_urgent: bool = False


class EthicsReportReceipt(BaseModel):
    access_code: str
    reference_number: str
    submitted_at: datetime
    status_message: str


class ReportStatusResponse(BaseModel):
    """Status as shown to a reporter. Never exposes internal fields."""
    reference_number: str
    status: str
    status_description: str
    submitted_at: datetime
    last_updated_at: datetime


class OperatorIntakeRequest(BaseModel):
    """Hotline call captured by an operator on behalf of a client organization."""
    organization_id: str
    details: str = Field(..., min_length=1)
    summary: Optional[str] = None
    severity: Severity = Severity.MEDIUM
    reporter_type: ReporterType = ReporterType.ANONYMOUS
    reporter_contact: Optional[ReporterContact] = None


class OperatorIntakeResponse(BaseModel):
    case_id: str
    organization_id: str
    reference_number: str
    access_code: Optional[str]


class OperatorLookupResponse(BaseModel):
    case_id: str
    organization_id: str
    organization_name: str
    reference_number: str
    status: CaseStatus
    severity: Severity
    created_at: datetime


class EmployeeReportSubmit(BaseModel):
    details: str = Field(..., min_length=1)
    summary: Optional[str] = None
    severity: Severity = Severity.MEDIUM


class EmployeeReportSummary(BaseModel):
    id: str
    reference_number: str
    status: CaseStatus
    summary: Optional[str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
