"""
Ethics Portal Endpoints

Public, unauthenticated report submission and status checks. The
organization is named by the URL slug.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ethicsdesk.database import get_db
from ethicsdesk.schemas.portal import EthicsReportSubmit, EthicsReportReceipt, ReportStatusResponse
from ethicsdesk.services.portals import EthicsPortalService, SUBMISSION_MESSAGE

router = APIRouter(prefix="/ethics/{org_slug}", tags=["ethics portal"])


@router.post("/reports", response_model=EthicsReportReceipt, status_code=status.HTTP_201_CREATED)
async def submit_report(
    org_slug: str,
    report: EthicsReportSubmit,
    db: Session = Depends(get_db)
):
    """
    Submit a report.

    The access code in the response is the reporter's only way back to
    the report; it is never shown again.
    """
    case = EthicsPortalService(db).submit_report(org_slug, report)
    return EthicsReportReceipt(
        access_code=case.anonymous_access_code,
        reference_number=case.reference_number,
        submitted_at=case.created_at,
        status_message=SUBMISSION_MESSAGE,
    )


@router.get("/reports/{access_code}", response_model=ReportStatusResponse)
async def get_report_status(
    org_slug: str,
    access_code: str,
    db: Session = Depends(get_db)
):
    return EthicsPortalService(db).get_report_status(org_slug, access_code)
