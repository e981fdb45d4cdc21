"""
Employee Portal Endpoints

Self-service for authenticated employees: file an identified report and
follow the reports they filed.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List

from ethicsdesk.database import get_db
from ethicsdesk.models.user import User
from ethicsdesk.schemas.portal import EmployeeReportSubmit, EmployeeReportSummary
from ethicsdesk.api.deps import get_current_user
from ethicsdesk.services.portals import EmployeePortalService

router = APIRouter(prefix="/employee", tags=["employee portal"])


@router.get("/reports", response_model=List[EmployeeReportSummary])
async def list_my_reports(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return EmployeePortalService(db).list_my_reports(current_user)


@router.post("/reports", response_model=EmployeeReportSummary, status_code=status.HTTP_201_CREATED)
async def submit_report(
    body: EmployeeReportSubmit,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return EmployeePortalService(db).submit_report(current_user, body)
