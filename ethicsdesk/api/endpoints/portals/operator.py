"""
Operator Console Endpoints

Hotline operators capture calls for client organizations and look up
existing reports by access code. Operator role only.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ethicsdesk.database import get_db
from ethicsdesk.models.user import User
from ethicsdesk.schemas.portal import OperatorIntakeRequest, OperatorIntakeResponse, OperatorLookupResponse
from ethicsdesk.api.deps import require_operator
from ethicsdesk.services.portals import OperatorPortalService

router = APIRouter(prefix="/operator", tags=["operator console"])


@router.post("/intake", response_model=OperatorIntakeResponse, status_code=status.HTTP_201_CREATED)
async def intake(
    body: OperatorIntakeRequest,
    operator: User = Depends(require_operator),
    db: Session = Depends(get_db)
):
    case = OperatorPortalService(db).intake(operator, body)
    return OperatorIntakeResponse(
        case_id=case.id,
        organization_id=case.organization_id,
        reference_number=case.reference_number,
        access_code=case.anonymous_access_code,
    )


@router.get("/lookup/{access_code}", response_model=OperatorLookupResponse)
async def lookup(
    access_code: str,
    operator: User = Depends(require_operator),
    db: Session = Depends(get_db)
):
    case, organization = OperatorPortalService(db).lookup(operator, access_code)
    return OperatorLookupResponse(
        case_id=case.id,
        organization_id=organization.id,
        organization_name=organization.name,
        reference_number=case.reference_number,
        status=case.status,
        severity=case.severity,
        created_at=case.created_at,
    )
