"""
Portal Services

Three intake surfaces that all end in CaseService.create_case:

- Ethics portal: public and unauthenticated. The organization comes from
  the URL slug; the request then runs as that organization.
- Operator console: hotline operators capture calls for client
  organizations. Cross-tenant by nature, so it goes through
  bypass_rls with an operator reason, and writes still happen inside an
  organization_scope for the client so they are tenant-checked.
- Employee portal: authenticated employees file and follow their own
  identified reports.
"""
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ethicsdesk.core.exceptions import OrganizationNotFoundError, ReportNotFoundError
from ethicsdesk.core.tenancy import BypassReason, bypass_rls, organization_scope, set_organization
from ethicsdesk.models.audit_log import ActorType
from ethicsdesk.models.case import Case, CaseStatus, ReporterType, Severity, SourceChannel
from ethicsdesk.models.organization import Organization
from ethicsdesk.models.user import User
from ethicsdesk.schemas.case import CaseCreate
from ethicsdesk.schemas.portal import (
    EmployeeReportSubmit,
    EthicsReportSubmit,
    OperatorIntakeRequest,
    ReporterContact,
)
from ethicsdesk.services.activity import ActivityService
from ethicsdesk.services.case_merge import CaseMergeService
from ethicsdesk.services.cases import CaseService
from ethicsdesk.utils.logging import get_logger

logger = get_logger(__name__)

SUBMISSION_MESSAGE = "Your report has been received. Save your access code to check status."

# Reporter-facing wording; internal status names are never shown
PUBLIC_STATUS = {
    CaseStatus.NEW: ("Received", "Your report has been received and is waiting to be reviewed."),
    CaseStatus.OPEN: ("Under Review", "Your report is being reviewed by the compliance team."),
    CaseStatus.CLOSED: ("Closed", "The review of your report has been completed."),
}


def _contact_fields(contact: Optional[ReporterContact]) -> Dict[str, Any]:
    if contact is None:
        return {}
    return {
        "reporter_name": contact.name,
        "reporter_email": contact.email,
        "reporter_phone": contact.phone,
    }


def _active_organization(db: Session, **criteria) -> Organization:
    organization = db.query(Organization).filter_by(**criteria).first()
    if organization is None or not organization.is_active:
        raise OrganizationNotFoundError(next(iter(criteria.values()), ""))
    return organization


class EthicsPortalService:
    def __init__(self, db: Session):
        self.db = db
        self.activity = ActivityService(db)
        self.cases = CaseService(db, self.activity)

    def resolve_organization(self, org_slug: str) -> Organization:
        """Bind the request to the organization named in the URL."""
        organization = _active_organization(self.db, slug=org_slug)
        set_organization(self.db, organization.id)
        return organization

    def submit_report(self, org_slug: str, data: EthicsReportSubmit) -> Case:
        organization = self.resolve_organization(org_slug)

        anonymous = data.reporter_type == ReporterType.ANONYMOUS
        contact = {} if anonymous else _contact_fields(data.reporter_contact)
        case = self.cases.create_case(
            organization.id,
            CaseCreate(
                details=data.details,
                summary=data.summary,
                severity=Severity.HIGH if data.is_urgent else Severity.MEDIUM,
                source_channel=SourceChannel.WEB_FORM,
                reporter_type=data.reporter_type,
                **contact,
            ),
            actor_type=ActorType.ANONYMOUS if anonymous else ActorType.SYSTEM,
            issue_access_code=True,
        )
        self.db.commit()

        logger.info(
            f"Report submitted: {case.reference_number} for {org_slug}",
            extra={"organization_id": organization.id, "case_id": case.id}
        )
        return case

    def get_report_status(self, org_slug: str, access_code: str) -> Dict[str, Any]:
        """
        Public status for an access code.

        A report merged into another case reports the surviving case's
        status under the reporter's own reference number.
        """
        organization = self.resolve_organization(org_slug)
        case = self.db.query(Case).filter(
            Case.organization_id == organization.id,
            Case.anonymous_access_code == access_code.strip().upper()
        ).first()
        if case is None:
            raise ReportNotFoundError()

        primary = CaseMergeService(self.db, self.activity).get_primary_case(organization.id, case.id)
        label, description = PUBLIC_STATUS[primary.status]
        return {
            "reference_number": case.reference_number,
            "status": label,
            "status_description": description,
            "submitted_at": case.created_at,
            "last_updated_at": primary.updated_at,
        }


class OperatorPortalService:
    def __init__(self, db: Session):
        self.db = db

    def intake(self, operator: User, data: OperatorIntakeRequest) -> Case:
        """Create a HOTLINE case in the client organization."""
        with bypass_rls(
            self.db,
            BypassReason.OPERATOR_INTAKE,
            user_id=operator.id,
            client_organization_id=data.organization_id,
        ):
            organization = _active_organization(self.db, id=data.organization_id)

            with organization_scope(self.db, organization.id):
                anonymous = data.reporter_type == ReporterType.ANONYMOUS
                case = CaseService(self.db).create_case(
                    organization.id,
                    CaseCreate(
                        details=data.details,
                        summary=data.summary,
                        severity=data.severity,
                        source_channel=SourceChannel.HOTLINE,
                        reporter_type=data.reporter_type,
                        **({} if anonymous else _contact_fields(data.reporter_contact)),
                    ),
                    actor_id=operator.id,
                    actor_type=ActorType.USER,
                    intake_operator_id=operator.id,
                    issue_access_code=True,
                )
                self.db.commit()

        logger.info(
            f"Operator intake {case.reference_number} by {operator.id}",
            extra={"organization_id": organization.id, "user_id": operator.id, "case_id": case.id}
        )
        return case

    def lookup(self, operator: User, access_code: str) -> Tuple[Case, Organization]:
        """Find a case by access code in any client organization."""
        with bypass_rls(self.db, BypassReason.OPERATOR_LOOKUP, user_id=operator.id):
            case = self.db.query(Case).filter(
                Case.anonymous_access_code == access_code.strip().upper()
            ).first()
        if case is None:
            raise ReportNotFoundError()
        organization = self.db.get(Organization, case.organization_id)
        return case, organization


class EmployeePortalService:
    def __init__(self, db: Session):
        self.db = db

    def list_my_reports(self, user: User) -> List[Case]:
        return (
            self.db.query(Case)
            .filter(
                Case.organization_id == user.organization_id,
                Case.created_by_id == user.id
            )
            .order_by(Case.created_at.desc())
            .all()
        )

    def submit_report(self, user: User, data: EmployeeReportSubmit) -> Case:
        case = CaseService(self.db).create_case(
            user.organization_id,
            CaseCreate(
                details=data.details,
                summary=data.summary,
                severity=data.severity,
                source_channel=SourceChannel.DIRECT_ENTRY,
                reporter_type=ReporterType.IDENTIFIED,
                reporter_name=user.full_name,
                reporter_email=user.email,
            ),
            actor_id=user.id,
        )
        self.db.commit()
        return case
