"""
Case Service

Creation, lookup, listing and status changes for cases. Pipeline/outcome
and merge workflows live in case_pipeline and case_merge.

Every query filters on organization_id explicitly in addition to the
session-level tenant filter.
"""
import secrets
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from ethicsdesk.core.exceptions import CaseNotFoundError
from ethicsdesk.models.audit_log import AuditEntityType, ActorType
from ethicsdesk.models.case import Case, CaseStatus, CaseOutcome, ReporterType
from ethicsdesk.schemas.case import CaseCreate
from ethicsdesk.services.activity import ActivityService
from ethicsdesk.utils.logging import get_logger

logger = get_logger(__name__)

REFERENCE_PREFIX = "ETH"
ACCESS_CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
ACCESS_CODE_LENGTH = 12


def generate_access_code() -> str:
    """Reporter-facing code: no 0/O, 1/I/L to avoid misreads."""
    return "".join(secrets.choice(ACCESS_CODE_ALPHABET) for _ in range(ACCESS_CODE_LENGTH))


class CaseService:
    def __init__(self, db: Session, activity: Optional[ActivityService] = None):
        self.db = db
        self.activity = activity or ActivityService(db)

    def get_case(self, organization_id: str, case_id: str, label: str = "Case") -> Case:
        case = self.db.query(Case).filter(
            Case.id == case_id,
            Case.organization_id == organization_id
        ).first()
        if case is None:
            raise CaseNotFoundError(case_id, label=label)
        return case

    def get_by_reference(self, organization_id: str, reference_number: str) -> Case:
        case = self.db.query(Case).filter(
            Case.reference_number == reference_number,
            Case.organization_id == organization_id
        ).first()
        if case is None:
            raise CaseNotFoundError(reference_number)
        return case

    def list_cases(
        self,
        organization_id: str,
        status: Optional[CaseStatus] = None,
        pipeline_stage: Optional[str] = None,
        outcome: Optional[CaseOutcome] = None,
        include_merged: bool = False,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[Case], int]:
        """Newest first. Merge tombstones are hidden unless include_merged."""
        query = self.db.query(Case).filter(Case.organization_id == organization_id)
        if status:
            query = query.filter(Case.status == status)
        if pipeline_stage:
            query = query.filter(Case.pipeline_stage == pipeline_stage)
        if outcome:
            query = query.filter(Case.outcome == outcome)
        if not include_merged:
            query = query.filter(Case.is_merged.is_(False))

        total = query.count()
        cases = (
            query.order_by(Case.created_at.desc(), Case.reference_number.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return cases, total

    def create_case(
        self,
        organization_id: str,
        data: CaseCreate,
        actor_id: Optional[str] = None,
        actor_type: Optional[ActorType] = None,
        intake_operator_id: Optional[str] = None,
        issue_access_code: Optional[bool] = None,
    ) -> Case:
        """
        Create a case with the next reference number for the organization.

        Anonymous reports always get an access code; pass
        issue_access_code=True to issue one for identified reporters too.
        """
        if issue_access_code is None:
            issue_access_code = data.reporter_type == ReporterType.ANONYMOUS

        case = Case(
            organization_id=organization_id,
            reference_number=self._next_reference_number(organization_id),
            status=CaseStatus.NEW,
            source_channel=data.source_channel,
            reporter_type=data.reporter_type,
            reporter_name=data.reporter_name,
            reporter_email=data.reporter_email,
            reporter_phone=data.reporter_phone,
            anonymous_access_code=generate_access_code() if issue_access_code else None,
            severity=data.severity,
            details=data.details,
            summary=data.summary,
            pipeline_id=data.pipeline_id,
            intake_operator_id=intake_operator_id,
            created_by_id=actor_id,
            updated_by_id=actor_id,
        )
        self.db.add(case)
        self.db.flush()

        self.activity.log(
            entity_type=AuditEntityType.CASE,
            entity_id=case.id,
            action="created",
            organization_id=organization_id,
            actor_user_id=actor_id,
            actor_type=actor_type,
            context={
                "reference_number": case.reference_number,
                "source_channel": case.source_channel.value,
            },
        )
        logger.info(
            f"Case {case.reference_number} created via {case.source_channel.value}",
            extra={"organization_id": organization_id, "case_id": case.id}
        )
        return case

    def update_status(
        self,
        organization_id: str,
        case_id: str,
        status: CaseStatus,
        rationale: Optional[str],
        actor_id: Optional[str],
    ) -> Case:
        case = self.get_case(organization_id, case_id)
        previous = case.status

        case.status = status
        case.status_rationale = rationale
        case.updated_by_id = actor_id
        case.updated_at = datetime.utcnow()

        self.activity.log(
            entity_type=AuditEntityType.CASE,
            entity_id=case.id,
            action="status_changed",
            organization_id=organization_id,
            actor_user_id=actor_id,
            changes={
                "old_value": {"status": previous.value},
                "new_value": {"status": status.value},
            },
            context={"rationale": rationale} if rationale else None,
        )
        return case

    def _next_reference_number(self, organization_id: str) -> str:
        """ETH-<year>-<5 digits>, one past the highest issued this year."""
        prefix = f"{REFERENCE_PREFIX}-{datetime.utcnow().year}-"
        last = (
            self.db.query(Case.reference_number)
            .filter(
                Case.organization_id == organization_id,
                Case.reference_number.like(f"{prefix}%"),
            )
            .order_by(Case.reference_number.desc())
            .limit(1)
            .scalar()
        )

        next_number = 1
        if last:
            try:
                next_number = int(last[len(prefix):]) + 1
            except ValueError:
                logger.warning(f"Unparseable reference number {last}", extra={"organization_id": organization_id})
        return f"{prefix}{next_number:05d}"
