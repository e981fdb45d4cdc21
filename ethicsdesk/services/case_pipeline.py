"""
Case Pipeline & Outcome

Moves cases between the organization's pipeline stages and records the
adjudicated outcome. Current state is denormalized onto the case; the
full history comes from the audit log.

There is no state machine: any configured stage may follow any other.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ethicsdesk.core.exceptions import InvalidInputError, OrganizationNotFoundError
from ethicsdesk.models.audit_log import AuditLog, AuditEntityType
from ethicsdesk.models.case import Case, CaseOutcome
from ethicsdesk.models.organization import Organization
from ethicsdesk.services.activity import ActivityService
from ethicsdesk.services.cases import CaseService

STAGE_CHANGED_ACTION = "pipeline_stage_changed"
OUTCOME_SET_ACTION = "outcome_set"


class CasePipelineService:
    def __init__(self, db: Session, activity: Optional[ActivityService] = None):
        self.db = db
        self.activity = activity or ActivityService(db)
        self.cases = CaseService(db, self.activity)

    def move_to_stage(
        self,
        organization_id: str,
        case_id: str,
        stage: str,
        notes: Optional[str],
        actor_id: Optional[str],
    ) -> Case:
        case = self.cases.get_case(organization_id, case_id)

        if case.pipeline_stage == stage:
            raise InvalidInputError(f"Case is already in stage {stage}")

        allowed = self._configured_stages(organization_id)
        if allowed and stage not in allowed:
            raise InvalidInputError(f"Unknown pipeline stage: {stage}")

        previous = case.pipeline_stage
        now = datetime.utcnow()
        case.pipeline_stage = stage
        case.pipeline_stage_at = now
        case.pipeline_stage_by_id = actor_id
        case.updated_by_id = actor_id
        case.updated_at = now

        self.activity.log(
            entity_type=AuditEntityType.CASE,
            entity_id=case.id,
            action=STAGE_CHANGED_ACTION,
            organization_id=organization_id,
            actor_user_id=actor_id,
            action_description=_stage_description(previous, stage),
            changes={
                "old_value": {"pipeline_stage": previous},
                "new_value": {"pipeline_stage": stage},
            },
            context={"notes": notes} if notes else None,
        )
        return case

    def set_outcome(
        self,
        organization_id: str,
        case_id: str,
        outcome: CaseOutcome,
        notes: str,
        actor_id: Optional[str],
    ) -> Case:
        if not notes or not notes.strip():
            raise InvalidInputError("Outcome notes are required")

        case = self.cases.get_case(organization_id, case_id)
        previous = case.outcome

        now = datetime.utcnow()
        case.outcome = outcome
        case.outcome_notes = notes
        case.outcome_at = now
        case.outcome_by_id = actor_id
        case.updated_by_id = actor_id
        case.updated_at = now

        self.activity.log(
            entity_type=AuditEntityType.CASE,
            entity_id=case.id,
            action=OUTCOME_SET_ACTION,
            organization_id=organization_id,
            actor_user_id=actor_id,
            action_description=f"Outcome set to {outcome.value}",
            changes={
                "old_value": {"outcome": previous.value if previous else None},
                "new_value": {"outcome": outcome.value},
            },
            context={"notes": notes},
        )
        return case

    def get_pipeline_history(self, organization_id: str, case_id: str) -> List[Dict[str, Any]]:
        """Stage changes for a case, newest first."""
        case = self.cases.get_case(organization_id, case_id)
        entries = (
            self.db.query(AuditLog)
            .filter(
                AuditLog.organization_id == organization_id,
                AuditLog.entity_type == AuditEntityType.CASE,
                AuditLog.entity_id == case.id,
                AuditLog.action == STAGE_CHANGED_ACTION,
            )
            .order_by(AuditLog.created_at.desc())
            .all()
        )

        history = []
        for entry in entries:
            changes = entry.changes or {}
            history.append({
                "stage": (changes.get("new_value") or {}).get("pipeline_stage"),
                "previous_stage": (changes.get("old_value") or {}).get("pipeline_stage"),
                "changed_at": entry.created_at,
                "changed_by": entry.actor_name,
                "notes": (entry.context or {}).get("notes"),
            })
        return history

    def _configured_stages(self, organization_id: str) -> List[str]:
        organization = self.db.get(Organization, organization_id)
        if organization is None:
            raise OrganizationNotFoundError(organization_id)
        return organization.pipeline_stages


def _stage_description(previous: Optional[str], stage: str) -> str:
    if previous:
        return f"Moved from {previous} to {stage}"
    return f"Moved to {stage}"
