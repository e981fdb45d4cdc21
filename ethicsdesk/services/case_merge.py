"""
Case Merge

Merging folds a duplicate (source) case into a primary (target) case.
The source is kept as a closed tombstone pointing at the target, so
references to it (links, access codes) still resolve through
get_primary_case.

Merges never form chains through a tombstone or cycles: the source must
not already be merged and the target must not be a tombstone.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ethicsdesk.core.exceptions import CaseNotFoundError, InvalidInputError
from ethicsdesk.models.attachment import Attachment
from ethicsdesk.models.audit_log import AuditEntityType
from ethicsdesk.models.case import Case, CaseStatus
from ethicsdesk.services.activity import ActivityService
from ethicsdesk.services.cases import CaseService
from ethicsdesk.utils.logging import get_logger

logger = get_logger(__name__)

MAX_MERGE_CHAIN = 100


class CaseMergeService:
    def __init__(self, db: Session, activity: Optional[ActivityService] = None):
        self.db = db
        self.activity = activity or ActivityService(db)
        self.cases = CaseService(db, self.activity)

    def merge(
        self,
        organization_id: str,
        source_case_id: str,
        target_case_id: str,
        reason: str,
        actor_id: Optional[str],
    ) -> Case:
        """
        Merge source into target. Returns the target.

        All changes are made in the caller's transaction; nothing is
        visible until it commits.
        """
        if source_case_id == target_case_id:
            raise InvalidInputError("Cannot merge a case into itself")

        source = self.cases.get_case(organization_id, source_case_id, label="Source case")
        target = self.cases.get_case(organization_id, target_case_id, label="Target case")

        if source.is_merged:
            raise InvalidInputError(
                f"Case {source.reference_number} has already been merged into another case"
            )
        if target.is_merged:
            raise InvalidInputError(
                f"Cannot merge into case {target.reference_number} as it is already merged into another case"
            )
        if self._chain_reaches(target, source.id):
            raise InvalidInputError(
                f"Merging {source.reference_number} into {target.reference_number} would create a cycle"
            )

        now = datetime.utcnow()
        previous_status = source.status

        attachments = self.db.query(Attachment).filter(
            Attachment.organization_id == organization_id,
            Attachment.case_id == source.id
        ).all()
        for attachment in attachments:
            attachment.case_id = target.id

        source.status = CaseStatus.CLOSED
        source.status_rationale = f"Merged into {target.reference_number}: {reason}"
        source.is_merged = True
        source.merged_into_case_id = target.id
        source.merged_at = now
        source.merged_by_id = actor_id
        source.merged_reason = reason
        source.updated_by_id = actor_id
        source.updated_at = now

        target.updated_by_id = actor_id
        target.updated_at = now

        self.activity.log(
            entity_type=AuditEntityType.CASE,
            entity_id=source.id,
            action="merged",
            organization_id=organization_id,
            actor_user_id=actor_id,
            action_description=f"Merged case {source.reference_number} into {target.reference_number}",
            changes={
                "old_value": {"status": previous_status.value, "is_merged": False},
                "new_value": {"status": CaseStatus.CLOSED.value, "is_merged": True},
            },
            context={
                "target_case_id": target.id,
                "target_reference_number": target.reference_number,
                "reason": reason,
                "attachments_moved": len(attachments),
            },
        )
        self.activity.log(
            entity_type=AuditEntityType.CASE,
            entity_id=target.id,
            action="received_merge",
            organization_id=organization_id,
            actor_user_id=actor_id,
            action_description=f"Received merge from case {source.reference_number}",
            context={
                "source_case_id": source.id,
                "source_reference_number": source.reference_number,
                "reason": reason,
            },
        )

        logger.info(
            f"Merged {source.reference_number} into {target.reference_number}",
            extra={"organization_id": organization_id, "case_id": target.id}
        )
        return target

    def can_merge(self, organization_id: str, source_case_id: str, target_case_id: str) -> Tuple[bool, Optional[str]]:
        """Dry run of merge validation. Never mutates."""
        if source_case_id == target_case_id:
            return False, "Cannot merge a case into itself"

        source = self._find(organization_id, source_case_id)
        target = self._find(organization_id, target_case_id)
        if source is None:
            return False, "Source case not found"
        if target is None:
            return False, "Target case not found"
        if source.is_merged:
            return False, f"Source case {source.reference_number} has already been merged"
        if target.is_merged:
            return False, f"Target case {target.reference_number} is a tombstone (already merged)"
        if self._chain_reaches(target, source.id):
            return False, "Merge would create a cycle"
        return True, None

    def get_merge_history(self, organization_id: str, case_id: str) -> List[Dict[str, Any]]:
        """Cases merged into this one, newest first."""
        case = self.cases.get_case(organization_id, case_id)
        merged = (
            self.db.query(Case)
            .filter(
                Case.organization_id == organization_id,
                Case.merged_into_case_id == case.id,
            )
            .order_by(Case.merged_at.desc())
            .all()
        )
        return [
            {
                "case_id": m.id,
                "reference_number": m.reference_number,
                "merged_at": m.merged_at,
                "merged_by_id": m.merged_by_id,
                "merged_reason": m.merged_reason or "No reason provided",
            }
            for m in merged
        ]

    def get_primary_case(self, organization_id: str, case_id: str) -> Case:
        """
        Follow merge pointers to the surviving case.

        A tombstone whose target was deleted (pointer nulled) is its own
        primary.
        """
        current = self.cases.get_case(organization_id, case_id)
        for _ in range(MAX_MERGE_CHAIN):
            if not current.is_merged or not current.merged_into_case_id:
                return current
            next_case = self._find(organization_id, current.merged_into_case_id)
            if next_case is None:
                return current
            current = next_case

        logger.warning(
            f"Merge chain for case {case_id} exceeded {MAX_MERGE_CHAIN} hops",
            extra={"organization_id": organization_id, "case_id": case_id}
        )
        return current

    def _find(self, organization_id: str, case_id: str) -> Optional[Case]:
        try:
            return self.cases.get_case(organization_id, case_id)
        except CaseNotFoundError:
            return None

    def _chain_reaches(self, start: Case, case_id: str) -> bool:
        current = start
        for _ in range(MAX_MERGE_CHAIN):
            if current.id == case_id:
                return True
            if not current.merged_into_case_id:
                return False
            current = self._find(start.organization_id, current.merged_into_case_id)
            if current is None:
                return False
        return True
