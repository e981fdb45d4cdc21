"""
ON DELETE behaviour of actor and merge pointers.

Deleting a user or a merge target must never delete, or be blocked by,
the cases that reference it.
"""
from datetime import datetime

from ethicsdesk.core.tenancy import set_organization
from ethicsdesk.models import AuditLog, Case, User, UserRole
from ethicsdesk.models.audit_log import AuditEntityType
from ethicsdesk.models.case import CaseOutcome
from ethicsdesk.services.activity import ActivityService
from ethicsdesk.services.case_merge import CaseMergeService


def test_deleting_user_nulls_actor_columns_on_cases(db, org_a, create_user, create_case):
    investigator = create_user(org_a, UserRole.INVESTIGATOR)
    now = datetime.utcnow()
    case = create_case(
        org_a,
        intake_operator_id=investigator.id,
        pipeline_stage="Investigation",
        pipeline_stage_at=now,
        pipeline_stage_by_id=investigator.id,
        outcome=CaseOutcome.SUBSTANTIATED,
        outcome_notes="Confirmed",
        outcome_at=now,
        outcome_by_id=investigator.id,
        created_by_id=investigator.id,
        updated_by_id=investigator.id,
    )

    set_organization(db, org_a.id)
    db.delete(db.get(User, investigator.id))
    db.commit()
    db.expire_all()

    reloaded = db.get(Case, case.id)
    assert reloaded is not None
    assert reloaded.intake_operator_id is None
    assert reloaded.pipeline_stage_by_id is None
    assert reloaded.outcome_by_id is None
    assert reloaded.created_by_id is None
    assert reloaded.updated_by_id is None
    # the recorded state itself survives
    assert reloaded.pipeline_stage == "Investigation"
    assert reloaded.outcome == CaseOutcome.SUBSTANTIATED


def test_deleting_user_nulls_merged_by_and_keeps_audit_entries(db, org_a, create_user, create_case):
    triage = create_user(org_a, UserRole.TRIAGE_LEAD, first_name="Tara", last_name="Triage")
    source = create_case(org_a)
    target = create_case(org_a)

    set_organization(db, org_a.id)
    CaseMergeService(db).merge(org_a.id, source.id, target.id, "Duplicate", triage.id)
    db.commit()

    db.delete(db.get(User, triage.id))
    db.commit()
    db.expire_all()

    tombstone = db.get(Case, source.id)
    assert tombstone.merged_by_id is None
    assert tombstone.is_merged is True
    assert tombstone.merged_into_case_id == target.id

    entries = db.query(AuditLog).filter(AuditLog.action == "merged").all()
    assert len(entries) == 1
    assert entries[0].actor_user_id is None
    assert entries[0].actor_name == "Tara Triage"


def test_deleting_merge_target_nulls_pointer_on_source(db, org_a, officer_a, create_case):
    source = create_case(org_a)
    target = create_case(org_a)

    set_organization(db, org_a.id)
    merge = CaseMergeService(db)
    merge.merge(org_a.id, source.id, target.id, "Duplicate", officer_a.id)
    db.commit()

    db.delete(db.get(Case, target.id))
    db.commit()
    db.expire_all()

    tombstone = db.get(Case, source.id)
    assert tombstone is not None
    assert tombstone.merged_into_case_id is None
    assert tombstone.is_merged is True
    # broken pointer: the tombstone is its own primary
    assert merge.get_primary_case(org_a.id, source.id).id == source.id


def test_deleting_user_keeps_their_audit_history(db, org_a, create_user):
    employee = create_user(org_a, UserRole.EMPLOYEE, first_name="Eve", last_name="Employee")

    set_organization(db, org_a.id)
    ActivityService(db).log(
        entity_type=AuditEntityType.USER,
        entity_id=employee.id,
        action="updated",
        organization_id=org_a.id,
        actor_user_id=employee.id,
    )
    db.commit()

    db.delete(db.get(User, employee.id))
    db.commit()
    db.expire_all()

    entry = db.query(AuditLog).one()
    assert entry.actor_user_id is None
    assert entry.actor_name == "Eve Employee"
