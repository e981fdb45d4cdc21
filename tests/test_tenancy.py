"""
Tenant isolation boundary.

Exercised at the ORM level on SQLite; the same rule is installed as
row-level-security policies on PostgreSQL by migration 0002.
"""
import pytest
from sqlalchemy import inspect

from ethicsdesk.core.exceptions import TenantIsolationError
from ethicsdesk.core.tenancy import (
    NO_CONTEXT,
    BypassReason,
    TenantContext,
    bypass_rls,
    get_tenant_context,
    organization_scope,
    set_organization,
)
from ethicsdesk.database import SessionLocal
from ethicsdesk.models import AuditLog, Case, Organization, User
from ethicsdesk.models.audit_log import ActorType, AuditActionCategory, AuditEntityType
from ethicsdesk.models.case import ReporterType, SourceChannel


@pytest.fixture
def seeded(org_a, org_b, officer_a, officer_b, create_case):
    cases_a = [create_case(org_a), create_case(org_a)]
    cases_b = [create_case(org_b)]
    return {"a": cases_a, "b": cases_b}


def _new_case(organization_id=None, **fields):
    values = {
        "reference_number": "ETH-2026-99999",
        "source_channel": SourceChannel.DIRECT_ENTRY,
        "reporter_type": ReporterType.IDENTIFIED,
        "details": "details",
    }
    if organization_id:
        values["organization_id"] = organization_id
    values.update(fields)
    return Case(**values)


class TestTenantContext:
    def test_allows_matching_organization_only(self):
        context = TenantContext(organization_id="org-1")
        assert context.allows("org-1")
        assert not context.allows("org-2")

    def test_no_context_allows_nothing(self):
        assert not NO_CONTEXT.allows("org-1")
        assert not NO_CONTEXT.allows(None)

    def test_bypass_allows_everything(self):
        assert TenantContext(bypass_rls=True).allows("org-2")

    def test_fresh_session_has_no_context(self, db):
        assert get_tenant_context(db) == NO_CONTEXT


class TestReads:
    def test_scoped_query_returns_only_own_rows(self, db, seeded, org_a):
        set_organization(db, org_a.id)

        cases = db.query(Case).all()
        users = db.query(User).all()

        assert {c.id for c in cases} == {c.id for c in seeded["a"]}
        assert users and all(u.organization_id == org_a.id for u in users)

    def test_explicit_filter_for_other_organization_finds_nothing(self, db, seeded, org_a, org_b):
        set_organization(db, org_a.id)

        assert db.query(Case).filter(Case.organization_id == org_b.id).all() == []

    def test_get_by_primary_key_respects_context(self, db, seeded, org_a):
        set_organization(db, org_a.id)

        assert db.get(Case, seeded["b"][0].id) is None
        assert db.get(Case, seeded["a"][0].id) is not None

    def test_bypass_returns_rows_of_every_organization(self, db, seeded, org_a):
        set_organization(db, org_a.id)

        with bypass_rls(db, BypassReason.SYSTEM_MAINTENANCE):
            cases = db.query(Case).all()

        assert len(cases) == 3

    def test_no_context_returns_zero_rows(self, db, seeded):
        assert db.query(Case).all() == []
        assert db.query(User).all() == []

    def test_relationship_load_is_filtered(self, db, seeded, org_a, org_b):
        set_organization(db, org_b.id)

        organization = db.get(Organization, org_a.id)

        assert organization.users == []

    def test_sessions_do_not_share_context(self, seeded, org_a, org_b):
        with SessionLocal() as first, SessionLocal() as second:
            set_organization(first, org_a.id)
            set_organization(second, org_b.id)

            assert {c.organization_id for c in first.query(Case).all()} == {org_a.id}
            assert {c.organization_id for c in second.query(Case).all()} == {org_b.id}


class TestOrganizationTableIsExempt:
    def test_visible_without_context(self, db, org_a, org_b):
        assert {o.id for o in db.query(Organization).all()} == {org_a.id, org_b.id}

    def test_visible_under_any_context(self, db, org_a, org_b):
        set_organization(db, org_a.id)
        assert db.query(Organization).count() == 2

        with bypass_rls(db, BypassReason.SYSTEM_MAINTENANCE):
            assert db.query(Organization).count() == 2


class TestWrites:
    def test_insert_fills_organization_from_context(self, db, org_a):
        set_organization(db, org_a.id)
        case = _new_case()
        db.add(case)
        db.flush()

        assert case.organization_id == org_a.id

    def test_insert_into_other_organization_is_blocked(self, db, org_a, org_b):
        set_organization(db, org_a.id)
        db.add(_new_case(organization_id=org_b.id))

        with pytest.raises(TenantIsolationError):
            db.flush()
        db.rollback()

    def test_insert_without_context_is_blocked(self, db, org_a):
        db.add(_new_case(organization_id=org_a.id))

        with pytest.raises(TenantIsolationError):
            db.flush()
        db.rollback()

    def test_update_of_row_loaded_under_bypass_is_blocked(self, db, seeded, org_a):
        set_organization(db, org_a.id)
        with bypass_rls(db, BypassReason.SYSTEM_MAINTENANCE):
            foreign = db.query(Case).filter(Case.id == seeded["b"][0].id).one()

        db.add(foreign)
        foreign.summary = "tampered"
        with pytest.raises(TenantIsolationError):
            db.flush()
        db.rollback()

    def test_delete_of_foreign_row_is_blocked(self, db, seeded, org_a):
        set_organization(db, org_a.id)
        with bypass_rls(db, BypassReason.SYSTEM_MAINTENANCE):
            foreign = db.query(Case).filter(Case.id == seeded["b"][0].id).one()

        db.add(foreign)
        db.delete(foreign)
        with pytest.raises(TenantIsolationError):
            db.flush()
        db.rollback()

    def test_bulk_update_only_touches_own_rows(self, db, seeded, org_a, org_b):
        set_organization(db, org_a.id)
        db.query(Case).update({Case.summary: "reviewed"}, synchronize_session=False)
        db.commit()

        with SessionLocal() as check:
            with bypass_rls(check, BypassReason.SYSTEM_MAINTENANCE):
                summaries = {c.organization_id: c.summary for c in check.query(Case).all()}

        assert summaries[org_a.id] == "reviewed"
        assert summaries[org_b.id] is None

    def test_bypass_allows_cross_organization_write(self, db, org_a, org_b):
        set_organization(db, org_a.id)
        with bypass_rls(db, BypassReason.SYSTEM_MAINTENANCE):
            db.add(AuditLog(
                organization_id=org_b.id,
                entity_type=AuditEntityType.ORGANIZATION,
                entity_id=org_b.id,
                action="synced",
                action_category=AuditActionCategory.SYSTEM,
                action_description="System synced organization",
                actor_type=ActorType.SYSTEM,
            ))
            db.commit()

        with organization_scope(db, org_b.id):
            assert db.query(AuditLog).count() == 1


class TestBypass:
    def test_requires_a_bypass_reason(self, db):
        with pytest.raises(ValueError):
            with bypass_rls(db, "login"):
                pass

    def test_restores_previous_context(self, db, org_a):
        set_organization(db, org_a.id)

        with bypass_rls(db, BypassReason.LOGIN):
            assert get_tenant_context(db).bypass_rls is True

        assert get_tenant_context(db) == TenantContext(organization_id=org_a.id)

    def test_restores_previous_context_after_error(self, db, org_a):
        set_organization(db, org_a.id)

        with pytest.raises(RuntimeError):
            with bypass_rls(db, BypassReason.LOGIN):
                raise RuntimeError("boom")

        assert get_tenant_context(db).bypass_rls is False

    def test_rows_loaded_under_bypass_do_not_outlive_it(self, db, seeded, org_a):
        foreign_id = seeded["b"][0].id
        own_id = seeded["a"][0].id
        set_organization(db, org_a.id)

        with bypass_rls(db, BypassReason.SYSTEM_MAINTENANCE):
            foreign = db.get(Case, foreign_id)
            own = db.get(Case, own_id)

        assert inspect(foreign).detached
        assert own in db
        assert db.get(Case, foreign_id) is None
        assert db.get(Case, own_id) is own

    def test_writes_inside_bypass_are_flushed_before_it_ends(self, db, seeded, org_a, org_b):
        set_organization(db, org_a.id)

        with bypass_rls(db, BypassReason.SYSTEM_MAINTENANCE):
            foreign = db.get(Case, seeded["b"][0].id)
            foreign.summary = "corrected by maintenance"
        db.commit()

        with organization_scope(db, org_b.id):
            assert db.get(Case, seeded["b"][0].id).summary == "corrected by maintenance"

    def test_organization_scope_evicts_rows_of_the_scoped_organization(self, db, seeded, org_a, org_b):
        set_organization(db, org_a.id)

        with organization_scope(db, org_b.id):
            foreign = db.get(Case, seeded["b"][0].id)

        assert foreign not in db
        assert db.get(Case, seeded["b"][0].id) is None

    def test_organization_scope_restores_previous_context(self, db, org_a, org_b):
        set_organization(db, org_a.id)

        with organization_scope(db, org_b.id):
            assert get_tenant_context(db).organization_id == org_b.id

        assert get_tenant_context(db).organization_id == org_a.id
