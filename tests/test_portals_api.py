import pytest

from ethicsdesk.core.tenancy import organization_scope
from ethicsdesk.database import SessionLocal
from ethicsdesk.models import AuditLog, Case, UserRole
from ethicsdesk.models.audit_log import ActorType
from ethicsdesk.services.cases import ACCESS_CODE_ALPHABET

ETHICS_URL = "/api/v1/portals/ethics"


def _submit(client, slug="acme", **body):
    payload = {"details": "My manager asked me to backdate invoices"}
    payload.update(body)
    return client.post(f"{ETHICS_URL}/{slug}/reports", json=payload)


class TestEthicsPortal:
    def test_anonymous_submission_returns_receipt(self, client, org_a):
        response = _submit(client)

        assert response.status_code == 201
        receipt = response.json()
        assert len(receipt["access_code"]) == 12
        assert set(receipt["access_code"]) <= set(ACCESS_CODE_ALPHABET)
        assert receipt["reference_number"].startswith("ETH-")

    def test_submission_creates_web_form_case_in_that_organization(self, client, org_a):
        receipt = _submit(client, is_urgent=True).json()

        with SessionLocal() as session, organization_scope(session, org_a.id):
            case = session.query(Case).filter(Case.reference_number == receipt["reference_number"]).one()
            assert case.source_channel.value == "WEB_FORM"
            assert case.reporter_type.value == "ANONYMOUS"
            assert case.severity.value == "HIGH"
            assert case.reporter_email is None

            entry = session.query(AuditLog).filter(AuditLog.entity_id == case.id).one()
            assert entry.actor_type == ActorType.ANONYMOUS
            assert entry.action_description == "Anonymous reporter created case"

    def test_anonymous_submission_drops_contact_details(self, client, org_a):
        receipt = _submit(client, reporter_contact={"name": "Should Not Store", "email": "me@acme.com"}).json()

        with SessionLocal() as session, organization_scope(session, org_a.id):
            case = session.query(Case).filter(Case.reference_number == receipt["reference_number"]).one()
            assert case.reporter_name is None
            assert case.reporter_email is None

    def test_identified_submission_keeps_contact_details(self, client, org_a):
        receipt = _submit(
            client,
            reporter_type="IDENTIFIED",
            reporter_contact={"name": "Pat Reporter", "email": "pat@acme.com"},
        ).json()

        with SessionLocal() as session, organization_scope(session, org_a.id):
            case = session.query(Case).filter(Case.reference_number == receipt["reference_number"]).one()
            assert case.reporter_name == "Pat Reporter"
            assert case.reporter_email == "pat@acme.com"

    def test_unknown_organization(self, client):
        assert _submit(client, slug="does-not-exist").status_code == 404

    def test_inactive_organization(self, client, create_organization):
        create_organization("Defunct", "defunct", is_active=False)

        assert _submit(client, slug="defunct").status_code == 404

    def test_status_lookup(self, client, org_a):
        receipt = _submit(client).json()

        response = client.get(f"{ETHICS_URL}/acme/reports/{receipt['access_code'].lower()}")

        assert response.status_code == 200
        data = response.json()
        assert data["reference_number"] == receipt["reference_number"]
        assert data["status"] == "Received"
        assert "details" not in data

    def test_access_code_is_scoped_to_the_organization(self, client, org_a, org_b):
        receipt = _submit(client).json()

        response = client.get(f"{ETHICS_URL}/globex/reports/{receipt['access_code']}")

        assert response.status_code == 404

    def test_merged_report_shows_surviving_case_status(self, client, org_a, officer_a_headers):
        receipt = _submit(client).json()
        with SessionLocal() as session, organization_scope(session, org_a.id):
            source_id = session.query(Case.id).filter(
                Case.reference_number == receipt["reference_number"]
            ).scalar()

        target_id = client.post(
            "/api/v1/cases", json={"details": "Primary report"}, headers=officer_a_headers
        ).json()["id"]
        client.patch(f"/api/v1/cases/{target_id}/status", json={"status": "OPEN"}, headers=officer_a_headers)
        client.post(
            f"/api/v1/cases/{source_id}/merge",
            json={"target_case_id": target_id, "reason": "Duplicate"},
            headers=officer_a_headers,
        )

        data = client.get(f"{ETHICS_URL}/acme/reports/{receipt['access_code']}").json()

        assert data["reference_number"] == receipt["reference_number"]
        assert data["status"] == "Under Review"


@pytest.fixture
def hotline(create_organization):
    return create_organization("Hotline Partners", "hotline")


@pytest.fixture
def operator(hotline, create_user):
    return create_user(hotline, UserRole.OPERATOR, email="operator@hotline.com",
                       first_name="Otto", last_name="Operator")


@pytest.fixture
def operator_headers(hotline, operator, login):
    return login(hotline, operator.email)


class TestOperatorConsole:
    def test_intake_creates_hotline_case_in_client_organization(self, client, org_a, operator, operator_headers):
        response = client.post(
            "/api/v1/portals/operator/intake",
            json={"organization_id": org_a.id, "details": "Caller reports harassment", "severity": "HIGH"},
            headers=operator_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["organization_id"] == org_a.id
        assert data["access_code"]

        with SessionLocal() as session, organization_scope(session, org_a.id):
            case = session.get(Case, data["case_id"])
            assert case.source_channel.value == "HOTLINE"
            assert case.intake_operator_id == operator.id

    def test_intake_case_is_visible_to_client_staff(self, client, org_a, operator_headers, officer_a_headers):
        case_id = client.post(
            "/api/v1/portals/operator/intake",
            json={"organization_id": org_a.id, "details": "Caller reports theft"},
            headers=operator_headers,
        ).json()["case_id"]

        assert client.get(f"/api/v1/cases/{case_id}", headers=officer_a_headers).status_code == 200

    def test_intake_for_unknown_organization(self, client, operator_headers):
        response = client.post(
            "/api/v1/portals/operator/intake",
            json={"organization_id": "missing", "details": "x"},
            headers=operator_headers,
        )

        assert response.status_code == 404

    def test_lookup_across_organizations(self, client, org_a, org_b, operator_headers):
        receipt = _submit(client, slug="globex").json()

        response = client.get(
            f"/api/v1/portals/operator/lookup/{receipt['access_code']}", headers=operator_headers
        )

        assert response.status_code == 200
        data = response.json()
        assert data["organization_id"] == org_b.id
        assert data["organization_name"] == "Globex"
        assert data["reference_number"] == receipt["reference_number"]

    def test_lookup_unknown_code(self, client, operator_headers):
        response = client.get("/api/v1/portals/operator/lookup/ZZZZZZZZZZZZ", headers=operator_headers)

        assert response.status_code == 404

    def test_non_operator_is_forbidden(self, client, org_a, officer_a_headers):
        response = client.post(
            "/api/v1/portals/operator/intake",
            json={"organization_id": org_a.id, "details": "x"},
            headers=officer_a_headers,
        )

        assert response.status_code == 403


class TestEmployeePortal:
    def test_submit_and_list_own_reports(self, client, org_a, create_user, login):
        employee = create_user(org_a, UserRole.EMPLOYEE, first_name="Erin", last_name="Employee")
        colleague = create_user(org_a, UserRole.EMPLOYEE)
        headers = login(org_a, employee.email)
        colleague_headers = login(org_a, colleague.email)

        created = client.post(
            "/api/v1/portals/employee/reports",
            json={"details": "Safety issue on line 3", "summary": "Safety"},
            headers=headers,
        )
        assert created.status_code == 201
        assert created.json()["status"] == "NEW"

        mine = client.get("/api/v1/portals/employee/reports", headers=headers).json()
        assert [r["id"] for r in mine] == [created.json()["id"]]

        theirs = client.get("/api/v1/portals/employee/reports", headers=colleague_headers).json()
        assert theirs == []

        with SessionLocal() as session, organization_scope(session, org_a.id):
            case = session.get(Case, created.json()["id"])
            assert case.reporter_type.value == "IDENTIFIED"
            assert case.reporter_name == "Erin Employee"
            assert case.source_channel.value == "DIRECT_ENTRY"
