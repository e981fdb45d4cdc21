import pytest

from ethicsdesk.models import UserRole

CASES_URL = "/api/v1/cases"


@pytest.fixture
def case_id(client, officer_a_headers):
    response = client.post(
        CASES_URL,
        json={"details": "Vendor kickbacks in procurement", "severity": "HIGH"},
        headers=officer_a_headers,
    )
    assert response.status_code == 201, response.text
    return response.json()["id"]


def test_create_and_get_case(client, officer_a, officer_a_headers, case_id):
    response = client.get(f"{CASES_URL}/{case_id}", headers=officer_a_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "NEW"
    assert data["severity"] == "HIGH"
    assert data["source_channel"] == "DIRECT_ENTRY"
    assert data["created_by_id"] == officer_a.id
    assert data["reference_number"].startswith("ETH-")


def test_get_by_reference(client, officer_a_headers, case_id):
    reference = client.get(f"{CASES_URL}/{case_id}", headers=officer_a_headers).json()["reference_number"]

    response = client.get(f"{CASES_URL}/reference/{reference}", headers=officer_a_headers)

    assert response.status_code == 200
    assert response.json()["id"] == case_id


def test_list_cases(client, officer_a_headers, case_id):
    response = client.get(CASES_URL, headers=officer_a_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert data["cases"][0]["id"] == case_id


def test_other_organization_cannot_see_case(client, officer_b_headers, case_id):
    assert client.get(f"{CASES_URL}/{case_id}", headers=officer_b_headers).status_code == 404
    assert client.get(CASES_URL, headers=officer_b_headers).json()["total"] == 0

    response = client.post(
        f"{CASES_URL}/{case_id}/pipeline-stage",
        json={"stage": "Triage"},
        headers=officer_b_headers,
    )
    assert response.status_code == 404


def test_employee_cannot_work_cases(client, org_a, create_user, login):
    employee = create_user(org_a, UserRole.EMPLOYEE)
    headers = login(org_a, employee.email)

    response = client.get(CASES_URL, headers=headers)

    assert response.status_code == 403


def test_status_update(client, officer_a_headers, case_id):
    response = client.patch(
        f"{CASES_URL}/{case_id}/status",
        json={"status": "OPEN", "rationale": "Assigned to investigator"},
        headers=officer_a_headers,
    )

    assert response.status_code == 200
    assert response.json()["status"] == "OPEN"
    assert response.json()["status_rationale"] == "Assigned to investigator"


def test_pipeline_stage_and_history(client, officer_a, officer_a_headers, case_id):
    response = client.post(
        f"{CASES_URL}/{case_id}/pipeline-stage",
        json={"stage": "Triage", "notes": "Looks credible"},
        headers=officer_a_headers,
    )
    assert response.status_code == 200
    assert response.json()["pipeline_stage"] == "Triage"
    assert response.json()["pipeline_stage_by_id"] == officer_a.id

    again = client.post(
        f"{CASES_URL}/{case_id}/pipeline-stage",
        json={"stage": "Triage"},
        headers=officer_a_headers,
    )
    assert again.status_code == 400

    history = client.get(f"{CASES_URL}/{case_id}/pipeline-history", headers=officer_a_headers).json()
    assert len(history) == 1
    assert history[0]["stage"] == "Triage"
    assert history[0]["notes"] == "Looks credible"
    assert history[0]["changed_by"] == "Olivia Officer"


def test_outcome(client, officer_a_headers, case_id):
    response = client.post(
        f"{CASES_URL}/{case_id}/outcome",
        json={"outcome": "SUBSTANTIATED", "notes": "Invoices confirmed"},
        headers=officer_a_headers,
    )
    assert response.status_code == 200
    assert response.json()["outcome"] == "SUBSTANTIATED"

    missing_notes = client.post(
        f"{CASES_URL}/{case_id}/outcome",
        json={"outcome": "SUBSTANTIATED", "notes": ""},
        headers=officer_a_headers,
    )
    assert missing_notes.status_code == 422


def test_merge_flow(client, officer_a_headers, case_id):
    target_id = client.post(
        CASES_URL, json={"details": "Same vendor, second report"}, headers=officer_a_headers
    ).json()["id"]

    check = client.get(
        f"{CASES_URL}/{case_id}/can-merge",
        params={"target_case_id": target_id},
        headers=officer_a_headers,
    )
    assert check.json() == {"can_merge": True, "reason": None}

    merged = client.post(
        f"{CASES_URL}/{case_id}/merge",
        json={"target_case_id": target_id, "reason": "Duplicate report"},
        headers=officer_a_headers,
    )
    assert merged.status_code == 200
    assert merged.json()["id"] == target_id

    source = client.get(f"{CASES_URL}/{case_id}", headers=officer_a_headers).json()
    assert source["is_merged"] is True
    assert source["status"] == "CLOSED"
    assert source["merged_into_case_id"] == target_id

    primary = client.get(f"{CASES_URL}/{case_id}/primary", headers=officer_a_headers)
    assert primary.json()["id"] == target_id

    history = client.get(f"{CASES_URL}/{target_id}/merge-history", headers=officer_a_headers).json()
    assert [entry["case_id"] for entry in history] == [case_id]

    listed = client.get(CASES_URL, headers=officer_a_headers).json()
    assert [c["id"] for c in listed["cases"]] == [target_id]

    reverse = client.post(
        f"{CASES_URL}/{target_id}/merge",
        json={"target_case_id": case_id, "reason": "cycle"},
        headers=officer_a_headers,
    )
    assert reverse.status_code == 400


def test_case_timeline(client, officer_a_headers, case_id):
    response = client.get(f"/api/v1/activity/entity/CASE/{case_id}", headers=officer_a_headers)

    assert response.status_code == 200
    assert [item["action"] for item in response.json()["items"]] == ["created"]
