import pytest

PDF_BYTES = b"%PDF-1.4 expense scans"


@pytest.fixture
def case_id(client, officer_a_headers):
    return client.post(
        "/api/v1/cases", json={"details": "Receipts were altered"}, headers=officer_a_headers
    ).json()["id"]


def _upload(client, case_id, headers, filename="evidence.pdf", content=PDF_BYTES, mime_type="application/pdf"):
    return client.post(
        f"/api/v1/cases/{case_id}/attachments",
        files={"file": (filename, content, mime_type)},
        headers=headers,
    )


def test_upload_list_download_delete(client, officer_a, officer_a_headers, case_id):
    uploaded = _upload(client, case_id, officer_a_headers)
    assert uploaded.status_code == 201, uploaded.text
    attachment = uploaded.json()
    assert attachment["case_id"] == case_id
    assert attachment["filename"] == "evidence.pdf"
    assert attachment["size"] == len(PDF_BYTES)
    assert attachment["uploaded_by_id"] == officer_a.id

    listed = client.get(f"/api/v1/cases/{case_id}/attachments", headers=officer_a_headers).json()
    assert [a["id"] for a in listed] == [attachment["id"]]

    downloaded = client.get(f"/api/v1/attachments/{attachment['id']}/download", headers=officer_a_headers)
    assert downloaded.status_code == 200
    assert downloaded.content == PDF_BYTES
    assert downloaded.headers["content-type"] == "application/pdf"

    deleted = client.delete(f"/api/v1/attachments/{attachment['id']}", headers=officer_a_headers)
    assert deleted.status_code == 204
    assert client.get(f"/api/v1/cases/{case_id}/attachments", headers=officer_a_headers).json() == []


def test_filename_is_sanitized(client, officer_a_headers, case_id):
    response = _upload(client, case_id, officer_a_headers, filename="../../q3 report.pdf")

    assert response.status_code == 201
    assert response.json()["filename"] == "q3_report.pdf"


def test_disallowed_type_is_rejected(client, officer_a_headers, case_id):
    response = _upload(
        client, case_id, officer_a_headers,
        filename="setup.exe", content=b"MZ", mime_type="application/x-msdownload",
    )

    assert response.status_code == 400


def test_upload_to_case_of_other_organization(client, officer_b_headers, case_id):
    assert _upload(client, case_id, officer_b_headers).status_code == 404


def test_attachment_of_other_organization_is_not_found(client, officer_a_headers, officer_b_headers, case_id):
    attachment_id = _upload(client, case_id, officer_a_headers).json()["id"]

    assert client.get(f"/api/v1/attachments/{attachment_id}/download", headers=officer_b_headers).status_code == 404
    assert client.delete(f"/api/v1/attachments/{attachment_id}", headers=officer_b_headers).status_code == 404
