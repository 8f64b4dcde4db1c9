"""Uploading, reading and exporting RTO status snapshots."""

from __future__ import annotations

import io
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from openpyxl import load_workbook

from conftest import UPLOADER_EMAIL
from rtoboard.api import create_app
from rtoboard.store import StoreError


@pytest.fixture()
def uploader_headers(database, login):
    database.create_user("RTO1", "RTO Validation", UPLOADER_EMAIL, "uploader-pass", "dl")
    return login(UPLOADER_EMAIL, "uploader-pass")


@pytest.fixture()
def manager_headers(database, login):
    database.create_user("M1", "Maria", "maria@example.com", "maria-password", "manager")
    return login("maria@example.com", "maria-password")


def _upload(client, headers, payload):
    return client.post("/api/rto-status/upload", json=payload, headers=headers)


def _seed(database, make_payload, *days):
    for index, day in enumerate(days, start=1):
        database.add_status(
            make_payload(index, 0),
            uploaded_by=UPLOADER_EMAIL.lower(),
            uploaded_at=datetime(2024, 5, day, 9, 30, tzinfo=timezone.utc),
        )


def test_upload_is_limited_to_the_uploader_account(client, manager_headers, make_payload) -> None:
    response = _upload(client, manager_headers, make_payload())

    assert response.status_code == 403
    assert response.json()["detail"] == "Forbidden: You are not authorized to upload RTO status."


def test_all_zero_upload_reports_zero_grand_total(client, uploader_headers, make_payload) -> None:
    response = _upload(client, uploader_headers, make_payload(0, 0))
    assert response.status_code == 200, response.text
    assert response.json() == {"message": "RTO status counts uploaded successfully."}

    summary = client.get("/api/rto-status/latest/summary", headers=uploader_headers).json()

    assert summary["grandTotal"] == 0
    assert summary["pendingActions"]["total"] == 0
    assert summary["pendingActions"]["businessPercentage"] == "0.00"
    assert summary["uploadedBy"] == UPLOADER_EMAIL.lower()


@pytest.mark.parametrize("bad_value", [-1, "seven", 1.5, None, True])
def test_upload_rejects_invalid_counts(client, uploader_headers, make_payload, bad_value) -> None:
    payload = make_payload(1, 1)
    payload["summary_counts"]["pendingUat"] = bad_value

    response = _upload(client, uploader_headers, payload)

    assert response.status_code == 400
    assert "pendingUat" in response.json()["detail"]


def test_upload_rejects_invalid_matrix_cells(client, uploader_headers, make_payload) -> None:
    payload = make_payload(1, 1)
    payload["aging_matrix"]["statuses"]["vlanInProgress"]["c4weeks"] = -3

    response = _upload(client, uploader_headers, payload)

    assert response.status_code == 400
    assert "vlanInProgress.c4weeks" in response.json()["detail"]


def test_upload_rejects_missing_sections(client, uploader_headers) -> None:
    response = _upload(client, uploader_headers, {"summary_counts": {}})

    assert response.status_code == 400
    assert "aging_matrix" in response.json()["detail"]


def test_latest_returns_most_recent_upload(client, uploader_headers, make_payload) -> None:
    assert client.get("/api/rto-status/latest", headers=uploader_headers).status_code == 404

    _upload(client, uploader_headers, make_payload(1, 0))
    _upload(client, uploader_headers, make_payload(2, 0))

    latest = client.get("/api/rto-status/latest", headers=uploader_headers).json()

    assert latest["id"] == 2
    assert latest["summary_counts"]["completed"] == 2
    assert latest["uploadedAt"].endswith("Z")


def test_upload_drops_unknown_keys(client, uploader_headers, make_payload) -> None:
    payload = make_payload(1, 0)
    payload["note"] = "ignored"

    _upload(client, uploader_headers, payload)

    latest = client.get("/api/rto-status/latest", headers=uploader_headers).json()
    assert "note" not in latest


def test_history_is_most_recent_first(client, database, manager_headers, make_payload) -> None:
    _seed(database, make_payload, 1, 2, 3)

    history = client.get("/api/rto-status/history", headers=manager_headers).json()
    assert [entry["id"] for entry in history] == [3, 2, 1]

    paged = client.get(
        "/api/rto-status/history",
        params={"page": 2, "page_size": 2},
        headers=manager_headers,
    ).json()
    assert [entry["id"] for entry in paged] == [1]


def test_history_is_manager_only(client, database, uploader_headers, make_payload) -> None:
    _seed(database, make_payload, 1)

    response = client.get("/api/rto-status/history", headers=uploader_headers)

    assert response.status_code == 403


def test_export_single_entry(client, database, manager_headers, make_payload) -> None:
    _seed(database, make_payload, 1, 2)

    response = client.get("/api/rto-status/export", params={"id": 2}, headers=manager_headers)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith(
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )
    assert "RTO_Status_Report.xlsx" in response.headers["content-disposition"]
    workbook = load_workbook(io.BytesIO(response.content))
    assert workbook.sheetnames == ["2024-05-02T09-30-00-000Z"]


def test_export_date_range_includes_whole_end_day(client, database, manager_headers, make_payload) -> None:
    _seed(database, make_payload, 1, 2, 3)

    response = client.get(
        "/api/rto-status/export",
        params={"startDate": "2024-05-02", "endDate": "2024-05-03"},
        headers=manager_headers,
    )

    assert response.status_code == 200
    workbook = load_workbook(io.BytesIO(response.content))
    assert workbook.sheetnames == ["2024-05-02T09-30-00-000Z", "2024-05-03T09-30-00-000Z"]


@pytest.mark.parametrize(
    "params, status_code",
    [
        ({}, 400),
        ({"startDate": "2024-05-01"}, 400),
        ({"startDate": "yesterday", "endDate": "today"}, 400),
        ({"id": 99}, 404),
        ({"startDate": "2023-01-01", "endDate": "2023-01-31"}, 404),
    ],
)
def test_export_errors(client, database, manager_headers, make_payload, params, status_code) -> None:
    _seed(database, make_payload, 1)

    response = client.get("/api/rto-status/export", params=params, headers=manager_headers)

    assert response.status_code == status_code


def test_storage_failures_become_internal_errors(database, settings, login, monkeypatch) -> None:
    headers = login(*_admin_credentials(settings))
    app = create_app(database=database, settings=settings, initialize_database=False)

    def broken_store():
        raise StoreError("disk full")

    monkeypatch.setattr(database, "latest_status", broken_store)
    response = TestClient(app).get("/api/rto-status/latest", headers=headers)

    assert response.status_code == 500
    assert response.json() == {"detail": "An internal server error occurred."}


def test_unexpected_errors_become_internal_errors(database, settings, login, monkeypatch) -> None:
    headers = login(*_admin_credentials(settings))
    app = create_app(database=database, settings=settings, initialize_database=False)

    def explode():
        raise RuntimeError("boom")

    monkeypatch.setattr(database, "latest_status", explode)
    response = TestClient(app, raise_server_exceptions=False).get("/api/rto-status/latest", headers=headers)

    assert response.status_code == 500
    assert response.json() == {"detail": "An internal server error occurred."}


def _admin_credentials(settings):
    return settings.admin.email, settings.admin.password
