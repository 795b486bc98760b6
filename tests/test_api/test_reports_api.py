"""API tests for scoped report data, the export gate and the allowlist."""
from __future__ import annotations


def _codes(resp) -> list[str]:
    return sorted(row["customer_code"] for row in resp.json())


def test_report_data_is_scoped_like_cases(client, org, auth):
    assert _codes(client.get("/reports/data", headers=auth("E1"))) == ["KH-E1"]
    assert _codes(client.get("/reports/data", headers=auth("MGR"))) == ["KH-E1", "KH-E2"]


def test_risk_department_reads_everything_visible(client, org, auth):
    assert _codes(client.get("/reports/data", headers=auth("RSK"))) == ["KH-E1", "KH-E2", "KH-E3"]


def test_report_rows_carry_officer_columns(client, org, auth):
    (row,) = client.get("/reports/data", headers=auth("E1")).json()

    assert row["assigned_employee_code"] == "E1"
    assert row["department"] == "KHCN"
    assert row["officer_fullname"] == "User E1"


def test_report_filters_apply_inside_scope(client, org, auth):
    resp = client.get("/reports/data", params={"employee_code": "E2"}, headers=auth("MGR"))

    assert _codes(resp) == ["KH-E2"]


def test_manager_can_export(client, org, auth):
    headers = auth("MGR")

    assert client.get("/reports/can-export", headers=headers).json() == {"can_export": True}
    assert _codes(client.get("/reports/export", headers=headers)) == ["KH-E1", "KH-E2"]


def test_employee_export_needs_allowlist(client, org, auth):
    employee = auth("E1")
    admin = auth("ADM")

    denied = client.get("/reports/export", headers=employee)
    assert denied.status_code == 403
    assert denied.json()["message"] == "You are not allowed to export reports."
    assert client.get("/reports/can-export", headers=employee).json() == {"can_export": False}

    added = client.post("/reports/export-allowlist", json={"employee_code": "E1"}, headers=admin)
    assert added.json() == {"employees": ["E1"]}

    assert client.get("/reports/can-export", headers=employee).json() == {"can_export": True}
    assert _codes(client.get("/reports/export", headers=employee)) == ["KH-E1"]

    removed = client.delete("/reports/export-allowlist/E1", headers=admin)
    assert removed.json() == {"employees": []}
    assert client.get("/reports/export", headers=employee).status_code == 403


def test_export_does_not_include_delegated_cases(client, org, auth):
    from datetime import datetime, timedelta, timezone

    expiry = (datetime.now(timezone.utc) + timedelta(days=2)).isoformat()
    client.post(
        "/delegations",
        json={"case_ids": [org["KH-E1"]], "delegated_to_employee_code": "E2", "expiry_date": expiry},
        headers=auth("E1"),
    )
    client.post("/reports/export-allowlist", json={"employee_code": "E2"}, headers=auth("ADM"))

    assert _codes(client.get("/reports/data", headers=auth("E2"))) == ["KH-E1", "KH-E2"]
    assert _codes(client.get("/reports/export", headers=auth("E2"))) == ["KH-E2"]


def test_allowlist_management_is_admin_only(client, org, auth):
    assert client.get("/reports/export-allowlist", headers=auth("MGR")).status_code == 403
    assert client.post(
        "/reports/export-allowlist", json={"employee_code": "E1"}, headers=auth("MGR")
    ).status_code == 403
    assert client.get("/reports/export-allowlist", headers=auth("ADM")).json() == {"employees": []}
