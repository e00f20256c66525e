import pytest
from fastapi import status
from app.models.penalty import Penalty


def _set_rules(client, headers, threshold="09:00", grace=0):
    return client.put(
        "/api/settings/penalty-rules",
        headers=headers,
        json={"default_clock_in_threshold": threshold, "max_late_days_per_month": grace},
    )


def test_clock_in_and_out(client, employee, auth_headers):
    mine = auth_headers(employee)
    response = client.post("/api/attendance/clock-in", headers=mine)
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Clocked in successfully"
    assert body["penalty"]["status"] == "no_penalty"

    response = client.post("/api/attendance/clock-out", headers=mine, json={"auto_clock_out": False})
    assert response.status_code == 200
    assert response.json()["clock_out"] is not None

    records = client.get("/api/attendance/records", headers=mine).json()
    assert len(records) == 1


def test_clock_out_without_clock_in(client, employee, auth_headers):
    response = client.post("/api/attendance/clock-out", headers=auth_headers(employee), json={})
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["errors"][0]["code"] == "INVALID_ATTENDANCE_ACTION"


def test_assess_and_read_penalty(client, admin_user, employee, auth_headers):
    admin, mine = auth_headers(admin_user), auth_headers(employee)
    assert _set_rules(client, admin).status_code == 200

    response = client.post(
        "/api/attendance/penalty",
        headers=admin,
        json={"employee_id": employee.id, "clock_in_at": "2025-03-03T09:45:00"},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "penalty_created"

    response = client.post(
        "/api/attendance/penalty",
        headers=admin,
        json={"employee_id": employee.id, "clock_in_at": "2025-03-03T10:15:00"},
    )
    assert response.json()["status"] == "already_penalized"

    report = client.get("/api/attendance/penalty?day=2025-03-03", headers=mine).json()
    assert report["has_penalty"] is True
    assert report["penalty"]["penalty_amount"] == 0.5
    assert report["leave_summary"]["deducted"] == "0.5 days"


def test_grace_increase_forgives_penalty_on_read(client, admin_user, employee, auth_headers, db_session):
    admin, mine = auth_headers(admin_user), auth_headers(employee)
    _set_rules(client, admin, grace=0)
    client.post(
        "/api/attendance/penalty",
        headers=mine,
        json={"clock_in_at": "2025-03-03T09:45:00"},
    )
    assert db_session.query(Penalty).count() == 1

    _set_rules(client, admin, grace=5)
    report = client.get("/api/attendance/penalty?day=2025-03-03", headers=mine).json()
    assert report["has_penalty"] is False
    assert db_session.query(Penalty).count() == 0


def test_employee_cannot_read_others_penalties(client, employee, make_user, auth_headers):
    other = make_user()
    response = client.get(f"/api/attendance/penalty?employee_id={other.id}", headers=auth_headers(employee))
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_penalty_rules_validation_and_access(client, admin_user, employee, auth_headers):
    response = _set_rules(client, auth_headers(admin_user), threshold="9am")
    assert response.status_code == 400
    assert response.json()["errors"][0]["code"] == "INVALID_SETTING"

    response = _set_rules(client, auth_headers(employee))
    assert response.status_code == status.HTTP_403_FORBIDDEN

    response = _set_rules(client, auth_headers(admin_user), threshold="unrestricted", grace=3)
    assert response.status_code == 200
    assert response.json()["default_clock_in_threshold"] == "unrestricted"

    rules = client.get("/api/settings/penalty-rules", headers=auth_headers(employee)).json()
    assert rules["max_late_days_per_month"] == 3


def test_employee_ids_listing(client, admin_user, make_user, auth_headers):
    worker = make_user(joining_year=2024)
    admin = auth_headers(admin_user)
    listed = client.get("/api/employees", headers=admin).json()
    by_id = {u["id"]: u for u in listed}
    assert by_id[worker.id]["emp_id"] == "2024EMP-001"
    assert by_id[admin_user.id]["emp_id"] is None

    response = client.patch(f"/api/employees/{worker.id}", headers=admin, json={"joining_year": None})
    assert response.status_code == 200
    assert response.json()["emp_id"] is None


def test_employee_threshold_override(client, admin_user, make_user, auth_headers):
    worker = make_user()
    admin = auth_headers(admin_user)
    response = client.patch(f"/api/employees/{worker.id}", headers=admin, json={"clock_in_threshold": "N/R"})
    assert response.status_code == 200
    assert response.json()["clock_in_threshold"] == "N/R"

    response = client.patch(f"/api/employees/{worker.id}", headers=admin, json={"clock_in_threshold": "late"})
    assert response.status_code == 400
