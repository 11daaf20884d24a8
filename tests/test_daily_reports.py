from datetime import date

import pytest

from ahrom.models import AuditLog, ModuleVersion
from ahrom.services import daily_report_service

REPORT_DATE = "2024-05-01"


@pytest.fixture
def manager(make_user):
    return make_user("scaffold_executive_manager", full_name="مدیر اجرایی")


def test_lock_and_status(client, test_db, manager, auth_headers):
    headers = auth_headers(manager)

    before = client.get(f"/daily-reports/locks/{REPORT_DATE}", headers=headers).json()
    assert before["is_locked"] is False
    assert before["locked_by"] is None

    locked = client.post(f"/daily-reports/locks/{REPORT_DATE}", json={"module_key": "staff"}, headers=headers)
    assert locked.status_code == 200
    data = locked.json()
    assert data["is_locked"] is True
    assert data["locked_by"] == manager.id
    assert data["locked_by_name"] == "مدیر اجرایی"
    assert data["locked_by_module_key"] == "staff"

    status = client.get(f"/daily-reports/locks/{REPORT_DATE}", headers=headers).json()
    assert status["is_locked"] is True
    assert test_db.query(AuditLog).filter(AuditLog.action == "daily_report_date_locked").count() == 1


def test_lock_without_body_uses_aggregated_module(client, manager, auth_headers):
    data = client.post(f"/daily-reports/locks/{REPORT_DATE}", headers=auth_headers(manager)).json()
    assert data["locked_by_module_key"] == "aggregated"


def test_second_lock_conflicts(client, make_user, manager, auth_headers):
    other = make_user("ceo")
    client.post(f"/daily-reports/locks/{REPORT_DATE}", headers=auth_headers(manager))

    response = client.post(f"/daily-reports/locks/{REPORT_DATE}", headers=auth_headers(other))

    assert response.status_code == 409
    status = client.get(f"/daily-reports/locks/{REPORT_DATE}", headers=auth_headers(other)).json()
    assert status["locked_by"] == manager.id


def test_unlock_is_idempotent(client, test_db, manager, auth_headers):
    headers = auth_headers(manager)
    client.post(f"/daily-reports/locks/{REPORT_DATE}", headers=headers)

    assert client.delete(f"/daily-reports/locks/{REPORT_DATE}", headers=headers).json()["is_locked"] is False
    assert client.delete(f"/daily-reports/locks/{REPORT_DATE}", headers=headers).status_code == 200
    assert test_db.query(AuditLog).filter(AuditLog.action == "daily_report_date_unlocked").count() == 1

    # The date can be locked again
    assert client.post(f"/daily-reports/locks/{REPORT_DATE}", headers=headers).status_code == 200


def test_customers_cannot_touch_reports(client, customer, auth_headers):
    headers = auth_headers(customer)

    assert client.get(f"/daily-reports/locks/{REPORT_DATE}", headers=headers).status_code == 403
    assert client.post(f"/daily-reports/locks/{REPORT_DATE}", headers=headers).status_code == 403
    assert client.post(
        "/modules/staff/versions", json={"module_date": REPORT_DATE, "data": {}}, headers=headers
    ).status_code == 403


def test_invalid_date_is_rejected(client, manager, auth_headers):
    assert client.get("/daily-reports/locks/yesterday", headers=auth_headers(manager)).status_code == 422


def test_versions_increment_per_module_and_date(client, manager, auth_headers):
    headers = auth_headers(manager)

    def save(module_key, module_date, data):
        response = client.post(
            f"/modules/{module_key}/versions", json={"module_date": module_date, "data": data}, headers=headers
        )
        assert response.status_code == 201
        return response.json()["version_number"]

    assert save("staff", REPORT_DATE, {"rows": 1}) == 1
    assert save("staff", REPORT_DATE, {"rows": 2}) == 2
    assert save("staff", "2024-05-02", {"rows": 1}) == 1
    assert save("machinery", REPORT_DATE, [1, 2, 3]) == 1

    version = client.get(f"/modules/staff/versions/2?module_date={REPORT_DATE}", headers=headers).json()
    assert version["data_snapshot"] == {"rows": 2}
    assert version["saved_by"] == manager.id

    machinery = client.get(f"/modules/machinery/versions/1?module_date={REPORT_DATE}", headers=headers).json()
    assert machinery["data_snapshot"] == [1, 2, 3]


def test_version_list_is_newest_first_and_capped(client, test_db, manager, auth_headers):
    for _ in range(12):
        daily_report_service.save_module_version(
            test_db, "staff", date(2024, 5, 1), {"rows": 0}, manager.id
        )
    assert test_db.query(ModuleVersion).count() == 12

    listed = client.get(f"/modules/staff/versions?module_date={REPORT_DATE}", headers=auth_headers(manager)).json()

    assert [v["version_number"] for v in listed] == list(range(12, 2, -1))


def test_missing_version_is_404(client, manager, auth_headers):
    response = client.get(f"/modules/staff/versions/3?module_date={REPORT_DATE}", headers=auth_headers(manager))
    assert response.status_code == 404
