from ahrom.models import AuditLog, WhitelistEntry
from ahrom.services import whitelist_service


def test_admin_adds_and_lists_entries(client, test_db, admin, auth_headers):
    headers = auth_headers(admin)

    response = client.post(
        "/admin/whitelist",
        json={"phone_number": "+98 912 555 1234", "allowed_roles": ["contractor", "contractor"], "notes": "نصاب"},
        headers=headers,
    )

    assert response.status_code == 201
    entry = response.json()
    assert entry["phone_number"] == "09125551234"
    assert entry["kind"] == "phone"
    assert entry["allowed_roles"] == ["contractor"]
    assert entry["created_by"] == admin.id

    client.post("/admin/whitelist", json={"phone_number": "09125550000", "kind": "staff"}, headers=headers)

    assert len(client.get("/admin/whitelist", headers=headers).json()) == 2
    staff_only = client.get("/admin/whitelist?kind=staff", headers=headers).json()
    assert [e["phone_number"] for e in staff_only] == ["09125550000"]
    assert test_db.query(AuditLog).filter(AuditLog.action == "whitelist_entry_added").count() == 2


def test_duplicate_phone_is_rejected(client, admin, auth_headers):
    headers = auth_headers(admin)
    client.post("/admin/whitelist", json={"phone_number": "09125551234"}, headers=headers)

    response = client.post("/admin/whitelist", json={"phone_number": "۰۹۱۲۵۵۵۱۲۳۴"}, headers=headers)
    assert response.status_code == 409

    # The same phone may still appear under another kind
    other_kind = client.post(
        "/admin/whitelist", json={"phone_number": "09125551234", "kind": "staff"}, headers=headers
    )
    assert other_kind.status_code == 201


def test_invalid_entries(client, admin, auth_headers):
    headers = auth_headers(admin)

    assert client.post("/admin/whitelist", json={"phone_number": "12345"}, headers=headers).status_code == 400
    assert client.post(
        "/admin/whitelist", json={"phone_number": "09125551234", "kind": "vip"}, headers=headers
    ).status_code == 400
    assert client.post(
        "/admin/whitelist", json={"phone_number": "09125551234", "allowed_roles": ["wizard"]}, headers=headers
    ).status_code == 400


def test_only_admins_manage_the_list(client, make_user, customer, auth_headers):
    manager = make_user("sales_manager")

    assert client.get("/admin/whitelist", headers=auth_headers(customer)).status_code == 403
    assert client.post(
        "/admin/whitelist", json={"phone_number": "09125551234"}, headers=auth_headers(manager)
    ).status_code == 403
    assert client.get("/admin/whitelist").status_code == 401


def test_delete_entry(client, test_db, admin, auth_headers):
    headers = auth_headers(admin)
    entry = client.post("/admin/whitelist", json={"phone_number": "09125551234"}, headers=headers).json()

    assert client.delete(f"/admin/whitelist/{entry['id']}", headers=headers).json() == {"success": True}
    assert test_db.query(WhitelistEntry).count() == 0
    assert client.delete(f"/admin/whitelist/{entry['id']}", headers=headers).status_code == 404


def test_lookup_tolerates_legacy_formats(test_db):
    # Rows written before normalization may hold other formats
    test_db.add(WhitelistEntry(phone_number="989125551234", kind="phone", allowed_roles=["ceo", "ghost"]))
    test_db.commit()

    assert whitelist_service.check_whitelist(test_db, "09125551234") is True
    assert whitelist_service.whitelisted_roles(test_db, "+989125551234") == ["ceo"]
    assert whitelist_service.check_whitelist(test_db, "09125551234", whitelist_service.KIND_STAFF) is False


def test_public_check_answers_a_boolean(client, test_db):
    test_db.add(WhitelistEntry(phone_number="09125551234", kind="phone", allowed_roles=["ceo"]))
    test_db.commit()

    response = client.post("/auth/check-whitelist", json={"phone_number": "09125551234"})
    assert response.json() == {"success": True, "is_whitelisted": True}
    assert client.post("/auth/check-whitelist", json={"phone_number": "09129999999"}).json()["is_whitelisted"] is False


def test_staff_check_uses_callers_phone(client, test_db, make_user, auth_headers):
    listed = make_user("contractor", phone_number="09125551234")
    unlisted = make_user("contractor")
    test_db.add(WhitelistEntry(phone_number="09125551234", kind="staff", allowed_roles=[]))
    test_db.commit()

    assert client.get("/whitelist/staff/check", headers=auth_headers(listed)).json()["is_whitelisted"] is True
    assert client.get("/whitelist/staff/check", headers=auth_headers(unlisted)).json()["is_whitelisted"] is False
