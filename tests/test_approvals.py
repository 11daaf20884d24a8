from types import SimpleNamespace

from ahrom.domain.approvals.service import ApprovalService, approval_progress
from ahrom.models import AuditLog, Order, OrderApproval


def make_order(test_db, customer, status="pending"):
    order = Order(code="ORD-1001", customer_id=customer.id, service_type="داربست", status=status)
    test_db.add(order)
    test_db.commit()
    test_db.refresh(order)
    return order


def test_progress_of_a_partial_ledger():
    rows = [SimpleNamespace(approved_at="2024-01-01"), SimpleNamespace(approved_at=None)]
    assert approval_progress(rows) == {
        "completed": 1,
        "total": 2,
        "ratio": 0.5,
        "percent": 50,
        "is_complete": False,
    }


def test_empty_ledger_is_never_complete():
    progress = approval_progress([])
    assert progress["ratio"] == 0.0
    assert progress["is_complete"] is False


def test_ensure_rows_is_idempotent(test_db, customer):
    order = make_order(test_db, customer)
    service = ApprovalService(test_db)

    created = service.ensure_approval_rows(order, ["sales_manager", "ceo", "ceo"])
    test_db.commit()
    again = service.ensure_approval_rows(order, ["sales_manager", "ceo"])
    test_db.commit()

    assert len(created) == 2
    assert again == []
    assert test_db.query(OrderApproval).count() == 2


def test_record_approval_stamps_once(test_db, customer, make_user):
    order = make_order(test_db, customer)
    first, second = make_user("ceo"), make_user("ceo")
    service = ApprovalService(test_db)
    service.ensure_approval_rows(order, ["sales_manager", "ceo"])
    test_db.commit()

    assert service.record_approval(order.id, "ceo", first.id) == {"recorded": True, "already_approved": False}
    assert service.record_approval(order.id, "ceo", second.id) == {"recorded": False, "already_approved": True}

    row = test_db.query(OrderApproval).filter(OrderApproval.approver_role == "ceo").one()
    test_db.refresh(row)
    assert row.approver_user_id == first.id
    assert service.progress(order.id)["percent"] == 50
    assert test_db.query(AuditLog).filter(AuditLog.action == "order_approval_recorded").count() == 1


def test_missing_row_is_a_silent_no_op(test_db, customer, make_user):
    order = make_order(test_db, customer)
    manager = make_user("finance_manager")
    service = ApprovalService(test_db)
    service.ensure_approval_rows(order, ["ceo"])
    test_db.commit()

    result = service.record_approval(order.id, "finance_manager", manager.id)

    assert result == {"recorded": False, "already_approved": False}
    assert test_db.query(OrderApproval).count() == 1


def test_ledger_endpoint_reports_progress(client, test_db, customer, make_user, auth_headers):
    order = make_order(test_db, customer)
    sales = make_user("sales_manager", full_name="مدیر فروش")
    ApprovalService(test_db).ensure_approval_rows(order, ["sales_manager", "ceo"])
    test_db.commit()

    response = client.post(f"/orders/{order.id}/approvals/sales_manager/approve", headers=auth_headers(sales))
    assert response.status_code == 200
    assert response.json()["recorded"] is True
    assert response.json()["progress"]["percent"] == 50

    ledger = client.get(f"/orders/{order.id}/approvals", headers=auth_headers(customer)).json()
    assert ledger["order_code"] == "ORD-1001"
    assert ledger["progress"] == {"completed": 1, "total": 2, "ratio": 0.5, "percent": 50, "is_complete": False}
    by_role = {row["approver_role"]: row for row in ledger["approvals"]}
    assert by_role["sales_manager"]["approver_name"] == "مدیر فروش"
    assert by_role["ceo"]["approved_at"] is None


def test_approving_requires_holding_the_role(client, test_db, customer, make_user, auth_headers):
    order = make_order(test_db, customer)
    sales = make_user("sales_manager")
    ApprovalService(test_db).ensure_approval_rows(order, ["ceo"])
    test_db.commit()

    response = client.post(f"/orders/{order.id}/approvals/ceo/approve", headers=auth_headers(sales))
    assert response.status_code == 403


def test_only_pending_orders_take_approvals(client, test_db, customer, make_user, auth_headers):
    order = make_order(test_db, customer, status="draft")
    ceo = make_user("ceo")

    response = client.post(f"/orders/{order.id}/approvals/ceo/approve", headers=auth_headers(ceo))
    assert response.status_code == 409
