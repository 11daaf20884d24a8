from types import SimpleNamespace

from ahrom.roles import primary_view
from ahrom.services import order_status


def test_transition_table():
    assert order_status.validate_status_transition("draft", "pending")
    assert order_status.validate_status_transition("pending", "approved")
    assert order_status.validate_status_transition("completed", "paid")
    assert not order_status.validate_status_transition("pending", "completed")
    assert not order_status.validate_status_transition("closed", "pending")
    assert not order_status.validate_status_transition("pending", "unknown")


def test_same_status_is_allowed():
    assert order_status.validate_status_transition("approved", "approved")


def test_terminal_statuses():
    assert order_status.is_terminal("closed")
    assert order_status.is_terminal("rejected")
    assert not order_status.is_terminal("paid")


def test_every_status_has_a_display():
    for status in order_status.ORDER_STATUSES:
        display = order_status.status_display(status)
        assert display["label"]
        assert display["color"]
    assert order_status.status_display("weird") == {"label": "weird", "color": "outline"}


def test_role_gates():
    order = SimpleNamespace(customer_id=1, status="pending")
    assert order_status.can_actor_transition(order, "approved", 2, {"sales_manager"})
    assert not order_status.can_actor_transition(order, "approved", 2, {"contractor"})
    assert order_status.can_actor_transition(order, "in_progress", 2, {"contractor"})
    assert order_status.can_actor_transition(order, "paid", 2, {"finance_manager"})
    assert not order_status.can_actor_transition(order, "paid", 2, {"sales_manager"})


def test_submitting_a_draft_is_open_to_owner_and_staff():
    draft = SimpleNamespace(customer_id=1, status="draft")
    assert order_status.can_actor_transition(draft, "pending", 1, {"customer"})
    assert order_status.can_actor_transition(draft, "pending", 9, {"sales_manager"})
    assert not order_status.can_actor_transition(draft, "pending", 9, {"customer"})


def test_primary_view_precedence():
    assert primary_view({"customer", "contractor"}) == "contractor"
    assert primary_view({"sales_manager", "finance_manager"}) == "finance_manager"
    assert primary_view({"ceo", "admin"}) == "admin"
    assert primary_view(set()) == "customer"
