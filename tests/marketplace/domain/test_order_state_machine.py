"""Tests for the Order state machine — every (from, to) pair."""

import pytest

from marketplace.errors import InvalidStateError
from marketplace.order.order import Order, OrderStatus, allowed_transitions

_FULFILLMENT_PATH = ["confirmed", "preparing", "ready", "picked_up", "delivering", "delivered"]

_ALLOWED = {
    ("pending", "confirmed"),
    ("pending", "cancelled"),
    ("confirmed", "preparing"),
    ("confirmed", "cancelled"),
    ("preparing", "ready"),
    ("preparing", "cancelled"),
    ("ready", "picked_up"),
    ("ready", "cancelled"),
    ("picked_up", "delivering"),
    ("delivering", "delivered"),
}

_ALL_STATES = [s.value for s in OrderStatus]


def _order_at(status):
    order = Order.create(
        order_id="ord-sm",
        order_number="ORD-260101-0001",
        customer_id="cust-001",
        seller_id="seller-1",
        items_data=[{"product_id": "prod-p", "name": "Kettle", "quantity": 1, "unit_price": 1000}],
        pricing={"subtotal": 1000, "delivery_fee": 0, "discount": 0, "tax": 0, "total": 1000},
        delivery_address={"street": "12 Nile St", "city": "Cairo"},
        payment_method="cash",
    )
    if status == "cancelled":
        order.cancel("Setup")
        return order
    for step in _FULFILLMENT_PATH:
        if order.status == status:
            break
        order.transition_to(step)
    assert order.status == status
    return order


def _apply(order, target):
    if target == "cancelled":
        order.cancel("Requested")
    else:
        order.transition_to(target)


@pytest.mark.parametrize("current", _ALL_STATES)
@pytest.mark.parametrize("target", _ALL_STATES)
def test_transition_table(current, target):
    order = _order_at(current)
    changes = len(order.history())

    if (current, target) in _ALLOWED:
        _apply(order, target)
        assert order.status == target
        assert len(order.history()) == changes + 1
    else:
        with pytest.raises(InvalidStateError):
            _apply(order, target)
        assert order.status == current
        assert len(order.history()) == changes


def test_terminal_states_have_no_exits():
    assert allowed_transitions("delivered") == set()
    assert allowed_transitions("cancelled") == set()


def test_invalid_transition_message_names_both_states():
    order = _order_at("pending")
    with pytest.raises(InvalidStateError, match="Invalid status transition from pending to delivered"):
        order.transition_to("delivered")
