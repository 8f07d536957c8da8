"""BDD tests for the seller order lifecycle."""

import pytest
from pytest_bdd import given, parsers, scenarios, then, when

from marketplace.cart.lookup import find_cart
from marketplace.errors import InsufficientResourceError, InvalidStateError

scenarios("features/order_lifecycle.feature")

_PRODUCTS = {"Kettle": "prod-p", "Kettles": "prod-p", "Lamp": "prod-r"}


@pytest.fixture()
def outcome():
    return {}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.parse("the {name} has {quantity:d} units in stock"))
def _(name, quantity, ledger, catalog, sellers):
    product_id = _PRODUCTS[name]
    seller_id = catalog.get_product(product_id).seller_id
    ledger.initialize_stock(product_id, seller_id, quantity=quantity)


@given(parsers.parse("customer {customer_id} has {kettles:d} Kettles and {lamps:d} Lamp in the cart"))
def _(customer_id, kettles, lamps, add_to_cart):
    add_to_cart(customer_id, "prod-p", kettles)
    add_to_cart(customer_id, "prod-r", lamps)


@given(parsers.parse("{customer_id} has {amount:d} in the wallet"))
def _(customer_id, amount, wallet):
    wallet.deposit(customer_id, amount)


@given(parsers.parse("{customer_id} checked out {seller_id} paying cash"), target_fixture="order")
def _(customer_id, seller_id, workflow, address):
    return workflow.create_order(customer_id, seller_id, "cash", address)


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.parse("{customer_id} checks out {seller_id} paying cash"), target_fixture="order")
def _(customer_id, seller_id, workflow, address):
    return workflow.create_order(customer_id, seller_id, "cash", address)


@when(parsers.parse("{customer_id} tries to check out {seller_id} paying by wallet"))
def _(customer_id, seller_id, workflow, address, outcome):
    try:
        workflow.create_order(customer_id, seller_id, "wallet", address)
    except InsufficientResourceError as exc:
        outcome["error"] = exc


@given(parsers.parse("the order moves through {statuses}"), target_fixture="order")
@when(parsers.parse("the order moves through {statuses}"), target_fixture="order")
def _(statuses, order, machine):
    for status in statuses.split(", "):
        order = machine.update_status(order.id, status, actor="seller-1")
    return order


@when(parsers.parse('the order is cancelled because "{reason}"'), target_fixture="order")
def _(reason, order, machine):
    return machine.cancel_order(order.id, reason=reason, actor="cust-1")


@when("the customer tries to cancel the order")
def _(order, machine, outcome):
    try:
        machine.cancel_order(order.id, reason="Too late", actor="cust-1")
    except InvalidStateError as exc:
        outcome["error"] = exc


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.parse("the order is {status}"))
def _(status, order, machine):
    stored = machine.get_order(order.id)
    if status == "paid":
        assert stored.payment_status == "paid"
    else:
        assert stored.status == status


@then(parsers.parse("{quantity:d} Kettles are reserved"))
def _(quantity, ledger):
    assert ledger.get_stock("prod-p").reserved_quantity == quantity


@then("the cart still holds the Lamp only")
def _():
    cart = find_cart(customer_id="cust-1")
    assert [str(i.product_id) for i in cart.items] == ["prod-r"]


@then(parsers.parse("the Kettle has {on_hand:d} units on hand and {reserved:d} reserved"))
def _(on_hand, reserved, ledger):
    record = ledger.get_stock("prod-p")
    assert (record.quantity, record.reserved_quantity) == (on_hand, reserved)


@then(parsers.parse("the Kettle has {available:d} units available"))
def _(available, ledger):
    assert ledger.get_stock("prod-p").available_quantity == available


@then("the last Kettle movement is a return")
def _(ledger):
    assert ledger.get_stock("prod-p").history()[-1].movement_type == "return"


@then("the cancellation is rejected")
def _(outcome):
    assert isinstance(outcome.get("error"), InvalidStateError)


@then("the checkout is rejected for insufficient wallet balance")
def _(outcome):
    assert isinstance(outcome.get("error"), InsufficientResourceError)
    assert outcome["error"].resource == "wallet balance"


@then(parsers.parse("{customer_id} still has {amount:d} in the wallet"))
def _(customer_id, amount, wallet):
    assert wallet.get_balance(customer_id) == amount
