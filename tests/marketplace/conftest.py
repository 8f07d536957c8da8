"""Shared fixtures: in-memory collaborators seeded with one seller and a few products."""

import pytest
from protean import current_domain

from marketplace.cart.items import AddToCart
from marketplace.collaborators import get_catalog, get_event_sink, get_sellers, get_wallet
from marketplace.collaborators.catalog import ProductSnapshot, VariantSnapshot
from marketplace.collaborators.sellers import DeliveryZone, SellerProfile
from marketplace.inventory.ledger import StockLedger
from marketplace.order.creation import OrderCreationWorkflow
from marketplace.order.status import OrderStatusMachine

ADDRESS = {"recipient_name": "Mona", "phone": "+20100000000", "street": "12 Nile St", "city": "Cairo"}


@pytest.fixture()
def catalog():
    catalog = get_catalog()
    catalog.add_product(ProductSnapshot(product_id="prod-p", seller_id="seller-1", name="Kettle", price=1000, sku="KTL-1"))
    catalog.add_product(ProductSnapshot(product_id="prod-q", seller_id="seller-1", name="Mug", price=250))
    catalog.add_product(
        ProductSnapshot(
            product_id="prod-shirt",
            seller_id="seller-1",
            name="Shirt",
            price=1500,
            variants=(
                VariantSnapshot(variant_id="var-red-m", name="Red / M", sku="SHIRT-RED-M", price=1700),
                VariantSnapshot(variant_id="var-blue-m", name="Blue / M", sku="SHIRT-BLUE-M"),
            ),
        )
    )
    catalog.add_product(ProductSnapshot(product_id="prod-r", seller_id="seller-2", name="Lamp", price=3000))
    catalog.add_product(
        ProductSnapshot(product_id="prod-draft", seller_id="seller-1", name="Prototype", price=500, status="draft")
    )
    return catalog


@pytest.fixture()
def sellers():
    sellers = get_sellers()
    sellers.add_seller(
        SellerProfile(
            seller_id="seller-1",
            name="Nile Goods",
            default_delivery_fee=500,
            free_delivery_threshold=10000,
            delivery_zones=(DeliveryZone(cities=("Giza",), fee=300, free_delivery_threshold=5000),),
        )
    )
    sellers.add_seller(SellerProfile(seller_id="seller-2", name="Delta Lights", default_delivery_fee=0))
    sellers.add_seller(SellerProfile(seller_id="seller-closed", name="Closed Shop", is_active=False))
    return sellers


@pytest.fixture()
def wallet():
    return get_wallet()


@pytest.fixture()
def sink():
    return get_event_sink()


@pytest.fixture()
def ledger():
    return StockLedger()


@pytest.fixture()
def workflow(ledger):
    return OrderCreationWorkflow(ledger=ledger)


@pytest.fixture()
def machine(ledger):
    return OrderStatusMachine(ledger=ledger)


@pytest.fixture()
def stock(ledger, catalog):
    """Initialize stock for the standard products: P=10, Q=20, R=5, shirt variants 4 each."""
    ledger.initialize_stock("prod-p", "seller-1", quantity=10)
    ledger.initialize_stock("prod-q", "seller-1", quantity=20)
    ledger.initialize_stock("prod-r", "seller-2", quantity=5)
    ledger.initialize_stock("prod-shirt", "seller-1", variant_id="var-red-m", quantity=4)
    ledger.initialize_stock("prod-shirt", "seller-1", variant_id="var-blue-m", quantity=4)
    return ledger


def _add_to_cart(customer_id, product_id, quantity=1, variant_id=None, session_id=None):
    return current_domain.process(
        AddToCart(
            customer_id=customer_id,
            session_id=session_id,
            product_id=product_id,
            variant_id=variant_id,
            quantity=quantity,
        ),
        asynchronous=False,
    )


@pytest.fixture()
def address():
    return dict(ADDRESS)


@pytest.fixture()
def add_to_cart():
    """Process an AddToCart command; returns the cart id."""
    return _add_to_cart


@pytest.fixture()
def place_order(workflow, catalog, sellers, stock):
    """Fill a cart for ``cust-1`` and order it from seller-1."""

    def _place(lines=(("prod-p", 2),), customer_id="cust-1", seller_id="seller-1", payment_method="cash", **kwargs):
        for product_id, quantity in lines:
            _add_to_cart(customer_id, product_id, quantity)
        return workflow.create_order(
            customer_id=customer_id,
            seller_id=seller_id,
            payment_method=payment_method,
            delivery_address=kwargs.pop("delivery_address", ADDRESS),
            **kwargs,
        )

    return _place
