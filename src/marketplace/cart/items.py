"""Cart item management — commands and handler.

Every command addresses the cart of a customer (or guest session). The cart
is created lazily on the first add. Adding checks the catalog and current
stock availability, but never reserves.
"""

import json

import structlog
from protean import handle
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from marketplace.cart.cart import ShoppingCart
from marketplace.cart.lookup import find_cart
from marketplace.collaborators import get_catalog
from marketplace.domain import marketplace
from marketplace.errors import InsufficientResourceError, InvalidStateError, NotFoundError
from marketplace.inventory.ledger import StockLedger

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="ShoppingCart")
class AddToCart:
    customer_id = Identifier()
    session_id = String(max_length=255)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(required=True, min_value=1)
    selected_options = Text()  # JSON object


@marketplace.command(part_of="ShoppingCart")
class UpdateCartItem:
    """Set a line's quantity. Zero or less removes the line."""

    customer_id = Identifier()
    session_id = String(max_length=255)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(required=True)


@marketplace.command(part_of="ShoppingCart")
class RemoveFromCart:
    customer_id = Identifier()
    session_id = String(max_length=255)
    product_id = Identifier(required=True)
    variant_id = Identifier()


@marketplace.command(part_of="ShoppingCart")
class ClearCart:
    customer_id = Identifier()
    session_id = String(max_length=255)


def _ensure_in_stock(product, variant_id, quantity):
    record = StockLedger().find_stock(product.product_id, variant_id)
    available = record.available_quantity if record else 0
    if available < quantity:
        raise InsufficientResourceError(
            "stock",
            requested=quantity,
            available=available,
            message=f"Insufficient stock for {product.name}: {available} available, {quantity} requested",
        )


def _purchasable_product(product_id, variant_id):
    product = get_catalog().get_product(str(product_id))
    if product is None:
        raise NotFoundError("Product", str(product_id))
    if not product.is_purchasable:
        raise InvalidStateError(f"Product {product.name} is not available for purchase", current_state=product.status)
    if variant_id and product.variant(variant_id) is None:
        raise NotFoundError("Variant", str(variant_id), message=f"Variant {variant_id} does not belong to product {product_id}")
    return product


def _existing_cart(command) -> ShoppingCart:
    cart = find_cart(command.customer_id, command.session_id)
    if cart is None:
        raise NotFoundError("Cart", str(command.customer_id or command.session_id))
    return cart


@marketplace.command_handler(part_of=ShoppingCart)
class ManageCartItemsHandler:
    @handle(AddToCart)
    def add_to_cart(self, command):
        product = _purchasable_product(command.product_id, command.variant_id)
        _ensure_in_stock(product, command.variant_id, command.quantity)

        cart = find_cart(command.customer_id, command.session_id)
        if cart is None:
            cart = ShoppingCart.create(customer_id=command.customer_id, session_id=command.session_id)

        existing = cart.find_line(command.product_id, command.variant_id)
        if existing is not None:
            _ensure_in_stock(product, command.variant_id, existing.quantity + command.quantity)

        cart.add_item(
            product_id=command.product_id,
            variant_id=command.variant_id,
            seller_id=product.seller_id,
            quantity=command.quantity,
            unit_price=product.unit_price(command.variant_id),
            points_price=product.unit_points_price(command.variant_id),
            selected_options=json.loads(command.selected_options) if command.selected_options else None,
        )
        current_domain.repository_for(ShoppingCart).add(cart)

        logger.info(
            "Item added to cart",
            cart_id=str(cart.id),
            product_id=str(command.product_id),
            quantity=command.quantity,
        )
        return str(cart.id)

    @handle(UpdateCartItem)
    def update_cart_item(self, command):
        cart = _existing_cart(command)

        if command.quantity > 0:
            product = get_catalog().get_product(str(command.product_id))
            if product is None:
                raise NotFoundError("Product", str(command.product_id))
            _ensure_in_stock(product, command.variant_id, command.quantity)

        cart.update_item_quantity(command.product_id, command.quantity, variant_id=command.variant_id)
        current_domain.repository_for(ShoppingCart).add(cart)
        return str(cart.id)

    @handle(RemoveFromCart)
    def remove_from_cart(self, command):
        cart = _existing_cart(command)
        cart.remove_item(command.product_id, variant_id=command.variant_id)
        current_domain.repository_for(ShoppingCart).add(cart)
        return str(cart.id)

    @handle(ClearCart)
    def clear_cart(self, command):
        cart = _existing_cart(command)
        cart.clear()
        current_domain.repository_for(ShoppingCart).add(cart)
        return str(cart.id)
