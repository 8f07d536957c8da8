"""OrderCreationWorkflow — turns one seller's cart lines into an order.

There is no transaction spanning the cart, the inventory records and the
order. The workflow orders its writes so that a failure can always be undone
in-process:

1. Validate inputs, cart, seller (no side effects yet)
2. Reserve stock line by line, tagged with the pre-generated order id
3. Price the order and take the wallet part of the payment
4. Allocate the order number and persist the order
5. Remove the consumed cart lines and publish ``order.created``

If anything in steps 2-4 fails, every reservation already made is released
and any wallet debit is refunded before the original error propagates. A
crash that skips this compensation leaves reservations tagged with an order
id that was never persisted; ``sweep_orphaned_reservations`` releases those.
"""

from datetime import timedelta
from uuid import uuid4

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from marketplace.cart.cart import ShoppingCart
from marketplace.cart.lookup import find_cart
from marketplace.collaborators import (
    get_catalog,
    get_coupon_calculator,
    get_event_sink,
    get_sellers,
    get_tax_calculator,
)
from marketplace.collaborators.events import ORDER_CREATED
from marketplace.domain import marketplace
from marketplace.errors import InsufficientResourceError, InvalidStateError, NotFoundError
from marketplace.inventory.ledger import StockLedger
from marketplace.order.numbering import next_order_number
from marketplace.order.order import Order
from marketplace.order.payment import refund_wallet_payment, resolve_payment, validate_payment_request

logger = structlog.get_logger(__name__)

_ADDRESS_FIELDS = frozenset(
    {"recipient_name", "phone", "street", "city", "state", "postal_code", "country", "notes"}
)


def _currency() -> str:
    return marketplace.config.get("custom", {}).get("currency", "USD")


class OrderCreationWorkflow:
    def __init__(self, ledger: StockLedger | None = None) -> None:
        self.ledger = ledger or StockLedger()

    def create_order(
        self,
        customer_id,
        seller_id,
        payment_method,
        delivery_address: dict,
        coupon_id=None,
        points_to_use=0,
        wallet_amount=None,
        customer_notes=None,
        actor=None,
    ) -> Order:
        actor = actor or str(customer_id)

        # 1. Validation, nothing has been written yet
        validate_payment_request(payment_method, wallet_amount)
        if points_to_use and points_to_use < 0:
            raise ValidationError({"points_to_use": ["Points cannot be negative"]})
        address = self._clean_address(delivery_address)

        cart = find_cart(customer_id=customer_id)
        if cart is None or cart.is_empty:
            raise InvalidStateError("Cart is empty")

        lines = cart.lines_for_seller(seller_id)
        if not lines:
            raise InvalidStateError(f"Cart has no items from seller {seller_id}")

        seller = get_sellers().get_seller(str(seller_id))
        if seller is None:
            raise NotFoundError("Seller", str(seller_id))
        if not seller.is_active:
            raise InvalidStateError(f"Seller {seller.name} is not accepting orders")

        order_id = str(uuid4())
        reserved = []
        wallet_paid = 0
        order_number = None

        try:
            # 2. Reservation
            items_data = []
            for line in lines:
                product = get_catalog().get_product(str(line.product_id))
                name = product.name if product else str(line.product_id)

                record = self.ledger.find_stock(line.product_id, line.variant_id)
                available = record.available_quantity if record else 0
                if available < line.quantity:
                    raise InsufficientResourceError(
                        "stock",
                        requested=line.quantity,
                        available=available,
                        message=f"Insufficient stock for {name}",
                    )

                self.ledger.reserve(
                    line.product_id,
                    line.quantity,
                    variant_id=line.variant_id,
                    order_id=order_id,
                    actor=actor,
                )
                reserved.append(line)
                items_data.append(self._snapshot(line, product, name))

            # 3. Pricing and payment
            pricing = self._price(items_data, customer_id, seller_id, coupon_id, address)
            order_number = next_order_number()
            payment = resolve_payment(
                payment_method,
                pricing["total"],
                str(customer_id),
                order_number,
                wallet_amount=wallet_amount,
            )
            wallet_paid = payment.wallet_amount_paid

            # 4. Persist
            order = Order.create(
                order_id=order_id,
                order_number=order_number,
                customer_id=customer_id,
                seller_id=seller_id,
                items_data=items_data,
                pricing=pricing,
                delivery_address=address,
                payment_method=payment_method,
                payment_status=payment.payment_status,
                wallet_amount_paid=wallet_paid,
                points_used=points_to_use or 0,
                coupon_id=coupon_id,
                customer_notes=customer_notes,
                actor=actor,
            )
            current_domain.repository_for(Order).add(order)
        except Exception as exc:
            logger.warning(
                "Order creation failed, compensating",
                order_id=order_id,
                customer_id=str(customer_id),
                seller_id=str(seller_id),
                reservations=len(reserved),
                error=str(exc),
            )
            self._compensate(order_id, reserved, customer_id, wallet_paid, order_number)
            raise

        # 5. Consume cart lines, then notify
        self._consume_cart_lines(customer_id, lines, order)

        get_event_sink().publish(
            ORDER_CREATED,
            {
                "order_id": str(order.id),
                "customer_id": str(customer_id),
                "seller_id": str(seller_id),
                "order_number": order.order_number,
                "total": order.pricing.total,
            },
        )

        logger.info(
            "Order created",
            order_id=str(order.id),
            order_number=order.order_number,
            total=order.pricing.total,
            payment_status=order.payment_status,
        )
        return order

    # -------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------
    @staticmethod
    def _clean_address(delivery_address) -> dict:
        if not delivery_address or not delivery_address.get("city") or not delivery_address.get("street"):
            raise ValidationError({"delivery_address": ["Delivery address needs at least a street and a city"]})
        return {k: v for k, v in delivery_address.items() if k in _ADDRESS_FIELDS and v is not None}

    @staticmethod
    def _snapshot(line, product, name) -> dict:
        variant = product.variant(line.variant_id) if product else None
        return {
            "product_id": str(line.product_id),
            "variant_id": str(line.variant_id) if line.variant_id else None,
            "name": name if variant is None or not variant.name else f"{name} ({variant.name})",
            "image": product.image if product else None,
            "sku": (variant.sku if variant and variant.sku else None) or (product.sku if product else None),
            "quantity": line.quantity,
            "unit_price": line.unit_price,
            "points_price": line.points_price,
            "selected_options": line.options,
        }

    @staticmethod
    def _price(items_data, customer_id, seller_id, coupon_id, address) -> dict:
        subtotal = sum(item["unit_price"] * item["quantity"] for item in items_data)
        delivery_fee = get_sellers().calculate_delivery_fee(str(seller_id), address["city"], subtotal)

        discount = 0
        coupons = get_coupon_calculator()
        if coupon_id and coupons is not None:
            discount = min(coupons.discount_for(coupon_id, str(customer_id), str(seller_id), subtotal), subtotal)

        tax = 0
        taxes = get_tax_calculator()
        if taxes is not None:
            tax = taxes.tax_for(str(seller_id), subtotal, address)

        return {
            "subtotal": subtotal,
            "delivery_fee": delivery_fee,
            "discount": discount,
            "tax": tax,
            "total": subtotal + delivery_fee + tax - discount,
            "currency": _currency(),
        }

    def _compensate(self, order_id, reserved, customer_id, wallet_paid, order_number):
        for line in reserved:
            self.ledger.release(
                line.product_id,
                line.quantity,
                variant_id=line.variant_id,
                order_id=order_id,
                reason="Order creation failed",
                actor="system",
            )
        if wallet_paid:
            refund_wallet_payment(str(customer_id), wallet_paid, order_number, reason="Order creation failed")

    @staticmethod
    def _consume_cart_lines(customer_id, lines, order):
        """Remove ordered lines from the cart. The order stands even if this fails."""
        repo = current_domain.repository_for(ShoppingCart)
        try:
            cart = find_cart(customer_id=customer_id)
            if cart is None:
                return
            cart.remove_checked_out_lines(lines, order.id, order.seller_id)
            repo.add(cart)
        except Exception as exc:
            logger.error(
                "Cart lines not removed after order creation",
                order_id=str(order.id),
                customer_id=str(customer_id),
                error=str(exc),
            )


def sweep_orphaned_reservations(older_than: timedelta | None = None, ledger: StockLedger | None = None) -> int:
    """Release reservations whose order was never persisted.

    ``older_than`` defaults to the configured reservation timeout.
    """
    if older_than is None:
        minutes = marketplace.config.get("custom", {}).get("reservation_timeout_minutes", 30)
        older_than = timedelta(minutes=int(minutes))

    repo = current_domain.repository_for(Order)

    def order_exists(order_id):
        try:
            repo.get(order_id)
        except ObjectNotFoundError:
            return False
        return True

    return (ledger or StockLedger()).sweep_orphaned_reservations(order_exists, older_than)
