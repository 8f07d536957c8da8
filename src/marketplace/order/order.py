"""Order aggregate — one seller's share of a customer's cart.

State Machine (8 states):
    PENDING → CONFIRMED → PREPARING → READY → PICKED_UP → DELIVERING → DELIVERED
    CANCELLED (from PENDING, CONFIRMED, PREPARING, READY)

DELIVERED and CANCELLED are terminal. Items and pricing are snapshots taken
at creation and never change afterwards; the only mutations are status
transitions, cancellation, courier assignment and archiving.

``revision`` is the version Protean keeps for every aggregate: 0 once the
order is first saved, one more on each later save of a freshly loaded copy.
Saving a copy loaded before someone else's save raises
``ExpectedVersionError``.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import (
    DateTime,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from marketplace.domain import marketplace
from marketplace.errors import InvalidStateError
from marketplace.order.events import (
    CourierAssigned,
    OrderArchived,
    OrderCancelled,
    OrderCreated,
    OrderStatusChanged,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    PICKED_UP = "picked_up"
    DELIVERING = "delivering"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(Enum):
    CASH = "cash"
    WALLET = "wallet"
    MIXED = "mixed"
    ONLINE = "online"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"


# State machine transition map
_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PREPARING, OrderStatus.CANCELLED},
    OrderStatus.PREPARING: {OrderStatus.READY, OrderStatus.CANCELLED},
    OrderStatus.READY: {OrderStatus.PICKED_UP, OrderStatus.CANCELLED},
    OrderStatus.PICKED_UP: {OrderStatus.DELIVERING},
    OrderStatus.DELIVERING: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}

# States from which cancellation is allowed
_CANCELLABLE_STATES = {
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
}

TERMINAL_STATES = {OrderStatus.DELIVERED, OrderStatus.CANCELLED}


def allowed_transitions(status) -> set:
    return set(_VALID_TRANSITIONS.get(OrderStatus(status), set()))


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@marketplace.value_object(part_of="Order")
class DeliveryAddress:
    """Where the order goes, captured at creation time."""

    recipient_name = String(max_length=255)
    phone = String(max_length=30)
    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    postal_code = String(max_length=20)
    country = String(max_length=100)
    notes = String(max_length=500)


@marketplace.value_object(part_of="Order")
class OrderPricing:
    """Financial summary of an order, in minor currency units.

    Locked at creation: later catalog price changes never reach an order.
    """

    subtotal = Integer(default=0, min_value=0)
    delivery_fee = Integer(default=0, min_value=0)
    discount = Integer(default=0, min_value=0)
    tax = Integer(default=0, min_value=0)
    total = Integer(default=0, min_value=0)
    currency = String(max_length=3, default="USD")

    @invariant.post
    def total_must_add_up(self):
        if self.total != self.subtotal + self.delivery_fee + self.tax - self.discount:
            raise ValidationError({"total": ["Total must equal subtotal + delivery fee + tax - discount"]})

    @invariant.post
    def discount_cannot_exceed_subtotal(self):
        if self.discount > self.subtotal:
            raise ValidationError({"discount": ["Discount cannot exceed the subtotal"]})


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@marketplace.entity(part_of="Order")
class OrderItem:
    """Snapshot of a purchased line: what was bought, at which price."""

    sequence = Integer(required=True, min_value=1)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    name = String(required=True, max_length=255)
    image = String(max_length=1000)
    sku = String(max_length=100)
    quantity = Integer(required=True, min_value=1)
    unit_price = Integer(required=True, min_value=0)
    points_price = Integer(min_value=0)
    subtotal = Integer(required=True, min_value=0)
    selected_options = Text()  # JSON object


@marketplace.entity(part_of="Order")
class StatusChange:
    sequence = Integer(required=True, min_value=1)
    status = String(required=True, choices=OrderStatus)
    timestamp = DateTime(required=True)
    actor = String(max_length=255)
    notes = Text()


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@marketplace.aggregate
class Order:
    order_number = String(required=True, max_length=30)
    customer_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    courier_id = Identifier()
    items = HasMany(OrderItem)
    pricing = ValueObject(OrderPricing)
    delivery_address = ValueObject(DeliveryAddress)
    payment_method = String(required=True, choices=PaymentMethod)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    status_history = HasMany(StatusChange)
    coupon_id = String(max_length=100)
    customer_notes = Text()
    points_used = Integer(default=0, min_value=0)
    wallet_amount_paid = Integer(default=0, min_value=0)
    cancellation_reason = String(max_length=500)
    cancelled_by = String(max_length=255)
    cancelled_at = DateTime()
    delivered_at = DateTime()
    deleted_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def wallet_payment_cannot_exceed_total(self):
        if self.pricing and self.wallet_amount_paid and self.wallet_amount_paid > self.pricing.total:
            raise ValidationError({"wallet_amount_paid": ["Wallet payment cannot exceed the order total"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        order_id,
        order_number,
        customer_id,
        seller_id,
        items_data,
        pricing,
        delivery_address,
        payment_method,
        payment_status=PaymentStatus.PENDING.value,
        wallet_amount_paid=0,
        points_used=0,
        coupon_id=None,
        customer_notes=None,
        actor=None,
    ):
        """Create a new order.

        Args:
            order_id: Pre-generated identity, already used to tag stock reservations.
            items_data: List of dicts with product_id, variant_id, name, image, sku,
                        quantity, unit_price, points_price, selected_options.
            pricing: Dict with subtotal, delivery_fee, discount, tax, total, currency.
            delivery_address: Dict matching DeliveryAddress.
        """
        now = datetime.now(UTC)

        order = cls(
            id=order_id,
            order_number=order_number,
            customer_id=customer_id,
            seller_id=seller_id,
            pricing=OrderPricing(**pricing),
            delivery_address=DeliveryAddress(**delivery_address),
            payment_method=PaymentMethod(payment_method).value,
            payment_status=PaymentStatus(payment_status).value,
            status=OrderStatus.PENDING.value,
            wallet_amount_paid=wallet_amount_paid,
            points_used=points_used or 0,
            coupon_id=coupon_id,
            customer_notes=customer_notes,
            created_at=now,
            updated_at=now,
        )

        for sequence, item in enumerate(items_data, start=1):
            options = item.get("selected_options")
            order.add_items(
                OrderItem(
                    sequence=sequence,
                    product_id=item["product_id"],
                    variant_id=item.get("variant_id"),
                    name=item["name"],
                    image=item.get("image"),
                    sku=item.get("sku"),
                    quantity=item["quantity"],
                    unit_price=item["unit_price"],
                    points_price=item.get("points_price"),
                    subtotal=item["unit_price"] * item["quantity"],
                    selected_options=json.dumps(options) if isinstance(options, dict) else options,
                )
            )

        order._record_status(OrderStatus.PENDING, actor, "Order created", now)

        order.raise_(
            OrderCreated(
                order_id=str(order.id),
                order_number=order_number,
                customer_id=str(customer_id),
                seller_id=str(seller_id),
                payment_method=order.payment_method,
                payment_status=order.payment_status,
                total=order.pricing.total,
                item_count=len(items_data),
                created_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    @property
    def is_terminal(self) -> bool:
        return OrderStatus(self.status) in TERMINAL_STATES

    @property
    def is_cancellable(self) -> bool:
        return OrderStatus(self.status) in _CANCELLABLE_STATES

    @property
    def revision(self) -> int:
        return self._version

    def lines(self) -> list:
        """Order items in the order they were placed."""
        return sorted(self.items or [], key=lambda i: i.sequence)

    def history(self) -> list:
        return sorted(self.status_history or [], key=lambda c: c.sequence)

    def _record_status(self, status, actor, notes, timestamp):
        self.add_status_history(
            StatusChange(
                sequence=len(self.status_history or []) + 1,
                status=status.value,
                timestamp=timestamp,
                actor=actor,
                notes=notes,
            )
        )

    def _touch(self, now):
        self.updated_at = now

    def _assert_can_transition(self, target_status):
        """Validate that the current state allows transition to target."""
        current = OrderStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise InvalidStateError(
                f"Invalid status transition from {current.value} to {target_status.value}",
                current_state=current.value,
            )

    # -------------------------------------------------------------------
    # Lifecycle transitions
    # -------------------------------------------------------------------
    def transition_to(self, new_status, actor=None, notes=None):
        """Move along the fulfillment path. Cancellation goes through ``cancel``."""
        new_status = OrderStatus(new_status)
        if new_status == OrderStatus.CANCELLED:
            raise InvalidStateError("Use cancel to cancel an order", current_state=self.status)
        self._assert_can_transition(new_status)

        previous = self.status
        now = datetime.now(UTC)
        self.status = new_status.value
        if new_status == OrderStatus.DELIVERED:
            self.delivered_at = now
            # Cash (and the cash part of mixed) is collected on delivery
            if PaymentMethod(self.payment_method) in (PaymentMethod.CASH, PaymentMethod.MIXED):
                self.payment_status = PaymentStatus.PAID.value
        self._record_status(new_status, actor, notes, now)
        self._touch(now)

        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                previous_status=previous,
                new_status=new_status.value,
                actor=actor,
                changed_at=now,
            )
        )

    def cancel(self, reason, actor=None):
        """Cancel the order. Returns the wallet amount that must be refunded."""
        current = OrderStatus(self.status)
        if current == OrderStatus.CANCELLED:
            raise InvalidStateError("Order is already cancelled", current_state=current.value)
        if current not in _CANCELLABLE_STATES:
            raise InvalidStateError(f"Order cannot be cancelled in {current.value} status", current_state=current.value)
        if not reason:
            raise ValidationError({"reason": ["A cancellation reason is required"]})

        now = datetime.now(UTC)
        refund = self.wallet_amount_paid or 0
        self.status = OrderStatus.CANCELLED.value
        self.cancellation_reason = reason
        self.cancelled_by = actor
        self.cancelled_at = now
        if refund > 0:
            self.payment_status = PaymentStatus.REFUNDED.value
        self._record_status(OrderStatus.CANCELLED, actor, reason, now)
        self._touch(now)

        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                previous_status=current.value,
                reason=reason,
                cancelled_by=actor,
                refunded_amount=refund,
                cancelled_at=now,
            )
        )
        return refund

    def assign_courier(self, courier_id):
        if self.is_terminal:
            raise InvalidStateError(f"Cannot assign a courier to a {self.status} order", current_state=self.status)

        now = datetime.now(UTC)
        self.courier_id = courier_id
        self._touch(now)
        self.raise_(CourierAssigned(order_id=str(self.id), courier_id=str(courier_id), assigned_at=now))

    def archive(self):
        """Soft-delete a finished order. Archived orders disappear from reads."""
        if not self.is_terminal:
            raise InvalidStateError("Only delivered or cancelled orders can be archived", current_state=self.status)
        if self.deleted_at is not None:
            return

        now = datetime.now(UTC)
        self.deleted_at = now
        self._touch(now)
        self.raise_(OrderArchived(order_id=str(self.id), archived_at=now))
