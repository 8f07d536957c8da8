"""Domain events for the Order, DailyOrderCounter and SettlementRecord aggregates."""

from protean.fields import DateTime, Identifier, Integer, String

from marketplace.domain import marketplace


@marketplace.event(part_of="Order")
class OrderCreated:
    """A seller order was placed from the customer's cart lines."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    customer_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    payment_method = String(required=True)
    payment_status = String(required=True)
    total = Integer(required=True)
    item_count = Integer(required=True)
    created_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderStatusChanged:
    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    actor = String()
    changed_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderCancelled:
    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    reason = String(required=True)
    cancelled_by = String()
    refunded_amount = Integer(default=0)
    cancelled_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class CourierAssigned:
    __version__ = 1

    order_id = Identifier(required=True)
    courier_id = Identifier(required=True)
    assigned_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderArchived:
    __version__ = 1

    order_id = Identifier(required=True)
    archived_at = DateTime(required=True)


@marketplace.event(part_of="SettlementRecord")
class SettlementCompleted:
    """Seller and courier earnings of a delivered order were credited."""

    __version__ = 1

    settlement_id = Identifier(required=True)
    order_id = Identifier(required=True)
    seller_earnings = Integer(required=True)
    courier_earnings = Integer(required=True)
    platform_fee = Integer(required=True)
    settled_at = DateTime(required=True)


@marketplace.event(part_of="SettlementRecord")
class SettlementFailed:
    """Crediting earnings failed; the record stays pending for a later retry."""

    __version__ = 1

    settlement_id = Identifier(required=True)
    order_id = Identifier(required=True)
    attempts = Integer(required=True)
    error = String()
    failed_at = DateTime(required=True)
