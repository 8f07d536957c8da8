"""OrderStatusMachine — status updates, cancellation and order reads.

Writes are optimistic. Every save goes through Protean's aggregate version
check, so a save based on a copy that another writer (thread or process)
has already saved fails with ``ConcurrencyConflictError`` instead of
silently overwriting. Callers that read an order, decide, and then write can
pass the ``revision`` they read as ``expected_revision``.

Side effects of a transition run after the order has been saved:

    delivered:  reservations are consumed and the order is settled
    cancelled:  reserved stock is released with a ``return`` movement
"""

import structlog
from protean import UnitOfWork
from protean.exceptions import ExpectedVersionError, ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from marketplace.collaborators import get_event_sink, get_wallet
from marketplace.collaborators.events import ORDER_CANCELLED, ORDER_STATUS_UPDATED
from marketplace.errors import ConcurrencyConflictError, NotFoundError
from marketplace.inventory.ledger import StockLedger
from marketplace.inventory.record import MovementType
from marketplace.order.order import Order, OrderStatus
from marketplace.order.payment import refund_wallet_payment
from marketplace.order.settlement import settle_delivered_order

logger = structlog.get_logger(__name__)


def _parse_status(value) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise ValidationError({"status": [f"Unknown order status: {value}"]}) from None


class OrderStatusMachine:
    def __init__(self, ledger: StockLedger | None = None) -> None:
        self.ledger = ledger or StockLedger()

    @staticmethod
    def _repo():
        return current_domain.repository_for(Order)

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def get_order(self, order_id) -> Order:
        try:
            order = self._repo().get(str(order_id))
        except ObjectNotFoundError:
            raise NotFoundError("Order", str(order_id)) from None
        if order.deleted_at is not None:
            raise NotFoundError("Order", str(order_id))
        return order

    def list_orders_for_customer(self, customer_id, **filters) -> list[Order]:
        return self._repo().list_for_customer(customer_id, **filters)

    def list_orders_for_seller(self, seller_id, **filters) -> list[Order]:
        return self._repo().list_for_seller(seller_id, **filters)

    def _load_for_write(self, order_id, expected_revision) -> Order:
        order = self.get_order(order_id)
        if expected_revision is not None and order.revision != expected_revision:
            raise ConcurrencyConflictError("Order", str(order_id), expected_revision, order.revision)
        return order

    def _save(self, order) -> None:
        try:
            with UnitOfWork():
                self._repo().add(order)
        except ExpectedVersionError:
            current = self._repo().get(str(order.id))
            raise ConcurrencyConflictError("Order", str(order.id), order.revision, current.revision) from None

    # -------------------------------------------------------------------
    # Status updates
    # -------------------------------------------------------------------
    def update_status(self, order_id, new_status, actor=None, notes=None, expected_revision=None) -> Order:
        target = _parse_status(new_status)
        if target == OrderStatus.CANCELLED:
            return self.cancel_order(order_id, reason=notes or "Cancelled", actor=actor, expected_revision=expected_revision)

        order = self._load_for_write(order_id, expected_revision)
        order.transition_to(target, actor=actor, notes=notes)
        self._save(order)

        logger.info("Order status updated", order_id=str(order.id), status=target.value, actor=actor)

        if target == OrderStatus.DELIVERED:
            self._on_delivered(order, actor)

        get_event_sink().publish(
            ORDER_STATUS_UPDATED,
            {"order_id": str(order.id), "status": target.value, "updated_by": actor},
        )
        return order

    def _on_delivered(self, order, actor):
        for item in order.lines():
            try:
                self.ledger.commit_reservation(
                    item.product_id,
                    item.quantity,
                    order_id=str(order.id),
                    variant_id=item.variant_id,
                    actor=actor,
                )
            except Exception as exc:
                logger.error(
                    "Reservation not consumed on delivery",
                    order_id=str(order.id),
                    product_id=str(item.product_id),
                    error=str(exc),
                )
        settle_delivered_order(order)

    # -------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------
    def cancel_order(self, order_id, reason, actor=None, expected_revision=None) -> Order:
        """Cancel a not-yet-picked-up order, release its stock and refund its wallet part.

        The wallet refund happens before the cancelled order is saved, so a
        failed refund leaves the order untouched. If the save then loses to a
        concurrent write, the refund is taken back before the conflict is raised.
        """
        order = self._load_for_write(order_id, expected_revision)
        refund = order.cancel(reason, actor=actor)
        if refund > 0:
            refund_wallet_payment(str(order.customer_id), refund, order.order_number, reason="Order cancelled")
        try:
            self._save(order)
        except ConcurrencyConflictError:
            if refund > 0:
                get_wallet().debit(
                    str(order.customer_id), refund, reason="Cancellation refund reversed", reference=order.order_number
                )
            raise

        for item in order.lines():
            try:
                self.ledger.release(
                    item.product_id,
                    item.quantity,
                    variant_id=item.variant_id,
                    order_id=str(order.id),
                    reason="Order Cancelled",
                    notes=f"Order cancelled: {reason}",
                    actor=actor,
                    movement_type=MovementType.RETURN,
                )
            except Exception as exc:
                logger.error(
                    "Stock not released for cancelled order",
                    order_id=str(order.id),
                    product_id=str(item.product_id),
                    error=str(exc),
                )

        logger.info("Order cancelled", order_id=str(order.id), reason=reason, refunded=refund, actor=actor)

        sink = get_event_sink()
        sink.publish(ORDER_CANCELLED, {"order_id": str(order.id), "reason": reason, "cancelled_by": actor})
        sink.publish(
            ORDER_STATUS_UPDATED,
            {"order_id": str(order.id), "status": OrderStatus.CANCELLED.value, "updated_by": actor},
        )
        return order

    # -------------------------------------------------------------------
    # Other writes
    # -------------------------------------------------------------------
    def assign_courier(self, order_id, courier_id, expected_revision=None) -> Order:
        order = self._load_for_write(order_id, expected_revision)
        order.assign_courier(courier_id)
        self._save(order)
        logger.info("Courier assigned", order_id=str(order.id), courier_id=str(courier_id))
        return order

    def archive_order(self, order_id) -> Order:
        order = self.get_order(order_id)
        order.archive()
        self._save(order)
        return order
