"""StockLedger — the reservation manager in front of InventoryRecord.

Each mutation is a load → check → save under a per-record lock, so a
reservation's availability check and its increment of ``reserved`` act as one
conditional update: two concurrent reservations can never both succeed
against the same units. A save that loses to a writer in another process
fails Protean's version check and surfaces as ``ConcurrencyConflictError``.

After a mutation has been saved, two notification side effects run. The
owning product is flipped between ``active`` and ``out_of_stock`` in the
catalog, and ``inventory.low-stock`` is published when available is at or
below the threshold. A failure in either is logged and never fails the
mutation.
"""

from datetime import UTC, datetime, timedelta

import structlog
from protean import UnitOfWork
from protean.exceptions import ExpectedVersionError, ValidationError
from protean.utils.globals import current_domain

from marketplace.collaborators import get_catalog, get_event_sink
from marketplace.collaborators.catalog import ProductStatus
from marketplace.collaborators.events import INVENTORY_LOW_STOCK
from marketplace.errors import ConcurrencyConflictError, ConflictError, NotFoundError
from marketplace.inventory.record import InventoryRecord, MovementType, parse_movement_type, stock_key
from marketplace.utils.locking import get_locks

logger = structlog.get_logger(__name__)


class StockLedger:
    def __init__(self, locks=None) -> None:
        self._locks = locks or get_locks()

    @staticmethod
    def _repo():
        return current_domain.repository_for(InventoryRecord)

    def _load(self, product_id, variant_id=None) -> InventoryRecord:
        key = stock_key(product_id, variant_id)
        record = self._repo().find_by_stock_key(key)
        if record is None:
            raise NotFoundError("Inventory record", key)
        return record

    def _mutate(self, product_id, variant_id, change):
        """Run ``change(record)`` under the record's lock, persist, then notify."""
        key = stock_key(product_id, variant_id)
        with self._locks.hold(f"stock:{key}"):
            record = self._load(product_id, variant_id)
            result = change(record)
            try:
                with UnitOfWork():
                    self._repo().add(record)
            except ExpectedVersionError:
                current = self._load(product_id, variant_id)
                raise ConcurrencyConflictError("Inventory record", key, record._version, current._version) from None
        self._after_change(record)
        return record, result

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def get_stock(self, product_id, variant_id=None) -> InventoryRecord:
        return self._load(product_id, variant_id)

    def find_stock(self, product_id, variant_id=None) -> InventoryRecord | None:
        return self._repo().find_for(product_id, variant_id)

    def check_availability(self, product_id, variant_id=None, quantity=1) -> bool:
        record = self.find_stock(product_id, variant_id)
        return record is not None and record.available_quantity >= quantity

    # -------------------------------------------------------------------
    # Record lifecycle
    # -------------------------------------------------------------------
    def initialize_stock(
        self,
        product_id,
        seller_id,
        variant_id=None,
        quantity=0,
        actor=None,
        low_stock_threshold=5,
        reorder_point=10,
        reorder_quantity=50,
    ) -> InventoryRecord:
        key = stock_key(product_id, variant_id)
        with self._locks.hold(f"stock:{key}"):
            if self._repo().find_by_stock_key(key) is not None:
                raise ConflictError("Inventory record", key)

            record = InventoryRecord.create(
                product_id=product_id,
                seller_id=seller_id,
                variant_id=variant_id,
                quantity=quantity,
                actor=actor,
                low_stock_threshold=low_stock_threshold,
                reorder_point=reorder_point,
                reorder_quantity=reorder_quantity,
            )
            self._repo().add(record)

        logger.info("Stock initialized", product_id=str(product_id), variant_id=variant_id, quantity=quantity)
        self._after_change(record)
        return record

    # -------------------------------------------------------------------
    # Reservations
    # -------------------------------------------------------------------
    def reserve(self, product_id, quantity, variant_id=None, order_id=None, actor=None) -> InventoryRecord:
        record, _ = self._mutate(
            product_id,
            variant_id,
            lambda r: r.reserve(quantity, order_id=order_id, actor=actor),
        )
        logger.info(
            "Stock reserved",
            product_id=str(product_id),
            variant_id=variant_id,
            quantity=quantity,
            order_id=order_id,
            available=record.available_quantity,
        )
        return record

    def release(
        self,
        product_id,
        quantity,
        variant_id=None,
        order_id=None,
        reason="Reservation released",
        actor=None,
        notes=None,
        movement_type=MovementType.RELEASE,
    ) -> int:
        """Release reserved units. Returns how many were actually released."""
        _, released = self._mutate(
            product_id,
            variant_id,
            lambda r: r.release(
                quantity,
                order_id=order_id,
                reason=reason,
                actor=actor,
                notes=notes,
                movement_type=movement_type,
            ),
        )
        logger.info(
            "Stock released",
            product_id=str(product_id),
            variant_id=variant_id,
            requested=quantity,
            released=released,
            order_id=order_id,
        )
        return released

    def commit_reservation(self, product_id, quantity, order_id, variant_id=None, actor=None) -> int:
        _, consumed = self._mutate(
            product_id,
            variant_id,
            lambda r: r.commit_reservation(order_id, quantity, actor=actor),
        )
        logger.info("Reservation committed", product_id=str(product_id), order_id=order_id, quantity=consumed)
        return consumed

    # -------------------------------------------------------------------
    # Stock movements
    # -------------------------------------------------------------------
    def record_movement(
        self,
        product_id,
        movement_type,
        quantity,
        reason,
        variant_id=None,
        actor=None,
        order_id=None,
        notes=None,
    ) -> InventoryRecord:
        movement_type = parse_movement_type(movement_type)
        if movement_type in (MovementType.IN, MovementType.RETURN):
            return self.add_stock(product_id, quantity, movement_type, reason, variant_id, actor, order_id, notes)
        if movement_type in (MovementType.OUT, MovementType.ADJUSTMENT):
            return self.remove_stock(product_id, quantity, movement_type, reason, variant_id, actor, order_id, notes)
        raise ValidationError(
            {"movement_type": [f"'{movement_type.value}' movements are written by reservations, not recorded directly"]}
        )

    def add_stock(
        self,
        product_id,
        quantity,
        movement_type=MovementType.IN,
        reason="Stock received",
        variant_id=None,
        actor=None,
        order_id=None,
        notes=None,
    ) -> InventoryRecord:
        record, _ = self._mutate(
            product_id,
            variant_id,
            lambda r: r.add_stock(
                quantity,
                movement_type=movement_type,
                reason=reason,
                actor=actor,
                order_id=order_id,
                notes=notes,
            ),
        )
        logger.info("Stock added", product_id=str(product_id), variant_id=variant_id, quantity=quantity)
        return record

    def remove_stock(
        self,
        product_id,
        quantity,
        movement_type=MovementType.OUT,
        reason="Stock removed",
        variant_id=None,
        actor=None,
        order_id=None,
        notes=None,
    ) -> InventoryRecord:
        record, _ = self._mutate(
            product_id,
            variant_id,
            lambda r: r.remove_stock(
                quantity,
                movement_type=movement_type,
                reason=reason,
                actor=actor,
                order_id=order_id,
                notes=notes,
            ),
        )
        logger.info("Stock removed", product_id=str(product_id), variant_id=variant_id, quantity=quantity)
        return record

    # -------------------------------------------------------------------
    # Reconciliation
    # -------------------------------------------------------------------
    def sweep_orphaned_reservations(self, order_exists, older_than: timedelta) -> int:
        """Release active reservations older than ``older_than`` whose order was never persisted.

        ``order_exists`` is a callable taking an order id. Returns the number
        of reservations released.
        """
        cutoff = datetime.now(UTC) - older_than
        released = 0

        for record in self._repo().find_all():
            for reservation in record.active_reservations():
                reserved_at = reservation.reserved_at
                if reserved_at.tzinfo is None:
                    reserved_at = reserved_at.replace(tzinfo=UTC)
                if reserved_at > cutoff or order_exists(str(reservation.order_id)):
                    continue
                self.release(
                    record.product_id,
                    reservation.quantity,
                    variant_id=record.variant_id,
                    order_id=str(reservation.order_id),
                    reason="Orphaned reservation",
                    actor="system",
                )
                released += 1

        if released:
            logger.warning("Orphaned reservations released", count=released)
        return released

    # -------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------
    def _after_change(self, record: InventoryRecord) -> None:
        try:
            self._sync_catalog_status(record.product_id)
        except Exception as exc:
            logger.warning("Catalog status update failed", product_id=str(record.product_id), error=str(exc))

        if record.is_low_stock:
            try:
                get_event_sink().publish(
                    INVENTORY_LOW_STOCK,
                    {
                        "inventory_id": str(record.id),
                        "product_id": str(record.product_id),
                        "variant_id": str(record.variant_id) if record.variant_id else None,
                        "seller_id": str(record.seller_id),
                        "available_quantity": record.available_quantity,
                        "low_stock_threshold": record.low_stock_threshold,
                    },
                )
            except Exception as exc:
                logger.warning("Low stock notification failed", product_id=str(record.product_id), error=str(exc))

    def _sync_catalog_status(self, product_id) -> None:
        catalog = get_catalog()
        product = catalog.get_product(str(product_id))
        if product is None:
            return

        available = sum(r.available_quantity for r in self._repo().find_for_product(product_id))
        if available == 0 and product.status == ProductStatus.ACTIVE.value:
            catalog.set_product_status(str(product_id), ProductStatus.OUT_OF_STOCK.value)
            logger.info("Product out of stock", product_id=str(product_id))
        elif available > 0 and product.status == ProductStatus.OUT_OF_STOCK.value:
            catalog.set_product_status(str(product_id), ProductStatus.ACTIVE.value)
            logger.info("Product back in stock", product_id=str(product_id))
