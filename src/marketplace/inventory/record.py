"""InventoryRecord aggregate — stock of one product (or variant) held by one seller.

Stock Level Model:
    on_hand:   Physical units the seller holds
    reserved:  Units set aside for orders that are not yet delivered
    available: on_hand - reserved (what can still be sold)

Every change to on_hand or reserved appends exactly one StockMovement, and
each movement records the levels it produced, so the full history can be
replayed from the movement log alone.
"""

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
from marketplace.errors import InsufficientResourceError
from marketplace.inventory.events import (
    LowStockDetected,
    ReservationCommitted,
    StockAdded,
    StockInitialized,
    StockReleased,
    StockRemoved,
    StockReserved,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class MovementType(Enum):
    IN = "in"
    OUT = "out"
    ADJUSTMENT = "adjustment"
    RETURN = "return"
    RESERVE = "reserve"
    RELEASE = "release"


INBOUND_MOVEMENTS = frozenset({MovementType.IN, MovementType.RETURN})
OUTBOUND_MOVEMENTS = frozenset({MovementType.OUT, MovementType.ADJUSTMENT})


class ReservationStatus(Enum):
    ACTIVE = "active"
    RELEASED = "released"
    COMMITTED = "committed"


def parse_movement_type(value) -> MovementType:
    try:
        return MovementType(value)
    except ValueError:
        raise ValidationError({"movement_type": [f"Unknown movement type: {value}"]}) from None


def stock_key(product_id, variant_id=None) -> str:
    """Natural key of an inventory record: one record per product/variant."""
    return f"{product_id}:{variant_id or '-'}"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@marketplace.value_object(part_of="InventoryRecord")
class StockLevels:
    """On-hand, reserved and available counts, always replaced as a whole."""

    on_hand = Integer(default=0, min_value=0)
    reserved = Integer(default=0, min_value=0)
    available = Integer(default=0, min_value=0)

    @invariant.post
    def available_is_on_hand_minus_reserved(self):
        if self.available != self.on_hand - self.reserved:
            raise ValidationError({"available": ["Available must equal on hand minus reserved"]})

    @invariant.post
    def reserved_cannot_exceed_on_hand(self):
        if self.reserved > self.on_hand:
            raise ValidationError({"reserved": ["Reserved cannot exceed on hand"]})

    @classmethod
    def of(cls, on_hand, reserved):
        return cls(on_hand=on_hand, reserved=reserved, available=on_hand - reserved)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@marketplace.entity(part_of="InventoryRecord")
class StockMovement:
    """An append-only ledger entry. Never edited or removed once written."""

    sequence = Integer(required=True, min_value=1)
    movement_type = String(required=True, choices=MovementType)
    quantity = Integer(required=True, min_value=1)
    reason = String(required=True, max_length=255)
    order_id = Identifier()
    actor = String(max_length=255)
    notes = Text()
    on_hand_after = Integer(required=True, min_value=0)
    reserved_after = Integer(required=True, min_value=0)
    timestamp = DateTime(required=True)


@marketplace.entity(part_of="InventoryRecord")
class Reservation:
    """Units held for one order, from order creation until delivery or cancellation."""

    order_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    status = String(choices=ReservationStatus, default=ReservationStatus.ACTIVE.value)
    reserved_at = DateTime(required=True)
    closed_at = DateTime()


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@marketplace.aggregate
class InventoryRecord:
    product_id = Identifier(required=True)
    variant_id = Identifier()
    seller_id = Identifier(required=True)
    stock_key = String(required=True, max_length=255)
    levels = ValueObject(StockLevels)
    low_stock_threshold = Integer(default=5, min_value=0)
    reorder_point = Integer(default=10, min_value=0)
    reorder_quantity = Integer(default=50, min_value=0)
    movements = HasMany(StockMovement)
    reservations = HasMany(Reservation)
    last_restocked = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        product_id,
        seller_id,
        variant_id=None,
        quantity=0,
        actor=None,
        low_stock_threshold=5,
        reorder_point=10,
        reorder_quantity=50,
    ):
        if quantity < 0:
            raise ValidationError({"quantity": ["Initial quantity cannot be negative"]})

        now = datetime.now(UTC)
        record = cls(
            product_id=product_id,
            variant_id=variant_id,
            seller_id=seller_id,
            stock_key=stock_key(product_id, variant_id),
            levels=StockLevels.of(quantity, 0),
            low_stock_threshold=low_stock_threshold,
            reorder_point=reorder_point,
            reorder_quantity=reorder_quantity,
            last_restocked=now if quantity > 0 else None,
            created_at=now,
            updated_at=now,
        )
        if quantity > 0:
            record._log(MovementType.IN, quantity, "Initial stock", actor=actor, timestamp=now)

        record.raise_(
            StockInitialized(
                inventory_id=str(record.id),
                product_id=str(product_id),
                variant_id=str(variant_id) if variant_id else None,
                seller_id=str(seller_id),
                initial_quantity=quantity,
                initialized_at=now,
            )
        )
        return record

    # -------------------------------------------------------------------
    # Read helpers
    # -------------------------------------------------------------------
    @property
    def quantity(self) -> int:
        return self.levels.on_hand if self.levels else 0

    @property
    def reserved_quantity(self) -> int:
        return self.levels.reserved if self.levels else 0

    @property
    def available_quantity(self) -> int:
        return self.levels.available if self.levels else 0

    @property
    def is_low_stock(self) -> bool:
        return self.available_quantity <= self.low_stock_threshold

    @property
    def label(self) -> str:
        return f"product {self.product_id}" + (f" variant {self.variant_id}" if self.variant_id else "")

    def history(self) -> list:
        """Movements in the order they were written."""
        return sorted(self.movements or [], key=lambda m: m.sequence)

    def active_reservations(self, order_id=None) -> list:
        return [
            r
            for r in (self.reservations or [])
            if r.status == ReservationStatus.ACTIVE.value and (order_id is None or str(r.order_id) == str(order_id))
        ]

    def _reserved_for(self, order_id) -> int:
        """Units this release or commit may touch: the order's own reservations when given."""
        if order_id:
            return sum(r.quantity for r in self.active_reservations(order_id))
        return self.reserved_quantity

    def _close_reservations(self, order_id, quantity, status, closed_at):
        """Take ``quantity`` units off the order's active reservations, oldest first."""
        remaining = quantity
        for reservation in self.active_reservations(order_id):
            if remaining == 0:
                break
            if reservation.quantity <= remaining:
                remaining -= reservation.quantity
                reservation.status = status.value
                reservation.closed_at = closed_at
            else:
                reservation.quantity = reservation.quantity - remaining
                remaining = 0

    # -------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------
    def _set_levels(self, on_hand, reserved):
        self.levels = StockLevels.of(on_hand, reserved)
        self.updated_at = datetime.now(UTC)

    def _log(self, movement_type, quantity, reason, actor=None, order_id=None, notes=None, timestamp=None):
        self.add_movements(
            StockMovement(
                sequence=len(self.movements or []) + 1,
                movement_type=movement_type.value,
                quantity=quantity,
                reason=reason,
                order_id=order_id,
                actor=actor,
                notes=notes,
                on_hand_after=self.quantity,
                reserved_after=self.reserved_quantity,
                timestamp=timestamp or datetime.now(UTC),
            )
        )

    def _check_low_stock(self):
        """Raise LowStockDetected if available is at or below the low-stock threshold."""
        if self.is_low_stock:
            self.raise_(
                LowStockDetected(
                    inventory_id=str(self.id),
                    product_id=str(self.product_id),
                    variant_id=str(self.variant_id) if self.variant_id else None,
                    seller_id=str(self.seller_id),
                    available_quantity=self.available_quantity,
                    low_stock_threshold=self.low_stock_threshold,
                    detected_at=datetime.now(UTC),
                )
            )

    @staticmethod
    def _require_positive(quantity):
        if quantity is None or quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be positive"]})

    # -------------------------------------------------------------------
    # Movements that change on-hand stock
    # -------------------------------------------------------------------
    def add_stock(self, quantity, movement_type=MovementType.IN, reason="Stock received", actor=None, order_id=None, notes=None):
        """Increase on-hand stock. Only ``in`` and ``return`` movements add stock."""
        movement_type = parse_movement_type(movement_type)
        if movement_type not in INBOUND_MOVEMENTS:
            raise ValidationError({"movement_type": [f"Stock cannot be added with a '{movement_type.value}' movement"]})
        self._require_positive(quantity)

        now = datetime.now(UTC)
        self._set_levels(self.quantity + quantity, self.reserved_quantity)
        self.last_restocked = now
        self._log(movement_type, quantity, reason, actor=actor, order_id=order_id, notes=notes, timestamp=now)

        self.raise_(
            StockAdded(
                inventory_id=str(self.id),
                movement_type=movement_type.value,
                quantity=quantity,
                new_on_hand=self.quantity,
                new_available=self.available_quantity,
                order_id=str(order_id) if order_id else None,
                occurred_at=now,
            )
        )
        self._check_low_stock()

    def remove_stock(self, quantity, movement_type=MovementType.OUT, reason="Stock removed", actor=None, order_id=None, notes=None):
        """Decrease on-hand stock. Reserved units are never removable."""
        movement_type = parse_movement_type(movement_type)
        if movement_type not in OUTBOUND_MOVEMENTS:
            raise ValidationError({"movement_type": [f"Stock cannot be removed with a '{movement_type.value}' movement"]})
        self._require_positive(quantity)

        if self.available_quantity < quantity:
            raise InsufficientResourceError(
                "stock",
                requested=quantity,
                available=self.available_quantity,
                message=f"Insufficient stock for {self.label}: {self.available_quantity} available, {quantity} requested",
            )

        now = datetime.now(UTC)
        self._set_levels(self.quantity - quantity, self.reserved_quantity)
        self._log(movement_type, quantity, reason, actor=actor, order_id=order_id, notes=notes, timestamp=now)

        self.raise_(
            StockRemoved(
                inventory_id=str(self.id),
                movement_type=movement_type.value,
                quantity=quantity,
                new_on_hand=self.quantity,
                new_available=self.available_quantity,
                occurred_at=now,
            )
        )
        self._check_low_stock()

    # -------------------------------------------------------------------
    # Reservations
    # -------------------------------------------------------------------
    def reserve(self, quantity, order_id=None, actor=None, reason="Order reservation"):
        """Set units aside. Fails without any change when available is short."""
        self._require_positive(quantity)

        previous_available = self.available_quantity
        if previous_available < quantity:
            raise InsufficientResourceError(
                "stock",
                requested=quantity,
                available=previous_available,
                message=f"Insufficient stock for {self.label}: {previous_available} available, {quantity} requested",
            )

        now = datetime.now(UTC)
        self._set_levels(self.quantity, self.reserved_quantity + quantity)
        self._log(MovementType.RESERVE, quantity, reason, actor=actor, order_id=order_id, timestamp=now)

        if order_id:
            self.add_reservations(
                Reservation(
                    order_id=order_id,
                    quantity=quantity,
                    status=ReservationStatus.ACTIVE.value,
                    reserved_at=now,
                )
            )

        self.raise_(
            StockReserved(
                inventory_id=str(self.id),
                order_id=str(order_id) if order_id else None,
                quantity=quantity,
                previous_available=previous_available,
                new_available=self.available_quantity,
                reserved_at=now,
            )
        )
        self._check_low_stock()

    def release(
        self,
        quantity,
        order_id=None,
        reason="Reservation released",
        actor=None,
        notes=None,
        movement_type=MovementType.RELEASE,
    ):
        """Return reserved units to available, floored at zero reserved.

        With an ``order_id`` only that order's active reservations are
        released. Returns the number of units actually released. Releasing
        when nothing is reserved is a no-op and writes no movement.
        """
        self._require_positive(quantity)
        movement_type = parse_movement_type(movement_type)

        released = min(quantity, self._reserved_for(order_id), self.reserved_quantity)
        if released == 0:
            return 0

        now = datetime.now(UTC)
        self._set_levels(self.quantity, self.reserved_quantity - released)
        self._log(movement_type, released, reason, actor=actor, order_id=order_id, notes=notes, timestamp=now)

        if order_id:
            self._close_reservations(order_id, released, ReservationStatus.RELEASED, now)

        self.raise_(
            StockReleased(
                inventory_id=str(self.id),
                order_id=str(order_id) if order_id else None,
                quantity=released,
                reason=reason,
                new_available=self.available_quantity,
                released_at=now,
            )
        )
        return released

    def commit_reservation(self, order_id, quantity, actor=None, reason="Order delivered"):
        """Consume an order's reserved units: on-hand and reserved both drop."""
        self._require_positive(quantity)

        consumed = min(quantity, self._reserved_for(order_id), self.reserved_quantity)
        if consumed == 0:
            return 0

        now = datetime.now(UTC)
        self._set_levels(self.quantity - consumed, self.reserved_quantity - consumed)
        self._log(MovementType.OUT, consumed, reason, actor=actor, order_id=order_id, timestamp=now)

        self._close_reservations(order_id, consumed, ReservationStatus.COMMITTED, now)

        self.raise_(
            ReservationCommitted(
                inventory_id=str(self.id),
                order_id=str(order_id),
                quantity=consumed,
                new_on_hand=self.quantity,
                committed_at=now,
            )
        )
        return consumed
