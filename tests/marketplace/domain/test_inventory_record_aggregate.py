"""Tests for the InventoryRecord aggregate — levels, movements and reservations."""

import pytest
from protean.exceptions import ValidationError

from marketplace.errors import InsufficientResourceError
from marketplace.inventory.events import (
    LowStockDetected,
    ReservationCommitted,
    StockInitialized,
    StockReleased,
    StockReserved,
)
from marketplace.inventory.record import InventoryRecord, MovementType, ReservationStatus, stock_key


def _record(quantity=10, **kwargs):
    record = InventoryRecord.create(product_id="prod-001", seller_id="seller-1", quantity=quantity, **kwargs)
    record._events.clear()
    return record


def _replay(record):
    """Rebuild (on_hand, reserved) from the movement log alone."""
    on_hand = reserved = 0
    for movement in record.history():
        kind = MovementType(movement.movement_type)
        consumes_reservation = movement.reserved_after < reserved
        if kind == MovementType.RETURN and consumes_reservation:
            # Cancellation: reserved units go back to available
            reserved -= movement.quantity
        elif kind in (MovementType.IN, MovementType.RETURN):
            on_hand += movement.quantity
        elif kind == MovementType.OUT and consumes_reservation:
            on_hand -= movement.quantity
            reserved -= movement.quantity
        elif kind in (MovementType.OUT, MovementType.ADJUSTMENT):
            on_hand -= movement.quantity
        elif kind == MovementType.RESERVE:
            reserved += movement.quantity
        elif kind == MovementType.RELEASE:
            reserved -= movement.quantity
        assert (on_hand, reserved) == (movement.on_hand_after, movement.reserved_after)
    return on_hand, reserved


class TestInventoryRecordCreation:
    def test_create_with_initial_stock(self):
        record = InventoryRecord.create(product_id="prod-001", seller_id="seller-1", quantity=10, actor="admin")
        assert record.quantity == 10
        assert record.reserved_quantity == 0
        assert record.available_quantity == 10
        assert record.stock_key == stock_key("prod-001")
        assert record.last_restocked is not None

        movements = record.history()
        assert len(movements) == 1
        assert movements[0].movement_type == MovementType.IN.value
        assert movements[0].reason == "Initial stock"
        assert movements[0].on_hand_after == 10

    def test_create_raises_stock_initialized(self):
        record = InventoryRecord.create(product_id="prod-001", seller_id="seller-1", variant_id="var-1", quantity=3)
        assert isinstance(record._events[0], StockInitialized)
        assert record._events[0].initial_quantity == 3
        assert record._events[0].variant_id == "var-1"

    def test_create_empty_logs_nothing(self):
        record = InventoryRecord.create(product_id="prod-001", seller_id="seller-1")
        assert record.quantity == 0
        assert record.history() == []

    def test_negative_initial_quantity_rejected(self):
        with pytest.raises(ValidationError):
            InventoryRecord.create(product_id="prod-001", seller_id="seller-1", quantity=-1)

    def test_stock_key_distinguishes_variants(self):
        assert stock_key("p1") == "p1:-"
        assert stock_key("p1", "v1") == "p1:v1"


class TestReserve:
    def test_reserve_moves_units_to_reserved(self):
        record = _record()
        record.reserve(3, order_id="ord-1", actor="cust-1")

        assert record.quantity == 10
        assert record.reserved_quantity == 3
        assert record.available_quantity == 7

        movement = record.history()[-1]
        assert movement.movement_type == MovementType.RESERVE.value
        assert movement.quantity == 3
        assert movement.reserved_after == 3
        assert movement.order_id == "ord-1"

    def test_reserve_tracks_reservation_for_order(self):
        record = _record()
        record.reserve(2, order_id="ord-1")
        active = record.active_reservations("ord-1")
        assert len(active) == 1
        assert active[0].quantity == 2
        assert active[0].status == ReservationStatus.ACTIVE.value

    def test_reserve_raises_event(self):
        record = _record()
        record.reserve(2, order_id="ord-1")
        event = record._events[0]
        assert isinstance(event, StockReserved)
        assert event.previous_available == 10
        assert event.new_available == 8

    def test_reserve_beyond_available_changes_nothing(self):
        record = _record(quantity=5)
        record.reserve(4)
        with pytest.raises(InsufficientResourceError) as exc:
            record.reserve(2)

        assert exc.value.requested == 2
        assert exc.value.available == 1
        assert record.reserved_quantity == 4
        assert len(record.history()) == 2

    def test_reserve_exactly_available(self):
        record = _record(quantity=5)
        record.reserve(5)
        assert record.available_quantity == 0

    def test_non_positive_quantity_rejected(self):
        record = _record()
        with pytest.raises(ValidationError):
            record.reserve(0)


class TestRelease:
    def test_release_returns_units_to_available(self):
        record = _record()
        record.reserve(4, order_id="ord-1")
        released = record.release(4, order_id="ord-1")

        assert released == 4
        assert record.reserved_quantity == 0
        assert record.available_quantity == 10
        assert record.active_reservations("ord-1") == []
        assert isinstance(record._events[-1], StockReleased)

    def test_release_for_an_order_is_capped_at_its_own_reservations(self):
        record = _record()
        record.reserve(2, order_id="ord-1")
        record.reserve(3, order_id="ord-2")

        assert record.release(5, order_id="ord-1") == 2
        assert record.reserved_quantity == 3
        assert record.release(2, order_id="ord-1") == 0
        assert sum(r.quantity for r in record.active_reservations("ord-2")) == 3

    def test_partial_release_keeps_the_rest_reserved(self):
        record = _record()
        record.reserve(3, order_id="ord-1")
        record.release(1, order_id="ord-1")

        assert record.reserved_quantity == 2
        assert [r.quantity for r in record.active_reservations("ord-1")] == [2]

    def test_release_is_floored_at_zero(self):
        record = _record()
        record.reserve(2)
        assert record.release(5) == 2
        assert record.reserved_quantity == 0
        assert record.history()[-1].quantity == 2

    def test_release_with_nothing_reserved_is_a_no_op(self):
        record = _record()
        assert record.release(3) == 0
        assert len(record.history()) == 1

    def test_release_with_return_movement_type(self):
        record = _record()
        record.reserve(2, order_id="ord-1")
        record.release(2, order_id="ord-1", reason="Order Cancelled", movement_type="return")
        movement = record.history()[-1]
        assert movement.movement_type == MovementType.RETURN.value
        assert movement.reason == "Order Cancelled"


class TestCommitReservation:
    def test_commit_consumes_on_hand_and_reserved(self):
        record = _record()
        record.reserve(3, order_id="ord-1")
        consumed = record.commit_reservation("ord-1", 3)

        assert consumed == 3
        assert record.quantity == 7
        assert record.reserved_quantity == 0
        assert record.available_quantity == 7
        assert record.history()[-1].movement_type == MovementType.OUT.value
        assert isinstance(record._events[-1], ReservationCommitted)

    def test_commit_closes_the_reservation(self):
        record = _record()
        record.reserve(3, order_id="ord-1")
        record.commit_reservation("ord-1", 3)
        reservation = record.reservations[0]
        assert reservation.status == ReservationStatus.COMMITTED.value
        assert reservation.closed_at is not None

    def test_commit_only_consumes_the_orders_units(self):
        record = _record()
        record.reserve(2, order_id="ord-1")
        record.reserve(3, order_id="ord-2")

        assert record.commit_reservation("ord-1", 5) == 2
        assert (record.quantity, record.reserved_quantity) == (8, 3)
        assert record.commit_reservation("ord-1", 2) == 0
        assert len(record.history()) == 4


class TestOnHandMovements:
    def test_add_stock(self):
        record = _record(quantity=0)
        record.add_stock(25, reason="Restock", actor="seller-1")
        assert record.quantity == 25
        assert record.history()[-1].reason == "Restock"

    def test_add_stock_rejects_outbound_type(self):
        record = _record()
        with pytest.raises(ValidationError):
            record.add_stock(5, movement_type=MovementType.OUT)

    def test_remove_stock_cannot_touch_reserved_units(self):
        record = _record()
        record.reserve(8)
        with pytest.raises(InsufficientResourceError):
            record.remove_stock(3, reason="Damaged")
        assert record.quantity == 10

    def test_adjustment_removes_stock(self):
        record = _record()
        record.remove_stock(2, movement_type="adjustment", reason="Stock count")
        assert record.quantity == 8
        assert record.history()[-1].movement_type == "adjustment"

    def test_unknown_movement_type_rejected(self):
        record = _record()
        with pytest.raises(ValidationError):
            record.add_stock(1, movement_type="teleport")


class TestLowStock:
    def test_low_stock_detected_at_threshold(self):
        record = _record(quantity=10, low_stock_threshold=5)
        record.reserve(5)
        assert record.is_low_stock
        assert any(isinstance(e, LowStockDetected) for e in record._events)

    def test_no_low_stock_above_threshold(self):
        record = _record(quantity=10, low_stock_threshold=5)
        record.reserve(4)
        assert not any(isinstance(e, LowStockDetected) for e in record._events)


class TestMovementLog:
    def test_every_change_writes_one_movement(self):
        record = _record()
        record.reserve(3, order_id="ord-1")
        record.add_stock(5)
        record.release(1, order_id="ord-1")
        record.remove_stock(2)
        record.commit_reservation("ord-1", 2)

        assert [m.sequence for m in record.history()] == [1, 2, 3, 4, 5, 6]

    def test_levels_can_be_replayed_from_movements(self):
        record = _record()
        record.reserve(3, order_id="ord-1")
        record.add_stock(5)
        record.release(1, order_id="ord-1")
        record.remove_stock(2, movement_type="adjustment")
        record.commit_reservation("ord-1", 2)

        assert _replay(record) == (record.quantity, record.reserved_quantity)
