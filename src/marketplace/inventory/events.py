"""Domain events for the InventoryRecord aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from marketplace.domain import marketplace


@marketplace.event(part_of="InventoryRecord")
class StockInitialized:
    """An inventory record was opened for a product (and optional variant) of a seller."""

    __version__ = 1

    inventory_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    seller_id = Identifier(required=True)
    initial_quantity = Integer(required=True)
    initialized_at = DateTime(required=True)


@marketplace.event(part_of="InventoryRecord")
class StockAdded:
    """Units entered on-hand stock (restock or customer return)."""

    __version__ = 1

    inventory_id = Identifier(required=True)
    movement_type = String(required=True)
    quantity = Integer(required=True)
    new_on_hand = Integer(required=True)
    new_available = Integer(required=True)
    order_id = Identifier()
    occurred_at = DateTime(required=True)


@marketplace.event(part_of="InventoryRecord")
class StockRemoved:
    """Units left on-hand stock outside an order (shipment out, write-down)."""

    __version__ = 1

    inventory_id = Identifier(required=True)
    movement_type = String(required=True)
    quantity = Integer(required=True)
    new_on_hand = Integer(required=True)
    new_available = Integer(required=True)
    occurred_at = DateTime(required=True)


@marketplace.event(part_of="InventoryRecord")
class StockReserved:
    """Units were set aside for an order."""

    __version__ = 1

    inventory_id = Identifier(required=True)
    order_id = Identifier()
    quantity = Integer(required=True)
    previous_available = Integer(required=True)
    new_available = Integer(required=True)
    reserved_at = DateTime(required=True)


@marketplace.event(part_of="InventoryRecord")
class StockReleased:
    """Reserved units went back to available."""

    __version__ = 1

    inventory_id = Identifier(required=True)
    order_id = Identifier()
    quantity = Integer(required=True)
    reason = String()
    new_available = Integer(required=True)
    released_at = DateTime(required=True)


@marketplace.event(part_of="InventoryRecord")
class ReservationCommitted:
    """Reserved units were consumed by a delivered order."""

    __version__ = 1

    inventory_id = Identifier(required=True)
    order_id = Identifier(required=True)
    quantity = Integer(required=True)
    new_on_hand = Integer(required=True)
    committed_at = DateTime(required=True)


@marketplace.event(part_of="InventoryRecord")
class LowStockDetected:
    """Available stock is at or below the record's low-stock threshold."""

    __version__ = 1

    inventory_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    seller_id = Identifier(required=True)
    available_quantity = Integer(required=True)
    low_stock_threshold = Integer(required=True)
    detected_at = DateTime(required=True)
