"""FastAPI routes for the Marketplace domain — carts, orders and inventory."""

import json
from datetime import datetime

from fastapi import APIRouter, Query
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from marketplace.api.schemas import (
    AddToCartRequest,
    AssignCourierRequest,
    AvailabilityResponse,
    CancelOrderRequest,
    CartItemResponse,
    CartResponse,
    CreateOrderRequest,
    InitializeStockRequest,
    OrderItemResponse,
    OrderListResponse,
    OrderResponse,
    PricingResponse,
    ReleaseResponse,
    ReleaseStockRequest,
    ReserveStockRequest,
    StatusChangeResponse,
    StockMovementRequest,
    StockMovementResponse,
    StockResponse,
    UpdateCartItemRequest,
    UpdateOrderStatusRequest,
)
from marketplace.cart.items import AddToCart, ClearCart, RemoveFromCart, UpdateCartItem
from marketplace.cart.lookup import find_cart, get_cart
from marketplace.inventory.ledger import StockLedger
from marketplace.inventory.record import MovementType
from marketplace.order.creation import OrderCreationWorkflow
from marketplace.order.status import OrderStatusMachine


# ---------------------------------------------------------------------------
# Converters
# ---------------------------------------------------------------------------
def _cart_response(cart) -> CartResponse:
    return CartResponse(
        cart_id=str(cart.id),
        customer_id=str(cart.customer_id) if cart.customer_id else None,
        session_id=cart.session_id,
        items=[
            CartItemResponse(
                item_id=str(item.id),
                product_id=str(item.product_id),
                variant_id=str(item.variant_id) if item.variant_id else None,
                seller_id=str(item.seller_id),
                quantity=item.quantity,
                unit_price=item.unit_price,
                points_price=item.points_price,
                line_total=item.line_total,
                selected_options=item.options,
                added_at=item.added_at,
            )
            for item in sorted(cart.items, key=lambda i: i.added_at)
        ],
        subtotal=cart.subtotal,
        discount=cart.discount,
        total=cart.total,
    )


def _order_response(order) -> OrderResponse:
    address = order.delivery_address
    return OrderResponse(
        order_id=str(order.id),
        order_number=order.order_number,
        customer_id=str(order.customer_id),
        seller_id=str(order.seller_id),
        courier_id=str(order.courier_id) if order.courier_id else None,
        status=order.status,
        payment_method=order.payment_method,
        payment_status=order.payment_status,
        items=[
            OrderItemResponse(
                product_id=str(item.product_id),
                variant_id=str(item.variant_id) if item.variant_id else None,
                name=item.name,
                image=item.image,
                sku=item.sku,
                quantity=item.quantity,
                unit_price=item.unit_price,
                points_price=item.points_price,
                subtotal=item.subtotal,
            )
            for item in order.lines()
        ],
        pricing=PricingResponse(
            subtotal=order.pricing.subtotal,
            delivery_fee=order.pricing.delivery_fee,
            discount=order.pricing.discount,
            tax=order.pricing.tax,
            total=order.pricing.total,
            currency=order.pricing.currency,
        ),
        delivery_address={
            "recipient_name": address.recipient_name,
            "phone": address.phone,
            "street": address.street,
            "city": address.city,
            "state": address.state,
            "postal_code": address.postal_code,
            "country": address.country,
            "notes": address.notes,
        },
        wallet_amount_paid=order.wallet_amount_paid or 0,
        points_used=order.points_used or 0,
        coupon_id=order.coupon_id,
        customer_notes=order.customer_notes,
        status_history=[
            StatusChangeResponse(status=c.status, timestamp=c.timestamp, actor=c.actor, notes=c.notes)
            for c in order.history()
        ],
        cancellation_reason=order.cancellation_reason,
        cancelled_by=order.cancelled_by,
        cancelled_at=order.cancelled_at,
        revision=order.revision,
        created_at=order.created_at,
    )


def _stock_response(record) -> StockResponse:
    return StockResponse(
        inventory_id=str(record.id),
        product_id=str(record.product_id),
        variant_id=str(record.variant_id) if record.variant_id else None,
        seller_id=str(record.seller_id),
        quantity=record.quantity,
        reserved_quantity=record.reserved_quantity,
        available_quantity=record.available_quantity,
        low_stock_threshold=record.low_stock_threshold,
        last_restocked=record.last_restocked,
    )


def _reload_cart(customer_id) -> CartResponse:
    return _cart_response(find_cart(customer_id=customer_id))


# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/carts", tags=["carts"])


@cart_router.get("/{customer_id}", response_model=CartResponse)
async def get_customer_cart(customer_id: str) -> CartResponse:
    return _cart_response(get_cart(customer_id=customer_id))


@cart_router.post("/{customer_id}/items", response_model=CartResponse)
async def add_cart_item(customer_id: str, body: AddToCartRequest) -> CartResponse:
    command = AddToCart(
        customer_id=customer_id,
        product_id=body.product_id,
        variant_id=body.variant_id,
        quantity=body.quantity,
        selected_options=json.dumps(body.selected_options) if body.selected_options else None,
    )
    current_domain.process(command, asynchronous=False)
    return _reload_cart(customer_id)


@cart_router.put("/{customer_id}/items/{product_id}", response_model=CartResponse)
async def update_cart_item(customer_id: str, product_id: str, body: UpdateCartItemRequest) -> CartResponse:
    command = UpdateCartItem(
        customer_id=customer_id,
        product_id=product_id,
        variant_id=body.variant_id,
        quantity=body.quantity,
    )
    current_domain.process(command, asynchronous=False)
    return _reload_cart(customer_id)


@cart_router.delete("/{customer_id}/items/{product_id}", response_model=CartResponse)
async def remove_cart_item(customer_id: str, product_id: str, variant_id: str | None = None) -> CartResponse:
    command = RemoveFromCart(
        customer_id=customer_id,
        product_id=product_id,
        variant_id=variant_id,
    )
    current_domain.process(command, asynchronous=False)
    return _reload_cart(customer_id)


@cart_router.delete("/{customer_id}", response_model=CartResponse)
async def clear_cart(customer_id: str) -> CartResponse:
    current_domain.process(ClearCart(customer_id=customer_id), asynchronous=False)
    return _reload_cart(customer_id)


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderResponse)
async def create_order(body: CreateOrderRequest) -> OrderResponse:
    order = OrderCreationWorkflow().create_order(
        customer_id=body.customer_id,
        seller_id=body.seller_id,
        payment_method=body.payment_method,
        delivery_address=body.delivery_address.model_dump(),
        coupon_id=body.coupon_id,
        points_to_use=body.points_to_use,
        wallet_amount=body.wallet_amount,
        customer_notes=body.customer_notes,
    )
    return _order_response(order)


@order_router.get("", response_model=OrderListResponse)
async def list_orders(
    customer_id: str | None = None,
    seller_id: str | None = None,
    status: str | None = None,
    payment_status: str | None = None,
    created_after: datetime | None = None,
    created_before: datetime | None = None,
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> OrderListResponse:
    if bool(customer_id) == bool(seller_id):
        raise ValidationError({"customer_id": ["Filter by exactly one of customer_id or seller_id"]})

    filters = {
        "status": status,
        "payment_status": payment_status,
        "created_after": created_after,
        "created_before": created_before,
        "limit": limit,
        "offset": offset,
    }
    machine = OrderStatusMachine()
    if customer_id:
        orders = machine.list_orders_for_customer(customer_id, **filters)
    else:
        orders = machine.list_orders_for_seller(seller_id, **filters)
    return OrderListResponse(orders=[_order_response(o) for o in orders], count=len(orders))


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str) -> OrderResponse:
    return _order_response(OrderStatusMachine().get_order(order_id))


@order_router.put("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(order_id: str, body: UpdateOrderStatusRequest) -> OrderResponse:
    order = OrderStatusMachine().update_status(
        order_id,
        body.status,
        actor=body.actor,
        notes=body.notes,
        expected_revision=body.expected_revision,
    )
    return _order_response(order)


@order_router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(order_id: str, body: CancelOrderRequest) -> OrderResponse:
    order = OrderStatusMachine().cancel_order(
        order_id,
        reason=body.reason,
        actor=body.actor,
        expected_revision=body.expected_revision,
    )
    return _order_response(order)


@order_router.put("/{order_id}/courier", response_model=OrderResponse)
async def assign_courier(order_id: str, body: AssignCourierRequest) -> OrderResponse:
    order = OrderStatusMachine().assign_courier(order_id, body.courier_id, expected_revision=body.expected_revision)
    return _order_response(order)


# ---------------------------------------------------------------------------
# Inventory Router
# ---------------------------------------------------------------------------
inventory_router = APIRouter(prefix="/inventory", tags=["inventory"])


@inventory_router.post("", status_code=201, response_model=StockResponse)
async def initialize_stock(body: InitializeStockRequest) -> StockResponse:
    record = StockLedger().initialize_stock(
        product_id=body.product_id,
        seller_id=body.seller_id,
        variant_id=body.variant_id,
        quantity=body.quantity,
        actor=body.actor,
        low_stock_threshold=body.low_stock_threshold,
        reorder_point=body.reorder_point,
        reorder_quantity=body.reorder_quantity,
    )
    return _stock_response(record)


@inventory_router.get("/{product_id}", response_model=StockResponse)
async def get_stock(product_id: str, variant_id: str | None = None) -> StockResponse:
    return _stock_response(StockLedger().get_stock(product_id, variant_id))


@inventory_router.get("/{product_id}/availability", response_model=AvailabilityResponse)
async def check_availability(
    product_id: str,
    quantity: int = Query(default=1, ge=1),
    variant_id: str | None = None,
) -> AvailabilityResponse:
    available = StockLedger().check_availability(product_id, variant_id, quantity)
    return AvailabilityResponse(product_id=product_id, variant_id=variant_id, quantity=quantity, available=available)


@inventory_router.get("/{product_id}/movements", response_model=list[StockMovementResponse])
async def list_movements(product_id: str, variant_id: str | None = None) -> list[StockMovementResponse]:
    record = StockLedger().get_stock(product_id, variant_id)
    return [
        StockMovementResponse(
            movement_type=m.movement_type,
            quantity=m.quantity,
            reason=m.reason,
            order_id=str(m.order_id) if m.order_id else None,
            actor=m.actor,
            notes=m.notes,
            on_hand_after=m.on_hand_after,
            reserved_after=m.reserved_after,
            timestamp=m.timestamp,
        )
        for m in record.history()
    ]


@inventory_router.post("/{product_id}/reserve", response_model=StockResponse)
async def reserve_stock(product_id: str, body: ReserveStockRequest) -> StockResponse:
    record = StockLedger().reserve(
        product_id,
        body.quantity,
        variant_id=body.variant_id,
        order_id=body.order_id,
        actor=body.actor,
    )
    return _stock_response(record)


@inventory_router.post("/{product_id}/release", response_model=ReleaseResponse)
async def release_stock(product_id: str, body: ReleaseStockRequest) -> ReleaseResponse:
    ledger = StockLedger()
    released = ledger.release(
        product_id,
        body.quantity,
        variant_id=body.variant_id,
        order_id=body.order_id,
        reason=body.reason,
        actor=body.actor,
    )
    return ReleaseResponse(released=released, stock=_stock_response(ledger.get_stock(product_id, body.variant_id)))


@inventory_router.post("/{product_id}/add", response_model=StockResponse)
async def add_stock(product_id: str, body: StockMovementRequest) -> StockResponse:
    record = StockLedger().add_stock(
        product_id,
        body.quantity,
        movement_type=body.movement_type or MovementType.IN.value,
        reason=body.reason,
        variant_id=body.variant_id,
        actor=body.actor,
        order_id=body.order_id,
        notes=body.notes,
    )
    return _stock_response(record)


@inventory_router.post("/{product_id}/remove", response_model=StockResponse)
async def remove_stock(product_id: str, body: StockMovementRequest) -> StockResponse:
    record = StockLedger().remove_stock(
        product_id,
        body.quantity,
        movement_type=body.movement_type or MovementType.OUT.value,
        reason=body.reason,
        variant_id=body.variant_id,
        actor=body.actor,
        order_id=body.order_id,
        notes=body.notes,
    )
    return _stock_response(record)
