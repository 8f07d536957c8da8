"""Pydantic request/response schemas for the Marketplace API.

These are external contracts (anti-corruption layer), separate from the
internal Protean commands and aggregates. Money is always an integer amount
in minor currency units.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSchema(BaseModel):
    recipient_name: str | None = None
    phone: str | None = None
    street: str
    city: str
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None
    notes: str | None = None


class StatusResponse(BaseModel):
    status: str = "ok"


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------
class AddToCartRequest(BaseModel):
    product_id: str
    variant_id: str | None = None
    quantity: int = Field(ge=1, default=1)
    selected_options: dict | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "product_id": "prod-001",
                    "variant_id": "var-red-m",
                    "quantity": 2,
                    "selected_options": {"gift_wrap": True},
                }
            ]
        }
    }


class UpdateCartItemRequest(BaseModel):
    variant_id: str | None = None
    quantity: int


class CartItemResponse(BaseModel):
    item_id: str
    product_id: str
    variant_id: str | None = None
    seller_id: str
    quantity: int
    unit_price: int
    points_price: int | None = None
    line_total: int
    selected_options: dict = {}
    added_at: datetime | None = None


class CartResponse(BaseModel):
    cart_id: str
    customer_id: str | None = None
    session_id: str | None = None
    items: list[CartItemResponse] = []
    subtotal: int = 0
    discount: int = 0
    total: int = 0


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class CreateOrderRequest(BaseModel):
    customer_id: str
    seller_id: str
    payment_method: str = Field(description="cash | wallet | mixed | online")
    delivery_address: AddressSchema
    coupon_id: str | None = None
    points_to_use: int = Field(ge=0, default=0)
    wallet_amount: int | None = Field(ge=0, default=None)
    customer_notes: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "customer_id": "cust-001",
                    "seller_id": "seller-001",
                    "payment_method": "mixed",
                    "wallet_amount": 500,
                    "delivery_address": {"street": "12 Nile St", "city": "Cairo"},
                }
            ]
        }
    }


class UpdateOrderStatusRequest(BaseModel):
    status: str
    actor: str | None = None
    notes: str | None = None
    expected_revision: int | None = None


class CancelOrderRequest(BaseModel):
    reason: str = Field(min_length=1)
    actor: str | None = None
    expected_revision: int | None = None


class AssignCourierRequest(BaseModel):
    courier_id: str
    expected_revision: int | None = None


class OrderItemResponse(BaseModel):
    product_id: str
    variant_id: str | None = None
    name: str
    image: str | None = None
    sku: str | None = None
    quantity: int
    unit_price: int
    points_price: int | None = None
    subtotal: int


class PricingResponse(BaseModel):
    subtotal: int
    delivery_fee: int
    discount: int
    tax: int
    total: int
    currency: str


class StatusChangeResponse(BaseModel):
    status: str
    timestamp: datetime
    actor: str | None = None
    notes: str | None = None


class OrderResponse(BaseModel):
    order_id: str
    order_number: str
    customer_id: str
    seller_id: str
    courier_id: str | None = None
    status: str
    payment_method: str
    payment_status: str
    items: list[OrderItemResponse]
    pricing: PricingResponse
    delivery_address: AddressSchema
    wallet_amount_paid: int = 0
    points_used: int = 0
    coupon_id: str | None = None
    customer_notes: str | None = None
    status_history: list[StatusChangeResponse] = []
    cancellation_reason: str | None = None
    cancelled_by: str | None = None
    cancelled_at: datetime | None = None
    revision: int
    created_at: datetime | None = None


class OrderListResponse(BaseModel):
    orders: list[OrderResponse]
    count: int


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------
class InitializeStockRequest(BaseModel):
    product_id: str
    variant_id: str | None = None
    seller_id: str
    quantity: int = Field(ge=0, default=0)
    low_stock_threshold: int = Field(ge=0, default=5)
    reorder_point: int = Field(ge=0, default=10)
    reorder_quantity: int = Field(ge=0, default=50)
    actor: str | None = None


class ReserveStockRequest(BaseModel):
    variant_id: str | None = None
    quantity: int = Field(ge=1)
    order_id: str | None = None
    actor: str | None = None


class ReleaseStockRequest(BaseModel):
    variant_id: str | None = None
    quantity: int = Field(ge=1)
    order_id: str | None = None
    reason: str = "Reservation released"
    actor: str | None = None


class StockMovementRequest(BaseModel):
    variant_id: str | None = None
    quantity: int = Field(ge=1)
    movement_type: str | None = None
    reason: str
    actor: str | None = None
    order_id: str | None = None
    notes: str | None = None


class StockMovementResponse(BaseModel):
    movement_type: str
    quantity: int
    reason: str
    order_id: str | None = None
    actor: str | None = None
    notes: str | None = None
    on_hand_after: int
    reserved_after: int
    timestamp: datetime


class StockResponse(BaseModel):
    inventory_id: str
    product_id: str
    variant_id: str | None = None
    seller_id: str
    quantity: int
    reserved_quantity: int
    available_quantity: int
    low_stock_threshold: int
    last_restocked: datetime | None = None


class AvailabilityResponse(BaseModel):
    product_id: str
    variant_id: str | None = None
    quantity: int
    available: bool


class ReleaseResponse(BaseModel):
    released: int
    stock: StockResponse
