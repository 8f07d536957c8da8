"""Shopping Cart aggregate — one per customer (or guest session), spanning many sellers.

A cart holds line items from any number of sellers. Checking out turns the
lines of one seller into an order and removes only those lines; the rest
stay in the cart. Adding to a cart never reserves stock.
"""

import json
from datetime import UTC, datetime

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String, Text

from marketplace.cart.events import (
    CartCleared,
    CartItemAdded,
    CartItemRemoved,
    CartLinesCheckedOut,
    CartQuantityUpdated,
)
from marketplace.domain import marketplace
from marketplace.errors import NotFoundError


@marketplace.entity(part_of="ShoppingCart")
class CartItem:
    product_id = Identifier(required=True)
    variant_id = Identifier()
    seller_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    unit_price = Integer(required=True, min_value=0)  # Price snapshot at add-time, minor units
    points_price = Integer(min_value=0)
    selected_options = Text()  # JSON object
    added_at = DateTime()

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity

    @property
    def options(self) -> dict:
        return json.loads(self.selected_options) if self.selected_options else {}

    def matches(self, product_id, variant_id=None) -> bool:
        return str(self.product_id) == str(product_id) and (self.variant_id or None) == (
            str(variant_id) if variant_id else None
        )


@marketplace.aggregate
class ShoppingCart:
    customer_id = Identifier()  # Nullable for guest carts
    session_id = String(max_length=255)
    items = HasMany(CartItem)
    subtotal = Integer(default=0, min_value=0)
    discount = Integer(default=0, min_value=0)
    total = Integer(default=0, min_value=0)
    applied_coupon = String(max_length=100)
    expires_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def total_is_subtotal_less_discount(self):
        if self.total != max(0, (self.subtotal or 0) - (self.discount or 0)):
            raise ValidationError({"total": ["Cart total must equal subtotal minus discount"]})

    @invariant.post
    def cart_must_belong_to_someone(self):
        if not self.customer_id and not self.session_id:
            raise ValidationError({"cart": ["A cart needs a customer or a guest session"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, customer_id=None, session_id=None, expires_at=None):
        now = datetime.now(UTC)
        return cls(
            customer_id=customer_id,
            session_id=session_id,
            subtotal=0,
            discount=0,
            total=0,
            expires_at=expires_at,
            created_at=now,
            updated_at=now,
        )

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def find_line(self, product_id, variant_id=None) -> CartItem | None:
        return next((i for i in self.items if i.matches(product_id, variant_id)), None)

    def _get_line(self, product_id, variant_id=None) -> CartItem:
        line = self.find_line(product_id, variant_id)
        if line is None:
            raise NotFoundError("Cart item", f"{product_id}:{variant_id or '-'}")
        return line

    def lines_for_seller(self, seller_id) -> list[CartItem]:
        lines = [i for i in self.items if str(i.seller_id) == str(seller_id)]
        return sorted(lines, key=lambda i: i.added_at)

    @property
    def seller_ids(self) -> list[str]:
        seen = []
        for item in self.items:
            if str(item.seller_id) not in seen:
                seen.append(str(item.seller_id))
        return seen

    @property
    def is_empty(self) -> bool:
        return not self.items

    def _recalculate(self):
        """Recompute subtotal and total from the current lines."""
        subtotal = sum(item.line_total for item in self.items)
        with atomic_change(self):
            self.subtotal = subtotal
            self.discount = min(self.discount or 0, subtotal)
            self.total = subtotal - self.discount
            self.updated_at = datetime.now(UTC)

    # -------------------------------------------------------------------
    # Item management
    # -------------------------------------------------------------------
    def add_item(
        self,
        product_id,
        seller_id,
        quantity,
        unit_price,
        variant_id=None,
        points_price=None,
        selected_options=None,
    ):
        """Add a line, or merge into the existing line for the same product and variant."""
        if quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be positive"]})

        existing = self.find_line(product_id, variant_id)
        now = datetime.now(UTC)

        if existing:
            existing.quantity += quantity
            if selected_options:
                existing.selected_options = json.dumps(selected_options)
            line = existing
        else:
            line = CartItem(
                product_id=product_id,
                variant_id=variant_id,
                seller_id=seller_id,
                quantity=quantity,
                unit_price=unit_price,
                points_price=points_price,
                selected_options=json.dumps(selected_options or {}),
                added_at=now,
            )
            self.add_items(line)

        self._recalculate()

        self.raise_(
            CartItemAdded(
                cart_id=str(self.id),
                item_id=str(line.id),
                product_id=str(product_id),
                variant_id=str(variant_id) if variant_id else None,
                quantity=quantity,
                line_quantity=line.quantity,
            )
        )
        return line

    def update_item_quantity(self, product_id, quantity, variant_id=None):
        """Set a line's quantity. Zero or less removes the line."""
        line = self._get_line(product_id, variant_id)
        if quantity <= 0:
            self.remove_item(product_id, variant_id)
            return

        previous_quantity = line.quantity
        line.quantity = quantity
        self._recalculate()

        self.raise_(
            CartQuantityUpdated(
                cart_id=str(self.id),
                item_id=str(line.id),
                previous_quantity=previous_quantity,
                new_quantity=quantity,
            )
        )

    def remove_item(self, product_id, variant_id=None):
        line = self._get_line(product_id, variant_id)
        self.remove_items(line)
        self._recalculate()

        self.raise_(
            CartItemRemoved(
                cart_id=str(self.id),
                item_id=str(line.id),
                product_id=str(line.product_id),
                variant_id=str(line.variant_id) if line.variant_id else None,
            )
        )

    def clear(self):
        for line in list(self.items):
            self.remove_items(line)
        with atomic_change(self):
            self.subtotal = 0
            self.discount = 0
            self.total = 0
            self.applied_coupon = None
            self.updated_at = datetime.now(UTC)

        self.raise_(CartCleared(cart_id=str(self.id), cleared_at=self.updated_at))

    def remove_checked_out_lines(self, lines, order_id, seller_id):
        """Drop the lines that were turned into an order."""
        line_ids = {str(line.id) for line in lines}
        consumed = [i for i in self.items if str(i.id) in line_ids]
        for line in consumed:
            self.remove_items(line)
        self._recalculate()

        self.raise_(
            CartLinesCheckedOut(
                cart_id=str(self.id),
                order_id=str(order_id),
                seller_id=str(seller_id),
                lines_removed=len(consumed),
            )
        )
