"""Optional coupon and tax calculators.

Neither is wired by default: without a coupon calculator the discount is 0,
without a tax calculator the tax is 0.
"""

from abc import ABC, abstractmethod

from protean.exceptions import ValidationError


class CouponCalculator(ABC):
    @abstractmethod
    def discount_for(self, coupon_id: str, customer_id: str, seller_id: str, subtotal: int) -> int:
        """Return the discount in minor units. Raise ``ValidationError`` for an unusable coupon."""
        ...


class TaxCalculator(ABC):
    @abstractmethod
    def tax_for(self, seller_id: str, subtotal: int, delivery_address: dict) -> int:
        ...


class FixedCouponCalculator(CouponCalculator):
    """Coupon codes mapped to fixed discounts (development and tests)."""

    def __init__(self, discounts: dict[str, int] | None = None) -> None:
        self.discounts = dict(discounts or {})

    def discount_for(self, coupon_id, customer_id, seller_id, subtotal):  # noqa: ARG002
        if coupon_id not in self.discounts:
            raise ValidationError({"coupon_id": [f"Unknown coupon: {coupon_id}"]})
        return self.discounts[coupon_id]


class FlatRateTaxCalculator(TaxCalculator):
    def __init__(self, percent: int) -> None:
        self.percent = percent

    def tax_for(self, seller_id, subtotal, delivery_address):  # noqa: ARG002
        return (subtotal * self.percent + 50) // 100
