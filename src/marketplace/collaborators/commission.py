"""Commission engine: splits a delivered order between seller, courier and platform."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class CommissionSplit:
    seller_earnings: int
    courier_earnings: int
    platform_fee: int


def _percent_of(amount: int, percent: int) -> int:
    # Round half up in integer arithmetic
    return (amount * percent + 50) // 100


class CommissionEngine(ABC):
    @abstractmethod
    def compute_split(self, subtotal: int, delivery_fee: int, courier_id: str | None = None) -> CommissionSplit:
        ...


class PercentageCommissionEngine(CommissionEngine):
    """Platform takes a percentage of the subtotal (clamped to min/max) and of the delivery fee.

    Amounts always add up: ``seller + courier + platform == subtotal + delivery_fee``.
    Without a courier the delivery fee stays with the seller, who delivered it.
    """

    def __init__(
        self,
        platform_fee_percent: int = 10,
        delivery_fee_percent: int = 0,
        min_commission: int = 0,
        max_commission: int = 0,
    ) -> None:
        self.platform_fee_percent = platform_fee_percent
        self.delivery_fee_percent = delivery_fee_percent
        self.min_commission = min_commission
        self.max_commission = max_commission
        self.calls: list[dict] = []

    def compute_split(self, subtotal: int, delivery_fee: int, courier_id: str | None = None) -> CommissionSplit:
        self.calls.append({"subtotal": subtotal, "delivery_fee": delivery_fee, "courier_id": courier_id})

        platform_commission = _percent_of(subtotal, self.platform_fee_percent)
        if self.min_commission and platform_commission < self.min_commission:
            platform_commission = self.min_commission
        if self.max_commission and platform_commission > self.max_commission:
            platform_commission = self.max_commission
        platform_commission = min(platform_commission, subtotal)

        delivery_commission = _percent_of(delivery_fee, self.delivery_fee_percent)
        seller_earnings = subtotal - platform_commission
        courier_earnings = delivery_fee - delivery_commission

        if courier_id is None:
            seller_earnings += courier_earnings
            courier_earnings = 0

        return CommissionSplit(
            seller_earnings=seller_earnings,
            courier_earnings=courier_earnings,
            platform_fee=platform_commission + delivery_commission,
        )
