"""Seller directory port: seller activity and delivery-fee rules."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class DeliveryZone:
    """Delivery fee for a set of cities. A zero threshold means no free delivery."""

    cities: tuple[str, ...]
    fee: int
    free_delivery_threshold: int = 0

    def covers(self, city: str) -> bool:
        return any(c.lower() == city.lower() for c in self.cities)


@dataclass(frozen=True)
class SellerProfile:
    seller_id: str
    name: str
    is_active: bool = True
    default_delivery_fee: int = 0
    free_delivery_threshold: int = 0
    delivery_zones: tuple[DeliveryZone, ...] = field(default_factory=tuple)


def calculate_delivery_fee(seller: SellerProfile, city: str, subtotal: int) -> int:
    """Zone fee for the city (or the seller default), waived above the free-delivery threshold."""
    zone = next((z for z in seller.delivery_zones if city and z.covers(city)), None)
    fee = zone.fee if zone else seller.default_delivery_fee

    threshold = (zone.free_delivery_threshold if zone else 0) or seller.free_delivery_threshold
    if threshold > 0 and subtotal >= threshold:
        fee = 0

    return fee


class SellerDirectory(ABC):
    """Abstract seller directory interface."""

    @abstractmethod
    def get_seller(self, seller_id: str) -> SellerProfile | None:
        ...

    def calculate_delivery_fee(self, seller_id: str, city: str, subtotal: int) -> int:
        seller = self.get_seller(seller_id)
        if seller is None:
            return 0
        return calculate_delivery_fee(seller, city, subtotal)


class InMemorySellerDirectory(SellerDirectory):
    def __init__(self) -> None:
        self.sellers: dict[str, SellerProfile] = {}

    def add_seller(self, seller: SellerProfile) -> SellerProfile:
        self.sellers[seller.seller_id] = seller
        return seller

    def get_seller(self, seller_id: str) -> SellerProfile | None:
        return self.sellers.get(str(seller_id))
