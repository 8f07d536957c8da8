"""Product catalog port and in-memory adapter.

The marketplace never owns product data. It reads purchasable snapshots from
the catalog and flips a product between ``active`` and ``out_of_stock`` as
stock runs out or comes back.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum


class ProductStatus(Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    INACTIVE = "inactive"
    OUT_OF_STOCK = "out_of_stock"


@dataclass(frozen=True)
class VariantSnapshot:
    variant_id: str
    name: str | None = None
    sku: str | None = None
    price: int | None = None
    points_price: int | None = None


@dataclass(frozen=True)
class ProductSnapshot:
    """Catalog view of a product at read time. Prices are in minor units."""

    product_id: str
    seller_id: str
    name: str
    price: int
    status: str = ProductStatus.ACTIVE.value
    sku: str | None = None
    image: str | None = None
    points_price: int | None = None
    variants: tuple[VariantSnapshot, ...] = field(default_factory=tuple)

    def variant(self, variant_id: str | None) -> VariantSnapshot | None:
        if variant_id is None:
            return None
        return next((v for v in self.variants if v.variant_id == str(variant_id)), None)

    def unit_price(self, variant_id: str | None = None) -> int:
        variant = self.variant(variant_id)
        if variant is not None and variant.price is not None:
            return variant.price
        return self.price

    def unit_points_price(self, variant_id: str | None = None) -> int | None:
        variant = self.variant(variant_id)
        if variant is not None and variant.points_price is not None:
            return variant.points_price
        return self.points_price

    @property
    def is_purchasable(self) -> bool:
        return self.status == ProductStatus.ACTIVE.value


class CatalogPort(ABC):
    """Abstract catalog interface."""

    @abstractmethod
    def get_product(self, product_id: str) -> ProductSnapshot | None:
        """Return the product snapshot, or None when it does not exist."""
        ...

    @abstractmethod
    def set_product_status(self, product_id: str, status: str) -> None:
        """Update the catalog status of a product."""
        ...


class InMemoryCatalog(CatalogPort):
    """Dictionary-backed catalog for development and testing."""

    def __init__(self) -> None:
        self.products: dict[str, ProductSnapshot] = {}
        self.calls: list[dict] = []

    def add_product(self, product: ProductSnapshot) -> ProductSnapshot:
        self.products[product.product_id] = product
        return product

    def get_product(self, product_id: str) -> ProductSnapshot | None:
        return self.products.get(str(product_id))

    def set_product_status(self, product_id: str, status: str) -> None:
        self.calls.append({"method": "set_product_status", "product_id": product_id, "status": status})
        product = self.products.get(str(product_id))
        if product is not None:
            self.products[product.product_id] = replace(product, status=status)
