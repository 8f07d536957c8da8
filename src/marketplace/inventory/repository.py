"""Repository for the InventoryRecord aggregate."""

from marketplace.domain import marketplace
from marketplace.inventory.record import InventoryRecord, stock_key


@marketplace.repository(part_of=InventoryRecord)
class InventoryRecordRepository:
    def find_by_stock_key(self, key: str) -> InventoryRecord | None:
        results = self._dao.query.filter(stock_key=key).all().items
        return results[0] if results else None

    def find_for(self, product_id, variant_id=None) -> InventoryRecord | None:
        return self.find_by_stock_key(stock_key(product_id, variant_id))

    def find_for_product(self, product_id) -> list[InventoryRecord]:
        return self._dao.query.filter(product_id=str(product_id)).limit(None).all().items

    def find_for_seller(self, seller_id) -> list[InventoryRecord]:
        return self._dao.query.filter(seller_id=str(seller_id)).limit(None).all().items

    def find_all(self) -> list[InventoryRecord]:
        return self._dao.query.limit(None).all().items
