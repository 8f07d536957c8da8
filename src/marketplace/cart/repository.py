"""Repository for the ShoppingCart aggregate."""

from marketplace.cart.cart import ShoppingCart
from marketplace.domain import marketplace


@marketplace.repository(part_of=ShoppingCart)
class ShoppingCartRepository:
    def find_by_customer(self, customer_id) -> ShoppingCart | None:
        results = self._dao.query.filter(customer_id=str(customer_id)).all().items
        return results[0] if results else None

    def find_by_session(self, session_id) -> ShoppingCart | None:
        results = self._dao.query.filter(session_id=str(session_id)).all().items
        return results[0] if results else None
