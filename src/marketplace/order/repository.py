"""Repository for the Order aggregate, with the read-side filters."""

from datetime import UTC

from marketplace.domain import marketplace
from marketplace.order.order import Order


def _aware(value):
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


@marketplace.repository(part_of=Order)
class OrderRepository:
    def find_by_number(self, order_number) -> Order | None:
        results = self._dao.query.filter(order_number=order_number).all().items
        return results[0] if results else None

    def _list(
        self,
        status=None,
        payment_status=None,
        created_after=None,
        created_before=None,
        limit=20,
        offset=0,
        **criteria,
    ) -> list[Order]:
        if status:
            criteria["status"] = status
        if payment_status:
            criteria["payment_status"] = payment_status

        orders = [o for o in self._dao.query.filter(**criteria).limit(None).all().items if o.deleted_at is None]
        if created_after is not None:
            orders = [o for o in orders if _aware(o.created_at) >= _aware(created_after)]
        if created_before is not None:
            orders = [o for o in orders if _aware(o.created_at) <= _aware(created_before)]

        orders.sort(key=lambda o: _aware(o.created_at), reverse=True)
        return orders[offset : offset + limit] if limit else orders[offset:]

    def list_for_customer(self, customer_id, **filters) -> list[Order]:
        return self._list(customer_id=str(customer_id), **filters)

    def list_for_seller(self, seller_id, **filters) -> list[Order]:
        return self._list(seller_id=str(seller_id), **filters)
