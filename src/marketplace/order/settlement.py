"""Settlement of delivered orders.

On delivery the commission engine splits the order between seller, courier
and platform, and the seller and courier wallets are credited. A failure
here never reverts the delivery: it leaves a ``pending`` SettlementRecord that
``retry_pending_settlements`` picks up later. Each credit is flagged on the
record as it succeeds, so a retry never pays anyone twice.
"""

from datetime import UTC, datetime
from enum import Enum

import structlog
from protean.fields import Boolean, DateTime, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from marketplace.collaborators import get_commission_engine, get_wallet
from marketplace.domain import marketplace
from marketplace.order.events import SettlementCompleted, SettlementFailed
from marketplace.order.order import Order

logger = structlog.get_logger(__name__)


class SettlementStatus(Enum):
    PENDING = "pending"
    SETTLED = "settled"


@marketplace.aggregate
class SettlementRecord:
    order_id = Identifier(required=True)
    order_number = String(max_length=30)
    seller_id = Identifier(required=True)
    courier_id = Identifier()
    status = String(choices=SettlementStatus, default=SettlementStatus.PENDING.value)
    seller_earnings = Integer(default=0)
    courier_earnings = Integer(default=0)
    platform_fee = Integer(default=0)
    seller_credited = Boolean(default=False)
    courier_credited = Boolean(default=False)
    attempts = Integer(default=0)
    last_error = Text()
    created_at = DateTime()
    settled_at = DateTime()

    @classmethod
    def open(cls, order):
        return cls(
            order_id=str(order.id),
            order_number=order.order_number,
            seller_id=str(order.seller_id),
            courier_id=str(order.courier_id) if order.courier_id else None,
            status=SettlementStatus.PENDING.value,
            created_at=datetime.now(UTC),
        )

    @property
    def is_settled(self) -> bool:
        return self.status == SettlementStatus.SETTLED.value

    def record_split(self, split):
        self.seller_earnings = split.seller_earnings
        self.courier_earnings = split.courier_earnings
        self.platform_fee = split.platform_fee

    def mark_settled(self):
        now = datetime.now(UTC)
        self.status = SettlementStatus.SETTLED.value
        self.attempts = (self.attempts or 0) + 1
        self.last_error = None
        self.settled_at = now
        self.raise_(
            SettlementCompleted(
                settlement_id=str(self.id),
                order_id=str(self.order_id),
                seller_earnings=self.seller_earnings,
                courier_earnings=self.courier_earnings,
                platform_fee=self.platform_fee,
                settled_at=now,
            )
        )

    def mark_failed(self, error):
        self.attempts = (self.attempts or 0) + 1
        self.last_error = error
        self.raise_(
            SettlementFailed(
                settlement_id=str(self.id),
                order_id=str(self.order_id),
                attempts=self.attempts,
                error=error,
                failed_at=datetime.now(UTC),
            )
        )


@marketplace.repository(part_of=SettlementRecord)
class SettlementRecordRepository:
    def find_by_order(self, order_id) -> SettlementRecord | None:
        results = self._dao.query.filter(order_id=str(order_id)).all().items
        return results[0] if results else None

    def find_pending(self) -> list[SettlementRecord]:
        return self._dao.query.filter(status=SettlementStatus.PENDING.value).limit(None).all().items


def _credit(record, order, split):
    wallet = get_wallet()
    if not record.seller_credited:
        if split.seller_earnings > 0:
            wallet.credit(str(order.seller_id), split.seller_earnings, "Order earnings", reference=order.order_number)
        record.seller_credited = True
    if not record.courier_credited:
        if order.courier_id and split.courier_earnings > 0:
            wallet.credit(str(order.courier_id), split.courier_earnings, "Delivery earnings", reference=order.order_number)
        record.courier_credited = True


def settle_delivered_order(order: Order) -> SettlementRecord:
    """Split and credit a delivered order's earnings. Never raises on collaborator failure."""
    repo = current_domain.repository_for(SettlementRecord)
    record = repo.find_by_order(order.id)
    if record is not None and record.is_settled:
        return record
    if record is None:
        record = SettlementRecord.open(order)

    try:
        split = get_commission_engine().compute_split(
            order.pricing.subtotal,
            order.pricing.delivery_fee,
            str(order.courier_id) if order.courier_id else None,
        )
        record.record_split(split)
        _credit(record, order, split)
        record.mark_settled()
        logger.info(
            "Order settled",
            order_id=str(order.id),
            seller_earnings=split.seller_earnings,
            courier_earnings=split.courier_earnings,
            platform_fee=split.platform_fee,
        )
    except Exception as exc:
        record.mark_failed(str(exc))
        logger.error("Settlement failed, left pending", order_id=str(order.id), attempts=record.attempts, error=str(exc))

    repo.add(record)
    return record


def retry_pending_settlements() -> int:
    """Retry every pending settlement. Returns how many were settled."""
    orders = current_domain.repository_for(Order)
    settled = 0
    for record in current_domain.repository_for(SettlementRecord).find_pending():
        order = orders.get(record.order_id)
        if settle_delivered_order(order).is_settled:
            settled += 1
    return settled
