"""Order numbers: ``ORD-YYMMDD-NNNN`` from an atomic per-day counter.

One DailyOrderCounter aggregate exists per calendar day (UTC). Allocation
increments it under a lock, so concurrent order creations never receive the
same number.
"""

from datetime import UTC, datetime

from protean.exceptions import ObjectNotFoundError
from protean.fields import Integer, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.utils.locking import get_locks


@marketplace.aggregate
class DailyOrderCounter:
    day = String(identifier=True, max_length=6)  # YYMMDD
    last_sequence = Integer(default=0, min_value=0)

    def allocate(self) -> int:
        self.last_sequence = (self.last_sequence or 0) + 1
        return self.last_sequence


def format_order_number(day: str, sequence: int) -> str:
    return f"ORD-{day}-{sequence:04d}"


def next_order_number(now: datetime | None = None) -> str:
    day = (now or datetime.now(UTC)).strftime("%y%m%d")

    with get_locks().hold(f"order-number:{day}"):
        repo = current_domain.repository_for(DailyOrderCounter)
        try:
            counter = repo.get(day)
        except ObjectNotFoundError:
            counter = DailyOrderCounter(day=day, last_sequence=0)
        sequence = counter.allocate()
        repo.add(counter)

    return format_order_number(day, sequence)
