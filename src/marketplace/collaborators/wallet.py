"""Wallet ledger port and in-memory adapter.

Balances are integers in minor currency units. A debit that the balance
cannot cover raises ``InsufficientResourceError`` and leaves the balance
untouched.
"""

import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from uuid import uuid4

from marketplace.errors import InsufficientResourceError


@dataclass(frozen=True)
class WalletTransaction:
    transaction_id: str
    owner_id: str
    amount: int
    kind: str  # "debit" | "credit"
    reason: str
    reference: str | None = None


class WalletLedger(ABC):
    """Abstract wallet interface."""

    @abstractmethod
    def get_balance(self, owner_id: str) -> int:
        ...

    @abstractmethod
    def debit(self, owner_id: str, amount: int, reason: str, reference: str | None = None) -> WalletTransaction:
        """Take ``amount`` from the wallet. Fails without side effects when short."""
        ...

    @abstractmethod
    def credit(self, owner_id: str, amount: int, reason: str, reference: str | None = None) -> WalletTransaction:
        ...


class InMemoryWalletLedger(WalletLedger):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.balances: dict[str, int] = defaultdict(int)
        self.transactions: list[WalletTransaction] = []

    def deposit(self, owner_id: str, amount: int) -> None:
        """Seed a balance (development and tests)."""
        with self._lock:
            self.balances[str(owner_id)] += amount

    def get_balance(self, owner_id: str) -> int:
        return self.balances.get(str(owner_id), 0)

    def debit(self, owner_id: str, amount: int, reason: str, reference: str | None = None) -> WalletTransaction:
        with self._lock:
            balance = self.balances.get(str(owner_id), 0)
            if balance < amount:
                raise InsufficientResourceError(
                    "wallet balance",
                    requested=amount,
                    available=balance,
                    message=f"Insufficient wallet balance: {balance} available, {amount} required",
                )
            self.balances[str(owner_id)] = balance - amount
            return self._record(owner_id, amount, "debit", reason, reference)

    def credit(self, owner_id: str, amount: int, reason: str, reference: str | None = None) -> WalletTransaction:
        with self._lock:
            self.balances[str(owner_id)] += amount
            return self._record(owner_id, amount, "credit", reason, reference)

    def _record(self, owner_id, amount, kind, reason, reference):
        txn = WalletTransaction(
            transaction_id=uuid4().hex,
            owner_id=str(owner_id),
            amount=amount,
            kind=kind,
            reason=reason,
            reference=reference,
        )
        self.transactions.append(txn)
        return txn
