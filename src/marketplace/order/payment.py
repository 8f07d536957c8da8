"""Payment resolution at order creation.

    cash:    nothing taken now, collected on delivery → pending
    wallet:  the whole total is debited → paid
    mixed:   ``wallet_amount`` is debited, the remainder is due in cash →
             pending, unless the wallet part already covers the total
    online:  an external gateway settles later → pending

An order is ``paid`` exactly when wallet funds fully cover its total.
"""

from dataclasses import dataclass

from protean.exceptions import ValidationError

from marketplace.collaborators import get_wallet
from marketplace.order.order import PaymentMethod, PaymentStatus


@dataclass(frozen=True)
class PaymentResolution:
    payment_status: str
    wallet_amount_paid: int = 0
    cash_due: int = 0


def validate_payment_request(payment_method, wallet_amount=None) -> PaymentMethod:
    """Check the payment inputs before anything is reserved or debited."""
    try:
        method = PaymentMethod(payment_method)
    except ValueError:
        raise ValidationError(
            {"payment_method": [f"Unknown payment method: {payment_method}"]}
        ) from None

    if method == PaymentMethod.MIXED and (wallet_amount is None or wallet_amount <= 0):
        raise ValidationError({"wallet_amount": ["Mixed payment needs a positive wallet amount"]})
    if wallet_amount is not None and wallet_amount < 0:
        raise ValidationError({"wallet_amount": ["Wallet amount cannot be negative"]})
    return method


def resolve_payment(payment_method, total, customer_id, order_number, wallet_amount=None) -> PaymentResolution:
    """Take the wallet part of the payment, if any.

    Raises ``InsufficientResourceError`` (balance untouched) when the wallet
    cannot cover its part.
    """
    method = validate_payment_request(payment_method, wallet_amount)
    wallet = get_wallet()

    if method == PaymentMethod.WALLET:
        if total > 0:
            wallet.debit(customer_id, total, reason="Order payment", reference=order_number)
        return PaymentResolution(payment_status=PaymentStatus.PAID.value, wallet_amount_paid=total)

    if method == PaymentMethod.MIXED:
        if wallet_amount > total:
            raise ValidationError({"wallet_amount": ["Wallet amount cannot exceed the order total"]})
        wallet.debit(customer_id, wallet_amount, reason="Order payment", reference=order_number)
        cash_due = total - wallet_amount
        status = PaymentStatus.PAID if cash_due == 0 else PaymentStatus.PENDING
        return PaymentResolution(payment_status=status.value, wallet_amount_paid=wallet_amount, cash_due=cash_due)

    if method == PaymentMethod.CASH:
        return PaymentResolution(payment_status=PaymentStatus.PENDING.value, cash_due=total)

    return PaymentResolution(payment_status=PaymentStatus.PENDING.value)


def refund_wallet_payment(customer_id, amount, order_number, reason="Order refund") -> None:
    if amount > 0:
        get_wallet().credit(customer_id, amount, reason=reason, reference=order_number)
