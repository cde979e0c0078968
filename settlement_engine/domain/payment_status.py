"""Payment status derivation for partially settled orders"""

from decimal import Decimal

from settlement_engine.domain.models import PaymentStatus, PaymentSummary


def derive_payment_status(total: Decimal, paid_amount: Decimal) -> PaymentStatus:
    """UNPAID when nothing paid, PAID once paid covers total, PARTIAL in between"""
    if paid_amount == 0:
        return PaymentStatus.UNPAID
    if paid_amount >= total:
        return PaymentStatus.PAID
    return PaymentStatus.PARTIAL


def summarize_payments(total: Decimal, paid_amount: Decimal) -> PaymentSummary:
    return PaymentSummary(
        total=total,
        paid_amount=paid_amount,
        remaining_amount=total - paid_amount,
        payment_status=derive_payment_status(total, paid_amount),
    )
