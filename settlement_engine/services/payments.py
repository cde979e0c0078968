"""Payment tracker - partial payments against an order and their derived status"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from settlement_engine.domain.exceptions import ConsistencyError, ValidationError
from settlement_engine.domain.models import EntryType, PaymentMethod, PaymentSummary, ReferenceType
from settlement_engine.domain.payment_status import summarize_payments
from settlement_engine.infrastructure.database.models import Payment
from settlement_engine.infrastructure.database.repositories import IdLike, OrderRepository, PaymentRepository
from settlement_engine.infrastructure.database.session import atomic
from settlement_engine.services.ledger import BankLedger
from settlement_engine.utils.date_utils import business_today
from settlement_engine.utils.money import to_money

logger = logging.getLogger(__name__)


@dataclass
class PaymentResult:
    payment: Optional[Payment]
    summary: PaymentSummary


def register_payment(
    db: Session,
    order_id: IdLike,
    amount: Decimal,
    payment_method: PaymentMethod,
    notes: Optional[str] = None,
    bank_account_id: Optional[IdLike] = None,
    payment_date: Optional[date] = None,
) -> PaymentResult:
    """
    Record a partial payment.

    The order row is locked and the paid amount is read from the payment rows,
    so concurrent registrations cannot push the order past its total. When a
    bank account is given, the money is also posted to the ledger in the same
    unit.
    """
    amount = to_money(amount)
    if amount <= 0:
        raise ValidationError("Payment amount must be greater than zero")

    with atomic(db):
        orders = OrderRepository(db)
        order = orders.get_for_update(order_id)
        total = to_money(order.total)
        paid = orders.paid_amount(order.id)
        remaining = total - paid

        if amount > remaining:
            raise ConsistencyError(
                "Payment exceeds the remaining amount",
                details=f"Remaining: {remaining}, requested: {amount}",
                context={"remaining_amount": str(remaining)},
            )

        payment = PaymentRepository(db).create(
            order_id=order.id,
            amount=amount,
            payment_method=PaymentMethod(payment_method).value,
            payment_date=payment_date or business_today(),
            notes=notes,
            bank_account_id=None,
        )

        if bank_account_id is not None:
            ledger = BankLedger(db)
            account = ledger.accounts.get(bank_account_id)
            payment.bank_account_id = account.id
            ledger.apply_transaction(
                account,
                amount,
                EntryType.INCOME,
                f"Payment for order {order.order_number}",
                reference_type=ReferenceType.PAYMENT,
                reference_id=str(payment.id),
                category="Order payment",
                entry_date=payment.payment_date,
            )

        summary = summarize_payments(total, paid + amount)

    logger.info(
        "Payment registered",
        extra={
            "step": "payment_registered",
            "order_id": str(order.id),
            "payment_id": str(payment.id),
            "amount": str(amount),
            "payment_status": summary.payment_status.value,
        },
    )
    return PaymentResult(payment=payment, summary=summary)


def delete_payment(db: Session, payment_id: IdLike) -> PaymentResult:
    """Remove a payment, reversing any ledger entry it posted"""
    with atomic(db):
        payments = PaymentRepository(db)
        payment = payments.get(payment_id)
        orders = OrderRepository(db)
        order = orders.get_for_update(payment.order_id)

        BankLedger(db).reverse_references(ReferenceType.PAYMENT, str(payment.id))
        payments.delete(payment)

        summary = summarize_payments(to_money(order.total), orders.paid_amount(order.id))

    return PaymentResult(payment=None, summary=summary)


def get_order_payments(db: Session, order_id: IdLike) -> tuple[List[Payment], PaymentSummary]:
    orders = OrderRepository(db)
    order = orders.get(order_id)
    payments = PaymentRepository(db).list_for_order(order.id)
    return payments, summarize_payments(to_money(order.total), orders.paid_amount(order.id))
