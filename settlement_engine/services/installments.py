"""Obligation lifecycle: pay, cancel, revert, delete, overdue marking and payment codes"""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from settlement_engine.domain.eligibility import normalize_tax_id
from settlement_engine.domain.exceptions import ConsistencyError, ValidationError
from settlement_engine.domain.models import (
    OUTSTANDING_STATUSES,
    ChargeRequest,
    EntryType,
    InstallmentStatus,
    ObligationKind,
    ReferenceType,
)
from settlement_engine.infrastructure.clients.payment_gateway import PaymentGatewayClient
from settlement_engine.infrastructure.database.models import Installment
from settlement_engine.infrastructure.database.repositories import (
    CustomerRepository,
    IdLike,
    InstallmentRepository,
)
from settlement_engine.infrastructure.database.session import atomic
from settlement_engine.services.ledger import BankLedger
from settlement_engine.utils.date_utils import business_today
from settlement_engine.utils.money import ZERO, to_money

logger = logging.getLogger(__name__)


def _require_outstanding(installment: Installment, action: str) -> None:
    if installment.status not in OUTSTANDING_STATUSES:
        raise ConsistencyError(
            f"Cannot {action} an installment with status {installment.status}",
            context={"status": installment.status},
        )


def pay_installment(
    db: Session,
    installment_id: IdLike,
    bank_account_id: IdLike,
    interest: Decimal = ZERO,
    fine: Decimal = ZERO,
    payment_date: Optional[date] = None,
) -> Installment:
    """
    Settle an outstanding obligation.

    Credit is restored by the obligation amount only; interest and fine are
    extra income and never touch the credit limit. The INCOME entry, the credit
    restore and the status change commit together.
    """
    interest = to_money(interest)
    fine = to_money(fine)
    if interest < 0 or fine < 0:
        raise ValidationError("Interest and fine cannot be negative")

    with atomic(db):
        installment = InstallmentRepository(db).get_for_update(installment_id)
        _require_outstanding(installment, "pay")

        customers = CustomerRepository(db)
        customer = customers.get_for_update(installment.customer_id)
        amount = to_money(installment.amount)
        paid_on = payment_date or business_today()

        ledger = BankLedger(db)
        account = ledger.accounts.get(bank_account_id)
        ledger.apply_transaction(
            account,
            amount + interest + fine,
            EntryType.INCOME,
            _income_description(installment),
            reference_type=ReferenceType.INSTALLMENT,
            reference_id=str(installment.id),
            category="Boleto payment",
            entry_date=paid_on,
        )

        customers.adjust_credit(customer, amount)
        installment.status = InstallmentStatus.PAID.value
        installment.paid_date = paid_on
        installment.paid_amount = amount + interest + fine
        installment.interest_amount = interest
        installment.fine_amount = fine
        db.flush()

    logger.info(
        "Installment paid",
        extra={
            "step": "installment_paid",
            "installment_id": str(installment.id),
            "customer_id": str(installment.customer_id),
            "amount": str(amount),
        },
    )
    return installment


def _income_description(installment: Installment) -> str:
    label = "Boleto" if installment.kind == ObligationKind.BOLETO.value else "Store credit"
    if installment.total_installments > 1:
        return f"{label} {installment.installment_number}/{installment.total_installments} received"
    return f"{label} received"


def cancel_installment(db: Session, installment_id: IdLike) -> Installment:
    with atomic(db):
        installment = InstallmentRepository(db).get_for_update(installment_id)
        _require_outstanding(installment, "cancel")

        customers = CustomerRepository(db)
        customers.adjust_credit(customers.get_for_update(installment.customer_id), to_money(installment.amount))
        installment.status = InstallmentStatus.CANCELLED.value
        db.flush()
    return installment


def revert_installment(db: Session, installment_id: IdLike) -> Installment:
    """Undo a payment: reverse its ledger entry and consume the credit again"""
    with atomic(db):
        installment = InstallmentRepository(db).get_for_update(installment_id)
        if installment.status != InstallmentStatus.PAID.value:
            raise ConsistencyError("Only paid installments can be reverted", context={"status": installment.status})

        BankLedger(db).reverse_references(ReferenceType.INSTALLMENT, str(installment.id))

        customers = CustomerRepository(db)
        customers.adjust_credit(customers.get_for_update(installment.customer_id), -to_money(installment.amount))
        installment.status = InstallmentStatus.PENDING.value
        installment.paid_date = None
        installment.paid_amount = None
        installment.interest_amount = None
        installment.fine_amount = None
        db.flush()
    return installment


def delete_installment(db: Session, installment_id: IdLike) -> None:
    """Delete an obligation; credit comes back only while it was still owed"""
    with atomic(db):
        repo = InstallmentRepository(db)
        installment = repo.get_for_update(installment_id)
        if installment.status in OUTSTANDING_STATUSES:
            customers = CustomerRepository(db)
            customers.adjust_credit(customers.get_for_update(installment.customer_id), to_money(installment.amount))
        db.delete(installment)
        db.flush()


def mark_overdue(db: Session, today: Optional[date] = None) -> int:
    """Flag PENDING obligations past their due date; returns how many changed"""
    with atomic(db):
        late = InstallmentRepository(db).pending_due_before(today or business_today())
        for installment in late:
            installment.status = InstallmentStatus.OVERDUE.value
        db.flush()
    if late:
        logger.info("Installments marked overdue", extra={"step": "mark_overdue", "count": len(late)})
    return len(late)


async def issue_payment_code(db: Session, installment: Installment, gateway: PaymentGatewayClient) -> Installment:
    """
    Request payment codes for one boleto and store them.

    Raises GatewayError when the gateway fails; nothing is written in that case.
    """
    customer = installment.customer
    charge = await gateway.create_charge(
        ChargeRequest(
            reference=str(installment.id),
            amount=to_money(installment.amount),
            due_date=installment.due_date,
            payer_name=customer.name,
            payer_tax_id=normalize_tax_id(customer.tax_id),
            description=_charge_description(installment),
        )
    )
    with atomic(db):
        installment.gateway_charge_id = charge.charge_id
        installment.pix_code = charge.pix_code
        installment.digitable_line = charge.digitable_line
        installment.barcode = charge.barcode
        db.flush()
    return installment


def _charge_description(installment: Installment) -> str:
    order_number = installment.order.order_number if installment.order is not None else "-"
    if installment.total_installments > 1:
        return f"Order {order_number} - installment {installment.installment_number}/{installment.total_installments}"
    return f"Order {order_number}"


async def regenerate_payment_code(db: Session, installment_id: IdLike, gateway: PaymentGatewayClient) -> Installment:
    """
    Issue the payment code of a boleto that missed it at settlement time.

    Safe to retry: an instrument that already has a gateway charge is returned
    as it is, without calling the gateway again.
    """
    installment = InstallmentRepository(db).get(installment_id)
    if installment.gateway_charge_id:
        return installment
    if installment.kind != ObligationKind.BOLETO.value:
        raise ValidationError("Only boleto installments have payment codes")
    _require_outstanding(installment, "issue a payment code for")

    return await issue_payment_code(db, installment, gateway)
