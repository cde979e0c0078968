"""Service tests for obligation lifecycle and the credit invariant"""

import asyncio
import pytest
from datetime import timedelta
from decimal import Decimal
from settlement_engine.domain.exceptions import ConsistencyError, GatewayError, ValidationError
from settlement_engine.domain.models import CartItem, OrderType, PaymentConfig, PaymentMethod
from settlement_engine.infrastructure.database.models import Installment, Transaction
from settlement_engine.services import installments
from settlement_engine.services.credit import audit_credit
from settlement_engine.services.ledger import delete_transaction
from settlement_engine.services.settlement import SettlementRequest, create_order
from settlement_engine.utils.date_utils import business_today


@pytest.fixture
def boleto_order(db, customer, products):
    """Three boletos of 100.00 for a 300.00 retail order"""
    request = SettlementRequest(
        items=[CartItem(str(products["cake"].id), 6)],
        order_type=OrderType.RETAIL,
        payment=PaymentConfig(PaymentMethod.BOLETO, installment_spec="3x-30-60-90"),
        customer_id=str(customer.id),
    )
    return create_order(db, request).order


def assert_credit_invariant(db, customer):
    db.refresh(customer)
    outstanding = sum(
        (
            i.amount
            for i in db.query(Installment).filter(Installment.customer_id == customer.id)
            if i.status in ("PENDING", "OVERDUE")
        ),
        Decimal("0"),
    )
    assert customer.available_credit == customer.credit_limit - outstanding


def test_pay_installment_restores_amount_and_books_interest(db, customer, boleto_order, bank_account):
    first = boleto_order.installments[0]

    paid = installments.pay_installment(
        db, first.id, bank_account.id, interest=Decimal("2.00"), fine=Decimal("1.50")
    )

    assert paid.status == "PAID"
    assert paid.paid_amount == Decimal("103.50")
    db.refresh(bank_account)
    assert bank_account.balance == Decimal("603.50")
    db.refresh(customer)
    assert customer.available_credit == Decimal("800.00")
    assert_credit_invariant(db, customer)


def test_pay_twice_is_rejected(db, boleto_order, bank_account):
    first = boleto_order.installments[0]
    installments.pay_installment(db, first.id, bank_account.id)

    with pytest.raises(ConsistencyError):
        installments.pay_installment(db, first.id, bank_account.id)


def test_pay_rejects_negative_interest(db, boleto_order, bank_account):
    with pytest.raises(ValidationError):
        installments.pay_installment(db, boleto_order.installments[0].id, bank_account.id, interest=Decimal("-1"))


def test_revert_reverses_entry_and_consumes_credit(db, customer, boleto_order, bank_account):
    first = boleto_order.installments[0]
    installments.pay_installment(db, first.id, bank_account.id, interest=Decimal("5.00"))

    reverted = installments.revert_installment(db, first.id)

    assert reverted.status == "PENDING"
    assert reverted.paid_date is None
    db.refresh(bank_account)
    assert bank_account.balance == Decimal("500.00")
    db.refresh(customer)
    assert customer.available_credit == Decimal("700.00")
    assert_credit_invariant(db, customer)


def test_revert_requires_paid(db, boleto_order):
    with pytest.raises(ConsistencyError):
        installments.revert_installment(db, boleto_order.installments[0].id)


def test_entry_of_paid_installment_cannot_be_deleted(db, boleto_order, bank_account):
    first = boleto_order.installments[0]
    installments.pay_installment(db, first.id, bank_account.id)
    entry = db.query(Transaction).filter(Transaction.reference_id == str(first.id)).one()

    with pytest.raises(ConsistencyError):
        delete_transaction(db, entry.id)


def test_cancel_restores_credit(db, customer, boleto_order):
    cancelled = installments.cancel_installment(db, boleto_order.installments[1].id)

    assert cancelled.status == "CANCELLED"
    db.refresh(customer)
    assert customer.available_credit == Decimal("800.00")
    assert_credit_invariant(db, customer)

    with pytest.raises(ConsistencyError):
        installments.cancel_installment(db, cancelled.id)


def test_delete_outstanding_restores_credit(db, customer, boleto_order):
    installments.delete_installment(db, boleto_order.installments[2].id)

    db.refresh(customer)
    assert customer.available_credit == Decimal("800.00")
    assert_credit_invariant(db, customer)


def test_delete_paid_does_not_restore_credit_again(db, customer, boleto_order, bank_account):
    first = boleto_order.installments[0]
    installments.pay_installment(db, first.id, bank_account.id)

    installments.delete_installment(db, first.id)

    db.refresh(customer)
    assert customer.available_credit == Decimal("800.00")
    assert_credit_invariant(db, customer)


def test_credit_invariant_after_mixed_sequence(db, customer, products, boleto_order, bank_account):
    """Creates, pays, cancels, reverts and deletes keep available credit exact"""
    first, second, third = boleto_order.installments
    installments.pay_installment(db, first.id, bank_account.id)
    installments.cancel_installment(db, second.id)
    installments.revert_installment(db, first.id)
    create_order(
        db,
        SettlementRequest(
            items=[CartItem(str(products["bread"].id), 5)],
            order_type=OrderType.RETAIL,
            payment=PaymentConfig(PaymentMethod.STORE_CREDIT),
            customer_id=str(customer.id),
        ),
    )
    installments.delete_installment(db, third.id)

    assert_credit_invariant(db, customer)
    assert audit_credit(db) == []


def test_mark_overdue(db, customer, boleto_order):
    late = boleto_order.installments[0]
    late.due_date = business_today() - timedelta(days=1)
    db.commit()

    assert installments.mark_overdue(db) == 1
    db.refresh(late)
    assert late.status == "OVERDUE"
    assert installments.mark_overdue(db) == 0


def test_regenerate_payment_code_is_idempotent(db, boleto_order, gateway):
    target = boleto_order.installments[0]

    issued = asyncio.run(installments.regenerate_payment_code(db, target.id, gateway))
    again = asyncio.run(installments.regenerate_payment_code(db, target.id, gateway))

    assert issued.gateway_charge_id == "chg_1"
    assert again.gateway_charge_id == "chg_1"
    assert gateway.create_charge.await_count == 1
    charge = gateway.create_charge.await_args.args[0]
    assert charge.reference == str(target.id)
    assert charge.payer_tax_id == "12345678000190"


def test_regenerate_payment_code_gateway_failure(db, boleto_order, gateway):
    gateway.create_charge.side_effect = GatewayError("Payment gateway error: 503")

    with pytest.raises(GatewayError):
        asyncio.run(installments.regenerate_payment_code(db, boleto_order.installments[0].id, gateway))

    db.refresh(boleto_order.installments[0])
    assert boleto_order.installments[0].gateway_charge_id is None


def test_regenerate_payment_code_rejects_paid(db, boleto_order, bank_account, gateway):
    first = boleto_order.installments[0]
    installments.pay_installment(db, first.id, bank_account.id)

    with pytest.raises(ConsistencyError):
        asyncio.run(installments.regenerate_payment_code(db, first.id, gateway))


def test_audit_credit_detects_and_fixes_drift(db, customer, boleto_order):
    customer.available_credit = Decimal("1000.00")
    db.commit()

    report = audit_credit(db)
    assert len(report) == 1
    assert report[0].expected_credit == Decimal("700.00")
    assert report[0].drift == Decimal("300.00")
    assert report[0].fixed is False

    fixed = audit_credit(db, auto_fix=True)
    assert fixed[0].fixed is True
    db.refresh(customer)
    assert customer.available_credit == Decimal("700.00")
    assert audit_credit(db) == []
