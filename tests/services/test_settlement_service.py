"""Service tests for order settlement"""

import asyncio
import pytest
from unittest.mock import patch
from datetime import date, timedelta
from decimal import Decimal
from settlement_engine.domain.exceptions import EligibilityError, GatewayError, NotFoundError, StoreError, ValidationError
from settlement_engine.domain.models import CartItem, OrderType, PaymentConfig, PaymentMethod
from settlement_engine.infrastructure.database.models import Commission, Installment, Order
from settlement_engine.services.settlement import SettlementRequest, create_order, settle_order
from settlement_engine.utils.date_utils import business_today


def cake_order(products, customer=None, quantity=8, method=PaymentMethod.BOLETO, **kwargs) -> SettlementRequest:
    """Retail cakes at 50.00 each"""
    payment_kwargs = {k: kwargs.pop(k) for k in ("secondary_method", "primary_amount", "secondary_amount", "installment_spec") if k in kwargs}
    return SettlementRequest(
        items=[CartItem(str(products["cake"].id), quantity)],
        order_type=kwargs.pop("order_type", OrderType.RETAIL),
        payment=PaymentConfig(method, **payment_kwargs),
        customer_id=str(customer.id) if customer is not None else None,
        **kwargs,
    )


def outstanding(db, customer) -> Decimal:
    rows = db.query(Installment).filter(Installment.customer_id == customer.id).all()
    return sum((r.amount for r in rows if r.status in ("PENDING", "OVERDUE")), Decimal("0"))


def test_deferred_order_consumes_credit(db, customer, products):
    """400.00 on boleto: one installment at payment terms, credit 1000 -> 600"""
    result = create_order(db, cake_order(products, customer))
    order = result.order

    assert order.total == Decimal("400.00")
    assert order.total == order.subtotal - order.discount
    assert len(order.installments) == 1
    installment = order.installments[0]
    assert installment.amount == Decimal("400.00")
    assert installment.due_date == business_today() + timedelta(days=30)
    assert installment.kind == "BOLETO"
    assert installment.is_installment is False

    db.refresh(customer)
    assert customer.available_credit == Decimal("600.00")
    assert customer.available_credit == customer.credit_limit - outstanding(db, customer)


def test_second_order_beyond_credit_is_rejected_without_writes(db, customer, products):
    """700.00 against 600.00 available leaves everything untouched"""
    create_order(db, cake_order(products, customer))

    with pytest.raises(EligibilityError) as exc_info:
        create_order(db, cake_order(products, customer, quantity=14))

    assert exc_info.value.code == "INSUFFICIENT_CREDIT"
    db.refresh(customer)
    assert customer.available_credit == Decimal("600.00")
    assert db.query(Order).count() == 1
    assert db.query(Installment).count() == 1


def test_installment_spec_splits_from_delivery_date(db, customer, products):
    delivery = date(2030, 1, 10)
    result = create_order(
        db,
        cake_order(products, customer, quantity=6, installment_spec="3x-10-20-30", delivery_date=delivery),
    )

    installments = result.order.installments
    assert [i.amount for i in installments] == [Decimal("100.00")] * 3
    assert [i.due_date for i in installments] == [
        delivery + timedelta(days=10),
        delivery + timedelta(days=20),
        delivery + timedelta(days=30),
    ]
    assert [(i.installment_number, i.total_installments) for i in installments] == [(1, 3), (2, 3), (3, 3)]


def test_malformed_spec_falls_back_to_single_installment(db, customer, products):
    result = create_order(db, cake_order(products, customer, quantity=6, installment_spec="abc"))

    assert len(result.order.installments) == 1
    assert result.order.installments[0].amount == Decimal("300.00")
    assert result.order.installments[0].due_date == business_today() + timedelta(days=30)


def test_installment_below_minimum_is_rejected(db, customer, products):
    request = SettlementRequest(
        items=[CartItem(str(products["bread"].id), 1)],
        order_type=OrderType.RETAIL,
        payment=PaymentConfig(PaymentMethod.BOLETO, installment_spec="3x-10-20-30"),
        customer_id=str(customer.id),
    )

    with pytest.raises(ValidationError, match="below the minimum"):
        create_order(db, request)
    assert db.query(Order).count() == 0


def test_commission_created_from_seller_rate(db, customer, products):
    result = create_order(db, cake_order(products, customer, method=PaymentMethod.PIX))

    commission = db.query(Commission).filter(Commission.order_id == result.order.id).one()
    assert commission.amount == Decimal("20.00")
    assert commission.status == "PENDING"


def test_own_order_has_no_commission(db, customer, products):
    create_order(db, cake_order(products, customer, method=PaymentMethod.PIX, is_own_order=True))
    assert db.query(Commission).count() == 0


def test_anonymous_cash_order(db, products):
    result = create_order(db, cake_order(products, None, quantity=1, method=PaymentMethod.CASH, customer_name="Balcão"))

    assert result.order.customer_id is None
    assert result.order.customer_name == "Balcão"
    assert result.order.installments == []
    assert db.query(Commission).count() == 0


def test_anonymous_boleto_is_rejected(db, products):
    with pytest.raises(EligibilityError) as exc_info:
        create_order(db, cake_order(products, None, quantity=1))
    assert exc_info.value.code == "CUSTOMER_REQUIRED"


def test_walk_in_customer_cannot_use_boleto(db, walk_in_customer, products):
    with pytest.raises(EligibilityError) as exc_info:
        create_order(db, cake_order(products, walk_in_customer, quantity=1))
    assert exc_info.value.code == "DEFERRED_FORBIDDEN"


def test_walk_in_customer_cash_order_is_delivered(db, walk_in_customer, products):
    result = create_order(db, cake_order(products, walk_in_customer, quantity=1, method=PaymentMethod.CASH))
    assert result.order.status == "DELIVERED"


def test_overdue_customer_is_blocked(db, customer, products):
    db.add(
        Installment(
            customer_id=customer.id,
            kind="BOLETO",
            amount=Decimal("50.00"),
            due_date=business_today() - timedelta(days=5),
            status="PENDING",
        )
    )
    db.commit()

    with pytest.raises(EligibilityError) as exc_info:
        create_order(db, cake_order(products, customer, quantity=1, method=PaymentMethod.PIX))
    assert exc_info.value.code == "OVERDUE_OBLIGATIONS"

    customer.manually_unblocked = True
    db.commit()
    assert create_order(db, cake_order(products, customer, quantity=1, method=PaymentMethod.PIX)).order is not None


def test_discount_above_seller_maximum_is_rejected(db, customer, products):
    with pytest.raises(EligibilityError) as exc_info:
        create_order(db, cake_order(products, customer, method=PaymentMethod.PIX, discount_percent=Decimal("15")))
    assert exc_info.value.code == "DISCOUNT_TOO_HIGH"


def test_discount_is_checked_at_the_stored_precision(db, customer, products):
    """10.004% rounds to the seller maximum of 10.00% and is accepted"""
    order = create_order(
        db, cake_order(products, customer, method=PaymentMethod.PIX, discount_percent=Decimal("10.004"))
    ).order

    assert order.discount_percent == Decimal("10.00")
    assert order.discount == Decimal("40.00")


def test_custom_price_and_store_credit(db, customer, products, custom_price):
    """Negotiated 35.00 cake; store credit becomes one obligation at payment terms"""
    result = create_order(db, cake_order(products, customer, quantity=2, method=PaymentMethod.STORE_CREDIT))
    order = result.order

    assert order.items[0].unit_price == Decimal("35.00")
    assert order.total == Decimal("70.00")
    assert [(i.kind, i.amount) for i in order.installments] == [("STORE_CREDIT", Decimal("70.00"))]
    db.refresh(customer)
    assert customer.available_credit == Decimal("930.00")


def test_split_payment_only_boleto_portion_consumes_credit(db, customer, products):
    result = create_order(
        db,
        cake_order(
            products,
            customer,
            quantity=4,
            method=PaymentMethod.PIX,
            secondary_method=PaymentMethod.BOLETO,
            primary_amount=Decimal("50.00"),
            secondary_amount=Decimal("150.00"),
        ),
    )

    assert result.order.total == Decimal("200.00")
    assert [i.amount for i in result.order.installments] == [Decimal("150.00")]
    db.refresh(customer)
    assert customer.available_credit == Decimal("850.00")


def test_idempotency_key_replays_original_order(db, customer, products):
    first = create_order(db, cake_order(products, customer, idempotency_key="cart-42"))
    second = create_order(db, cake_order(products, customer, idempotency_key="cart-42"))

    assert second.replayed is True
    assert second.order.id == first.order.id
    assert db.query(Order).count() == 1
    db.refresh(customer)
    assert customer.available_credit == Decimal("600.00")


def test_unknown_customer(db, products):
    request = cake_order(products, None, method=PaymentMethod.PIX)
    request.customer_id = "00000000-0000-0000-0000-000000000000"
    with pytest.raises(NotFoundError):
        create_order(db, request)


def test_settle_order_issues_payment_codes(db, customer, products, gateway):
    result = asyncio.run(settle_order(db, cake_order(products, customer, quantity=6, installment_spec="2x-30-60"), gateway))

    assert result.warnings == []
    assert gateway.create_charge.await_count == 2
    assert all(i.gateway_charge_id for i in result.order.installments)
    assert result.order.installments[0].pix_code is not None


def test_gateway_failure_keeps_order_and_returns_warning(db, customer, products, gateway):
    gateway.create_charge.side_effect = GatewayError("Payment gateway timeout after 5.0s")

    result = asyncio.run(settle_order(db, cake_order(products, customer), gateway))

    assert len(result.warnings) == 1
    assert "not issued" in result.warnings[0].message
    assert db.query(Order).count() == 1
    assert result.order.installments[0].gateway_charge_id is None
    db.refresh(customer)
    assert customer.available_credit == Decimal("600.00")


@patch("settlement_engine.services.installments.atomic")
def test_payment_code_store_failure_keeps_order_and_returns_warning(mock_atomic, db, customer, products, gateway):
    mock_atomic.side_effect = StoreError("Database transaction failed", details="OperationalError")

    result = asyncio.run(
        settle_order(db, cake_order(products, customer, quantity=6, installment_spec="2x-30-60"), gateway)
    )

    assert gateway.create_charge.await_count == 2
    assert len(result.warnings) == 2
    assert result.warnings[0].details == "OperationalError"
    assert db.query(Order).count() == 1
    db.refresh(customer)
    assert customer.available_credit == Decimal("700.00")
