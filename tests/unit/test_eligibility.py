"""Unit tests for the eligibility guard"""

import pytest
from decimal import Decimal
from settlement_engine.domain import eligibility
from settlement_engine.domain.eligibility import check_eligibility, ensure_eligible, is_valid_tax_id
from settlement_engine.domain.exceptions import EligibilityError
from settlement_engine.domain.models import (
    CustomerSnapshot,
    EligibilityRequest,
    OverdueSummary,
    PaymentConfig,
    PaymentMethod,
)


def make_customer(**overrides) -> CustomerSnapshot:
    fields = dict(
        customer_id="c1",
        name="Padaria Central",
        customer_type="REGULAR",
        tax_id="123.456.789-09",
        credit_limit=Decimal("1000.00"),
        available_credit=Decimal("600.00"),
        payment_terms=30,
    )
    fields.update(overrides)
    return CustomerSnapshot(**fields)


def boleto(amount: str, customer=None, **kwargs) -> EligibilityRequest:
    return EligibilityRequest(
        customer=customer if customer is not None else make_customer(),
        payment=PaymentConfig(PaymentMethod.BOLETO),
        credit_amount=Decimal(amount),
        **kwargs,
    )


def test_is_valid_tax_id():
    assert is_valid_tax_id("123.456.789-09")
    assert is_valid_tax_id("12.345.678/0001-90")
    assert not is_valid_tax_id("1234")
    assert not is_valid_tax_id(None)


def test_approves_within_credit():
    decision = check_eligibility(boleto("600.00"))
    assert decision.approved is True
    assert decision.code is None


def test_rejects_insufficient_credit_with_shortfall():
    """700 requested against 600 available"""
    decision = check_eligibility(boleto("700.00"))

    assert decision.approved is False
    assert decision.code == eligibility.INSUFFICIENT_CREDIT
    assert decision.context["shortfall"] == "100.00"


def test_rejects_forbidden_customer_type_first():
    """Type restriction is checked before tax id and credit"""
    customer = make_customer(customer_type="CONSUMIDOR_FINAL", tax_id=None, available_credit=Decimal("0"))
    decision = check_eligibility(boleto("50.00", customer))

    assert decision.code == eligibility.DEFERRED_FORBIDDEN


def test_rejects_missing_tax_id_for_boleto():
    decision = check_eligibility(boleto("50.00", make_customer(tax_id="000")))
    assert decision.code == eligibility.INVALID_TAX_ID


def test_store_credit_does_not_need_tax_id():
    request = EligibilityRequest(
        customer=make_customer(tax_id=None),
        payment=PaymentConfig(PaymentMethod.STORE_CREDIT),
        credit_amount=Decimal("50.00"),
    )
    assert check_eligibility(request).approved is True


def test_rejects_overdue_obligations_with_count_and_total():
    decision = check_eligibility(boleto("10.00", overdue=OverdueSummary(2, Decimal("150.00"))))

    assert decision.code == eligibility.OVERDUE_OBLIGATIONS
    assert decision.context["overdue_count"] == "2"
    assert decision.context["overdue_total"] == "150.00"


def test_overdue_blocks_cash_orders_too():
    request = EligibilityRequest(
        customer=make_customer(),
        payment=PaymentConfig(PaymentMethod.CASH),
        credit_amount=Decimal("0"),
        overdue=OverdueSummary(1, Decimal("20.00")),
    )
    assert check_eligibility(request).code == eligibility.OVERDUE_OBLIGATIONS


def test_manual_unblock_bypasses_overdue_only():
    customer = make_customer(manually_unblocked=True)
    assert check_eligibility(boleto("10.00", customer, overdue=OverdueSummary(1, Decimal("20.00")))).approved

    decision = check_eligibility(boleto("900.00", customer, overdue=OverdueSummary(1, Decimal("20.00"))))
    assert decision.code == eligibility.INSUFFICIENT_CREDIT


def test_credit_methods_require_customer():
    request = EligibilityRequest(customer=None, payment=PaymentConfig(PaymentMethod.BOLETO), credit_amount=Decimal("10"))
    assert check_eligibility(request).code == eligibility.CUSTOMER_REQUIRED


def test_anonymous_cash_order_is_approved():
    request = EligibilityRequest(customer=None, payment=PaymentConfig(PaymentMethod.CASH), credit_amount=Decimal("0"))
    assert check_eligibility(request).approved is True


def test_rejects_discount_above_seller_maximum():
    decision = check_eligibility(
        boleto("10.00", discount_percent=Decimal("15"), max_discount_percent=Decimal("10"))
    )
    assert decision.code == eligibility.DISCOUNT_TOO_HIGH


def test_secondary_boleto_counts_as_deferred():
    request = EligibilityRequest(
        customer=make_customer(customer_type="CONSUMIDOR_FINAL"),
        payment=PaymentConfig(PaymentMethod.PIX, secondary_method=PaymentMethod.BOLETO),
        credit_amount=Decimal("10.00"),
    )
    assert check_eligibility(request).code == eligibility.DEFERRED_FORBIDDEN


def test_ensure_eligible_raises_with_code():
    with pytest.raises(EligibilityError) as exc_info:
        ensure_eligible(boleto("700.00"))

    assert exc_info.value.code == eligibility.INSUFFICIENT_CREDIT
    assert exc_info.value.status_code == 422
