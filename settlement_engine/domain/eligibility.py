"""Eligibility guard - pure pre-write checks for credit and payment-method policy"""

import re
from typing import Optional

from settlement_engine.config import settings
from settlement_engine.domain.exceptions import EligibilityError
from settlement_engine.domain.models import EligibilityDecision, EligibilityRequest

DEFERRED_FORBIDDEN = "DEFERRED_FORBIDDEN"
CUSTOMER_REQUIRED = "CUSTOMER_REQUIRED"
INVALID_TAX_ID = "INVALID_TAX_ID"
OVERDUE_OBLIGATIONS = "OVERDUE_OBLIGATIONS"
INSUFFICIENT_CREDIT = "INSUFFICIENT_CREDIT"
DISCOUNT_TOO_HIGH = "DISCOUNT_TOO_HIGH"


def normalize_tax_id(tax_id: Optional[str]) -> str:
    """Strip everything but digits from a CPF/CNPJ"""
    return re.sub(r"\D", "", tax_id or "")


def is_valid_tax_id(tax_id: Optional[str]) -> bool:
    """CPF has 11 digits, CNPJ has 14"""
    return len(normalize_tax_id(tax_id)) in (11, 14)


def _reject(code: str, reason: str, **context) -> EligibilityDecision:
    return EligibilityDecision(
        approved=False,
        code=code,
        reason=reason,
        context={k: str(v) for k, v in context.items()},
    )


def check_eligibility(request: EligibilityRequest) -> EligibilityDecision:
    """
    Decide whether a settlement may proceed. No side effects.

    Checks, in order:
    1. Deferred instrument requested by a customer type that forbids it
    2. Deferred instrument requires an 11- or 14-digit tax id
    3. Zero overdue obligations (unless the customer was manually unblocked)
    4. Credit-consuming amount must fit in the available credit
    5. Discount percent within the seller's maximum
    """
    customer = request.customer
    payment = request.payment

    if payment.consumes_credit() and customer is None:
        return _reject(
            CUSTOMER_REQUIRED,
            "Deferred or store-credit payment is only available to registered customers",
        )

    if payment.uses_deferred_instrument():
        if customer.customer_type in settings.deferred_forbidden_customer_types:
            return _reject(
                DEFERRED_FORBIDDEN,
                f'Customer type "{customer.customer_type}" must pay on the spot; boleto is not allowed',
                customer_type=customer.customer_type,
            )
        if not is_valid_tax_id(customer.tax_id):
            return _reject(
                INVALID_TAX_ID,
                f"Customer {customer.name} has no valid CPF/CNPJ (11 or 14 digits required for boletos)",
            )

    if customer is not None and not customer.manually_unblocked and request.overdue.count > 0:
        return _reject(
            OVERDUE_OBLIGATIONS,
            f"Purchase blocked: {request.overdue.count} overdue payment(s) "
            f"totalling {request.overdue.total}",
            overdue_count=request.overdue.count,
            overdue_total=request.overdue.total,
        )

    if payment.consumes_credit() and request.credit_amount > customer.available_credit:
        shortfall = request.credit_amount - customer.available_credit
        return _reject(
            INSUFFICIENT_CREDIT,
            f"Insufficient credit. Available: {customer.available_credit}, "
            f"required: {request.credit_amount}",
            available_credit=customer.available_credit,
            required=request.credit_amount,
            shortfall=shortfall,
        )

    if request.max_discount_percent is not None and request.discount_percent > request.max_discount_percent:
        return _reject(
            DISCOUNT_TOO_HIGH,
            f"Discount of {request.discount_percent}% exceeds the seller maximum of {request.max_discount_percent}%",
            discount_percent=request.discount_percent,
            max_discount_percent=request.max_discount_percent,
        )

    return EligibilityDecision(approved=True)


def ensure_eligible(request: EligibilityRequest) -> None:
    """Raise EligibilityError when the guard rejects the request"""
    decision = check_eligibility(request)
    if not decision.approved:
        raise EligibilityError(decision.reason, code=decision.code, context=decision.context)
