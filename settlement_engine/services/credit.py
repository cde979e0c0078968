"""Credit audit - compare cached available credit with outstanding obligations"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List

from sqlalchemy.orm import Session

from settlement_engine.infrastructure.database.repositories import CustomerRepository
from settlement_engine.infrastructure.database.session import atomic
from settlement_engine.utils.money import to_money

logger = logging.getLogger(__name__)


@dataclass
class CreditDrift:
    customer_id: str
    name: str
    credit_limit: Decimal
    available_credit: Decimal
    expected_credit: Decimal
    drift: Decimal
    fixed: bool = False


def audit_credit(db: Session, auto_fix: bool = False) -> List[CreditDrift]:
    """
    Report active customers whose available credit is not
    credit_limit - sum(outstanding obligations).

    With auto_fix, the expected value is written back under a row lock.
    """
    customers = CustomerRepository(db)
    drifts = []
    with atomic(db):
        for customer in customers.list_active():
            if auto_fix:
                customer = customers.get_for_update(customer.id)
            expected = to_money(customer.credit_limit) - customers.outstanding_total(customer.id)
            cached = to_money(customer.available_credit)
            if cached == expected:
                continue

            drift = CreditDrift(
                customer_id=str(customer.id),
                name=customer.name,
                credit_limit=to_money(customer.credit_limit),
                available_credit=cached,
                expected_credit=expected,
                drift=cached - expected,
            )
            if auto_fix:
                customer.available_credit = expected
                drift.fixed = True
            drifts.append(drift)

        db.flush()

    if drifts:
        logger.warning(
            "Available credit drift detected",
            extra={"step": "credit_audit", "customers": len(drifts), "auto_fix": auto_fix},
        )
    return drifts
