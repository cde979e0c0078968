"""Installment schedule generation for deferred-payment instruments"""

import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional

from settlement_engine.domain.models import InstallmentDraft
from settlement_engine.utils.date_utils import add_days
from settlement_engine.utils.money import split_down, to_money

logger = logging.getLogger(__name__)


def parse_installment_spec(spec: Optional[str]) -> Optional[List[int]]:
    """
    Parse a schedule of the shape "<count>x-<d1>-<d2>-...-<dN>".

    Returns the list of day offsets, or None when the spec is absent or
    malformed (including a count that disagrees with the offsets listed).

    Example:
        "3x-10-20-30" -> [10, 20, 30]
        "2x-30"       -> None
    """
    if not spec:
        return None

    parts = spec.strip().split("x-")
    if len(parts) != 2:
        return None

    try:
        count = int(parts[0])
        offsets = [int(d) for d in parts[1].split("-")]
    except ValueError:
        return None

    if count <= 0 or len(offsets) != count:
        return None
    if any(d < 0 for d in offsets):
        return None

    return offsets


def generate_installment_schedule(
    amount: Decimal,
    spec: Optional[str],
    payment_terms: int,
    base_date: date,
) -> List[InstallmentDraft]:
    """
    Split a deferred amount into dated installments.

    Requirements:
    - Absent spec: one installment due payment_terms days after base_date
    - Malformed spec: same single-installment fallback, never an error
    - All but the last installment are amount/count rounded down to the cent;
      the last absorbs the remainder so the schedule sums exactly

    Example:
        300.00 with "3x-10-20-30" -> [100.00, 100.00, 100.00]
        100.00 with "3x-10-20-30" -> [33.33, 33.33, 33.34]
    """
    amount = to_money(amount)
    if amount <= 0:
        return []

    offsets = parse_installment_spec(spec)
    if offsets is None:
        if spec:
            logger.warning(
                "Malformed installment spec, falling back to single installment",
                extra={"installment_spec": spec, "payment_terms": payment_terms},
            )
        offsets = [payment_terms]

    count = len(offsets)
    base_amount = split_down(amount, count)

    installments = []
    allocated = Decimal("0.00")
    for i, days in enumerate(offsets):
        if i == count - 1:
            share = amount - allocated
        else:
            share = base_amount
        allocated += share

        installments.append(
            InstallmentDraft(
                amount=share,
                due_date=add_days(base_date, days),
                installment_number=i + 1,
                total_installments=count,
            )
        )

    return installments
