"""Transfer engine - atomic balance move between two bank accounts"""

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from settlement_engine.domain.exceptions import ConsistencyError, ValidationError
from settlement_engine.domain.models import EntryType, ReferenceType
from settlement_engine.infrastructure.database.models import Transaction
from settlement_engine.infrastructure.database.repositories import IdLike, parse_id
from settlement_engine.infrastructure.database.session import atomic
from settlement_engine.services.ledger import BankLedger
from settlement_engine.utils.money import to_money

logger = logging.getLogger(__name__)


@dataclass
class TransferResult:
    transfer_id: str
    amount: Decimal
    debit: Transaction
    credit: Transaction
    from_balance: Decimal
    to_balance: Decimal


def transfer(
    db: Session,
    from_account_id: IdLike,
    to_account_id: IdLike,
    amount: Decimal,
    description: Optional[str] = None,
) -> TransferResult:
    """
    Move money between accounts as one all-or-nothing unit.

    Both legs share reference_id = transfer id. Account rows are locked in id
    order so two opposite transfers cannot deadlock.
    """
    from_id = parse_id(from_account_id, "Bank account")
    to_id = parse_id(to_account_id, "Bank account")
    if from_id == to_id:
        raise ValidationError("Source and destination accounts must be different")

    amount = to_money(amount)
    if amount <= 0:
        raise ValidationError("Transfer amount must be greater than zero")

    transfer_id = str(uuid.uuid4())
    with atomic(db):
        ledger = BankLedger(db)
        locked = {account_id: ledger.accounts.get_for_update(account_id) for account_id in sorted((from_id, to_id))}
        source = locked[from_id]
        target = locked[to_id]

        for account in (source, target):
            if not account.is_active:
                raise ConsistencyError(f"Bank account {account.name} is inactive")

        if to_money(source.balance) < amount:
            raise ConsistencyError(
                f"Insufficient balance in account {source.name}",
                details=f"Current balance: {to_money(source.balance)}, requested: {amount}",
            )

        debit = ledger.apply_transaction(
            source,
            -amount,
            EntryType.TRANSFER,
            description or f"Transfer to {target.name}",
            reference_type=ReferenceType.TRANSFER,
            reference_id=transfer_id,
            category="Transfer (out)",
            notes=f"Transfer to account: {target.name}",
        )
        credit = ledger.apply_transaction(
            target,
            amount,
            EntryType.TRANSFER,
            description or f"Transfer from {source.name}",
            reference_type=ReferenceType.TRANSFER,
            reference_id=transfer_id,
            category="Transfer (in)",
            notes=f"Transfer from account: {source.name}",
        )
        from_balance = to_money(source.balance)
        to_balance = to_money(target.balance)

    logger.info(
        "Transfer completed",
        extra={
            "step": "transfer_completed",
            "transfer_id": transfer_id,
            "from_account_id": str(from_id),
            "to_account_id": str(to_id),
            "amount": str(amount),
        },
    )
    return TransferResult(
        transfer_id=transfer_id,
        amount=amount,
        debit=debit,
        credit=credit,
        from_balance=from_balance,
        to_balance=to_balance,
    )
