"""Bank account maintenance: opening, updates and balance audits"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from settlement_engine.domain.exceptions import ValidationError
from settlement_engine.domain.models import EntryType, ReferenceType
from settlement_engine.infrastructure.database.models import BankAccount
from settlement_engine.infrastructure.database.repositories import BankAccountRepository, IdLike, TransactionRepository
from settlement_engine.infrastructure.database.session import atomic
from settlement_engine.services.ledger import BankLedger
from settlement_engine.utils.money import to_money

EDITABLE_FIELDS = ("name", "account_type", "bank_name", "agency", "account_number", "description")


@dataclass
class AccountAudit:
    bank_account_id: str
    cached_balance: Decimal
    ledger_balance: Decimal
    drift: Decimal
    entry_count: int


def create_bank_account(db: Session, name: str, opening_balance: Decimal = Decimal("0"), **fields: Any) -> BankAccount:
    """Open an account; a non-zero opening balance is posted as its first entry"""
    if not name or not name.strip():
        raise ValidationError("Account name is required")

    with atomic(db):
        account = BankAccountRepository(db).create(name=name.strip(), **fields)
        opening_balance = to_money(opening_balance)
        if opening_balance != 0:
            BankLedger(db).apply_transaction(
                account,
                opening_balance,
                EntryType.OPENING,
                "Opening balance",
                reference_type=ReferenceType.ACCOUNT,
                reference_id=str(account.id),
            )
    return account


def update_bank_account(db: Session, account_id: IdLike, changes: Dict[str, Any]) -> BankAccount:
    """
    Update descriptive fields and the active flag.

    A requested balance is never written to the account directly: the
    difference to the current balance is posted as an ADJUSTMENT entry.
    """
    with atomic(db):
        repo = BankAccountRepository(db)
        account = repo.get_for_update(account_id)

        for field_name in EDITABLE_FIELDS:
            if field_name in changes and changes[field_name] is not None:
                setattr(account, field_name, changes[field_name])

        active: Optional[bool] = None
        if changes.get("is_active") is not None:
            active = bool(changes["is_active"])
        # Reactivate before the adjustment is posted, deactivate after it
        if active:
            account.is_active = True
        db.flush()

        target_balance: Optional[Decimal] = changes.get("balance")
        if target_balance is not None:
            delta = to_money(target_balance) - to_money(account.balance)
            if delta != 0:
                BankLedger(db).apply_transaction(
                    account,
                    delta,
                    EntryType.ADJUSTMENT,
                    "Balance adjustment",
                    reference_type=ReferenceType.ACCOUNT,
                    reference_id=str(account.id),
                )

        if active is False:
            account.is_active = False

        db.flush()
    return account


def get_bank_account(db: Session, account_id: IdLike) -> BankAccount:
    return BankAccountRepository(db).get(account_id)


def audit_account(db: Session, account_id: IdLike) -> AccountAudit:
    """Compare the cached balance with the sum of the account's ledger entries"""
    account = BankAccountRepository(db).get(account_id)
    entries = TransactionRepository(db)
    ledger_balance = entries.ledger_sum(account.id)
    cached = to_money(account.balance)
    return AccountAudit(
        bank_account_id=str(account.id),
        cached_balance=cached,
        ledger_balance=ledger_balance,
        drift=cached - ledger_balance,
        entry_count=entries.count_for_account(account.id),
    )
