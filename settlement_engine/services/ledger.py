"""Bank ledger - the only code path allowed to change a bank account balance"""

import uuid
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from settlement_engine.domain.exceptions import ConsistencyError, ValidationError
from settlement_engine.domain.models import (
    EntryType,
    InstallmentStatus,
    PaymentStatus,
    ReferenceType,
)
from settlement_engine.domain.payment_status import derive_payment_status
from settlement_engine.infrastructure.database.models import BankAccount, Installment, Payment, Transaction
from settlement_engine.infrastructure.database.repositories import (
    BankAccountRepository,
    IdLike,
    OrderRepository,
    TransactionRepository,
)
from settlement_engine.infrastructure.database.session import atomic
from settlement_engine.infrastructure.observability.logging import log_ledger_event
from settlement_engine.infrastructure.observability.metrics import record_ledger_entry
from settlement_engine.utils.date_utils import business_today
from settlement_engine.utils.money import to_money


class BankLedger:
    """
    Apply and reverse signed entries on bank accounts.

    Methods here only flush; callers wrap them in `atomic` so the entry and the
    cached balance are committed (or rolled back) together.
    """

    def __init__(self, db: Session):
        self.db = db
        self.accounts = BankAccountRepository(db)
        self.entries = TransactionRepository(db)

    def apply_transaction(
        self,
        account: BankAccount,
        signed_amount: Decimal,
        entry_type: EntryType,
        description: str,
        reference_type: Optional[ReferenceType] = None,
        reference_id: Optional[str] = None,
        category: Optional[str] = None,
        notes: Optional[str] = None,
        entry_date: Optional[date] = None,
    ) -> Transaction:
        """
        Append an entry and move the cached balance by the same amount.

        The account row is re-read under lock so the new balance is computed
        from the committed value, not from a snapshot taken before the call.
        """
        signed_amount = to_money(signed_amount)
        if signed_amount == 0:
            raise ValidationError("Transaction amount must be non-zero")

        account = self.accounts.get_for_update(account.id)
        if not account.is_active:
            raise ConsistencyError(f"Bank account {account.name} is inactive")

        new_balance = to_money(account.balance) + signed_amount
        entry = self.entries.add(
            Transaction(
                bank_account_id=account.id,
                sequence=self.entries.next_sequence(account.id),
                type=entry_type.value,
                amount=signed_amount,
                balance_after=new_balance,
                description=description,
                category=category,
                notes=notes,
                reference_type=reference_type.value if reference_type else None,
                reference_id=reference_id,
                date=entry_date or business_today(),
            )
        )
        account.balance = new_balance
        self.db.flush()

        record_ledger_entry(entry_type.value, "applied")
        log_ledger_event(
            "ledger_entry_applied",
            str(account.id),
            signed_amount,
            new_balance,
            entry_type=entry_type.value,
            reference_type=entry.reference_type,
            reference_id=reference_id,
        )
        return entry

    def reverse_transaction(self, entry: Transaction) -> Decimal:
        """
        Undo an entry by its arithmetic inverse and delete it.

        Later entries keep their balance_after snapshots; those become
        informational once an earlier entry is reversed.
        """
        account = self.accounts.get_for_update(entry.bank_account_id)
        amount = to_money(entry.amount)
        new_balance = to_money(account.balance) - amount

        entry_type = entry.type
        self.entries.delete(entry)
        account.balance = new_balance
        self.db.flush()

        record_ledger_entry(entry_type, "reversed")
        log_ledger_event(
            "ledger_entry_reversed",
            str(account.id),
            -amount,
            new_balance,
            entry_type=entry_type,
        )
        return new_balance

    def reverse_references(self, reference_type: ReferenceType, reference_id: str) -> int:
        """Reverse every entry pointing at a record; returns how many were reversed"""
        entries = self.entries.find_by_reference(reference_type.value, reference_id)
        for entry in entries:
            self.reverse_transaction(entry)
        return len(entries)


def signed_amount_for(entry_type: EntryType, amount: Decimal) -> Decimal:
    """Sign a caller-supplied amount according to the entry type"""
    amount = to_money(amount)
    if entry_type == EntryType.INCOME:
        if amount <= 0:
            raise ValidationError("Income amount must be positive")
        return amount
    if entry_type == EntryType.EXPENSE:
        if amount <= 0:
            raise ValidationError("Expense amount must be positive")
        return -amount
    if entry_type == EntryType.ADJUSTMENT:
        return amount
    raise ValidationError(f"Entry type {entry_type.value} cannot be posted manually")


def create_manual_entry(
    db: Session,
    account_id: IdLike,
    entry_type: EntryType,
    amount: Decimal,
    description: str,
    category: Optional[str] = None,
    notes: Optional[str] = None,
    entry_date: Optional[date] = None,
) -> Transaction:
    """Post an income, expense or adjustment typed in by an operator"""
    signed = signed_amount_for(entry_type, amount)
    if not description or not description.strip():
        raise ValidationError("Description is required")

    with atomic(db):
        ledger = BankLedger(db)
        account = ledger.accounts.get(account_id)
        entry = ledger.apply_transaction(
            account,
            signed,
            entry_type,
            description,
            reference_type=ReferenceType.MANUAL,
            category=category,
            notes=notes,
            entry_date=entry_date,
        )
    return entry


def _paid_reference_blocks_delete(db: Session, entry: Transaction) -> bool:
    """Entries backing a fully paid order or a paid obligation must be undone at the source"""
    reference_id = _uuid_or_none(entry.reference_id)
    if reference_id is None:
        return False
    if entry.reference_type == ReferenceType.PAYMENT.value:
        payment = db.get(Payment, reference_id)
        if payment is not None:
            orders = OrderRepository(db)
            order = payment.order
            status = derive_payment_status(to_money(order.total), orders.paid_amount(order.id))
            return status == PaymentStatus.PAID
    if entry.reference_type == ReferenceType.INSTALLMENT.value:
        installment = db.get(Installment, reference_id)
        return installment is not None and installment.status == InstallmentStatus.PAID.value
    return False


def _uuid_or_none(value: Optional[str]) -> Optional[uuid.UUID]:
    if not value:
        return None
    try:
        return uuid.UUID(value)
    except ValueError:
        return None


def delete_transaction(db: Session, transaction_id: IdLike) -> dict:
    """
    Delete a ledger entry and restore the balance it moved.

    Deleting one leg of a transfer reverses both legs in the same unit.
    """
    with atomic(db):
        ledger = BankLedger(db)
        entry = ledger.entries.get(transaction_id)

        if _paid_reference_blocks_delete(db, entry):
            raise ConsistencyError(
                "This transaction backs a paid order or boleto and cannot be deleted directly",
                details="Delete the payment or revert the boleto instead",
            )

        account_id = entry.bank_account_id
        old_balance = to_money(ledger.accounts.get(account_id).balance)
        amount = to_money(entry.amount)

        if entry.reference_type == ReferenceType.TRANSFER.value and entry.reference_id:
            reversed_count = ledger.reverse_references(ReferenceType.TRANSFER, entry.reference_id)
        else:
            ledger.reverse_transaction(entry)
            reversed_count = 1

        new_balance = to_money(ledger.accounts.get(account_id).balance)

    return {
        "bank_account_id": str(account_id),
        "old_balance": old_balance,
        "new_balance": new_balance,
        "amount_reverted": amount,
        "entries_reversed": reversed_count,
    }


def list_transactions(db: Session, account_id: IdLike, limit: int = 100) -> List[Transaction]:
    account = BankAccountRepository(db).get(account_id)
    return TransactionRepository(db).list_for_account(account.id, limit=limit)
