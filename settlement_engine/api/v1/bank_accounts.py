"""Bank account, ledger entry and transfer endpoints"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from settlement_engine.api.v1.schemas import (
    AccountAuditResponse,
    BankAccountResponse,
    CreateBankAccountRequest,
    DeleteTransactionResponse,
    ManualEntryRequest,
    TransactionListResponse,
    TransactionResponse,
    TransferRequest,
    TransferResponse,
    UpdateBankAccountRequest,
)
from settlement_engine.infrastructure.database.session import get_db
from settlement_engine.infrastructure.database.models import BankAccount, Transaction
from settlement_engine.services import accounts, ledger
from settlement_engine.services.transfers import transfer

router = APIRouter()


def account_response(account: BankAccount) -> BankAccountResponse:
    return BankAccountResponse(
        bank_account_id=str(account.id),
        name=account.name,
        account_type=account.account_type,
        bank_name=account.bank_name,
        agency=account.agency,
        account_number=account.account_number,
        description=account.description,
        balance=account.balance,
        is_active=account.is_active,
    )


def transaction_response(entry: Transaction) -> TransactionResponse:
    return TransactionResponse(
        transaction_id=str(entry.id),
        bank_account_id=str(entry.bank_account_id),
        sequence=entry.sequence,
        type=entry.type,
        amount=entry.amount,
        balance_after=entry.balance_after,
        description=entry.description,
        category=entry.category,
        notes=entry.notes,
        reference_type=entry.reference_type,
        reference_id=entry.reference_id,
        date=entry.date,
    )


@router.post("/bank-accounts", response_model=BankAccountResponse, status_code=201)
def create_bank_account(request_body: CreateBankAccountRequest, db: Session = Depends(get_db)):
    """Open an account; a non-zero opening balance becomes its first ledger entry"""
    fields = request_body.model_dump(exclude={"name", "opening_balance"})
    account = accounts.create_bank_account(db, request_body.name, request_body.opening_balance, **fields)
    return account_response(account)


@router.get("/bank-accounts/{account_id}", response_model=BankAccountResponse)
def get_bank_account(account_id: str, db: Session = Depends(get_db)):
    return account_response(accounts.get_bank_account(db, account_id))


@router.put("/bank-accounts/{account_id}", response_model=BankAccountResponse)
def update_bank_account(account_id: str, request_body: UpdateBankAccountRequest, db: Session = Depends(get_db)):
    """Update account details; a new balance is booked as an ADJUSTMENT entry"""
    changes = request_body.model_dump(exclude_unset=True)
    return account_response(accounts.update_bank_account(db, account_id, changes))


@router.get("/bank-accounts/{account_id}/audit", response_model=AccountAuditResponse)
def audit_bank_account(account_id: str, db: Session = Depends(get_db)):
    audit = accounts.audit_account(db, account_id)
    return AccountAuditResponse(
        bank_account_id=audit.bank_account_id,
        cached_balance=audit.cached_balance,
        ledger_balance=audit.ledger_balance,
        drift=audit.drift,
        entry_count=audit.entry_count,
    )


@router.get("/bank-accounts/{account_id}/transactions", response_model=TransactionListResponse)
def list_transactions(
    account_id: str,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Ledger entries for an account, newest first"""
    entries = ledger.list_transactions(db, account_id, limit=limit)
    account = accounts.get_bank_account(db, account_id)
    return TransactionListResponse(
        bank_account_id=str(account.id),
        balance=account.balance,
        transactions=[transaction_response(e) for e in entries],
    )


@router.post("/bank-accounts/{account_id}/transactions", response_model=TransactionResponse, status_code=201)
def create_transaction(account_id: str, request_body: ManualEntryRequest, db: Session = Depends(get_db)):
    entry = ledger.create_manual_entry(
        db,
        account_id,
        request_body.type,
        request_body.amount,
        request_body.description,
        category=request_body.category,
        notes=request_body.notes,
        entry_date=request_body.entry_date,
    )
    return transaction_response(entry)


@router.delete("/transactions/{transaction_id}", response_model=DeleteTransactionResponse)
def delete_transaction(transaction_id: str, db: Session = Depends(get_db)):
    """Delete an entry and restore the balance it moved (both legs for a transfer)"""
    return DeleteTransactionResponse(**ledger.delete_transaction(db, transaction_id))


@router.post("/transfers", response_model=TransferResponse, status_code=201)
def create_transfer(request_body: TransferRequest, db: Session = Depends(get_db)):
    result = transfer(
        db,
        request_body.from_account_id,
        request_body.to_account_id,
        request_body.amount,
        request_body.description,
    )
    return TransferResponse(
        transfer_id=result.transfer_id,
        amount=result.amount,
        from_account_id=request_body.from_account_id,
        to_account_id=request_body.to_account_id,
        from_balance=result.from_balance,
        to_balance=result.to_balance,
    )
