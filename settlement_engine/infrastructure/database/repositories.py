"""Data access layer for settlement and ledger entities"""

import uuid
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Union
from sqlalchemy import func
from sqlalchemy.orm import Session
from settlement_engine.infrastructure.database.models import (
    BankAccount,
    Commission,
    Customer,
    CustomerProduct,
    Installment,
    Order,
    OrderItem,
    Payment,
    Product,
    Seller,
    Transaction,
)
from settlement_engine.domain.exceptions import NotFoundError
from settlement_engine.domain.models import (
    CustomerSnapshot,
    InstallmentDraft,
    InstallmentStatus,
    OUTSTANDING_STATUSES,
    OverdueSummary,
    PricedLine,
)
from settlement_engine.utils.money import ZERO, to_money

IdLike = Union[str, uuid.UUID]


def parse_id(value: IdLike, label: str = "Record") -> uuid.UUID:
    """Convert an external identifier to UUID, treating malformed ids as missing records"""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise NotFoundError(f"{label} not found", details=f"Invalid identifier: {value}")


class CustomerRepository:
    """Repository for customer credit fields"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, customer_id: IdLike) -> Customer:
        customer = self.db.get(Customer, parse_id(customer_id, "Customer"))
        if customer is None:
            raise NotFoundError("Customer not found")
        return customer

    def get_for_update(self, customer_id: IdLike) -> Customer:
        """Lock the customer row for the rest of the transaction"""
        customer = (
            self.db.query(Customer)
            .filter(Customer.id == parse_id(customer_id, "Customer"))
            .with_for_update()
            .populate_existing()
            .first()
        )
        if customer is None:
            raise NotFoundError("Customer not found")
        return customer

    def list_active(self) -> List[Customer]:
        return self.db.query(Customer).filter(Customer.is_active.is_(True)).all()

    @staticmethod
    def snapshot(customer: Customer) -> CustomerSnapshot:
        return CustomerSnapshot(
            customer_id=str(customer.id),
            name=customer.name,
            customer_type=customer.customer_type,
            tax_id=customer.tax_id,
            credit_limit=to_money(customer.credit_limit),
            available_credit=to_money(customer.available_credit),
            payment_terms=customer.payment_terms,
            manually_unblocked=customer.manually_unblocked,
        )

    def overdue_summary(self, customer_id: uuid.UUID, today: date) -> OverdueSummary:
        """Outstanding obligations due before today"""
        count, total = (
            self.db.query(func.count(Installment.id), func.coalesce(func.sum(Installment.amount), 0))
            .filter(
                Installment.customer_id == customer_id,
                Installment.status.in_(OUTSTANDING_STATUSES),
                Installment.due_date < today,
            )
            .one()
        )
        return OverdueSummary(count=count, total=to_money(total))

    def outstanding_total(self, customer_id: uuid.UUID) -> Decimal:
        total = (
            self.db.query(func.coalesce(func.sum(Installment.amount), 0))
            .filter(
                Installment.customer_id == customer_id,
                Installment.status.in_(OUTSTANDING_STATUSES),
            )
            .scalar()
        )
        return to_money(total)

    def adjust_credit(self, customer: Customer, delta: Decimal) -> None:
        """Apply an incremental change to available credit (negative consumes)"""
        customer.available_credit = to_money(customer.available_credit) + delta
        self.db.flush()


class CatalogRepository:
    """Read-only access to product prices"""

    def __init__(self, db: Session):
        self.db = db

    def prices_for(self, product_ids: Iterable[str]) -> Dict[str, Dict[str, Decimal]]:
        ids = []
        for pid in product_ids:
            try:
                ids.append(uuid.UUID(str(pid)))
            except ValueError:
                continue
        products = (
            self.db.query(Product)
            .filter(Product.id.in_(ids), Product.is_active.is_(True))
            .all()
        )
        return {
            str(p.id): {"wholesale": to_money(p.price_wholesale), "retail": to_money(p.price_retail)}
            for p in products
        }

    def custom_prices_for(self, customer_id: uuid.UUID) -> Dict[str, Decimal]:
        rows = (
            self.db.query(CustomerProduct)
            .filter(CustomerProduct.customer_id == customer_id, CustomerProduct.custom_price.isnot(None))
            .all()
        )
        return {str(r.product_id): to_money(r.custom_price) for r in rows}


class SellerRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, seller_id: IdLike) -> Seller:
        seller = self.db.get(Seller, parse_id(seller_id, "Seller"))
        if seller is None:
            raise NotFoundError("Seller not found")
        return seller


class OrderRepository:
    """Repository for orders, their lines and commissions"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, order_id: IdLike) -> Order:
        order = self.db.get(Order, parse_id(order_id, "Order"))
        if order is None:
            raise NotFoundError("Order not found")
        return order

    def get_for_update(self, order_id: IdLike) -> Order:
        order = (
            self.db.query(Order)
            .filter(Order.id == parse_id(order_id, "Order"))
            .with_for_update()
            .populate_existing()
            .first()
        )
        if order is None:
            raise NotFoundError("Order not found")
        return order

    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        return self.db.query(Order).filter(Order.idempotency_key == key).first()

    def create_order(self, lines: List[PricedLine], **fields) -> Order:
        """Persist order with its priced lines"""
        db_order = Order(**fields)
        self.db.add(db_order)
        self.db.flush()  # Get ID without committing

        for line in lines:
            self.db.add(
                OrderItem(
                    order_id=db_order.id,
                    product_id=uuid.UUID(line.product_id),
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    total=line.total,
                    is_gift=line.is_gift,
                )
            )
        self.db.flush()
        return db_order

    def create_commission(self, order: Order, seller: Seller, amount: Decimal, description: str) -> Commission:
        commission = Commission(
            order_id=order.id,
            seller_id=seller.id,
            amount=amount,
            description=description,
            status="PENDING",
        )
        self.db.add(commission)
        self.db.flush()
        return commission

    def paid_amount(self, order_id: uuid.UUID) -> Decimal:
        """Sum of registered payments, read from the payment rows themselves"""
        total = (
            self.db.query(func.coalesce(func.sum(Payment.amount), 0))
            .filter(Payment.order_id == order_id)
            .scalar()
        )
        return to_money(total)


class InstallmentRepository:
    """Repository for credit-consuming obligations"""

    def __init__(self, db: Session):
        self.db = db

    def create_installments(
        self,
        order_id: Optional[uuid.UUID],
        customer_id: uuid.UUID,
        kind: str,
        drafts: List[InstallmentDraft],
    ) -> List[Installment]:
        """Create one obligation per draft"""
        created = []
        for draft in drafts:
            db_installment = Installment(
                order_id=order_id,
                customer_id=customer_id,
                kind=kind,
                amount=draft.amount,
                due_date=draft.due_date,
                status=InstallmentStatus.PENDING.value,
                is_installment=draft.is_installment,
                installment_number=draft.installment_number,
                total_installments=draft.total_installments,
            )
            self.db.add(db_installment)
            created.append(db_installment)
        self.db.flush()
        return created

    def get(self, installment_id: IdLike) -> Installment:
        installment = self.db.get(Installment, parse_id(installment_id, "Installment"))
        if installment is None:
            raise NotFoundError("Installment not found")
        return installment

    def get_for_update(self, installment_id: IdLike) -> Installment:
        installment = (
            self.db.query(Installment)
            .filter(Installment.id == parse_id(installment_id, "Installment"))
            .with_for_update()
            .populate_existing()
            .first()
        )
        if installment is None:
            raise NotFoundError("Installment not found")
        return installment

    def list_for_customer(self, customer_id: uuid.UUID) -> List[Installment]:
        return (
            self.db.query(Installment)
            .filter(Installment.customer_id == customer_id)
            .order_by(Installment.due_date, Installment.installment_number)
            .all()
        )

    def pending_due_before(self, today: date) -> List[Installment]:
        return (
            self.db.query(Installment)
            .filter(
                Installment.status == InstallmentStatus.PENDING.value,
                Installment.due_date < today,
            )
            .with_for_update()
            .all()
        )


class BankAccountRepository:
    """Repository for bank accounts"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, **fields) -> BankAccount:
        account = BankAccount(balance=ZERO, **fields)
        self.db.add(account)
        self.db.flush()
        return account

    def get(self, account_id: IdLike) -> BankAccount:
        account = self.db.get(BankAccount, parse_id(account_id, "Bank account"))
        if account is None:
            raise NotFoundError("Bank account not found")
        return account

    def get_for_update(self, account_id: IdLike) -> BankAccount:
        account = (
            self.db.query(BankAccount)
            .filter(BankAccount.id == parse_id(account_id, "Bank account"))
            .with_for_update()
            .populate_existing()
            .first()
        )
        if account is None:
            raise NotFoundError("Bank account not found")
        return account


class TransactionRepository:
    """Repository for ledger entries"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, transaction_id: IdLike) -> Transaction:
        entry = self.db.get(Transaction, parse_id(transaction_id, "Transaction"))
        if entry is None:
            raise NotFoundError("Transaction not found")
        return entry

    def next_sequence(self, account_id: uuid.UUID) -> int:
        current = (
            self.db.query(func.max(Transaction.sequence))
            .filter(Transaction.bank_account_id == account_id)
            .scalar()
        )
        return (current or 0) + 1

    def add(self, entry: Transaction) -> Transaction:
        self.db.add(entry)
        self.db.flush()
        return entry

    def delete(self, entry: Transaction) -> None:
        self.db.delete(entry)
        self.db.flush()

    def find_by_reference(self, reference_type: str, reference_id: str) -> List[Transaction]:
        return (
            self.db.query(Transaction)
            .filter(Transaction.reference_type == reference_type, Transaction.reference_id == reference_id)
            .order_by(Transaction.sequence)
            .all()
        )

    def list_for_account(self, account_id: uuid.UUID, limit: int = 100) -> List[Transaction]:
        return (
            self.db.query(Transaction)
            .filter(Transaction.bank_account_id == account_id)
            .order_by(Transaction.sequence.desc())
            .limit(limit)
            .all()
        )

    def ledger_sum(self, account_id: uuid.UUID) -> Decimal:
        total = (
            self.db.query(func.coalesce(func.sum(Transaction.amount), 0))
            .filter(Transaction.bank_account_id == account_id)
            .scalar()
        )
        return to_money(total)

    def count_for_account(self, account_id: uuid.UUID) -> int:
        return self.db.query(func.count(Transaction.id)).filter(Transaction.bank_account_id == account_id).scalar()


class PaymentRepository:
    """Repository for partial payments"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, **fields) -> Payment:
        payment = Payment(**fields)
        self.db.add(payment)
        self.db.flush()
        return payment

    def get(self, payment_id: IdLike) -> Payment:
        payment = self.db.get(Payment, parse_id(payment_id, "Payment"))
        if payment is None:
            raise NotFoundError("Payment not found")
        return payment

    def list_for_order(self, order_id: uuid.UUID) -> List[Payment]:
        return (
            self.db.query(Payment)
            .filter(Payment.order_id == order_id)
            .order_by(Payment.payment_date.desc(), Payment.created_at.desc())
            .all()
        )

    def delete(self, payment: Payment) -> None:
        self.db.delete(payment)
        self.db.flush()
