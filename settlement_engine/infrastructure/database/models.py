"""SQLAlchemy ORM models for orders, obligations, payments and the bank ledger"""

import uuid
from sqlalchemy import (
    Column,
    String,
    Boolean,
    Numeric,
    DateTime,
    Date,
    Integer,
    ForeignKey,
    Text,
    Uuid,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()

Money = Numeric(14, 2)


class Seller(Base):
    """Sales representative earning commission on customer orders"""

    __tablename__ = "seller"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    commission_rate = Column(Numeric(5, 2), nullable=False, default=0)  # percent
    max_discount_percent = Column(Numeric(5, 2), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Customer(Base):
    """Customer directory entry with the credit fields the engine maintains"""

    __tablename__ = "customer"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=True)
    tax_id = Column(Text, nullable=True)  # CPF/CNPJ
    customer_type = Column(Text, nullable=False, default="REGULAR")
    credit_limit = Column(Money, nullable=False, default=0)
    available_credit = Column(Money, nullable=False, default=0)
    payment_terms = Column(Integer, nullable=False, default=30)
    manually_unblocked = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    seller_id = Column(Uuid(as_uuid=True), ForeignKey("seller.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    seller = relationship("Seller")
    custom_prices = relationship("CustomerProduct", cascade="all, delete-orphan")


class Product(Base):
    """Catalog product with wholesale and retail price lists"""

    __tablename__ = "product"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    price_wholesale = Column(Money, nullable=False)
    price_retail = Column(Money, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)


class CustomerProduct(Base):
    """Negotiated per-customer price"""

    __tablename__ = "customer_product"
    __table_args__ = (UniqueConstraint("customer_id", "product_id"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    customer_id = Column(Uuid(as_uuid=True), ForeignKey("customer.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Uuid(as_uuid=True), ForeignKey("product.id", ondelete="CASCADE"), nullable=False)
    custom_price = Column(Money, nullable=True)


class Order(Base):
    """Settled order; totals are fixed at creation"""

    __tablename__ = "customer_order"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_number = Column(String(40), nullable=False, unique=True)
    idempotency_key = Column(String(120), nullable=True, unique=True)
    customer_id = Column(Uuid(as_uuid=True), ForeignKey("customer.id"), nullable=True, index=True)
    seller_id = Column(Uuid(as_uuid=True), ForeignKey("seller.id"), nullable=True)
    customer_name = Column(Text, nullable=True)
    order_type = Column(Text, nullable=False)
    is_own_order = Column(Boolean, nullable=False, default=False)
    delivery_type = Column(Text, nullable=True)
    delivery_date = Column(Date, nullable=True)
    address = Column(Text, nullable=True)
    payment_method = Column(Text, nullable=False)
    secondary_payment_method = Column(Text, nullable=True)
    primary_payment_amount = Column(Money, nullable=True)
    secondary_payment_amount = Column(Money, nullable=True)
    subtotal = Column(Money, nullable=False)
    discount_percent = Column(Numeric(5, 2), nullable=False, default=0)
    discount = Column(Money, nullable=False, default=0)
    card_fee = Column(Money, nullable=False, default=0)
    total = Column(Money, nullable=False)
    status = Column(Text, nullable=False, default="PENDING")
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    customer = relationship("Customer")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")
    installments = relationship(
        "Installment", back_populates="order", order_by="Installment.installment_number"
    )
    payments = relationship("Payment", back_populates="order", cascade="all, delete-orphan")
    commission = relationship("Commission", back_populates="order", uselist=False)


class OrderItem(Base):
    """Priced order line; gift lines are recorded with a zero total"""

    __tablename__ = "order_item"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid(as_uuid=True), ForeignKey("customer_order.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Uuid(as_uuid=True), ForeignKey("product.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Money, nullable=False)
    total = Column(Money, nullable=False)
    is_gift = Column(Boolean, nullable=False, default=False)

    order = relationship("Order", back_populates="items")


class Installment(Base):
    """Credit-consuming obligation: a boleto installment or a store-credit note"""

    __tablename__ = "installment"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid(as_uuid=True), ForeignKey("customer_order.id"), nullable=True, index=True)
    customer_id = Column(Uuid(as_uuid=True), ForeignKey("customer.id"), nullable=False, index=True)
    kind = Column(Text, nullable=False, default="BOLETO")
    amount = Column(Money, nullable=False)
    due_date = Column(Date, nullable=False)
    status = Column(Text, nullable=False, default="PENDING")
    is_installment = Column(Boolean, nullable=False, default=False)
    installment_number = Column(Integer, nullable=False, default=1)
    total_installments = Column(Integer, nullable=False, default=1)
    paid_date = Column(Date, nullable=True)
    paid_amount = Column(Money, nullable=True)
    interest_amount = Column(Money, nullable=True)
    fine_amount = Column(Money, nullable=True)
    gateway_charge_id = Column(Text, nullable=True)
    pix_code = Column(Text, nullable=True)
    digitable_line = Column(Text, nullable=True)
    barcode = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    order = relationship("Order", back_populates="installments")
    customer = relationship("Customer")


class Commission(Base):
    """Seller commission on a customer order"""

    __tablename__ = "commission"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid(as_uuid=True), ForeignKey("customer_order.id", ondelete="CASCADE"), nullable=False, unique=True)
    seller_id = Column(Uuid(as_uuid=True), ForeignKey("seller.id"), nullable=False)
    amount = Column(Money, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="PENDING")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    order = relationship("Order", back_populates="commission")


class BankAccount(Base):
    """Bank account; balance is a cache of the running sum of its ledger"""

    __tablename__ = "bank_account"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    account_type = Column(Text, nullable=False, default="CHECKING")
    bank_name = Column(Text, nullable=True)
    agency = Column(Text, nullable=True)
    account_number = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    balance = Column(Money, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    transactions = relationship("Transaction", back_populates="bank_account")


class Transaction(Base):
    """Signed ledger entry with the account balance right after it was applied"""

    __tablename__ = "bank_transaction"
    __table_args__ = (UniqueConstraint("bank_account_id", "sequence"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    bank_account_id = Column(Uuid(as_uuid=True), ForeignKey("bank_account.id"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)  # creation order within the account
    type = Column(Text, nullable=False)
    amount = Column(Money, nullable=False)
    balance_after = Column(Money, nullable=False)
    description = Column(Text, nullable=False)
    category = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    reference_type = Column(Text, nullable=True)
    reference_id = Column(Text, nullable=True, index=True)
    date = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    bank_account = relationship("BankAccount", back_populates="transactions")


class Payment(Base):
    """Partial settlement registered against an order"""

    __tablename__ = "payment"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid(as_uuid=True), ForeignKey("customer_order.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Money, nullable=False)
    payment_method = Column(Text, nullable=False)
    payment_date = Column(Date, nullable=False)
    notes = Column(Text, nullable=True)
    bank_account_id = Column(Uuid(as_uuid=True), ForeignKey("bank_account.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    order = relationship("Order", back_populates="payments")
