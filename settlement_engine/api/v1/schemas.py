"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, Field
from datetime import date
from decimal import Decimal
from typing import List, Optional

from settlement_engine.domain.models import EntryType, OrderType, PaymentMethod


class ErrorResponse(BaseModel):
    """Body returned for every domain error"""

    error: str
    details: Optional[str] = None


# Orders


class CartItemSchema(BaseModel):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0)
    is_gift: bool = False


class CreateOrderRequest(BaseModel):
    """Request body for POST /v1/orders"""

    items: List[CartItemSchema]
    order_type: OrderType = OrderType.RETAIL
    customer_id: Optional[str] = None
    seller_id: Optional[str] = None
    customer_name: Optional[str] = None
    payment_method: PaymentMethod
    secondary_payment_method: Optional[PaymentMethod] = None
    primary_payment_amount: Optional[Decimal] = None
    secondary_payment_amount: Optional[Decimal] = None
    installment_spec: Optional[str] = Field(None, description='Boleto schedule, e.g. "3x-30-60-90"')
    discount_percent: Decimal = Field(Decimal("0"), ge=0, le=100)
    exempt_card_fee: bool = False
    is_own_order: bool = False
    delivery_type: Optional[str] = None
    delivery_date: Optional[date] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    idempotency_key: Optional[str] = Field(None, max_length=120)


class OrderItemResponse(BaseModel):
    product_id: str
    quantity: int
    unit_price: Decimal
    total: Decimal
    is_gift: bool


class InstallmentResponse(BaseModel):
    installment_id: str
    order_id: Optional[str] = None
    kind: str
    amount: Decimal
    due_date: date
    status: str
    is_installment: bool
    installment_number: int
    total_installments: int
    paid_date: Optional[date] = None
    paid_amount: Optional[Decimal] = None
    gateway_charge_id: Optional[str] = None
    pix_code: Optional[str] = None
    digitable_line: Optional[str] = None
    barcode: Optional[str] = None


class CommissionResponse(BaseModel):
    seller_id: str
    amount: Decimal
    status: str


class OrderResponse(BaseModel):
    """Response for POST /v1/orders and GET /v1/orders/{order_id}"""

    order_id: str
    order_number: str
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    order_type: str
    status: str
    payment_method: str
    secondary_payment_method: Optional[str] = None
    subtotal: Decimal
    discount_percent: Decimal
    discount: Decimal
    card_fee: Decimal
    total: Decimal
    items: List[OrderItemResponse]
    installments: List[InstallmentResponse]
    commission: Optional[CommissionResponse] = None
    replayed: bool = False
    warnings: List[str] = []


# Payments


class RegisterPaymentRequest(BaseModel):
    amount: Decimal
    payment_method: PaymentMethod
    notes: Optional[str] = None
    bank_account_id: Optional[str] = None
    payment_date: Optional[date] = None


class PaymentResponse(BaseModel):
    payment_id: str
    order_id: str
    amount: Decimal
    payment_method: str
    payment_date: date
    notes: Optional[str] = None
    bank_account_id: Optional[str] = None


class PaymentSummaryResponse(BaseModel):
    total: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    payment_status: str
    payment: Optional[PaymentResponse] = None


class OrderPaymentsResponse(BaseModel):
    order_id: str
    total: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    payment_status: str
    payments: List[PaymentResponse]


# Installments


class PayInstallmentRequest(BaseModel):
    bank_account_id: str
    interest: Decimal = Field(Decimal("0"), ge=0)
    fine: Decimal = Field(Decimal("0"), ge=0)
    payment_date: Optional[date] = None


class MarkOverdueResponse(BaseModel):
    updated: int


# Bank accounts and ledger


class CreateBankAccountRequest(BaseModel):
    name: str = Field(..., min_length=1)
    account_type: str = "CHECKING"
    bank_name: Optional[str] = None
    agency: Optional[str] = None
    account_number: Optional[str] = None
    description: Optional[str] = None
    opening_balance: Decimal = Decimal("0")


class UpdateBankAccountRequest(BaseModel):
    name: Optional[str] = None
    account_type: Optional[str] = None
    bank_name: Optional[str] = None
    agency: Optional[str] = None
    account_number: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None
    balance: Optional[Decimal] = None


class BankAccountResponse(BaseModel):
    bank_account_id: str
    name: str
    account_type: str
    bank_name: Optional[str] = None
    agency: Optional[str] = None
    account_number: Optional[str] = None
    description: Optional[str] = None
    balance: Decimal
    is_active: bool


class AccountAuditResponse(BaseModel):
    bank_account_id: str
    cached_balance: Decimal
    ledger_balance: Decimal
    drift: Decimal
    entry_count: int


class ManualEntryRequest(BaseModel):
    type: EntryType
    amount: Decimal
    description: str = Field(..., min_length=1)
    category: Optional[str] = None
    notes: Optional[str] = None
    entry_date: Optional[date] = None


class TransactionResponse(BaseModel):
    transaction_id: str
    bank_account_id: str
    sequence: int
    type: str
    amount: Decimal
    balance_after: Decimal
    description: str
    category: Optional[str] = None
    notes: Optional[str] = None
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    date: date


class TransactionListResponse(BaseModel):
    bank_account_id: str
    balance: Decimal
    transactions: List[TransactionResponse]


class DeleteTransactionResponse(BaseModel):
    bank_account_id: str
    old_balance: Decimal
    new_balance: Decimal
    amount_reverted: Decimal
    entries_reversed: int


class TransferRequest(BaseModel):
    """Request body for POST /v1/transfers"""

    from_account_id: str
    to_account_id: str
    amount: Decimal
    description: Optional[str] = None


class TransferResponse(BaseModel):
    transfer_id: str
    amount: Decimal
    from_account_id: str
    to_account_id: str
    from_balance: Decimal
    to_balance: Decimal


# Customers


class CreditDriftItem(BaseModel):
    customer_id: str
    name: str
    credit_limit: Decimal
    available_credit: Decimal
    expected_credit: Decimal
    drift: Decimal
    fixed: bool


class CreditAuditResponse(BaseModel):
    auto_fix: bool
    customers: List[CreditDriftItem]
