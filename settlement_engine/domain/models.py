"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional


class OrderType(str, Enum):
    WHOLESALE = "WHOLESALE"
    RETAIL = "RETAIL"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    PIX = "PIX"
    DEBIT = "DEBIT"
    CREDIT_CARD = "CREDIT_CARD"
    BOLETO = "BOLETO"
    STORE_CREDIT = "STORE_CREDIT"


# Methods that leave money owed by the customer and consume its credit limit
CREDIT_CONSUMING_METHODS = frozenset({PaymentMethod.BOLETO, PaymentMethod.STORE_CREDIT})


class ObligationKind(str, Enum):
    BOLETO = "BOLETO"
    STORE_CREDIT = "STORE_CREDIT"


class InstallmentStatus(str, Enum):
    PENDING = "PENDING"
    OVERDUE = "OVERDUE"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


OUTSTANDING_STATUSES = (InstallmentStatus.PENDING.value, InstallmentStatus.OVERDUE.value)


class PaymentStatus(str, Enum):
    UNPAID = "UNPAID"
    PARTIAL = "PARTIAL"
    PAID = "PAID"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    DELIVERED = "DELIVERED"


class EntryType(str, Enum):
    """Ledger entry types; stored amounts are always signed"""

    INCOME = "INCOME"
    EXPENSE = "EXPENSE"
    ADJUSTMENT = "ADJUSTMENT"
    TRANSFER = "TRANSFER"
    OPENING = "OPENING"


class ReferenceType(str, Enum):
    MANUAL = "MANUAL"
    ORDER = "ORDER"
    PAYMENT = "PAYMENT"
    INSTALLMENT = "INSTALLMENT"
    TRANSFER = "TRANSFER"
    ACCOUNT = "ACCOUNT"


@dataclass
class CartItem:
    """Line requested by the caller"""

    product_id: str
    quantity: int
    is_gift: bool = False


@dataclass
class PricedLine:
    """Cart line with its resolved unit price"""

    product_id: str
    quantity: int
    unit_price: Decimal
    total: Decimal
    is_gift: bool = False


@dataclass
class OrderTotals:
    subtotal: Decimal
    discount_percent: Decimal
    discount: Decimal
    card_fee: Decimal
    total: Decimal


@dataclass
class PaymentSlot:
    method: PaymentMethod
    amount: Decimal


@dataclass
class PaymentConfig:
    """Primary method plus an optional secondary method with per-method amounts"""

    method: PaymentMethod
    secondary_method: Optional[PaymentMethod] = None
    primary_amount: Optional[Decimal] = None
    secondary_amount: Optional[Decimal] = None
    installment_spec: Optional[str] = None

    def methods(self) -> List[PaymentMethod]:
        return [m for m in (self.method, self.secondary_method) if m is not None]

    def uses_deferred_instrument(self) -> bool:
        return PaymentMethod.BOLETO in self.methods()

    def consumes_credit(self) -> bool:
        return any(m in CREDIT_CONSUMING_METHODS for m in self.methods())


@dataclass
class CustomerSnapshot:
    """Credit-relevant view of a customer, read under lock when mutating"""

    customer_id: str
    name: str
    customer_type: str
    tax_id: Optional[str]
    credit_limit: Decimal
    available_credit: Decimal
    payment_terms: int
    manually_unblocked: bool = False


@dataclass
class OverdueSummary:
    count: int
    total: Decimal


@dataclass
class EligibilityRequest:
    customer: Optional[CustomerSnapshot]
    payment: PaymentConfig
    credit_amount: Decimal
    discount_percent: Decimal = Decimal("0")
    max_discount_percent: Optional[Decimal] = None
    overdue: OverdueSummary = field(default_factory=lambda: OverdueSummary(0, Decimal("0")))


@dataclass
class EligibilityDecision:
    """Output of the eligibility guard"""

    approved: bool
    code: Optional[str] = None
    reason: Optional[str] = None
    context: Dict[str, str] = field(default_factory=dict)


@dataclass
class InstallmentDraft:
    """Single dated obligation produced by the installment generator"""

    amount: Decimal
    due_date: date
    installment_number: int
    total_installments: int

    @property
    def is_installment(self) -> bool:
        return self.total_installments > 1


@dataclass
class PaymentSummary:
    total: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    payment_status: PaymentStatus


@dataclass
class ChargeRequest:
    """Payload sent to the payment gateway for one deferred instrument"""

    reference: str
    amount: Decimal
    due_date: date
    payer_name: str
    payer_tax_id: str
    description: str


@dataclass
class GatewayCharge:
    """Payment codes issued by the gateway for a deferred instrument"""

    charge_id: str
    pix_code: Optional[str] = None
    digitable_line: Optional[str] = None
    barcode: Optional[str] = None
