"""Order settlement orchestrator - cart to order plus its financial side effects"""

import logging
import secrets
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from settlement_engine.config import settings
from settlement_engine.domain.eligibility import ensure_eligible
from settlement_engine.domain.exceptions import (
    EligibilityError,
    GatewayError,
    PostCommitError,
    StoreError,
    ValidationError,
)
from settlement_engine.domain.installments import generate_installment_schedule
from settlement_engine.domain.models import (
    CartItem,
    CustomerSnapshot,
    EligibilityRequest,
    InstallmentDraft,
    ObligationKind,
    OrderStatus,
    OrderType,
    PaymentConfig,
    PaymentMethod,
    PaymentSlot,
)
from settlement_engine.domain.pricing import (
    charges_card_fee,
    compute_totals,
    credit_amount,
    payment_slots,
    price_lines,
)
from settlement_engine.infrastructure.clients.payment_gateway import PaymentGatewayClient
from settlement_engine.infrastructure.database.models import Customer, Order, Seller
from settlement_engine.infrastructure.database.repositories import (
    CatalogRepository,
    CustomerRepository,
    InstallmentRepository,
    OrderRepository,
    SellerRepository,
    parse_id,
)
from settlement_engine.infrastructure.database.session import atomic
from settlement_engine.infrastructure.observability.logging import log_settlement
from settlement_engine.infrastructure.observability.metrics import (
    eligibility_rejection_counter,
    gateway_failure_counter,
    record_settlement,
)
from settlement_engine.services.installments import issue_payment_code
from settlement_engine.utils.date_utils import add_days, business_today
from settlement_engine.utils.money import ZERO, percent_of, to_money


@dataclass
class SettlementRequest:
    """Everything needed to turn a cart into an order"""

    items: List[CartItem]
    order_type: OrderType
    payment: PaymentConfig
    customer_id: Optional[str] = None
    seller_id: Optional[str] = None
    customer_name: Optional[str] = None
    discount_percent: Decimal = ZERO
    is_own_order: bool = False
    exempt_card_fee: bool = False
    delivery_type: Optional[str] = None
    delivery_date: Optional[date] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    idempotency_key: Optional[str] = None


@dataclass
class SettlementResult:
    order: Order
    replayed: bool = False
    warnings: List[PostCommitError] = field(default_factory=list)


def generate_order_number() -> str:
    """ORD + UTC timestamp + random suffix"""
    return f"ORD{datetime.now(timezone.utc):%Y%m%d%H%M%S}{secrets.token_hex(3).upper()}"


def build_obligation_drafts(
    slots: List[PaymentSlot],
    installment_spec: Optional[str],
    payment_terms: int,
    base_date: date,
) -> List[tuple[ObligationKind, InstallmentDraft]]:
    """
    One boleto schedule per BOLETO slot and one single obligation per
    STORE_CREDIT slot.

    Raises:
        ValidationError: When a boleto installment is below the gateway minimum
    """
    drafts = []
    for slot in slots:
        if slot.method == PaymentMethod.BOLETO:
            schedule = generate_installment_schedule(slot.amount, installment_spec, payment_terms, base_date)
            for draft in schedule:
                if draft.amount < settings.min_installment_amount:
                    raise ValidationError(
                        f"Installment amount {draft.amount} is below the minimum of {settings.min_installment_amount}",
                        details=f"Installment {draft.installment_number}/{draft.total_installments}",
                    )
                drafts.append((ObligationKind.BOLETO, draft))
        elif slot.method == PaymentMethod.STORE_CREDIT:
            drafts.append(
                (
                    ObligationKind.STORE_CREDIT,
                    InstallmentDraft(
                        amount=slot.amount,
                        due_date=add_days(base_date, payment_terms),
                        installment_number=1,
                        total_installments=1,
                    ),
                )
            )
    return drafts


def _resolve_seller(db: Session, request: SettlementRequest, customer: Optional[Customer]) -> Optional[Seller]:
    if request.seller_id:
        return SellerRepository(db).get(request.seller_id)
    if customer is not None:
        return customer.seller
    return None


def _eligibility_request(
    customers: CustomerRepository,
    snapshot: Optional[CustomerSnapshot],
    request: SettlementRequest,
    credit: Decimal,
    discount_percent: Decimal,
    seller: Optional[Seller],
    today: date,
) -> EligibilityRequest:
    eligibility = EligibilityRequest(
        customer=snapshot,
        payment=request.payment,
        credit_amount=credit,
        discount_percent=discount_percent,
        max_discount_percent=to_money(seller.max_discount_percent)
        if seller is not None and seller.max_discount_percent is not None
        else None,
    )
    if snapshot is not None:
        eligibility.overdue = customers.overdue_summary(parse_id(snapshot.customer_id, "Customer"), today)
    return eligibility


def _check(eligibility: EligibilityRequest, request_id: Optional[str]) -> None:
    try:
        ensure_eligible(eligibility)
    except EligibilityError as e:
        eligibility_rejection_counter.labels(reason=e.code).inc()
        record_settlement("rejected")
        logging.warning(
            f"Settlement rejected: {e.message}",
            extra={
                "request_id": request_id,
                "step": "eligibility_rejected",
                "reason": e.code,
                "customer_id": eligibility.customer.customer_id if eligibility.customer else None,
                **e.context,
            },
        )
        raise


def create_order(db: Session, request: SettlementRequest, request_id: Optional[str] = None) -> SettlementResult:
    """
    Settle a cart in one atomic unit.

    Flow:
    1. Replay an order already created with the same idempotency key
    2. Price the cart and compute totals (no writes)
    3. Run the eligibility guard on a plain read
    4. Inside the transaction: lock the customer row, re-run the guard on live
       data, create order, lines, commission and obligations, consume credit
    """
    start_time = time.time()
    orders = OrderRepository(db)

    if request.idempotency_key:
        existing = orders.get_by_idempotency_key(request.idempotency_key)
        if existing is not None:
            record_settlement("replayed")
            return SettlementResult(order=existing, replayed=True)

    customers = CustomerRepository(db)
    customer = customers.get(request.customer_id) if request.customer_id else None
    seller = _resolve_seller(db, request, customer)

    catalog = CatalogRepository(db)
    product_ids = [item.product_id for item in request.items]
    custom_prices = catalog.custom_prices_for(customer.id) if customer is not None else None
    lines = price_lines(request.items, request.order_type, catalog.prices_for(product_ids), custom_prices)

    discount_percent = to_money(request.discount_percent)
    charge_fee = charges_card_fee(request.order_type, request.exempt_card_fee)
    totals = compute_totals(lines, discount_percent, request.payment, request.order_type, request.exempt_card_fee)
    slots = payment_slots(request.payment, totals, charge_fee)
    credit = credit_amount(slots)

    today = business_today()
    base_date = request.delivery_date or today
    payment_terms = customer.payment_terms if customer is not None else settings.default_payment_terms_days
    drafts = build_obligation_drafts(slots, request.payment.installment_spec, payment_terms, base_date)

    snapshot = customers.snapshot(customer) if customer is not None else None
    _check(_eligibility_request(customers, snapshot, request, credit, discount_percent, seller, today), request_id)

    try:
        with atomic(db):
            locked = None
            if customer is not None:
                locked = customers.get_for_update(customer.id)
                live = customers.snapshot(locked)
                _check(_eligibility_request(customers, live, request, credit, discount_percent, seller, today), request_id)

            pickup = locked is not None and locked.customer_type in settings.deferred_forbidden_customer_types
            order = orders.create_order(
                lines,
                order_number=generate_order_number(),
                idempotency_key=request.idempotency_key,
                customer_id=locked.id if locked is not None else None,
                seller_id=seller.id if seller is not None else None,
                customer_name=locked.name if locked is not None else request.customer_name,
                order_type=request.order_type.value,
                is_own_order=request.is_own_order,
                delivery_type=request.delivery_type,
                delivery_date=request.delivery_date,
                address=request.address,
                payment_method=request.payment.method.value,
                secondary_payment_method=request.payment.secondary_method.value
                if request.payment.secondary_method
                else None,
                primary_payment_amount=request.payment.primary_amount,
                secondary_payment_amount=request.payment.secondary_amount,
                subtotal=totals.subtotal,
                discount_percent=totals.discount_percent,
                discount=totals.discount,
                card_fee=totals.card_fee,
                total=totals.total,
                status=(OrderStatus.DELIVERED if pickup else OrderStatus.PENDING).value,
                notes=request.notes,
            )

            if seller is not None and locked is not None and not request.is_own_order:
                orders.create_commission(
                    order,
                    seller,
                    percent_of(totals.total, to_money(seller.commission_rate)),
                    f"Commission on order {order.order_number}",
                )

            if drafts:
                installments = InstallmentRepository(db)
                for kind in ObligationKind:
                    kind_drafts = [draft for draft_kind, draft in drafts if draft_kind == kind]
                    if kind_drafts:
                        installments.create_installments(order.id, locked.id, kind.value, kind_drafts)
                customers.adjust_credit(locked, -credit)

    except StoreError:
        if request.idempotency_key:
            existing = orders.get_by_idempotency_key(request.idempotency_key)
            if existing is not None:
                record_settlement("replayed")
                return SettlementResult(order=existing, replayed=True)
        record_settlement("failed")
        raise

    duration_ms = (time.time() - start_time) * 1000
    record_settlement("created", totals.total)
    log_settlement(
        request_id,
        order.order_number,
        str(order.customer_id) if order.customer_id else None,
        totals.total,
        len(drafts),
        duration_ms,
    )
    return SettlementResult(order=order)


async def issue_order_payment_codes(
    db: Session,
    order: Order,
    gateway: PaymentGatewayClient,
    request_id: Optional[str] = None,
) -> List[PostCommitError]:
    """
    Best-effort gateway calls after the order is committed.

    Failures never undo the order; each one becomes a warning and the code can
    be issued later through regenerate_payment_code.
    """
    warnings = []
    order_number = order.order_number
    for installment in list(order.installments):
        if installment.kind != ObligationKind.BOLETO.value or installment.gateway_charge_id:
            continue
        installment_id = str(installment.id)
        label = f"{installment.installment_number}/{installment.total_installments}"
        try:
            await issue_payment_code(db, installment, gateway)
        except (GatewayError, StoreError) as e:
            if isinstance(e, GatewayError):
                gateway_failure_counter.inc()
            warning = PostCommitError(
                f"Payment code for installment {label} was not issued",
                details=e.message,
                context={"installment_id": installment_id},
            )
            logging.warning(
                f"Post-commit payment code step failed: {e.message}",
                extra={
                    "request_id": request_id,
                    "step": "post_commit_failed",
                    "order_number": order_number,
                    "installment_id": installment_id,
                    "error_type": e.__class__.__name__,
                },
            )
            warnings.append(warning)
    return warnings


async def settle_order(
    db: Session,
    request: SettlementRequest,
    gateway: PaymentGatewayClient,
    request_id: Optional[str] = None,
) -> SettlementResult:
    """Create the order, then issue boleto payment codes for it"""
    result = create_order(db, request, request_id)
    if not result.replayed:
        result.warnings = await issue_order_payment_codes(db, result.order, gateway, request_id)
    return result
