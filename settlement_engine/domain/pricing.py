"""Order pricing: unit price resolution, totals, card fees and payment slots"""

from decimal import Decimal
from typing import Dict, List, Optional

from settlement_engine.config import settings
from settlement_engine.domain.exceptions import ValidationError
from settlement_engine.domain.models import (
    CREDIT_CONSUMING_METHODS,
    CartItem,
    OrderTotals,
    OrderType,
    PaymentConfig,
    PaymentMethod,
    PaymentSlot,
    PricedLine,
)
from settlement_engine.utils.money import ZERO, percent_of, to_money


def resolve_unit_price(
    order_type: OrderType,
    wholesale_price: Decimal,
    retail_price: Decimal,
    custom_price: Optional[Decimal] = None,
) -> Decimal:
    """Negotiated customer price wins when positive, otherwise the list for the order type"""
    if custom_price is not None and custom_price > 0:
        return to_money(custom_price)
    if order_type == OrderType.WHOLESALE:
        return to_money(wholesale_price)
    return to_money(retail_price)


def price_lines(
    items: List[CartItem],
    order_type: OrderType,
    catalog: Dict[str, Dict[str, Decimal]],
    custom_prices: Optional[Dict[str, Decimal]] = None,
) -> List[PricedLine]:
    """
    Price every cart line from the catalog.

    catalog maps product id -> {"wholesale": Decimal, "retail": Decimal}.
    Gift lines keep their unit price for the record but total zero.
    """
    if not items:
        raise ValidationError("No items in order")

    custom_prices = custom_prices or {}
    lines = []
    for item in items:
        if item.quantity <= 0:
            raise ValidationError(f"Invalid quantity for product {item.product_id}")
        prices = catalog.get(item.product_id)
        if prices is None:
            raise ValidationError(f"Product not found: {item.product_id}")

        unit_price = resolve_unit_price(
            order_type,
            prices["wholesale"],
            prices["retail"],
            custom_prices.get(item.product_id),
        )
        line_total = ZERO if item.is_gift else to_money(unit_price * item.quantity)
        lines.append(
            PricedLine(
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price=unit_price,
                total=line_total,
                is_gift=item.is_gift,
            )
        )
    return lines


def card_fee_percent(method: Optional[PaymentMethod]) -> Decimal:
    if method == PaymentMethod.CREDIT_CARD:
        return settings.credit_card_fee_percent
    if method == PaymentMethod.DEBIT:
        return settings.debit_card_fee_percent
    return ZERO


def compute_totals(
    lines: List[PricedLine],
    discount_percent: Decimal,
    payment: PaymentConfig,
    order_type: OrderType,
    exempt_card_fee: bool = False,
) -> OrderTotals:
    """
    subtotal = sum of non-gift lines, discount = subtotal * pct / 100,
    total = subtotal - discount + card fee.

    Card fees apply to wholesale orders only: on the whole discounted total for
    a single method, or on each slot amount for a split payment.
    """
    if discount_percent < 0 or discount_percent > 100:
        raise ValidationError("Discount percent must be between 0 and 100")

    subtotal = sum((line.total for line in lines if not line.is_gift), ZERO)
    discount = percent_of(subtotal, discount_percent)
    net = subtotal - discount

    card_fee = ZERO
    if charges_card_fee(order_type, exempt_card_fee):
        if payment.secondary_method is None:
            card_fee = percent_of(net, card_fee_percent(payment.method))
        else:
            card_fee = percent_of(to_money(payment.primary_amount), card_fee_percent(payment.method))
            card_fee += percent_of(to_money(payment.secondary_amount), card_fee_percent(payment.secondary_method))

    return OrderTotals(
        subtotal=subtotal,
        discount_percent=discount_percent,
        discount=discount,
        card_fee=card_fee,
        total=net + card_fee,
    )


def charges_card_fee(order_type: OrderType, exempt_card_fee: bool) -> bool:
    return order_type == OrderType.WHOLESALE and not exempt_card_fee


def payment_slots(payment: PaymentConfig, totals: OrderTotals, charge_card_fee: bool) -> List[PaymentSlot]:
    """
    Distribute the order total over the payment methods.

    A split payment must cover the discounted total exactly; each slot then
    carries its own card fee, so the slots always sum to the order total.
    """
    if payment.secondary_method is None:
        return [PaymentSlot(payment.method, totals.total)]

    if payment.secondary_method == payment.method:
        raise ValidationError("Secondary payment method must differ from the primary one")
    if payment.primary_amount is None or payment.secondary_amount is None:
        raise ValidationError("Split payments require an amount for each method")

    primary = to_money(payment.primary_amount)
    secondary = to_money(payment.secondary_amount)
    if primary <= 0 or secondary <= 0:
        raise ValidationError("Split payment amounts must be positive")

    net = totals.subtotal - totals.discount
    if primary + secondary != net:
        raise ValidationError(
            "Combined payment amounts do not match total",
            details=f"primary {primary} + secondary {secondary} != {net}",
        )

    slots = []
    for method, amount in ((payment.method, primary), (payment.secondary_method, secondary)):
        fee = percent_of(amount, card_fee_percent(method)) if charge_card_fee else ZERO
        slots.append(PaymentSlot(method, amount + fee))
    return slots


def credit_amount(slots: List[PaymentSlot]) -> Decimal:
    """Portion of the order paid with credit-consuming methods"""
    return sum((s.amount for s in slots if s.method in CREDIT_CONSUMING_METHODS), ZERO)
