"""POST /v1/orders - order settlement endpoint, GET /v1/orders/{order_id}"""

from fastapi import APIRouter, Depends, BackgroundTasks, Request
from sqlalchemy.orm import Session

from settlement_engine.api.v1.schemas import (
    CommissionResponse,
    CreateOrderRequest,
    InstallmentResponse,
    OrderItemResponse,
    OrderResponse,
)
from settlement_engine.api.dependencies import get_gateway_client, get_notification_client, get_request_id
from settlement_engine.infrastructure.database.session import get_db
from settlement_engine.infrastructure.database.models import Installment, Order
from settlement_engine.infrastructure.database.repositories import OrderRepository
from settlement_engine.infrastructure.clients.payment_gateway import PaymentGatewayClient
from settlement_engine.infrastructure.clients.notifications import NotificationClient
from settlement_engine.domain.models import CartItem, PaymentConfig
from settlement_engine.services.settlement import SettlementRequest, settle_order

router = APIRouter()


def installment_response(installment: Installment) -> InstallmentResponse:
    return InstallmentResponse(
        installment_id=str(installment.id),
        order_id=str(installment.order_id) if installment.order_id else None,
        kind=installment.kind,
        amount=installment.amount,
        due_date=installment.due_date,
        status=installment.status,
        is_installment=installment.is_installment,
        installment_number=installment.installment_number,
        total_installments=installment.total_installments,
        paid_date=installment.paid_date,
        paid_amount=installment.paid_amount,
        gateway_charge_id=installment.gateway_charge_id,
        pix_code=installment.pix_code,
        digitable_line=installment.digitable_line,
        barcode=installment.barcode,
    )


def order_response(order: Order, replayed: bool = False, warnings: list[str] | None = None) -> OrderResponse:
    commission = order.commission
    return OrderResponse(
        order_id=str(order.id),
        order_number=order.order_number,
        customer_id=str(order.customer_id) if order.customer_id else None,
        customer_name=order.customer_name,
        order_type=order.order_type,
        status=order.status,
        payment_method=order.payment_method,
        secondary_payment_method=order.secondary_payment_method,
        subtotal=order.subtotal,
        discount_percent=order.discount_percent,
        discount=order.discount,
        card_fee=order.card_fee,
        total=order.total,
        items=[
            OrderItemResponse(
                product_id=str(item.product_id),
                quantity=item.quantity,
                unit_price=item.unit_price,
                total=item.total,
                is_gift=item.is_gift,
            )
            for item in order.items
        ],
        installments=[installment_response(i) for i in order.installments],
        commission=CommissionResponse(
            seller_id=str(commission.seller_id),
            amount=commission.amount,
            status=commission.status,
        )
        if commission is not None
        else None,
        replayed=replayed,
        warnings=warnings or [],
    )


@router.post("/orders", response_model=OrderResponse, status_code=201)
async def create_order(
    request_body: CreateOrderRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    gateway_client: PaymentGatewayClient = Depends(get_gateway_client),
    notification_client: NotificationClient = Depends(get_notification_client),
):
    """
    Settle a cart into an order.

    Flow:
    1. Price the cart and run the eligibility guard
    2. Create order, lines, commission and obligations in one transaction
    3. Issue boleto payment codes (failures come back as warnings)
    4. Send async order-created notification
    5. Return the order
    """
    request_id = get_request_id(request)

    result = await settle_order(
        db,
        SettlementRequest(
            items=[CartItem(i.product_id, i.quantity, i.is_gift) for i in request_body.items],
            order_type=request_body.order_type,
            payment=PaymentConfig(
                method=request_body.payment_method,
                secondary_method=request_body.secondary_payment_method,
                primary_amount=request_body.primary_payment_amount,
                secondary_amount=request_body.secondary_payment_amount,
                installment_spec=request_body.installment_spec,
            ),
            customer_id=request_body.customer_id,
            seller_id=request_body.seller_id,
            customer_name=request_body.customer_name,
            discount_percent=request_body.discount_percent,
            is_own_order=request_body.is_own_order,
            exempt_card_fee=request_body.exempt_card_fee,
            delivery_type=request_body.delivery_type,
            delivery_date=request_body.delivery_date,
            address=request_body.address,
            notes=request_body.notes,
            idempotency_key=request_body.idempotency_key,
        ),
        gateway_client,
        request_id,
    )
    order = result.order

    if not result.replayed:
        background_tasks.add_task(
            notification_client.send_order_created,
            {
                "event": "ORDER_CREATED",
                "order_id": str(order.id),
                "order_number": order.order_number,
                "customer_id": str(order.customer_id) if order.customer_id else None,
                "total": str(order.total),
                "payment_method": order.payment_method,
            },
        )

    return order_response(order, result.replayed, [w.message for w in result.warnings])


@router.get("/orders/{order_id}", response_model=OrderResponse)
def get_order(order_id: str, db: Session = Depends(get_db)):
    """Retrieve an order with its lines, obligations and commission"""
    return order_response(OrderRepository(db).get(order_id))
