"""Partial payment endpoints for orders"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from settlement_engine.api.v1.schemas import (
    OrderPaymentsResponse,
    PaymentResponse,
    PaymentSummaryResponse,
    RegisterPaymentRequest,
)
from settlement_engine.infrastructure.database.session import get_db
from settlement_engine.infrastructure.database.models import Payment
from settlement_engine.services.payments import PaymentResult, delete_payment, get_order_payments, register_payment

router = APIRouter()


def payment_response(payment: Payment) -> PaymentResponse:
    return PaymentResponse(
        payment_id=str(payment.id),
        order_id=str(payment.order_id),
        amount=payment.amount,
        payment_method=payment.payment_method,
        payment_date=payment.payment_date,
        notes=payment.notes,
        bank_account_id=str(payment.bank_account_id) if payment.bank_account_id else None,
    )


def summary_response(result: PaymentResult) -> PaymentSummaryResponse:
    summary = result.summary
    return PaymentSummaryResponse(
        total=summary.total,
        paid_amount=summary.paid_amount,
        remaining_amount=summary.remaining_amount,
        payment_status=summary.payment_status.value,
        payment=payment_response(result.payment) if result.payment is not None else None,
    )


@router.post("/orders/{order_id}/payments", response_model=PaymentSummaryResponse, status_code=201)
def create_payment(order_id: str, request_body: RegisterPaymentRequest, db: Session = Depends(get_db)):
    """Register a partial payment and return the updated payment status"""
    result = register_payment(
        db,
        order_id,
        request_body.amount,
        request_body.payment_method,
        notes=request_body.notes,
        bank_account_id=request_body.bank_account_id,
        payment_date=request_body.payment_date,
    )
    return summary_response(result)


@router.get("/orders/{order_id}/payments", response_model=OrderPaymentsResponse)
def list_payments(order_id: str, db: Session = Depends(get_db)):
    payments, summary = get_order_payments(db, order_id)
    return OrderPaymentsResponse(
        order_id=order_id,
        total=summary.total,
        paid_amount=summary.paid_amount,
        remaining_amount=summary.remaining_amount,
        payment_status=summary.payment_status.value,
        payments=[payment_response(p) for p in payments],
    )


@router.delete("/payments/{payment_id}", response_model=PaymentSummaryResponse)
def remove_payment(payment_id: str, db: Session = Depends(get_db)):
    """Delete a payment; the order status is recomputed from the remaining payments"""
    return summary_response(delete_payment(db, payment_id))
