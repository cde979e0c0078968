"""Obligation lifecycle endpoints"""

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from settlement_engine.api.v1.orders import installment_response
from settlement_engine.api.v1.schemas import InstallmentResponse, MarkOverdueResponse, PayInstallmentRequest
from settlement_engine.api.dependencies import get_gateway_client
from settlement_engine.infrastructure.database.session import get_db
from settlement_engine.infrastructure.clients.payment_gateway import PaymentGatewayClient
from settlement_engine.services import installments

router = APIRouter()


@router.post("/installments/{installment_id}/pay", response_model=InstallmentResponse)
def pay_installment(installment_id: str, request_body: PayInstallmentRequest, db: Session = Depends(get_db)):
    """Mark a boleto or store-credit note as paid and book the income"""
    installment = installments.pay_installment(
        db,
        installment_id,
        request_body.bank_account_id,
        interest=request_body.interest,
        fine=request_body.fine,
        payment_date=request_body.payment_date,
    )
    return installment_response(installment)


@router.post("/installments/{installment_id}/cancel", response_model=InstallmentResponse)
def cancel_installment(installment_id: str, db: Session = Depends(get_db)):
    return installment_response(installments.cancel_installment(db, installment_id))


@router.post("/installments/{installment_id}/revert", response_model=InstallmentResponse)
def revert_installment(installment_id: str, db: Session = Depends(get_db)):
    """Undo a payment and consume the customer's credit again"""
    return installment_response(installments.revert_installment(db, installment_id))


@router.delete("/installments/{installment_id}", status_code=204)
def delete_installment(installment_id: str, db: Session = Depends(get_db)):
    installments.delete_installment(db, installment_id)
    return Response(status_code=204)


@router.post("/installments/{installment_id}/payment-code", response_model=InstallmentResponse)
async def regenerate_payment_code(
    installment_id: str,
    db: Session = Depends(get_db),
    gateway_client: PaymentGatewayClient = Depends(get_gateway_client),
):
    """Issue a missing payment code; returns the existing one when already issued"""
    installment = await installments.regenerate_payment_code(db, installment_id, gateway_client)
    return installment_response(installment)


@router.post("/installments/mark-overdue", response_model=MarkOverdueResponse)
def mark_overdue(db: Session = Depends(get_db)):
    return MarkOverdueResponse(updated=installments.mark_overdue(db))
