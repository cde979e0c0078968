"""POST /v1/customers/credit-audit - available credit consistency report"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from settlement_engine.api.v1.schemas import CreditAuditResponse, CreditDriftItem
from settlement_engine.infrastructure.database.session import get_db
from settlement_engine.services.credit import audit_credit

router = APIRouter()


@router.post("/customers/credit-audit", response_model=CreditAuditResponse)
def credit_audit(
    auto_fix: bool = Query(False, description="Write the expected available credit back"),
    db: Session = Depends(get_db),
):
    """
    Compare every active customer's available credit with
    credit_limit - outstanding obligations.
    """
    drifts = audit_credit(db, auto_fix=auto_fix)
    return CreditAuditResponse(
        auto_fix=auto_fix,
        customers=[
            CreditDriftItem(
                customer_id=d.customer_id,
                name=d.name,
                credit_limit=d.credit_limit,
                available_credit=d.available_credit,
                expected_credit=d.expected_credit,
                drift=d.drift,
                fixed=d.fixed,
            )
            for d in drifts
        ],
    )
