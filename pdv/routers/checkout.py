from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, Field

from pdv.core.errors import PdvError
from pdv.core.schemas import CommitStatus, PaymentAllocation

from .deps import get_terminal, http_error

router = APIRouter(tags=["checkout"])


class CheckoutReq(BaseModel):
    allocations: List[PaymentAllocation] = Field(default_factory=list)
    amount_received: Optional[Decimal] = Field(default=None, ge=0)
    customer_id: Optional[int] = Field(default=None, gt=0)
    points_to_redeem: int = Field(default=0, ge=0)
    issue_fiscal: bool = False
    customer_tax_id: Optional[str] = None
    operator_id: str = "operator"
    operator_name: str = "Operador"


@router.post("/checkout")
def checkout(
    req: CheckoutReq,
    t=Depends(get_terminal),
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
):
    try:
        outcome = t.checkout(
            req.allocations,
            amount_received=req.amount_received,
            customer_id=req.customer_id,
            points_to_redeem=req.points_to_redeem,
            issue_fiscal=req.issue_fiscal,
            customer_tax_id=req.customer_tax_id,
            operator_id=req.operator_id,
            operator_name=req.operator_name,
            client_id=idempotency_key,
        )
    except PdvError as exc:
        raise http_error(exc)
    if outcome.status == CommitStatus.REJECTED:
        raise HTTPException(status_code=422, detail={"code": outcome.reasons[0], "reasons": outcome.reasons})
    return outcome.model_dump(mode="json")
