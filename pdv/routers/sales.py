from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from pdv.core.errors import PdvError

from .deps import get_terminal, http_error

router = APIRouter(prefix="/sales", tags=["sales"])


class CancelReq(BaseModel):
    reason: str = Field(..., min_length=1, max_length=255)
    operator: str = "operator"


@router.get("/{sale_id}")
def get_sale(sale_id: int, t=Depends(get_terminal)):
    try:
        return t.store.get_sale(sale_id).model_dump(mode="json")
    except PdvError as exc:
        raise http_error(exc)


@router.post("/{sale_id}/cancel")
def cancel_sale(sale_id: int, req: CancelReq, t=Depends(get_terminal)):
    try:
        return t.compensator.cancel(sale_id, req.reason, operator=req.operator).model_dump(mode="json")
    except PdvError as exc:
        raise http_error(exc)
