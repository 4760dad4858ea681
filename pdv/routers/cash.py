from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from pdv.core.errors import PdvError
from pdv.core.schemas import CashMovementKind

from .deps import get_terminal, http_error

router = APIRouter(prefix="/cash-session", tags=["cash-session"])


class OpenReq(BaseModel):
    opening_float: Decimal = Field(default=Decimal("0"), ge=0)
    opened_by: str = "operator"


class MovementReq(BaseModel):
    kind: CashMovementKind
    amount: Decimal = Field(..., gt=0)
    description: str = ""


class CloseReq(BaseModel):
    counted_amount: Decimal = Field(..., ge=0)
    closed_by: str = "operator"


@router.post("/open")
def open_session(req: OpenReq, t=Depends(get_terminal)):
    try:
        return t.cash.open(req.opening_float, opened_by=req.opened_by).model_dump(mode="json")
    except PdvError as exc:
        raise http_error(exc)


@router.get("")
def current_session(t=Depends(get_terminal)):
    try:
        view = t.cash.current()
    except PdvError as exc:
        raise http_error(exc)
    if view is None:
        raise HTTPException(status_code=404, detail="no_open_session")
    return view.model_dump(mode="json")


@router.post("/movements")
def record_movement(req: MovementReq, t=Depends(get_terminal)):
    # las entradas por venta solo las registra el checkout
    if req.kind == CashMovementKind.SALE_INFLOW:
        raise HTTPException(status_code=422, detail="sale_inflow_not_manual")
    try:
        return t.cash.record_movement(req.kind, req.amount, req.description).model_dump(mode="json")
    except PdvError as exc:
        raise http_error(exc)


@router.get("/movements")
def list_movements(t=Depends(get_terminal)):
    try:
        return [m.model_dump(mode="json") for m in t.cash.movements()]
    except PdvError as exc:
        raise http_error(exc)


@router.get("/summary")
def summary(t=Depends(get_terminal)):
    try:
        return t.cash.summary().model_dump(mode="json")
    except PdvError as exc:
        raise http_error(exc)


@router.post("/close")
def close_session(req: CloseReq, t=Depends(get_terminal)):
    try:
        return t.cash.close(req.counted_amount, closed_by=req.closed_by).model_dump(mode="json")
    except PdvError as exc:
        raise http_error(exc)
