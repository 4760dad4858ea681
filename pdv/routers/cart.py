from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from pdv.core.errors import PdvError
from pdv.services import cart as carts

from .deps import get_terminal, http_error

router = APIRouter(prefix="/cart", tags=["cart"])


# ====== Schemas ======
class AddItemReq(BaseModel):
    product_id: int = Field(..., gt=0)
    quantity: Decimal = Field(default=Decimal("1"), gt=0)
    weight: Optional[Decimal] = Field(default=None, gt=0)


class QuantityReq(BaseModel):
    quantity: Decimal


class DiscountReq(BaseModel):
    amount: Optional[Decimal] = Field(default=None, ge=0)
    percent: Optional[Decimal] = Field(default=None, ge=0, le=100)
    reason: str = ""


def _view(t) -> dict:
    c = t.cart
    return {
        "items": [
            {
                "product_id": i.product_id,
                "code": i.code,
                "name": i.name,
                "unit": i.unit,
                "quantity": str(i.quantity),
                "unit_price": str(i.unit_price),
                "discount": str(i.discount_amount),
                "total": str(i.total),
            }
            for i in c.items
        ],
        "order_discount": str(c.order_discount.amount),
        "total_items": str(carts.total_items(c)),
        "subtotal": str(carts.subtotal(c)),
        "discount": str(carts.discount_total(c)),
        "total": str(carts.total(c)),
    }


def _apply(t, fn, *args, **kwargs) -> dict:
    try:
        t.cart = fn(t.cart, *args, **kwargs)
    except PdvError as exc:
        raise http_error(exc)
    return _view(t)


@router.get("")
def get_cart(t=Depends(get_terminal)):
    return _view(t)


@router.post("/items")
def add_item(req: AddItemReq, t=Depends(get_terminal)):
    try:
        product = t.get_product(req.product_id)
    except PdvError as exc:
        raise HTTPException(status_code=404, detail=exc.code)
    if carts.is_weighed(product.unit):
        if req.weight is None:
            raise HTTPException(status_code=422, detail="weight_required")
        return _apply(t, carts.add_weighed_item, product, req.weight)
    return _apply(t, carts.add_item, product, req.quantity)


@router.patch("/items/{product_id}")
def update_quantity(product_id: int, req: QuantityReq, t=Depends(get_terminal)):
    return _apply(t, carts.update_quantity, product_id, req.quantity)


@router.delete("/items/{product_id}")
def remove_item(product_id: int, t=Depends(get_terminal)):
    return _apply(t, carts.remove_item, product_id)


@router.post("/items/{product_id}/discount")
def set_item_discount(product_id: int, req: DiscountReq, t=Depends(get_terminal)):
    return _apply(
        t, carts.set_item_discount, product_id, req.amount, req.percent, req.reason, policy=t.discount_policy
    )


@router.delete("/items/{product_id}/discount")
def clear_item_discount(product_id: int, t=Depends(get_terminal)):
    return _apply(t, carts.clear_item_discount, product_id)


@router.post("/discount")
def set_order_discount(req: DiscountReq, t=Depends(get_terminal)):
    return _apply(t, carts.set_order_discount, req.amount, req.percent, req.reason, policy=t.discount_policy)


@router.delete("/discount")
def clear_order_discount(t=Depends(get_terminal)):
    return _apply(t, carts.clear_order_discount)


@router.delete("")
def clear_cart(t=Depends(get_terminal)):
    return _apply(t, carts.clear_cart)
