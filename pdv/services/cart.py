"""Cart aggregator.

Every operation is a pure reducer: it takes a ``Cart`` and returns a new one.
The terminal owns the current value; nothing here keeps state.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from pdv.core.errors import ValidationError
from pdv.core.money import ZERO, money, qty, to_decimal
from pdv.core.schemas import Cart, Discount, DiscountPolicy, LineItem, ProductRef

WEIGHED_UNITS = {"KG", "G", "L", "ML", "M", "CM", "M2", "M3"}


def is_weighed(unit: Optional[str]) -> bool:
    return bool(unit) and unit.upper() in WEIGHED_UNITS


def _find(cart: Cart, product_id: int) -> Optional[LineItem]:
    return next((i for i in cart.items if i.product_id == product_id), None)


def _replace(cart: Cart, product_id: int, item: LineItem) -> Cart:
    items = tuple(item if i.product_id == product_id else i for i in cart.items)
    return cart.model_copy(update={"items": items})


def _require(cart: Cart, product_id: int) -> LineItem:
    item = _find(cart, product_id)
    if item is None:
        raise ValidationError("item_not_in_cart")
    return item


def _put(cart: Cart, product: ProductRef, quantity: Decimal) -> Cart:
    existing = _find(cart, product.id)
    if existing is not None:
        return _replace(
            cart, product.id, existing.model_copy(update={"quantity": qty(existing.quantity + quantity)})
        )
    item = LineItem(
        product_id=product.id,
        code=product.code,
        name=product.name,
        unit_price=money(product.unit_price),
        quantity=qty(quantity),
        unit=(product.unit or "UN").upper(),
        ncm=product.ncm,
    )
    return cart.model_copy(update={"items": cart.items + (item,)})


def add_item(cart: Cart, product: ProductRef, quantity=1) -> Cart:
    """Suma unidades. Productos pesables exigen ``add_weighed_item``."""
    if is_weighed(product.unit):
        raise ValidationError("weight_required")
    quantity = to_decimal(quantity)
    if quantity <= 0:
        raise ValidationError("invalid_quantity")
    if product.stock_qty is not None and product.stock_qty <= 0:
        raise ValidationError("out_of_stock")
    return _put(cart, product, quantity)


def add_weighed_item(cart: Cart, product: ProductRef, weight) -> Cart:
    weight = to_decimal(weight)
    if weight <= 0:
        raise ValidationError("invalid_weight")
    if product.stock_qty is not None and weight > product.stock_qty:
        raise ValidationError("insufficient_stock")
    return _put(cart, product, weight)


def remove_item(cart: Cart, product_id: int) -> Cart:
    return cart.model_copy(update={"items": tuple(i for i in cart.items if i.product_id != product_id)})


def update_quantity(cart: Cart, product_id: int, quantity) -> Cart:
    quantity = to_decimal(quantity)
    if quantity <= 0:
        return remove_item(cart, product_id)
    item = _require(cart, product_id)
    return _replace(cart, product_id, item.model_copy(update={"quantity": qty(quantity)}))


def _check_policy(policy: Optional[DiscountPolicy], base: Decimal, discount: Discount, scope: str) -> None:
    if policy is None:
        return
    allowed = policy.allow_item_discount if scope == "item" else policy.allow_order_discount
    if not allowed:
        raise ValidationError(f"{scope}_discount_not_allowed")
    if policy.reason_required and not discount.reason.strip():
        raise ValidationError("discount_reason_required")
    if base > 0 and money(discount.amount) > money(base * policy.max_percent / Decimal("100")):
        raise ValidationError("discount_above_limit")


def _build_discount(base: Decimal, amount, percent, reason: str) -> Discount:
    percent = to_decimal(percent or 0)
    if amount is None:
        amount = money(base * percent / Decimal("100"))
    amount = money(amount)
    if amount < 0 or percent < 0:
        raise ValidationError("invalid_discount")
    return Discount(amount=amount, percent=percent, reason=reason or "")


def set_item_discount(
    cart: Cart,
    product_id: int,
    amount=None,
    percent=None,
    reason: str = "",
    policy: Optional[DiscountPolicy] = None,
) -> Cart:
    item = _require(cart, product_id)
    discount = _build_discount(item.line_value, amount, percent, reason)
    _check_policy(policy, item.line_value, discount, "item")
    return _replace(cart, product_id, item.model_copy(update={"discount": discount}))


def clear_item_discount(cart: Cart, product_id: int) -> Cart:
    item = _require(cart, product_id)
    return _replace(cart, product_id, item.model_copy(update={"discount": None}))


def set_order_discount(
    cart: Cart, amount=None, percent=None, reason: str = "", policy: Optional[DiscountPolicy] = None
) -> Cart:
    base = subtotal(cart) - item_discount_total(cart)
    discount = _build_discount(base, amount, percent, reason)
    _check_policy(policy, base, discount, "order")
    return cart.model_copy(update={"order_discount": discount})


def clear_order_discount(cart: Cart) -> Cart:
    return cart.model_copy(update={"order_discount": Discount()})


def clear_cart(cart: Cart) -> Cart:
    return Cart()


# Derivados
def subtotal(cart: Cart) -> Decimal:
    return money(sum((i.line_value for i in cart.items), ZERO))


def item_discount_total(cart: Cart) -> Decimal:
    return money(sum((i.discount_amount for i in cart.items), ZERO))


def discount_total(cart: Cart, redemption_value=ZERO) -> Decimal:
    return money(item_discount_total(cart) + money(cart.order_discount.amount) + money(redemption_value))


def total(cart: Cart, redemption_value=ZERO) -> Decimal:
    """max(0, subtotal - descuentos de item - descuento general - canje de puntos)."""
    return max(ZERO, money(subtotal(cart) - discount_total(cart, redemption_value)))


def total_items(cart: Cart) -> Decimal:
    return sum((i.quantity for i in cart.items), Decimal("0"))
