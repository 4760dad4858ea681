from decimal import Decimal

import pytest

from pdv.core.errors import ValidationError
from pdv.core.schemas import Cart, DiscountPolicy, ProductRef
from pdv.services import cart as carts

RICE = ProductRef(id=1, code="ARZ-001", name="Arroz", unit_price=Decimal("10.00"), stock_qty=Decimal("10"))
CHEESE = ProductRef(id=2, code="QJO-001", name="Queijo", unit_price=Decimal("40.00"), unit="KG", stock_qty=Decimal("5"))
EMPTY = ProductRef(id=3, code="SAL-001", name="Sal", unit_price=Decimal("3.50"), stock_qty=Decimal("0"))


def test_add_item_merges_same_product():
    c = carts.add_item(Cart(), RICE)
    c = carts.add_item(c, RICE, 2)
    assert len(c.items) == 1
    assert c.items[0].quantity == Decimal("3.000")
    assert carts.subtotal(c) == Decimal("30.00")


def test_reducers_do_not_mutate_input():
    c0 = Cart()
    c1 = carts.add_item(c0, RICE)
    assert c0.items == ()
    assert len(c1.items) == 1


def test_weighed_product_requires_weight_entry():
    with pytest.raises(ValidationError) as e:
        carts.add_item(Cart(), CHEESE)
    assert e.value.code == "weight_required"

    c = carts.add_weighed_item(Cart(), CHEESE, "0.350")
    assert c.items[0].quantity == Decimal("0.350")
    assert carts.total(c) == Decimal("14.00")


def test_weight_above_stock_rejected():
    with pytest.raises(ValidationError) as e:
        carts.add_weighed_item(Cart(), CHEESE, "5.001")
    assert e.value.code == "insufficient_stock"


def test_out_of_stock_rejected():
    with pytest.raises(ValidationError) as e:
        carts.add_item(Cart(), EMPTY)
    assert e.value.code == "out_of_stock"


def test_update_quantity_zero_removes():
    c = carts.add_item(Cart(), RICE, 2)
    c = carts.update_quantity(c, RICE.id, 0)
    assert c.items == ()


def test_update_quantity_unknown_item():
    with pytest.raises(ValidationError):
        carts.update_quantity(Cart(), 99, 1)


def test_total_formula_with_all_discounts():
    c = carts.add_item(Cart(), RICE, 3)  # 30.00
    c = carts.set_item_discount(c, RICE.id, amount="2.00")
    c = carts.set_order_discount(c, percent=10)  # 10% de 28.00
    assert carts.item_discount_total(c) == Decimal("2.00")
    assert c.order_discount.amount == Decimal("2.80")
    assert carts.discount_total(c, Decimal("1.00")) == Decimal("5.80")
    assert carts.total(c, Decimal("1.00")) == Decimal("24.20")


def test_order_discount_above_subtotal_clamps_to_zero():
    c = carts.add_item(Cart(), RICE, 8)  # 80.00
    c = carts.set_order_discount(c, amount=100)
    assert carts.total(c) == Decimal("0.00")


def test_item_discount_capped_at_line_value():
    c = carts.add_item(Cart(), RICE)
    c = carts.set_item_discount(c, RICE.id, amount="25.00")
    assert c.items[0].discount_amount == Decimal("10.00")
    assert c.items[0].total == Decimal("0.00")


def test_clear_discounts():
    c = carts.add_item(Cart(), RICE, 2)
    c = carts.set_item_discount(c, RICE.id, amount=1)
    c = carts.set_order_discount(c, amount=1)
    c = carts.clear_item_discount(c, RICE.id)
    c = carts.clear_order_discount(c)
    assert carts.total(c) == Decimal("20.00")


def test_policy_limits_and_reason():
    policy = DiscountPolicy(max_percent=Decimal("15"), reason_required=True)
    c = carts.add_item(Cart(), RICE, 10)  # 100.00
    with pytest.raises(ValidationError) as e:
        carts.set_order_discount(c, amount=5, policy=policy)
    assert e.value.code == "discount_reason_required"
    with pytest.raises(ValidationError) as e:
        carts.set_order_discount(c, amount=16, reason="cliente frequente", policy=policy)
    assert e.value.code == "discount_above_limit"
    c = carts.set_order_discount(c, amount=15, reason="cliente frequente", policy=policy)
    assert carts.total(c) == Decimal("85.00")


def test_policy_disallows_item_discount():
    policy = DiscountPolicy(allow_item_discount=False)
    c = carts.add_item(Cart(), RICE)
    with pytest.raises(ValidationError) as e:
        carts.set_item_discount(c, RICE.id, amount=1, policy=policy)
    assert e.value.code == "item_discount_not_allowed"


def test_total_items_and_clear():
    c = carts.add_item(Cart(), RICE, 2)
    c = carts.add_weighed_item(c, CHEESE, "0.5")
    assert carts.total_items(c) == Decimal("2.500")
    assert carts.clear_cart(c) == Cart()
