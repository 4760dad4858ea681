from decimal import Decimal

import pytest

from pdv.core.errors import CashSessionError
from pdv.core.schemas import CashMovementKind, CashSessionStatus


def test_open_rejected_when_already_open(cash):
    cash.open(Decimal("100.00"))
    with pytest.raises(CashSessionError) as e:
        cash.open(Decimal("50.00"))
    assert e.value.code == "session_already_open"


def test_movement_requires_open_session(cash):
    with pytest.raises(CashSessionError) as e:
        cash.record_movement(CashMovementKind.MANUAL_INFLOW, Decimal("10.00"), "suprimento")
    assert e.value.code == "no_open_session"


def test_movement_amount_must_be_positive(cash):
    cash.open(0)
    with pytest.raises(CashSessionError):
        cash.record_movement(CashMovementKind.MANUAL_OUTFLOW, 0, "sangria")


def test_expected_balance_and_close_difference(cash):
    cash.open(Decimal("100.00"))
    cash.record_movement(CashMovementKind.SALE_INFLOW, Decimal("20.00"), "Sale PDV-000001")
    cash.record_movement(CashMovementKind.MANUAL_INFLOW, Decimal("50.00"), "suprimento")
    cash.record_movement(CashMovementKind.MANUAL_OUTFLOW, Decimal("30.00"), "sangria")
    assert cash.expected_cash_balance() == Decimal("140.00")

    closed = cash.close(Decimal("135.00"))
    assert closed.status == CashSessionStatus.CLOSED
    assert closed.expected_amount == Decimal("140.00")
    assert closed.difference == Decimal("-5.00")
    assert cash.current() is None


def test_close_always_succeeds_and_session_never_reopens(cash):
    first = cash.open(10)
    cash.close(999)
    second = cash.open(20)
    assert second.id != first.id
    assert cash.current().id == second.id


def test_close_without_session(cash):
    with pytest.raises(CashSessionError):
        cash.close(0)


def test_movements_closed_session_rejected(cash):
    s = cash.open(10)
    cash.close(10)
    with pytest.raises(CashSessionError):
        cash.record_movement(CashMovementKind.MANUAL_INFLOW, 5, "x", session_id=s.id)


def test_summary_totals(cash):
    cash.open(Decimal("100.00"))
    cash.record_movement(CashMovementKind.MANUAL_INFLOW, 25, "suprimento")
    cash.record_movement(CashMovementKind.MANUAL_OUTFLOW, 5, "sangria")
    s = cash.summary()
    assert s.total_manual_inflows == Decimal("25.00")
    assert s.total_manual_outflows == Decimal("5.00")
    assert s.expected_cash_balance == Decimal("120.00")
    assert s.sales_count == 0
    assert len(cash.movements()) == 2
