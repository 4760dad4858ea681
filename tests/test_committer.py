from datetime import timedelta
from decimal import Decimal

from pdv.core.errors import RemoteWriteError
from pdv.core.schemas import (
    Cart,
    CashMovementKind,
    CheckoutRequest,
    CommitStatus,
    LoyaltyEntryKind,
    LoyaltyProgram,
    PaymentAllocation,
    PaymentMethod,
)
from pdv.services import cart as carts
from pdv.services.committer import SaleCommitter, SaleState

D = Decimal


def _cart(store, product_id, n):
    return carts.add_item(Cart(), store.get_product(product_id), n)


def _pay(method, amount):
    return PaymentAllocation(method=method, amount=D(amount))


def _req(cart, *allocations, received=None, customer=None, points=0, fiscal=False):
    return CheckoutRequest(
        cart=cart,
        allocations=list(allocations),
        amount_received=D(received) if received is not None else None,
        customer=customer,
        points_to_redeem=points,
        issue_fiscal=fiscal,
        operator_name="Ana",
    )


def test_scenario_a_cash_sale_online(store, cash, committer, seed):
    cash.open(0)
    req = _req(_cart(store, seed["rice"], 2), _pay(PaymentMethod.CASH, "20.00"), received="20.00")

    out = committer.commit(req)

    assert out.status == CommitStatus.COMMITTED
    assert committer.state == SaleState.FINALIZED
    assert out.total == D("20.00")
    assert out.receipt.change == D("0.00")
    assert out.receipt.tax_estimate == D("2.69")
    assert out.sale_number == "PDV-000001"
    moves = cash.movements()
    assert [(m.kind, m.amount, m.sale_id) for m in moves] == [(CashMovementKind.SALE_INFLOW, D("20.00"), out.sale_id)]
    assert store.stock_of(seed["rice"]) == D("8.000")
    sale = store.get_sale(out.sale_id)
    assert sale.origin == "pdv"
    assert len(sale.items) == 1 and len(sale.payments) == 1


def test_cash_change_computed(store, committer, seed):
    req = _req(_cart(store, seed["rice"], 2), _pay(PaymentMethod.CASH, "20.00"), received="50.00")
    out = committer.commit(req)
    assert out.receipt.change == D("30.00")
    assert out.receipt.amount_received == D("50.00")


def test_cash_below_total_rejected_before_any_write(store, cash, queue, committer, seed):
    cash.open(0)
    req = _req(_cart(store, seed["rice"], 2), _pay(PaymentMethod.CASH, "20.00"), received="19.99")

    out = committer.commit(req)

    assert out.status == CommitStatus.REJECTED
    assert out.reasons == ["insufficient_cash"]
    assert committer.state == SaleState.REJECTED
    assert cash.movements() == []
    assert queue.pending_count() == 0
    assert store.stock_of(seed["rice"]) == D("10.000")


def test_missing_payment_and_mismatch(store, committer, seed):
    cart = _cart(store, seed["rice"], 1)
    assert committer.commit(_req(cart)).reasons == ["payment_method_required"]
    out = committer.commit(_req(cart, _pay(PaymentMethod.DEBIT_CARD, "9.98")))
    assert out.reasons == ["payment_total_mismatch"]
    # tolerancia de un centavo
    out = committer.commit(_req(cart, _pay(PaymentMethod.DEBIT_CARD, "9.995")))
    assert out.status == CommitStatus.COMMITTED


def test_empty_cart_rejected(committer):
    out = committer.commit(_req(Cart(), _pay(PaymentMethod.CASH, "0")))
    assert "empty_cart" in out.reasons


def test_scenario_c_split_cash_and_store_credit(store, committer, seed):
    customer = store.get_customer(seed["customer"])
    cart = carts.set_order_discount(_cart(store, seed["rice"], 2), amount=5)  # 15.00
    req = _req(
        cart,
        _pay(PaymentMethod.CASH, "7.50"),
        _pay(PaymentMethod.STORE_CREDIT, "7.50"),
        received="7.50",
        customer=customer,
    )

    out = committer.commit(req)

    assert out.status == CommitStatus.COMMITTED
    assert out.warnings == []
    assert store.get_customer(seed["customer"]).credit_balance == D("17.50")
    entries = store.credit_entries(seed["customer"])
    assert [(e.kind.value, e.amount, e.balance_before, e.balance_after) for e in entries] == [
        ("debit", D("7.50"), D("10.00"), D("17.50"))
    ]


def test_store_credit_above_available_rejected(store, committer, seed):
    customer = store.get_customer(seed["customer"])  # limite 50, saldo 10
    req = _req(
        _cart(store, seed["rice"], 5),
        _pay(PaymentMethod.CASH, "5.00"),
        _pay(PaymentMethod.STORE_CREDIT, "45.00"),
        customer=customer,
    )
    assert committer.commit(req).reasons == ["insufficient_credit"]


def test_store_credit_requires_customer(store, committer, seed):
    req = _req(_cart(store, seed["rice"], 1), _pay(PaymentMethod.STORE_CREDIT, "10.00"))
    assert committer.commit(req).reasons == ["customer_required"]


def test_loyalty_accrual_with_expiration(store, committer, seed):
    customer = store.get_customer(seed["customer"])
    req = _req(_cart(store, seed["rice"], 3), _pay(PaymentMethod.CREDIT_CARD, "30.00"), customer=customer)

    out = committer.commit(req)

    assert out.points_accrued == 30
    entries = store.loyalty_entries(seed["customer"])
    accrual = entries[-1]
    assert accrual.kind == LoyaltyEntryKind.ACCRUAL
    assert (accrual.balance_before, accrual.balance_after) == (100, 130)
    sale = store.get_sale(out.sale_id)
    assert accrual.expires_on == (sale.created_at + timedelta(days=365)).date()


def test_redemption_clamped_to_balance(store, committer, seed):
    customer = store.get_customer(seed["customer"])  # 100 puntos
    cart = _cart(store, seed["rice"], 1)  # 10.00, 100 pts * 0.05 = 5.00
    req = _req(cart, _pay(PaymentMethod.CASH, "5.00"), customer=customer, points=500)

    out = committer.commit(req)

    assert out.status == CommitStatus.COMMITTED
    assert out.total == D("5.00")
    redemption, accrual = store.loyalty_entries(seed["customer"])
    assert redemption.points == -100 and redemption.balance_after == 0
    assert accrual.points == 5 and accrual.balance_after == 5
    assert all(e.balance_after >= 0 for e in store.loyalty_entries(seed["customer"]))


def test_store_redemption_never_goes_negative(store, committer, seed):
    out = committer.commit(_req(_cart(store, seed["rice"], 1), _pay(PaymentMethod.CASH, "10.00")))
    entry = store.redeem_points(seed["customer"], out.sale_id, 250)
    assert entry.points == -100
    assert entry.balance_after == 0


def test_redemption_without_active_program_rejected(store, cash, queue, monitor, seed):
    committer = SaleCommitter(store, cash, queue, monitor, loyalty=LoyaltyProgram(active=False))
    customer = store.get_customer(seed["customer"])
    req = _req(_cart(store, seed["rice"], 1), _pay(PaymentMethod.CASH, "10.00"), customer=customer, points=10)
    assert committer.commit(req).reasons == ["loyalty_inactive"]


def test_offline_commit_is_queued_without_writes(store, cash, queue, probe, committer, seed):
    cash.open(0)
    probe.online = False
    req = _req(_cart(store, seed["rice"], 2), _pay(PaymentMethod.CASH, "20.00"), received="20.00")

    out = committer.commit(req)

    assert out.status == CommitStatus.QUEUED
    assert committer.state == SaleState.OFFLINE_QUEUED
    assert out.receipt.deferred is True and out.receipt.sale_number is None
    assert out.notice
    pending = queue.dequeue_all()
    assert [p.id for p in pending] == [out.client_id]
    assert pending[0].total == D("20.00")
    assert cash.movements() == []
    assert store.find_sale_by_client_id(out.client_id) is None


def test_header_write_failure_falls_back_to_queue(store, queue, committer, seed, monkeypatch):
    def fail(*a, **kw):
        raise RemoteWriteError("remote store error: connection reset")

    monkeypatch.setattr(store, "create_sale_header", fail)
    out = committer.commit(_req(_cart(store, seed["rice"], 1), _pay(PaymentMethod.CASH, "10.00")))

    assert out.status == CommitStatus.QUEUED
    assert queue.pending_count() == 1


def test_side_effect_failure_is_warning_and_rest_runs(store, cash, committer, seed, monkeypatch):
    cash.open(0)

    def fail(*a, **kw):
        raise RemoteWriteError("remote store error: disk full")

    monkeypatch.setattr(store, "persist_payments", fail)
    customer = store.get_customer(seed["customer"])
    out = committer.commit(
        _req(_cart(store, seed["rice"], 1), _pay(PaymentMethod.CASH, "10.00"), customer=customer)
    )

    assert out.status == CommitStatus.COMMITTED
    assert [w.step for w in out.warnings] == ["payments"]
    assert store.stock_of(seed["rice"]) == D("9.000")
    assert len(cash.movements()) == 1
    assert out.points_accrued == 10


def test_fiscal_document_attached(store, fiscal, committer, seed):
    out = committer.commit(_req(_cart(store, seed["rice"], 1), _pay(PaymentMethod.INSTANT_TRANSFER, "10.00"), fiscal=True))
    assert out.receipt.fiscal_access_key.startswith("3525")
    assert store.get_sale(out.sale_id).fiscal_protocol == "135250000000001"
    assert fiscal.calls == [out.client_id]


def test_fiscal_failure_is_non_fatal(store, fiscal, committer, seed):
    fiscal.success = False
    out = committer.commit(_req(_cart(store, seed["rice"], 1), _pay(PaymentMethod.CASH, "10.00"), fiscal=True))
    assert out.status == CommitStatus.COMMITTED
    assert [w.step for w in out.warnings] == ["fiscal"]
    assert store.get_sale(out.sale_id).fiscal_access_key is None


def test_unexpected_fiscal_error_still_commits(store, fiscal, committer, seed, monkeypatch):
    def broken(pending):
        raise AttributeError("'list' object has no attribute 'get'")

    monkeypatch.setattr(fiscal, "issue", broken)
    out = committer.commit(_req(_cart(store, seed["rice"], 1), _pay(PaymentMethod.CASH, "10.00"), fiscal=True))

    assert out.status == CommitStatus.COMMITTED
    assert out.receipt.sale_number == out.sale_number
    assert [w.step for w in out.warnings] == ["fiscal"]
    assert "AttributeError" in out.warnings[0].message
    assert store.stock_of(seed["rice"]) == D("9.000")
    assert len(store.get_sale(out.sale_id).items) == 1


def test_replaying_same_sale_does_not_double_count(store, cash, committer, seed):
    cash.open(0)
    customer = store.get_customer(seed["customer"])
    req = _req(
        _cart(store, seed["rice"], 2),
        _pay(PaymentMethod.CASH, "10.00"),
        _pay(PaymentMethod.STORE_CREDIT, "10.00"),
        customer=customer,
    )
    pending = committer.build_pending_sale(req)

    first = committer.apply(pending)
    second = committer.apply(pending)

    assert second.replay is True and second.sale_id == first.sale_id
    assert store.stock_of(seed["rice"]) == D("8.000")
    assert len(cash.movements()) == 1
    assert len(store.credit_entries(seed["customer"])) == 1
    assert store.get_customer(seed["customer"]).credit_balance == D("20.00")
    assert [e.kind for e in store.loyalty_entries(seed["customer"])] == [LoyaltyEntryKind.ACCRUAL]
    assert len(store.get_sale(first.sale_id).payments) == 2


def test_scenario_e_discount_above_subtotal(store, cash, committer, seed):
    cash.open(0)
    cart = carts.set_order_discount(_cart(store, seed["rice"], 8), amount=100)
    out = committer.commit(_req(cart, _pay(PaymentMethod.CASH, "0")))
    assert out.status == CommitStatus.COMMITTED
    assert out.total == D("0.00")
    # venta en cero: sin movimiento de caja
    assert cash.movements() == []
