from decimal import Decimal

from pdv.core.errors import RemoteWriteError
from pdv.core.schemas import Cart, CashMovementKind, CheckoutRequest, CommitStatus, PaymentAllocation, PaymentMethod
from pdv.services import cart as carts

D = Decimal


def _req(store, product_id, n, amount):
    return CheckoutRequest(
        cart=carts.add_item(Cart(), store.get_product(product_id), n),
        allocations=[PaymentAllocation(method=PaymentMethod.CASH, amount=D(amount))],
        amount_received=D(amount),
    )


def test_scenario_b_offline_then_sync(store, cash, queue, probe, committer, synchronizer, seed):
    cash.open(0)
    probe.online = False
    queued = committer.commit(_req(store, seed["rice"], 2, "20.00"))
    assert queued.status == CommitStatus.QUEUED
    assert cash.movements() == []

    probe.online = True
    report = synchronizer.sync()

    assert report.synced == [queued.client_id]
    assert report.pending == 0
    assert queue.pending_count() == 0
    moves = cash.movements()
    assert [(m.kind, m.amount) for m in moves] == [(CashMovementKind.SALE_INFLOW, D("20.00"))]
    sale = store.find_sale_by_client_id(queued.client_id)
    assert sale.origin == "pdv_offline"
    assert store.stock_of(seed["rice"]) == D("8.000")


def test_round_trip_matches_online_commit(store, probe, committer, synchronizer, seed):
    req = _req(store, seed["rice"], 3, "30.00")
    online = committer.commit(req)
    probe.online = False
    offline = committer.commit(req)
    probe.online = True
    synchronizer.sync()

    a = store.get_sale(online.sale_id)
    b = store.find_sale_by_client_id(offline.client_id)
    assert (a.subtotal, a.discount, a.total) == (b.subtotal, b.discount, b.total)
    assert [(i.quantity, i.total) for i in a.items] == [(i.quantity, i.total) for i in b.items]


def test_drains_in_fifo_order(store, probe, committer, synchronizer, seed):
    probe.online = False
    ids = [committer.commit(_req(store, seed["rice"], 1, "10.00")).client_id for _ in range(3)]
    probe.online = True

    report = synchronizer.sync()

    assert report.synced == ids
    numbers = [store.find_sale_by_client_id(i).number for i in ids]
    assert numbers == sorted(numbers)


def test_failure_leaves_entry_queued(store, queue, probe, committer, synchronizer, seed, monkeypatch):
    probe.online = False
    sid = committer.commit(_req(store, seed["rice"], 1, "10.00")).client_id
    probe.online = True

    def fail(*a, **kw):
        raise RemoteWriteError("remote store error: timeout")

    monkeypatch.setattr(store, "create_sale_header", fail)
    report = synchronizer.sync()

    assert report.failed == [sid]
    entry = queue.get(sid)
    assert entry.attempts == 1
    assert "timeout" in entry.last_error

    monkeypatch.undo()
    assert synchronizer.sync().synced == [sid]


def test_stalled_entries_are_skipped(store, queue, probe, committer, synchronizer, seed):
    probe.online = False
    sid = committer.commit(_req(store, seed["rice"], 1, "10.00")).client_id
    for _ in range(5):
        queue.record_attempt(sid, "boom")
    probe.online = True

    report = synchronizer.sync()

    assert report.stalled == [sid]
    assert report.synced == []
    assert queue.pending_count() == 1


def test_sync_while_offline_does_nothing(queue, probe, synchronizer):
    probe.online = False
    report = synchronizer.sync()
    assert report.online is False
    assert report.skipped == "offline"


def test_second_trigger_while_running_is_skipped(synchronizer):
    synchronizer._running.acquire()
    try:
        assert synchronizer.sync().skipped == "already_running"
    finally:
        synchronizer._running.release()


def test_reconnect_triggers_sync(store, queue, probe, monitor, committer, synchronizer, seed):
    monitor.on_reconnect(synchronizer.sync)
    probe.online = False
    committer.commit(_req(store, seed["rice"], 1, "10.00"))
    monitor.check()

    probe.online = True
    monitor.check()

    assert queue.pending_count() == 0
