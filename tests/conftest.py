from decimal import Decimal

import pytest
from sqlalchemy.pool import StaticPool

from pdv.core.schemas import FiscalDocumentResult, LoyaltyProgram, StoreInfo
from pdv.db import init_db, make_engine, make_session_factory
from pdv.models.customer import Customer, LoyaltyAccount
from pdv.models.product import Product
from pdv.services.cancellation import CancellationCompensator
from pdv.services.cash_session import CashSessionLedger
from pdv.services.committer import SaleCommitter
from pdv.services.connectivity import ConnectivityMonitor
from pdv.services.offline_queue import LocalQueue
from pdv.services.remote_store import RemoteStore
from pdv.services.synchronizer import Synchronizer


class FakeProbe:
    def __init__(self, online=True):
        self.online = online

    def __call__(self):
        return self.online


class FakeFiscal:
    def __init__(self, success=True):
        self.success = success
        self.calls = []

    def issue(self, pending):
        self.calls.append(pending.id)
        if self.success:
            return FiscalDocumentResult(success=True, access_key="3525" + "0" * 40, protocol="135250000000001")
        return FiscalDocumentResult(success=False, message="rejeicao: servico indisponivel")


@pytest.fixture
def session_factory():
    engine = make_engine("sqlite://", poolclass=StaticPool)
    init_db(bind=engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def seed(session_factory):
    db = session_factory()
    try:
        rice = Product(code="ARZ-001", barcode="7891234567895", name="Arroz 5kg", unit="UN", price=Decimal("10.00"), stock_qty=Decimal("10"))
        cheese = Product(code="QJO-001", barcode="2000000000015", name="Queijo minas", unit="KG", price=Decimal("40.00"), stock_qty=Decimal("5.000"))
        empty = Product(code="SAL-001", name="Sal 1kg", unit="UN", price=Decimal("3.50"), stock_qty=Decimal("0"))
        customer = Customer(name="Maria", tax_id="12345678909", credit_limit=Decimal("50.00"), credit_balance=Decimal("10.00"))
        db.add_all([rice, cheese, empty, customer])
        db.flush()
        db.add(LoyaltyAccount(customer_id=customer.id, points_balance=100, total_accrued=100, total_redeemed=0))
        db.commit()
        return {"rice": rice.id, "cheese": cheese.id, "empty": empty.id, "customer": customer.id}
    finally:
        db.close()


@pytest.fixture
def store(session_factory):
    return RemoteStore(session_factory, balance_retries=3)


@pytest.fixture
def queue(tmp_path):
    return LocalQueue(tmp_path / "pending_sales.json")


@pytest.fixture
def probe():
    return FakeProbe(online=True)


@pytest.fixture
def fiscal():
    return FakeFiscal()


@pytest.fixture
def monitor(probe, queue):
    return ConnectivityMonitor(probe, queue)


@pytest.fixture
def cash(store):
    return CashSessionLedger(store, "T1")


@pytest.fixture
def loyalty():
    return LoyaltyProgram(active=True, points_per_currency_unit=Decimal("1"), point_value=Decimal("0.05"), validity_days=365)


@pytest.fixture
def committer(store, cash, queue, monitor, fiscal, loyalty):
    return SaleCommitter(
        store,
        cash,
        queue,
        monitor,
        fiscal=fiscal,
        loyalty=loyalty,
        store_info=StoreInfo(name="Loja Teste", tax_id="11222333000181"),
        tax_rate=Decimal("0.1345"),
        terminal_id="T1",
    )


@pytest.fixture
def synchronizer(queue, committer, monitor):
    return Synchronizer(queue, committer, monitor, max_attempts=5)


@pytest.fixture
def compensator(store, cash):
    return CancellationCompensator(store, cash, reason_min_length=10)
