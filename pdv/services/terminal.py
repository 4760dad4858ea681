from __future__ import annotations

import logging
from decimal import Decimal
from typing import List, Optional

from pdv.core.errors import PdvError, ValidationError
from pdv.core.schemas import (
    Cart,
    CheckoutRequest,
    CommitOutcome,
    CommitStatus,
    CustomerRef,
    DiscountPolicy,
    LoyaltyProgram,
    ProductRef,
    StoreInfo,
)
from pdv.services.cancellation import CancellationCompensator
from pdv.services.cash_session import CashSessionLedger
from pdv.services.committer import SaleCommitter
from pdv.services.connectivity import ConnectivityMonitor, HttpHealthProbe, StorePingProbe
from pdv.services.fiscal import FiscalIssuer
from pdv.services.offline_queue import LocalQueue
from pdv.services.product_cache import ProductCache
from pdv.services.remote_store import RemoteStore
from pdv.services.synchronizer import Synchronizer

logger = logging.getLogger(__name__)


class Terminal:
    """Componentes de una terminal. Es duena del valor ``Cart`` actual."""

    def __init__(
        self,
        store: RemoteStore,
        queue: LocalQueue,
        monitor: ConnectivityMonitor,
        cash: CashSessionLedger,
        committer: SaleCommitter,
        synchronizer: Synchronizer,
        compensator: CancellationCompensator,
        products: ProductCache,
        discount_policy: Optional[DiscountPolicy] = None,
    ):
        self.store = store
        self.queue = queue
        self.monitor = monitor
        self.cash = cash
        self.committer = committer
        self.synchronizer = synchronizer
        self.compensator = compensator
        self.products = products
        self.discount_policy = discount_policy
        self.cart = Cart()

    # productos: remoto si hay conexion, cache local si no
    def get_product(self, product_id: int) -> ProductRef:
        product = None
        try:
            product = self.store.get_product(product_id)
        except PdvError:
            product = self.products.get(product_id)
        if product is None:
            raise ValidationError("product_not_found")
        return product

    def search_products(self, term: str, limit: int = 20) -> List[ProductRef]:
        try:
            return self.store.search_products(term, limit)
        except PdvError:
            return self.products.search(term, limit)

    def checkout(
        self,
        allocations,
        amount_received: Optional[Decimal] = None,
        customer_id: Optional[int] = None,
        points_to_redeem: int = 0,
        issue_fiscal: bool = False,
        customer_tax_id: Optional[str] = None,
        operator_id: str = "operator",
        operator_name: str = "Operador",
        client_id: Optional[str] = None,
    ) -> CommitOutcome:
        customer = None
        if customer_id is not None:
            try:
                customer = self.store.get_customer(customer_id)
            except PdvError as exc:
                # sin saldo ni puntos conocidos: crediario y canje quedan sin respaldo
                logger.warning("customer %s unavailable, checking out with a bare reference: %s", customer_id, exc)
                customer = CustomerRef(id=customer_id)
            if customer is None:
                raise ValidationError("customer_not_found")
        req = CheckoutRequest(
            cart=self.cart,
            allocations=list(allocations),
            amount_received=amount_received,
            customer=customer,
            points_to_redeem=points_to_redeem,
            issue_fiscal=issue_fiscal,
            customer_tax_id=customer_tax_id,
            operator_id=operator_id,
            operator_name=operator_name,
        )
        outcome = self.committer.commit(req, client_id=client_id)
        if outcome.status != CommitStatus.REJECTED:
            self.cart = Cart()
        return outcome

    def sync(self):
        return self.synchronizer.sync()


def build_terminal(settings, session_factory=None, probe=None, fiscal_issuer=None) -> Terminal:
    if session_factory is None:
        from pdv.db import SessionLocal

        session_factory = SessionLocal

    store = RemoteStore(session_factory, balance_retries=settings.balance_update_retries)
    queue = LocalQueue(settings.queue_path)
    if probe is None:
        if settings.remote_health_url:
            probe = HttpHealthProbe(settings.remote_health_url, settings.connectivity_timeout)
        else:
            probe = StorePingProbe(session_factory)
    monitor = ConnectivityMonitor(probe, queue)
    cash = CashSessionLedger(store, settings.terminal_id)
    if fiscal_issuer is None:
        fiscal_issuer = FiscalIssuer(settings.fiscal_issuer_url, settings.fiscal_timeout)

    committer = SaleCommitter(
        store,
        cash,
        queue,
        monitor,
        fiscal=fiscal_issuer,
        loyalty=LoyaltyProgram(
            active=settings.loyalty_active,
            points_per_currency_unit=Decimal(str(settings.loyalty_points_per_currency_unit)),
            point_value=Decimal(str(settings.loyalty_point_value)),
            validity_days=settings.loyalty_validity_days,
        ),
        store_info=StoreInfo(name=settings.store_name, tax_id=settings.store_tax_id, address=settings.store_address),
        tax_rate=Decimal(str(settings.tax_estimate_rate)),
        terminal_id=settings.terminal_id,
    )
    synchronizer = Synchronizer(queue, committer, monitor, max_attempts=settings.max_sync_attempts)
    monitor.on_reconnect(synchronizer.sync)

    terminal = Terminal(
        store=store,
        queue=queue,
        monitor=monitor,
        cash=cash,
        committer=committer,
        synchronizer=synchronizer,
        compensator=CancellationCompensator(store, cash, settings.cancel_reason_min_length),
        products=ProductCache(settings.product_cache_path),
        discount_policy=DiscountPolicy(
            max_percent=Decimal(str(settings.discount_max_percent)),
            reason_required=settings.discount_reason_required,
            allow_item_discount=settings.allow_item_discount,
            allow_order_discount=settings.allow_order_discount,
        ),
    )
    logger.info("terminal %s ready (queue=%s)", settings.terminal_id, settings.queue_path)
    return terminal
