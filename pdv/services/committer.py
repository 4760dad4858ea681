"""Sale committer.

Turns a cart into a committed sale: validation gate, then either the online
saga against the remote store or the offline enqueue. After the header write,
every step is independent; a failing step becomes a warning and the rest run.

    Draft -> Validating -> {OnlineCommit | OfflineQueued} -> SideEffectsApplied -> Finalized
                        \\-> Rejected
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, List, Optional

from pdv.core.errors import PdvError, RemoteWriteError, ValidationError
from pdv.core.money import ZERO, floor_points, money, same_amount, to_decimal
from pdv.core.schemas import (
    AppliedSale,
    CashMovementKind,
    CheckoutRequest,
    CommitOutcome,
    CommitStatus,
    LoyaltyProgram,
    PaymentMethod,
    PendingSale,
    SideEffectWarning,
    StoreInfo,
)
from pdv.services import cart as carts
from pdv.services.receipt import build_receipt

logger = logging.getLogger(__name__)

QUEUED_NOTICE = "Sale saved offline; it will be synchronized when the connection returns."


class SaleState(str, Enum):
    DRAFT = "draft"
    VALIDATING = "validating"
    ONLINE_COMMIT = "online_commit"
    OFFLINE_QUEUED = "offline_queued"
    SIDE_EFFECTS_APPLIED = "side_effects_applied"
    FINALIZED = "finalized"
    REJECTED = "rejected"


class SaleCommitter:
    def __init__(
        self,
        store,
        cash,
        queue,
        monitor,
        fiscal=None,
        loyalty: Optional[LoyaltyProgram] = None,
        store_info: Optional[StoreInfo] = None,
        tax_rate=0,
        terminal_id: str = "T1",
    ):
        self.store = store
        self.cash = cash
        self.queue = queue
        self.monitor = monitor
        self.fiscal = fiscal
        self.loyalty = loyalty or LoyaltyProgram()
        self.store_info = store_info or StoreInfo(name="", tax_id="")
        self.tax_rate = tax_rate
        self.terminal_id = terminal_id
        self.state = SaleState.DRAFT

    # ---------- validacion ----------
    def redemption_value(self, points: int):
        return money(to_decimal(points) * to_decimal(self.loyalty.point_value))

    def points_for(self, req: CheckoutRequest) -> int:
        """Puntos a canjear, limitados al saldo conocido del cliente."""
        if not self.loyalty.active or req.customer is None:
            return 0
        return min(int(req.points_to_redeem or 0), max(0, req.customer.loyalty_points))

    def validate(self, req: CheckoutRequest) -> None:
        """Gate previo a cualquier escritura. Junta todas las razones."""
        reasons: List[str] = []
        if not req.cart.items:
            reasons.append("empty_cart")

        points = self.points_for(req)
        if req.points_to_redeem:
            if req.customer is None:
                reasons.append("customer_required_for_redemption")
            elif not self.loyalty.active:
                reasons.append("loyalty_inactive")
        total = carts.total(req.cart, self.redemption_value(points))

        if not req.allocations:
            reasons.append("payment_method_required")
        else:
            allocated = money(sum((a.amount for a in req.allocations), ZERO))
            if not same_amount(allocated, total):
                reasons.append("payment_total_mismatch")

        cash_due = money(sum((a.amount for a in req.allocations if a.method == PaymentMethod.CASH), ZERO))
        if cash_due > 0 and req.amount_received is not None and money(req.amount_received) < cash_due:
            reasons.append("insufficient_cash")

        on_credit = money(sum((a.amount for a in req.allocations if a.method == PaymentMethod.STORE_CREDIT), ZERO))
        if on_credit > 0:
            if req.customer is None:
                reasons.append("customer_required")
            elif req.customer.available_credit < on_credit:
                reasons.append("insufficient_credit")

        if reasons:
            raise ValidationError(reasons)

    def build_pending_sale(self, req: CheckoutRequest, client_id: Optional[str] = None) -> PendingSale:
        points = self.points_for(req)
        redemption = self.redemption_value(points)
        return PendingSale(
            id=client_id or uuid.uuid4().hex,
            created_at=datetime.utcnow(),
            terminal_id=self.terminal_id,
            operator_id=req.operator_id,
            operator_name=req.operator_name,
            items=req.cart.items,
            order_discount=req.cart.order_discount,
            allocations=tuple(req.allocations),
            customer=req.customer,
            points_redeemed=points,
            redemption_value=redemption,
            subtotal=carts.subtotal(req.cart),
            item_discount=carts.item_discount_total(req.cart),
            discount_total=carts.discount_total(req.cart, redemption),
            total=carts.total(req.cart, redemption),
            amount_received=money(req.amount_received) if req.amount_received is not None else None,
            issue_fiscal=req.issue_fiscal,
            customer_tax_id=req.customer_tax_id,
        )

    # ---------- commit ----------
    def commit(self, req: CheckoutRequest, client_id: Optional[str] = None) -> CommitOutcome:
        self.state = SaleState.VALIDATING
        try:
            self.validate(req)
        except ValidationError as exc:
            self.state = SaleState.REJECTED
            logger.info("checkout rejected: %s", ", ".join(exc.reasons))
            return CommitOutcome(status=CommitStatus.REJECTED, reasons=exc.reasons)

        pending = self.build_pending_sale(req, client_id)
        # una sola lectura por intento; un cambio posterior no aborta el commit
        if not self.monitor.is_online():
            return self._queue(pending, "offline")
        try:
            applied = self.apply(pending)
        except RemoteWriteError as exc:
            logger.warning("sale %s header write failed, queueing offline: %s", pending.id, exc)
            return self._queue(pending, str(exc))

        self.state = SaleState.FINALIZED
        receipt = build_receipt(
            pending,
            self.store_info,
            self.tax_rate,
            sale_number=applied.number,
            fiscal_access_key=applied.fiscal.access_key if applied.fiscal else None,
        )
        logger.info("sale %s committed as %s (total=%s)", pending.id, applied.number, pending.total)
        return CommitOutcome(
            status=CommitStatus.COMMITTED,
            client_id=pending.id,
            sale_id=applied.sale_id,
            sale_number=applied.number,
            total=pending.total,
            warnings=applied.warnings,
            receipt=receipt,
            points_accrued=applied.points_accrued,
        )

    def _queue(self, pending: PendingSale, why: str) -> CommitOutcome:
        self.state = SaleState.OFFLINE_QUEUED
        # QueueCorruptError se propaga: perder la venta no es una opcion
        self.queue.enqueue(pending)
        logger.info("sale %s deferred (%s)", pending.id, why)
        return CommitOutcome(
            status=CommitStatus.QUEUED,
            client_id=pending.id,
            total=pending.total,
            receipt=build_receipt(pending, self.store_info, self.tax_rate, deferred=True),
            notice=QUEUED_NOTICE,
        )

    def apply(self, pending: PendingSale, origin: str = "pdv") -> AppliedSale:
        """
        Camino online. Solo la cabecera propaga ``RemoteWriteError``; el resto de pasos
        son independientes e idempotentes por venta, asi que re-aplicar es seguro.
        """
        self.state = SaleState.ONLINE_COMMIT
        session = self.cash.current()
        header, created = self.store.create_sale_header(pending, session.id if session else None, origin)
        if not created:
            logger.info("sale %s already on remote store as %s, replaying side effects", pending.id, header.number)

        applied = AppliedSale(sale_id=header.id, number=header.number, replay=not created)
        description = f"Sale {header.number}"

        def cash_inflow():
            if header.cash_session_id is None or pending.total <= 0:
                return
            if self.cash.has_sale_movement(header.id):
                return
            self.cash.record_movement(
                CashMovementKind.SALE_INFLOW,
                pending.total,
                description,
                sale_id=header.id,
                session_id=header.cash_session_id,
            )

        def store_credit():
            credit = [a for a in pending.allocations if a.method == PaymentMethod.STORE_CREDIT]
            for seq, a in enumerate(credit):
                self.store.debit_store_credit(pending.customer.id, header.id, a.amount, seq=seq, description=description)

        self._step("cash_movement", cash_inflow, applied)
        self._step("line_items", lambda: self.store.persist_line_items(header.id, pending.items, pending.operator_id), applied)
        self._step("payments", lambda: self.store.persist_payments(header.id, pending.allocations), applied)
        if pending.customer is not None:
            self._step("store_credit", store_credit, applied)
        if self.loyalty.active and pending.customer is not None:
            if pending.points_redeemed > 0:
                self._step("loyalty_redemption", lambda: self._redeem(pending, header.id, applied), applied)
            self._step("loyalty_accrual", lambda: self._accrue(pending, header.id, applied), applied)
        if pending.issue_fiscal and not header.fiscal_access_key:
            self._step("fiscal", lambda: self._issue_fiscal(pending, header.id, applied), applied)

        self.state = SaleState.SIDE_EFFECTS_APPLIED
        return applied

    def _step(self, name: str, fn: Callable[[], object], applied: AppliedSale) -> None:
        try:
            fn()
        except PdvError as exc:
            logger.warning("sale %s: step %s failed: %s", applied.sale_id, name, exc)
            applied.warnings.append(SideEffectWarning(step=name, message=str(exc)))
        except Exception as exc:
            logger.exception("sale %s: step %s raised", applied.sale_id, name)
            applied.warnings.append(SideEffectWarning(step=name, message=f"{type(exc).__name__}: {exc}"))

    def _redeem(self, pending: PendingSale, sale_id: int, applied: AppliedSale) -> None:
        entry = self.store.redeem_points(
            pending.customer.id, sale_id, pending.points_redeemed, sale_value=pending.total, description=f"Redemption sale {applied.number}"
        )
        if entry is not None and -entry.points < pending.points_redeemed:
            applied.warnings.append(
                SideEffectWarning(
                    step="loyalty_redemption",
                    message=f"redemption clamped to balance: {-entry.points} of {pending.points_redeemed} points",
                )
            )

    def _accrue(self, pending: PendingSale, sale_id: int, applied: AppliedSale) -> None:
        points = floor_points(pending.total * to_decimal(self.loyalty.points_per_currency_unit))
        if points <= 0:
            return
        expires_on = None
        if self.loyalty.validity_days > 0:
            expires_on = (pending.created_at + timedelta(days=self.loyalty.validity_days)).date()
        entry = self.store.accrue_points(
            pending.customer.id,
            sale_id,
            points,
            sale_value=pending.total,
            expires_on=expires_on,
            description=f"Purchase {applied.number}",
        )
        if entry is not None:
            applied.points_accrued = entry.points

    def _issue_fiscal(self, pending: PendingSale, sale_id: int, applied: AppliedSale) -> None:
        if self.fiscal is None:
            applied.warnings.append(SideEffectWarning(step="fiscal", message="fiscal_issuer_not_configured"))
            return
        result = self.fiscal.issue(pending)
        applied.fiscal = result
        if not result.success:
            logger.warning("sale %s: fiscal document not issued: %s", sale_id, result.message)
            applied.warnings.append(SideEffectWarning(step="fiscal", message=result.message or "fiscal_issue_failed"))
            return
        self.store.attach_fiscal_document(sale_id, result.access_key, result.protocol)
