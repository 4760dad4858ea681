from __future__ import annotations

import logging
from datetime import datetime

from pdv.core.errors import CancellationRejected, CashSessionError, PdvError
from pdv.core.schemas import (
    CancellationOutcome,
    CashMovementKind,
    PaymentMethod,
    SaleStatus,
    SaleView,
    SideEffectWarning,
)

logger = logging.getLogger(__name__)


class CancellationCompensator:
    """
    Cancelacion compensatoria: no es un rollback. Cada accion agrega asientos
    inversos y corre aunque otra haya fallado.
    """

    def __init__(self, store, cash, reason_min_length: int = 10):
        self.store = store
        self.cash = cash
        self.reason_min_length = reason_min_length

    def check(self, sale: SaleView, reason: str) -> None:
        if len((reason or "").strip()) < self.reason_min_length:
            raise CancellationRejected(
                f"reason must have at least {self.reason_min_length} characters", code="reason_too_short"
            )
        if sale.status != SaleStatus.FINALIZED:
            raise CancellationRejected(f"sale {sale.id} is {sale.status.value}", code="sale_not_finalized")
        if sale.fiscal_access_key:
            # se cancela por el flujo de la autoridad fiscal
            raise CancellationRejected("sale has an issued fiscal document", code="fiscal_document_issued")

    def cancel(self, sale_id: int, reason: str, operator: str = "operator") -> CancellationOutcome:
        sale = self.store.get_sale(sale_id)
        self.check(sale, reason)
        reason = reason.strip()
        out = CancellationOutcome(sale_id=sale.id, cancelled=False)
        note = f"Cancellation {sale.number}: {reason}"

        for item in sale.items:
            ok, _ = self._step(
                out, "stock", lambda: self.store.restore_stock(sale.id, item.product_id, item.quantity, note, operator)
            )
            if ok:
                out.stock_restored.append(item.product_id)

        ok, reversed_ = self._step(out, "cash_reversal", lambda: self._reverse_cash(sale))
        out.cash_reversed = ok and reversed_

        if any(p.method == PaymentMethod.STORE_CREDIT for p in sale.payments):
            _, entry = self._step(out, "store_credit_reversal", lambda: self.store.reverse_store_credit(sale.id, note))
            out.credit_reversed = entry is not None

        if sale.customer_id is not None:
            _, entries = self._step(out, "loyalty_reversal", lambda: self.store.reverse_loyalty(sale.id, note))
            out.loyalty_reversed = len(entries or [])

        out.cancelled, _ = self._step(out, "status", lambda: self.store.mark_cancelled(sale.id, reason, datetime.utcnow()))
        if out.warnings:
            logger.warning("sale %s cancelled with %d failed step(s)", sale.number, len(out.warnings))
        else:
            logger.info("sale %s cancelled by %s", sale.number, operator)
        return out

    def _reverse_cash(self, sale: SaleView) -> bool:
        inflow = self.cash.sale_movement(sale.id)
        if inflow is None:
            return False
        if self.cash.has_sale_movement(sale.id, CashMovementKind.MANUAL_OUTFLOW):
            return True
        description = f"reversal {sale.number}"
        try:
            self.cash.record_movement(
                CashMovementKind.MANUAL_OUTFLOW, sale.total, description, sale_id=sale.id, session_id=inflow.session_id
            )
        except CashSessionError:
            # sesion original ya cerrada: sale del cajon abierto ahora
            self.cash.record_movement(CashMovementKind.MANUAL_OUTFLOW, sale.total, description, sale_id=sale.id)
        return True

    def _step(self, out: CancellationOutcome, name: str, fn):
        try:
            result = fn()
        except PdvError as exc:
            logger.warning("cancellation of sale %s: step %s failed: %s", out.sale_id, name, exc)
            out.warnings.append(SideEffectWarning(step=name, message=str(exc)))
            return False, None
        except Exception as exc:
            logger.exception("cancellation of sale %s: step %s raised", out.sale_id, name)
            out.warnings.append(SideEffectWarning(step=name, message=f"{type(exc).__name__}: {exc}"))
            return False, None
        return True, result
