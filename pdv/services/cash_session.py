from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func

from pdv.core.errors import CashSessionError
from pdv.core.money import ZERO, money, to_decimal
from pdv.core.schemas import (
    CashMovementKind,
    CashMovementView,
    CashSessionStatus,
    CashSessionView,
    CashSummary,
    SaleStatus,
)
from pdv.models.cash import CashMovement, CashSession
from pdv.models.sale import Sale, SalePayment

logger = logging.getLogger(__name__)


def _expected(opening_float, movements) -> Decimal:
    bal = to_decimal(opening_float)
    for m in movements:
        if m.kind == CashMovementKind.MANUAL_OUTFLOW.value:
            bal -= to_decimal(m.amount)
        else:
            bal += to_decimal(m.amount)
    return money(bal)


class CashSessionLedger:
    """Ciclo de vida apertura/cierre del cajon y sus movimientos, por terminal."""

    def __init__(self, store, terminal_id: str):
        self.store = store
        self.terminal_id = terminal_id

    def _open_row(self, db) -> Optional[CashSession]:
        return (
            db.query(CashSession)
            .filter_by(terminal_id=self.terminal_id, status=CashSessionStatus.OPEN.value)
            .order_by(CashSession.id.desc())
            .first()
        )

    def open(self, opening_float, opened_by: str = "operator") -> CashSessionView:
        opening_float = money(opening_float)
        if opening_float < 0:
            raise CashSessionError("opening float must not be negative", code="invalid_amount")
        with self.store.session() as db:
            if self._open_row(db) is not None:
                raise CashSessionError("terminal already has an open session", code="session_already_open")
            row = CashSession(
                terminal_id=self.terminal_id,
                status=CashSessionStatus.OPEN.value,
                opened_at=datetime.utcnow(),
                opened_by=opened_by,
                opening_float=opening_float,
            )
            db.add(row)
            db.flush()
            view = CashSessionView.model_validate(row)
        logger.info("cash session %s opened on %s (float=%s)", view.id, self.terminal_id, opening_float)
        return view

    def current(self) -> Optional[CashSessionView]:
        with self.store.session() as db:
            row = self._open_row(db)
            return CashSessionView.model_validate(row) if row is not None else None

    def record_movement(
        self,
        kind: CashMovementKind,
        amount,
        description: str = "",
        sale_id: Optional[int] = None,
        session_id: Optional[int] = None,
    ) -> CashMovementView:
        """Anexa un movimiento. Sin ``session_id`` usa la sesion abierta de la terminal."""
        kind = CashMovementKind(kind)
        amount = money(amount)
        if amount <= 0:
            raise CashSessionError("movement amount must be positive", code="invalid_amount")
        with self.store.session() as db:
            if session_id is None:
                session = self._open_row(db)
            else:
                session = db.get(CashSession, session_id)
            if session is None or session.status != CashSessionStatus.OPEN.value:
                raise CashSessionError("no open cash session", code="no_open_session")
            row = CashMovement(
                session_id=session.id,
                kind=kind.value,
                amount=amount,
                description=description[:255],
                sale_id=sale_id,
                created_at=datetime.utcnow(),
            )
            db.add(row)
            db.flush()
            return CashMovementView.model_validate(row)

    def has_sale_movement(self, sale_id: int, kind: CashMovementKind = CashMovementKind.SALE_INFLOW) -> bool:
        with self.store.session() as db:
            return db.query(CashMovement).filter_by(sale_id=sale_id, kind=kind.value).first() is not None

    def sale_movement(self, sale_id: int) -> Optional[CashMovementView]:
        with self.store.session() as db:
            row = db.query(CashMovement).filter_by(sale_id=sale_id, kind=CashMovementKind.SALE_INFLOW.value).first()
            return CashMovementView.model_validate(row) if row is not None else None

    def movements(self, session_id: Optional[int] = None) -> List[CashMovementView]:
        with self.store.session() as db:
            sid = self._resolve(db, session_id)
            rows = db.query(CashMovement).filter_by(session_id=sid).order_by(CashMovement.id).all()
            return [CashMovementView.model_validate(r) for r in rows]

    def _resolve(self, db, session_id: Optional[int]) -> int:
        if session_id is not None:
            return session_id
        row = self._open_row(db)
        if row is None:
            raise CashSessionError("no open cash session", code="no_open_session")
        return row.id

    def expected_cash_balance(self, session_id: Optional[int] = None) -> Decimal:
        with self.store.session() as db:
            sid = self._resolve(db, session_id)
            session = db.get(CashSession, sid)
            if session is None:
                raise CashSessionError(f"cash session {sid} not found", code="session_not_found")
            movements = db.query(CashMovement).filter_by(session_id=sid).all()
            return _expected(session.opening_float, movements)

    def close(self, counted_amount, closed_by: str = "operator") -> CashSessionView:
        """Cierra la sesion abierta. Siempre cierra; la diferencia queda registrada."""
        counted = money(counted_amount)
        with self.store.session() as db:
            session = self._open_row(db)
            if session is None:
                raise CashSessionError("no open cash session", code="no_open_session")
            movements = db.query(CashMovement).filter_by(session_id=session.id).all()
            expected = _expected(session.opening_float, movements)
            session.status = CashSessionStatus.CLOSED.value
            session.closed_at = datetime.utcnow()
            session.closed_by = closed_by
            session.counted_amount = counted
            session.expected_amount = expected
            session.difference = money(counted - expected)
            db.flush()
            view = CashSessionView.model_validate(session)
        if view.difference != 0:
            logger.warning("cash session %s closed with difference %s", view.id, view.difference)
        else:
            logger.info("cash session %s closed", view.id)
        return view

    def summary(self, session_id: Optional[int] = None) -> CashSummary:
        with self.store.session() as db:
            sid = self._resolve(db, session_id)
            session = db.get(CashSession, sid)
            if session is None:
                raise CashSessionError(f"cash session {sid} not found", code="session_not_found")
            movements = db.query(CashMovement).filter_by(session_id=sid).all()

            totals = {k: ZERO for k in CashMovementKind}
            for m in movements:
                kind = CashMovementKind(m.kind)
                totals[kind] = money(totals[kind] + to_decimal(m.amount))

            finalized = (Sale.cash_session_id == sid, Sale.status == SaleStatus.FINALIZED.value)
            by_method = (
                db.query(SalePayment.method, func.sum(SalePayment.amount))
                .join(Sale, Sale.id == SalePayment.sale_id)
                .filter(*finalized)
                .group_by(SalePayment.method)
                .all()
            )
            count = db.query(func.count(Sale.id)).filter(*finalized).scalar() or 0

            return CashSummary(
                session=CashSessionView.model_validate(session),
                total_sales=totals[CashMovementKind.SALE_INFLOW],
                sales_count=int(count),
                total_manual_inflows=totals[CashMovementKind.MANUAL_INFLOW],
                total_manual_outflows=totals[CashMovementKind.MANUAL_OUTFLOW],
                expected_cash_balance=_expected(session.opening_float, movements),
                by_payment_method={method: money(amount) for method, amount in by_method},
            )
