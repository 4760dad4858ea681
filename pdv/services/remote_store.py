"""Gateway to the remote store.

The only module that talks SQLAlchemy for sales, stock and the customer
ledgers. Rows never leave it: every query result is mapped to a DTO from
``pdv.core.schemas``. Every write is idempotent on the sale it belongs to, so
replaying a ``PendingSale`` never double-counts.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from pdv.core.errors import ConcurrentUpdateError, NonFatalSideEffectError, RemoteWriteError, SaleNotFound
from pdv.core.money import ZERO, money, qty, to_decimal
from pdv.core.schemas import (
    CreditEntryKind,
    CreditLedgerEntryView,
    CustomerRef,
    LineItem,
    LoyaltyEntryKind,
    LoyaltyLedgerEntryView,
    PaymentAllocation,
    PendingSale,
    ProductRef,
    SaleStatus,
    SaleView,
)
from pdv.models.customer import Customer, LoyaltyAccount
from pdv.models.ledger import CreditLedgerEntry, LoyaltyLedgerEntry
from pdv.models.product import Product, StockMove
from pdv.models.sale import Sale, SaleItem, SalePayment

logger = logging.getLogger(__name__)


# ---------- mapeo fila -> DTO ----------
def _to_product_ref(p: Product) -> ProductRef:
    return ProductRef(
        id=p.id,
        code=p.code,
        name=p.name,
        unit_price=money(p.price),
        unit=(p.unit or "UN").upper(),
        barcode=p.barcode,
        stock_qty=qty(p.stock_qty) if p.stock_qty is not None else None,
        ncm=p.ncm,
    )


def _to_customer_ref(c: Customer, account: Optional[LoyaltyAccount]) -> CustomerRef:
    return CustomerRef(
        id=c.id,
        name=c.name or "",
        tax_id=c.tax_id,
        credit_limit=money(c.credit_limit),
        credit_balance=money(c.credit_balance),
        loyalty_points=int(account.points_balance or 0) if account else 0,
    )


def _to_sale_view(s: Sale) -> SaleView:
    return SaleView.model_validate(s)


def _to_credit_view(e: CreditLedgerEntry) -> CreditLedgerEntryView:
    return CreditLedgerEntryView.model_validate(e)


def _to_loyalty_view(e: LoyaltyLedgerEntry) -> LoyaltyLedgerEntryView:
    return LoyaltyLedgerEntryView.model_validate(e)


class RemoteStore:
    def __init__(self, session_factory, balance_retries: int = 3):
        self.session_factory = session_factory
        self.balance_retries = max(1, balance_retries)

    @contextmanager
    def session(self):
        db = self.session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise RemoteWriteError(f"remote store error: {exc}") from exc
        finally:
            db.close()

    def _retrying(self, fn, what: str):
        """Ejecuta ``fn(db)`` con control optimista de version (columna ``version``)."""
        for attempt in range(1, self.balance_retries + 1):
            db = self.session_factory()
            try:
                result = fn(db)
                db.commit()
                return result
            except StaleDataError:
                db.rollback()
                logger.warning("%s: concurrent balance update, retry %d/%d", what, attempt, self.balance_retries)
            except SQLAlchemyError as exc:
                db.rollback()
                raise RemoteWriteError(f"remote store error: {exc}") from exc
            finally:
                db.close()
        raise ConcurrentUpdateError(f"{what}: balance changed concurrently {self.balance_retries} times")

    # ---------- productos / clientes ----------
    def get_product(self, product_id: int) -> Optional[ProductRef]:
        with self.session() as db:
            p = db.get(Product, product_id)
            return _to_product_ref(p) if p is not None and p.is_active else None

    def find_product(self, code: str) -> Optional[ProductRef]:
        with self.session() as db:
            p = (
                db.query(Product)
                .filter(Product.is_active.is_(True), or_(Product.code == code, Product.barcode == code))
                .first()
            )
            return _to_product_ref(p) if p is not None else None

    def search_products(self, term: str, limit: int = 20) -> List[ProductRef]:
        like = f"%{term}%"
        with self.session() as db:
            rows = (
                db.query(Product)
                .filter(
                    Product.is_active.is_(True),
                    or_(Product.code.ilike(like), Product.name.ilike(like), Product.barcode.ilike(like)),
                )
                .order_by(Product.name)
                .limit(limit)
                .all()
            )
            return [_to_product_ref(p) for p in rows]

    def list_active_products(self) -> List[ProductRef]:
        with self.session() as db:
            rows = db.query(Product).filter(Product.is_active.is_(True)).order_by(Product.name).all()
            return [_to_product_ref(p) for p in rows]

    def get_customer(self, customer_id: int) -> Optional[CustomerRef]:
        with self.session() as db:
            c = db.get(Customer, customer_id)
            if c is None:
                return None
            account = db.query(LoyaltyAccount).filter_by(customer_id=customer_id).first()
            return _to_customer_ref(c, account)

    # ---------- venta ----------
    def create_sale_header(
        self, pending: PendingSale, cash_session_id: Optional[int], origin: str
    ) -> Tuple[SaleView, bool]:
        """Crea la cabecera (status=finalized). Devuelve ``(venta, creada)``; dedup por client_id."""
        with self.session() as db:
            existing = db.query(Sale).filter_by(client_id=pending.id).first()
            if existing is not None:
                return _to_sale_view(existing), False
            sale = Sale(
                client_id=pending.id,
                terminal_id=pending.terminal_id,
                operator_id=pending.operator_id,
                customer_id=pending.customer.id if pending.customer else None,
                cash_session_id=cash_session_id,
                subtotal=pending.subtotal,
                discount=pending.discount_total,
                total=pending.total,
                status=SaleStatus.FINALIZED.value,
                origin=origin,
                document_type="nfce" if pending.issue_fiscal else "none",
                created_at=pending.created_at,
            )
            db.add(sale)
            db.flush()
            sale.number = f"PDV-{sale.id:06d}"
            db.flush()
            return _to_sale_view(sale), True

    def find_sale_by_client_id(self, client_id: str) -> Optional[SaleView]:
        with self.session() as db:
            s = db.query(Sale).filter_by(client_id=client_id).first()
            return _to_sale_view(s) if s is not None else None

    def get_sale(self, sale_id: int) -> SaleView:
        with self.session() as db:
            s = db.get(Sale, sale_id)
            if s is None:
                raise SaleNotFound(f"sale {sale_id} not found")
            return _to_sale_view(s)

    def persist_line_items(self, sale_id: int, items: Iterable[LineItem], by_user: str = "pos") -> bool:
        """Lineas + salida de stock. False si ya estaban (replay)."""
        with self.session() as db:
            if db.query(SaleItem).filter_by(sale_id=sale_id).first() is not None:
                return False
            for item in items:
                db.add(
                    SaleItem(
                        sale_id=sale_id,
                        product_id=item.product_id,
                        quantity=item.quantity,
                        unit_price=item.unit_price,
                        discount=item.discount_amount,
                        total=item.total,
                    )
                )
                self._move_stock(db, item.product_id, -item.quantity, "sale", sale_id, by_user)
            return True

    def persist_payments(self, sale_id: int, allocations: Iterable[PaymentAllocation]) -> bool:
        with self.session() as db:
            if db.query(SalePayment).filter_by(sale_id=sale_id).first() is not None:
                return False
            for a in allocations:
                db.add(SalePayment(sale_id=sale_id, method=a.method.value, amount=money(a.amount)))
            return True

    def attach_fiscal_document(self, sale_id: int, access_key: Optional[str], protocol: Optional[str]) -> None:
        with self.session() as db:
            s = db.get(Sale, sale_id)
            if s is None:
                raise SaleNotFound(f"sale {sale_id} not found")
            s.fiscal_access_key = access_key
            s.fiscal_protocol = protocol

    def mark_cancelled(self, sale_id: int, reason: str, at: datetime) -> SaleView:
        with self.session() as db:
            s = db.get(Sale, sale_id)
            if s is None:
                raise SaleNotFound(f"sale {sale_id} not found")
            s.status = SaleStatus.CANCELLED.value
            s.cancel_reason = reason[:255]
            s.cancelled_at = at
            db.flush()
            return _to_sale_view(s)

    # ---------- stock ----------
    def _move_stock(self, db, product_id: int, delta: Decimal, reason: str, sale_id: int, by_user: str, note=None):
        # incremento atomico en SQL: sin lectura previa
        db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock_qty=Product.stock_qty + delta)
            .execution_options(synchronize_session=False)
        )
        db.add(
            StockMove(
                product_id=product_id,
                qty=delta,
                reason=reason,
                ref_type="sale",
                ref_id=sale_id,
                note=note,
                by_user=by_user,
            )
        )

    def restore_stock(self, sale_id: int, product_id: int, quantity, note: str, by_user: str = "pos") -> bool:
        """Devuelve False si la linea ya tenia su movimiento de cancelacion."""
        with self.session() as db:
            done = (
                db.query(StockMove.id)
                .filter_by(ref_type="sale", ref_id=sale_id, product_id=product_id, reason="cancellation")
                .first()
            )
            if done is not None:
                return False
            self._move_stock(db, product_id, qty(quantity), "cancellation", sale_id, by_user, note=note[:255])
            return True

    def stock_of(self, product_id: int) -> Decimal:
        with self.session() as db:
            p = db.get(Product, product_id)
            if p is None:
                raise NonFatalSideEffectError("stock", f"product {product_id} not found")
            return qty(p.stock_qty)

    # ---------- crediario ----------
    def debit_store_credit(
        self, customer_id: int, sale_id: int, amount, seq: int = 0, description: str = ""
    ) -> Optional[CreditLedgerEntryView]:
        """Anexa un debito (aumenta el saldo adeudado). ``seq`` ordena varios debitos de una venta."""
        amount = money(amount)

        def fn(db):
            done = db.query(CreditLedgerEntry).filter_by(sale_id=sale_id, kind=CreditEntryKind.DEBIT.value).count()
            if done > seq:
                return None
            customer = db.get(Customer, customer_id)
            if customer is None:
                raise NonFatalSideEffectError("store_credit", f"customer {customer_id} not found")
            before = money(customer.credit_balance)
            after = money(before + amount)
            customer.credit_balance = after
            entry = CreditLedgerEntry(
                customer_id=customer_id,
                sale_id=sale_id,
                kind=CreditEntryKind.DEBIT.value,
                amount=amount,
                balance_before=before,
                balance_after=after,
                description=description,
            )
            db.add(entry)
            db.flush()
            return _to_credit_view(entry)

        return self._retrying(fn, "store_credit")

    def reverse_store_credit(self, sale_id: int, description: str = "") -> Optional[CreditLedgerEntryView]:
        def fn(db):
            debits = db.query(CreditLedgerEntry).filter_by(sale_id=sale_id, kind=CreditEntryKind.DEBIT.value).all()
            if not debits:
                return None
            credits = (
                db.query(CreditLedgerEntry)
                .filter_by(sale_id=sale_id, kind=CreditEntryKind.CREDIT.value)
                .order_by(CreditLedgerEntry.id)
                .all()
            )
            owed = money(
                sum((to_decimal(d.amount) for d in debits), ZERO) - sum((to_decimal(c.amount) for c in credits), ZERO)
            )
            if credits and owed <= ZERO:
                # ya revertido en un intento anterior
                return _to_credit_view(credits[-1])
            customer = db.get(Customer, debits[0].customer_id)
            before = money(customer.credit_balance)
            after = max(ZERO, money(before - owed))
            customer.credit_balance = after
            entry = CreditLedgerEntry(
                customer_id=customer.id,
                sale_id=sale_id,
                kind=CreditEntryKind.CREDIT.value,
                amount=money(before - after),
                balance_before=before,
                balance_after=after,
                description=description,
            )
            db.add(entry)
            db.flush()
            return _to_credit_view(entry)

        return self._retrying(fn, "store_credit_reversal")

    def credit_entries(self, customer_id: int) -> List[CreditLedgerEntryView]:
        with self.session() as db:
            rows = db.query(CreditLedgerEntry).filter_by(customer_id=customer_id).order_by(CreditLedgerEntry.id).all()
            return [_to_credit_view(e) for e in rows]

    # ---------- fidelidad ----------
    def _account(self, db, customer_id: int) -> LoyaltyAccount:
        account = db.query(LoyaltyAccount).filter_by(customer_id=customer_id).first()
        if account is None:
            account = LoyaltyAccount(customer_id=customer_id, points_balance=0, total_accrued=0, total_redeemed=0)
            db.add(account)
            db.flush()
        return account

    def _loyalty_entry(self, db, account, kind, points, sale_id, **extra) -> LoyaltyLedgerEntry:
        before = int(account.points_balance or 0)
        after = before + points
        account.points_balance = after
        entry = LoyaltyLedgerEntry(
            customer_id=account.customer_id,
            sale_id=sale_id,
            kind=kind.value,
            points=points,
            balance_before=before,
            balance_after=after,
            **extra,
        )
        db.add(entry)
        db.flush()
        return entry

    def redeem_points(
        self, customer_id: int, sale_id: int, points: int, sale_value=None, description: str = ""
    ) -> Optional[LoyaltyLedgerEntryView]:
        """Canje limitado al saldo: el saldo nunca queda negativo."""

        def fn(db):
            if db.query(LoyaltyLedgerEntry).filter_by(sale_id=sale_id, kind=LoyaltyEntryKind.REDEMPTION.value).first():
                return None
            account = self._account(db, customer_id)
            applied = min(int(points), int(account.points_balance or 0))
            if applied <= 0:
                return None
            account.total_redeemed = int(account.total_redeemed or 0) + applied
            entry = self._loyalty_entry(
                db, account, LoyaltyEntryKind.REDEMPTION, -applied, sale_id, sale_value=sale_value, description=description
            )
            return _to_loyalty_view(entry)

        return self._retrying(fn, "loyalty_redemption")

    def accrue_points(
        self,
        customer_id: int,
        sale_id: int,
        points: int,
        sale_value=None,
        expires_on: Optional[date] = None,
        description: str = "",
    ) -> Optional[LoyaltyLedgerEntryView]:
        def fn(db):
            if db.query(LoyaltyLedgerEntry).filter_by(sale_id=sale_id, kind=LoyaltyEntryKind.ACCRUAL.value).first():
                return None
            account = self._account(db, customer_id)
            account.total_accrued = int(account.total_accrued or 0) + int(points)
            entry = self._loyalty_entry(
                db,
                account,
                LoyaltyEntryKind.ACCRUAL,
                int(points),
                sale_id,
                sale_value=sale_value,
                expires_on=expires_on,
                description=description,
            )
            return _to_loyalty_view(entry)

        return self._retrying(fn, "loyalty_accrual")

    def reverse_loyalty(self, sale_id: int, description: str = "") -> List[LoyaltyLedgerEntryView]:
        """Asientos de ajuste con signo inverso; nunca borra los originales."""

        def fn(db):
            originals = (
                db.query(LoyaltyLedgerEntry)
                .filter(
                    LoyaltyLedgerEntry.sale_id == sale_id,
                    LoyaltyLedgerEntry.kind.in_([LoyaltyEntryKind.REDEMPTION.value, LoyaltyEntryKind.ACCRUAL.value]),
                )
                .order_by(LoyaltyLedgerEntry.id)
                .all()
            )
            reversed_ids = {
                e.reverses_id
                for e in db.query(LoyaltyLedgerEntry).filter_by(sale_id=sale_id, kind=LoyaltyEntryKind.ADJUSTMENT.value)
            }
            out = []
            for original in originals:
                if original.id in reversed_ids:
                    continue
                account = self._account(db, original.customer_id)
                delta = -int(original.points)
                if delta < 0:
                    delta = max(delta, -int(account.points_balance or 0))
                entry = self._loyalty_entry(
                    db,
                    account,
                    LoyaltyEntryKind.ADJUSTMENT,
                    delta,
                    sale_id,
                    reverses_id=original.id,
                    description=description,
                )
                out.append(_to_loyalty_view(entry))
            return out

        return self._retrying(fn, "loyalty_reversal")

    def loyalty_entries(self, customer_id: int) -> List[LoyaltyLedgerEntryView]:
        with self.session() as db:
            rows = (
                db.query(LoyaltyLedgerEntry).filter_by(customer_id=customer_id).order_by(LoyaltyLedgerEntry.id).all()
            )
            return [_to_loyalty_view(e) for e in rows]
