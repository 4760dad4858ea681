from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .money import ZERO, money


class PaymentMethod(str, Enum):
    CASH = "cash"
    CREDIT_CARD = "creditCard"
    DEBIT_CARD = "debitCard"
    INSTANT_TRANSFER = "instantTransfer"
    STORE_CREDIT = "storeCredit"


class SyncStatus(str, Enum):
    PENDING = "pending"
    SYNCED = "synced"


class SaleStatus(str, Enum):
    FINALIZED = "finalized"
    CANCELLED = "cancelled"


class CashSessionStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class CashMovementKind(str, Enum):
    SALE_INFLOW = "saleInflow"
    MANUAL_INFLOW = "manualInflow"
    MANUAL_OUTFLOW = "manualOutflow"


class CreditEntryKind(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"


class LoyaltyEntryKind(str, Enum):
    ACCRUAL = "accrual"
    REDEMPTION = "redemption"
    ADJUSTMENT = "adjustment"
    EXPIRATION = "expiration"


class CommitStatus(str, Enum):
    COMMITTED = "committed"
    QUEUED = "queued"
    REJECTED = "rejected"


# ====== Carrito ======
class Discount(BaseModel):
    model_config = ConfigDict(frozen=True)

    amount: Decimal = ZERO
    percent: Decimal = Decimal("0")
    reason: str = ""


class ProductRef(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    code: str
    name: str
    unit_price: Decimal
    unit: str = "UN"
    barcode: Optional[str] = None
    stock_qty: Optional[Decimal] = None
    ncm: Optional[str] = None


class LineItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: int
    code: str
    name: str
    unit_price: Decimal
    quantity: Decimal
    unit: str = "UN"
    ncm: Optional[str] = None
    discount: Optional[Discount] = None

    @property
    def line_value(self) -> Decimal:
        return money(self.unit_price * self.quantity)

    @property
    def discount_amount(self) -> Decimal:
        # nunca mayor que el valor de la linea
        if self.discount is None:
            return ZERO
        return min(money(self.discount.amount), self.line_value)

    @property
    def total(self) -> Decimal:
        return self.line_value - self.discount_amount


class Cart(BaseModel):
    model_config = ConfigDict(frozen=True)

    items: Tuple[LineItem, ...] = ()
    order_discount: Discount = Discount()


class DiscountPolicy(BaseModel):
    max_percent: Decimal = Decimal("100")
    reason_required: bool = False
    allow_item_discount: bool = True
    allow_order_discount: bool = True


# ====== Checkout ======
class CustomerRef(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    name: str = ""
    tax_id: Optional[str] = None
    credit_limit: Decimal = ZERO
    credit_balance: Decimal = ZERO
    loyalty_points: int = 0

    @property
    def available_credit(self) -> Decimal:
        return money(self.credit_limit - self.credit_balance)


class PaymentAllocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    method: PaymentMethod
    amount: Decimal = Field(..., ge=0)


class LoyaltyProgram(BaseModel):
    active: bool = False
    points_per_currency_unit: Decimal = Decimal("1")
    point_value: Decimal = Decimal("0.05")
    validity_days: int = 0


class CheckoutRequest(BaseModel):
    cart: Cart
    allocations: List[PaymentAllocation] = Field(default_factory=list)
    amount_received: Optional[Decimal] = None
    customer: Optional[CustomerRef] = None
    points_to_redeem: int = Field(default=0, ge=0)
    issue_fiscal: bool = False
    customer_tax_id: Optional[str] = None
    operator_id: str = "operator"
    operator_name: str = "Operador"


class PendingSale(BaseModel):
    """
    Snapshot inmutable de una venta; su ``id`` es la llave de idempotencia.

    En la cola ``status`` siempre es ``pending``: ``mark_synced`` borra la entrada
    en lugar de guardarla como ``synced``. Ese valor nunca se persiste.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    created_at: datetime
    terminal_id: str
    operator_id: str
    operator_name: str
    items: Tuple[LineItem, ...]
    order_discount: Discount = Discount()
    allocations: Tuple[PaymentAllocation, ...]
    customer: Optional[CustomerRef] = None
    points_redeemed: int = 0
    redemption_value: Decimal = ZERO
    subtotal: Decimal
    item_discount: Decimal
    discount_total: Decimal
    total: Decimal
    amount_received: Optional[Decimal] = None
    issue_fiscal: bool = False
    customer_tax_id: Optional[str] = None
    status: SyncStatus = SyncStatus.PENDING
    attempts: int = 0
    last_error: Optional[str] = None

    @property
    def cash_due(self) -> Decimal:
        return money(sum((a.amount for a in self.allocations if a.method == PaymentMethod.CASH), ZERO))

    @property
    def change(self) -> Optional[Decimal]:
        if self.amount_received is None or self.cash_due <= 0:
            return None
        return money(self.amount_received - self.cash_due)


# ====== Vistas del almacen remoto ======
class SaleItemView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: int
    quantity: Decimal
    unit_price: Decimal
    discount: Decimal
    total: Decimal


class SalePaymentView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    method: PaymentMethod
    amount: Decimal


class SaleView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    client_id: str
    number: Optional[str] = None
    status: SaleStatus
    origin: str
    subtotal: Decimal
    discount: Decimal
    total: Decimal
    customer_id: Optional[int] = None
    cash_session_id: Optional[int] = None
    fiscal_access_key: Optional[str] = None
    fiscal_protocol: Optional[str] = None
    cancel_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    items: List[SaleItemView] = Field(default_factory=list)
    payments: List[SalePaymentView] = Field(default_factory=list)


class CashSessionView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    terminal_id: str
    status: CashSessionStatus
    opened_at: datetime
    opening_float: Decimal
    closed_at: Optional[datetime] = None
    counted_amount: Optional[Decimal] = None
    expected_amount: Optional[Decimal] = None
    difference: Optional[Decimal] = None


class CashMovementView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    session_id: int
    kind: CashMovementKind
    amount: Decimal
    description: str
    created_at: datetime
    sale_id: Optional[int] = None


class CashSummary(BaseModel):
    session: CashSessionView
    total_sales: Decimal = ZERO
    sales_count: int = 0
    total_manual_inflows: Decimal = ZERO
    total_manual_outflows: Decimal = ZERO
    expected_cash_balance: Decimal = ZERO
    by_payment_method: dict = Field(default_factory=dict)


class CreditLedgerEntryView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_id: int
    kind: CreditEntryKind
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    sale_id: Optional[int] = None


class LoyaltyLedgerEntryView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_id: int
    kind: LoyaltyEntryKind
    points: int
    balance_before: int
    balance_after: int
    expires_on: Optional[date] = None
    sale_id: Optional[int] = None


class FiscalDocumentResult(BaseModel):
    success: bool
    access_key: Optional[str] = None
    protocol: Optional[str] = None
    message: Optional[str] = None


# ====== Resultados ======
class SideEffectWarning(BaseModel):
    step: str
    message: str


class StoreInfo(BaseModel):
    name: str
    tax_id: str
    address: Optional[str] = None


class ReceiptLine(BaseModel):
    code: str
    name: str
    quantity: Decimal
    unit_price: Decimal
    discount: Decimal
    total: Decimal


class ReceiptPayment(BaseModel):
    method: PaymentMethod
    amount: Decimal


class Receipt(BaseModel):
    store: StoreInfo
    items: List[ReceiptLine]
    subtotal: Decimal
    discount: Decimal
    total: Decimal
    tax_estimate: Decimal
    payments: List[ReceiptPayment]
    amount_received: Optional[Decimal] = None
    change: Optional[Decimal] = None
    operator_name: str
    issued_at: datetime
    fiscal_access_key: Optional[str] = None
    sale_number: Optional[str] = None
    deferred: bool = False


class AppliedSale(BaseModel):
    sale_id: int
    number: Optional[str] = None
    replay: bool = False
    warnings: List[SideEffectWarning] = Field(default_factory=list)
    fiscal: Optional[FiscalDocumentResult] = None
    points_accrued: int = 0


class CommitOutcome(BaseModel):
    status: CommitStatus
    client_id: Optional[str] = None
    sale_id: Optional[int] = None
    sale_number: Optional[str] = None
    total: Optional[Decimal] = None
    reasons: List[str] = Field(default_factory=list)
    warnings: List[SideEffectWarning] = Field(default_factory=list)
    receipt: Optional[Receipt] = None
    notice: Optional[str] = None
    points_accrued: int = 0


class SyncReport(BaseModel):
    online: bool = True
    skipped: Optional[str] = None
    synced: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
    stalled: List[str] = Field(default_factory=list)
    pending: int = 0


class CancellationOutcome(BaseModel):
    sale_id: int
    cancelled: bool
    warnings: List[SideEffectWarning] = Field(default_factory=list)
    stock_restored: List[int] = Field(default_factory=list)
    cash_reversed: bool = False
    credit_reversed: bool = False
    loyalty_reversed: int = 0
