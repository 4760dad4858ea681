from __future__ import annotations

from datetime import datetime
from typing import Optional

from pdv.core.money import money, to_decimal
from pdv.core.schemas import PendingSale, Receipt, ReceiptLine, ReceiptPayment, StoreInfo


def build_receipt(
    pending: PendingSale,
    store: StoreInfo,
    tax_rate=0,
    sale_number: Optional[str] = None,
    fiscal_access_key: Optional[str] = None,
    deferred: bool = False,
    issued_at: Optional[datetime] = None,
) -> Receipt:
    """Proyeccion pura del snapshot: no depende de que la venta se haya persistido."""
    return Receipt(
        store=store,
        items=[
            ReceiptLine(
                code=i.code,
                name=i.name,
                quantity=i.quantity,
                unit_price=i.unit_price,
                discount=i.discount_amount,
                total=i.total,
            )
            for i in pending.items
        ],
        subtotal=pending.subtotal,
        discount=pending.discount_total,
        total=pending.total,
        tax_estimate=money(pending.total * to_decimal(tax_rate)),
        payments=[ReceiptPayment(method=a.method, amount=money(a.amount)) for a in pending.allocations],
        amount_received=pending.amount_received,
        change=pending.change,
        operator_name=pending.operator_name,
        issued_at=issued_at or pending.created_at,
        fiscal_access_key=fiscal_access_key,
        sale_number=sale_number,
        deferred=deferred,
    )
