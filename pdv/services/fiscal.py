from __future__ import annotations

import logging
from typing import Optional

import requests

from pdv.core.money import money
from pdv.core.schemas import FiscalDocumentResult, PaymentMethod, PendingSale

logger = logging.getLogger(__name__)

# codigos de forma de pago del documento fiscal
METHOD_CODES = {
    PaymentMethod.CASH: "01",
    PaymentMethod.CREDIT_CARD: "03",
    PaymentMethod.DEBIT_CARD: "04",
    PaymentMethod.STORE_CREDIT: "05",
    PaymentMethod.INSTANT_TRANSFER: "17",
}


def build_request(pending: PendingSale) -> dict:
    body = {
        "line_items": [
            {
                "code": i.code,
                "name": i.name,
                "ncm": i.ncm or "00000000",
                "unit": i.unit,
                "quantity": str(i.quantity),
                "unit_price": str(i.unit_price),
                "total": str(i.total),
            }
            for i in pending.items
        ],
        "payments": [
            {"method": METHOD_CODES.get(a.method, "01"), "amount": str(money(a.amount))}
            for a in pending.allocations
        ],
        "total_amount": str(pending.total),
        "discount_amount": str(pending.discount_total),
    }
    if pending.customer_tax_id:
        body["customer_tax_id"] = "".join(ch for ch in pending.customer_tax_id if ch.isdigit())
    return body


class FiscalIssuer:
    """Cliente HTTP del servicio emisor de NFC-e. Nunca lanza: los fallos vuelven como ``success=False``."""

    def __init__(self, url: Optional[str], timeout: float = 30.0, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.http = session or requests.Session()

    def issue(self, pending: PendingSale) -> FiscalDocumentResult:
        if not self.url:
            return FiscalDocumentResult(success=False, message="fiscal_issuer_not_configured")
        try:
            r = self.http.post(self.url, json=build_request(pending), timeout=self.timeout)
        except requests.Timeout:
            logger.warning("fiscal issuer timed out after %ss for sale %s", self.timeout, pending.id)
            return FiscalDocumentResult(success=False, message="fiscal_issuer_timeout")
        except requests.RequestException as exc:
            logger.warning("fiscal issuer unreachable for sale %s: %s", pending.id, exc)
            return FiscalDocumentResult(success=False, message="fiscal_issuer_unreachable")
        try:
            data = r.json()
        except ValueError:
            return FiscalDocumentResult(success=False, message=f"fiscal_issuer_http_{r.status_code}")
        if not isinstance(data, dict):
            logger.warning("fiscal issuer sent a non-object body for sale %s (http %s)", pending.id, r.status_code)
            return FiscalDocumentResult(success=False, message=f"fiscal_issuer_http_{r.status_code}")
        if r.status_code >= 400 and not data.get("message"):
            data["message"] = f"fiscal_issuer_http_{r.status_code}"
        return FiscalDocumentResult(
            success=bool(data.get("success")) and r.status_code < 400,
            access_key=data.get("access_key"),
            protocol=data.get("protocol"),
            message=data.get("message"),
        )
