"""Error taxonomy of the sale engine.

Routers translate these into ``HTTPException`` with the ``code`` as detail.
"""
from __future__ import annotations

from typing import List, Optional


class PdvError(Exception):
    code = "pdv_error"

    def __init__(self, message: Optional[str] = None, *, code: Optional[str] = None):
        if code:
            self.code = code
        super().__init__(message or self.code)


class ValidationError(PdvError):
    """Blocks the action before any write."""

    code = "validation_error"

    def __init__(self, reasons, message: Optional[str] = None):
        if isinstance(reasons, str):
            reasons = [reasons]
        self.reasons: List[str] = list(reasons)
        super().__init__(message or ", ".join(self.reasons), code=self.reasons[0])


class RemoteWriteError(PdvError):
    """A write against the remote store failed. Converted into an offline enqueue."""

    code = "remote_write_failed"


class NonFatalSideEffectError(PdvError):
    code = "side_effect_failed"

    def __init__(self, step: str, message: Optional[str] = None):
        self.step = step
        super().__init__(message or f"{step} failed", code=f"{step}_failed")


class QueueCorruptError(PdvError):
    """Local durable storage cannot be read or written. Fatal: alert the operator."""

    code = "queue_corrupt"


class ConcurrentUpdateError(PdvError):
    code = "concurrent_update"


class CashSessionError(PdvError):
    code = "cash_session_error"


class CancellationRejected(PdvError):
    code = "cancellation_rejected"


class SaleNotFound(PdvError):
    code = "sale_not_found"
