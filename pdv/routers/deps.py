from fastapi import HTTPException, Request

from pdv.core.errors import (
    CancellationRejected,
    CashSessionError,
    ConcurrentUpdateError,
    PdvError,
    QueueCorruptError,
    RemoteWriteError,
    SaleNotFound,
    ValidationError,
)

_STATUS = (
    (ValidationError, 422),
    (SaleNotFound, 404),
    (CashSessionError, 409),
    (ConcurrentUpdateError, 409),
    (QueueCorruptError, 500),
    (RemoteWriteError, 503),
)


def get_terminal(request: Request):
    return request.app.state.terminal


def http_error(exc: PdvError) -> HTTPException:
    """Traduce la taxonomia de errores a HTTPException con el codigo como detail."""
    if isinstance(exc, CancellationRejected):
        return HTTPException(status_code=422 if exc.code == "reason_too_short" else 409, detail=exc.code)
    for cls, status in _STATUS:
        if isinstance(exc, cls):
            return HTTPException(status_code=status, detail=exc.code)
    return HTTPException(status_code=400, detail=exc.code)
