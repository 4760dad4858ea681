from datetime import datetime

from fastapi import APIRouter, Depends

from pdv.core.config import settings
from pdv.core.errors import PdvError

from .deps import get_terminal, http_error

router = APIRouter(prefix="/sync", tags=["sync"])


def _limits() -> dict:
    return {
        "soft": {"ops": settings.offline_soft_ops, "hours": settings.offline_soft_hours},
        "hard": {"ops": settings.offline_max_ops, "hours": settings.offline_max_hours},
    }


@router.get("/limits", summary="Límites de cola offline")
def sync_limits():
    return _limits()


@router.get("/status")
def sync_status(t=Depends(get_terminal)):
    try:
        pending = t.queue.dequeue_all()
    except PdvError as exc:
        raise http_error(exc)
    count = len(pending)
    oldest = min((p.created_at for p in pending), default=None)
    # created_at se guarda en UTC naive
    age_hours = (datetime.utcnow() - oldest).total_seconds() / 3600 if oldest else 0.0
    return {
        "online": t.monitor.is_online(),
        "pending": count,
        "stalled": sum(1 for p in pending if p.attempts >= t.synchronizer.max_attempts),
        "oldest": oldest.isoformat() if oldest else None,
        "oldest_age_hours": round(age_hours, 2),
        "soft_limit_reached": count >= settings.offline_soft_ops or age_hours >= settings.offline_soft_hours,
        "hard_limit_reached": count >= settings.offline_max_ops or age_hours >= settings.offline_max_hours,
        "limits": _limits(),
    }


@router.post("/run")
def sync_run(t=Depends(get_terminal)):
    try:
        return t.sync().model_dump(mode="json")
    except PdvError as exc:
        raise http_error(exc)
