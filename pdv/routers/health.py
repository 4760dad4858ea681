from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from pdv.core.config import settings
from pdv.core.errors import QueueCorruptError

from .deps import get_terminal

router = APIRouter(tags=["health"])


@router.get("/health")
def health(t=Depends(get_terminal)):
    try:
        pending = t.monitor.pending_count()
        queue_ok = True
    except QueueCorruptError:
        pending, queue_ok = None, False
    return {
        "status": "ok" if queue_ok else "degraded",
        "time": datetime.now(timezone.utc).isoformat(),
        "terminal": settings.terminal_id,
        "version": settings.app_version,
        "online": t.monitor.is_online(),
        "pending": pending,
    }
