from __future__ import annotations

import logging
from typing import Callable, List, Optional

import requests
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class HttpHealthProbe:
    """Online si el endpoint de salud remoto responde 200 dentro del timeout."""

    def __init__(self, url: str, timeout: float = 2.0):
        self.url = url
        self.timeout = timeout

    def __call__(self) -> bool:
        try:
            r = requests.get(self.url, timeout=self.timeout)
        except requests.RequestException:
            return False
        return r.status_code == 200


class StorePingProbe:
    def __init__(self, session_factory):
        self.session_factory = session_factory

    def __call__(self) -> bool:
        db = self.session_factory()
        try:
            db.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            return False
        finally:
            db.close()


class ConnectivityMonitor:
    """
    Boolean leido una vez por intento de commit, conteo de pendientes y disparo
    manual de sincronizacion. ``check()`` detecta la transicion offline -> online
    y avisa a los listeners de reconexion.
    """

    def __init__(self, probe: Callable[[], bool], queue=None):
        self.probe = probe
        self.queue = queue
        self._listeners: List[Callable[[], object]] = []
        self._last: Optional[bool] = None

    def is_online(self) -> bool:
        online = bool(self.probe())
        self._last = online
        return online

    def pending_count(self) -> int:
        return self.queue.pending_count() if self.queue is not None else 0

    def on_reconnect(self, listener: Callable[[], object]) -> None:
        self._listeners.append(listener)

    def check(self) -> bool:
        was = self._last
        online = self.is_online()
        if online and was is False:
            logger.info("connectivity restored, %d sale(s) pending", self.pending_count())
            self._notify()
        elif not online and was is not False:
            logger.warning("connectivity lost, sales will be queued locally")
        return online

    def force_sync(self) -> list:
        return self._notify()

    def _notify(self) -> list:
        return [listener() for listener in self._listeners]
