from __future__ import annotations

import logging
import threading

from pdv.core.errors import PdvError
from pdv.core.schemas import SyncReport

logger = logging.getLogger(__name__)

OFFLINE_ORIGIN = "pdv_offline"


class Synchronizer:
    """
    Vacia la cola local en orden FIFO re-ejecutando el camino online, una venta
    por vez. Exito: sale de la cola. Fallo: queda y suma un intento. Sin backoff.
    """

    def __init__(self, queue, committer, monitor=None, max_attempts: int = 5):
        self.queue = queue
        self.committer = committer
        self.monitor = monitor
        self.max_attempts = max_attempts
        self._running = threading.Lock()

    def sync(self) -> SyncReport:
        if not self._running.acquire(blocking=False):
            logger.info("sync already running, trigger skipped")
            return SyncReport(skipped="already_running", pending=self.queue.pending_count())
        try:
            return self._drain()
        finally:
            self._running.release()

    def _drain(self) -> SyncReport:
        report = SyncReport()
        if self.monitor is not None and not self.monitor.is_online():
            report.online = False
            report.skipped = "offline"
            report.pending = self.queue.pending_count()
            return report

        for pending in self.queue.dequeue_all():
            if pending.attempts >= self.max_attempts:
                report.stalled.append(pending.id)
                continue
            try:
                applied = self.committer.apply(pending, origin=OFFLINE_ORIGIN)
            except PdvError as exc:
                logger.warning("sync of sale %s failed (attempt %d): %s", pending.id, pending.attempts + 1, exc)
                self.queue.record_attempt(pending.id, str(exc))
                report.failed.append(pending.id)
                continue
            self.queue.mark_synced(pending.id)
            report.synced.append(pending.id)
            for w in applied.warnings:
                logger.warning("synced sale %s: %s: %s", applied.number, w.step, w.message)

        report.pending = self.queue.pending_count()
        if report.synced or report.failed:
            logger.info(
                "sync finished: %d synced, %d failed, %d stalled, %d pending",
                len(report.synced),
                len(report.failed),
                len(report.stalled),
                report.pending,
            )
        return report
