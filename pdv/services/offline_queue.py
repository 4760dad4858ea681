"""Local durable queue of sales that could not be committed remotely.

Backed by a single JSON file rewritten atomically on every change, so a crash
or power loss leaves either the previous or the new queue on disk. Any failure
to read or write it is a ``QueueCorruptError``: the sale would otherwise be lost.
"""
from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError as SchemaError

from pdv.core.errors import QueueCorruptError
from pdv.core.schemas import PendingSale
from pdv.utils.atomic_file import read_json, write_json_atomic

logger = logging.getLogger(__name__)

_FORMAT_VERSION = 1


class LocalQueue:
    def __init__(self, path):
        self.path = Path(path)
        self._lock = threading.Lock()

    # carga/guarda
    def _load(self) -> List[PendingSale]:
        try:
            data = read_json(self.path, {"version": _FORMAT_VERSION, "entries": []})
            return [PendingSale.model_validate(e) for e in data["entries"]]
        except (OSError, json.JSONDecodeError, KeyError, TypeError, SchemaError) as exc:
            logger.critical("offline queue unreadable at %s: %s", self.path, exc)
            raise QueueCorruptError(f"cannot read offline queue {self.path}: {exc}") from exc

    def _save(self, entries: List[PendingSale]) -> None:
        payload = {
            "version": _FORMAT_VERSION,
            "entries": [e.model_dump(mode="json") for e in entries],
        }
        try:
            write_json_atomic(self.path, payload)
        except OSError as exc:
            logger.critical("offline queue unwritable at %s: %s", self.path, exc)
            raise QueueCorruptError(f"cannot write offline queue {self.path}: {exc}") from exc

    # operaciones
    def enqueue(self, sale: PendingSale) -> PendingSale:
        with self._lock:
            entries = self._load()
            if any(e.id == sale.id for e in entries):
                return sale
            entries.append(sale)
            self._save(entries)
        logger.info("sale %s queued offline (total=%s)", sale.id, sale.total)
        return sale

    def dequeue_all(self) -> List[PendingSale]:
        """Entradas pendientes en orden de insercion (FIFO). No las elimina."""
        with self._lock:
            return self._load()

    def get(self, sale_id: str) -> Optional[PendingSale]:
        with self._lock:
            return next((e for e in self._load() if e.id == sale_id), None)

    def mark_synced(self, sale_id: str) -> bool:
        with self._lock:
            entries = self._load()
            kept = [e for e in entries if e.id != sale_id]
            if len(kept) == len(entries):
                return False
            self._save(kept)
        logger.info("sale %s synced, removed from offline queue", sale_id)
        return True

    def record_attempt(self, sale_id: str, error: str) -> Optional[PendingSale]:
        with self._lock:
            entries = self._load()
            updated = None
            for idx, e in enumerate(entries):
                if e.id == sale_id:
                    updated = e.model_copy(update={"attempts": e.attempts + 1, "last_error": error[:255]})
                    entries[idx] = updated
            if updated is not None:
                self._save(entries)
            return updated

    def pending_count(self) -> int:
        return len(self.dequeue_all())
