from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError as SchemaError

from pdv.core.schemas import ProductRef
from pdv.utils.atomic_file import read_json, write_json_atomic

logger = logging.getLogger(__name__)


class ProductCache:
    """Copia local del catalogo activo, para buscar productos sin conexion."""

    def __init__(self, path):
        self.path = Path(path)
        self._products: Optional[List[ProductRef]] = None

    def refresh(self, store) -> int:
        products = store.list_active_products()
        write_json_atomic(
            self.path,
            {
                "refreshed_at": datetime.utcnow().isoformat(),
                "products": [p.model_dump(mode="json") for p in products],
            },
        )
        self._products = products
        logger.info("product cache refreshed: %d product(s)", len(products))
        return len(products)

    def _all(self) -> List[ProductRef]:
        if self._products is None:
            try:
                data = read_json(self.path, {"products": []})
                self._products = [ProductRef.model_validate(p) for p in data.get("products", [])]
            except (OSError, json.JSONDecodeError, SchemaError) as exc:
                # la cache se reconstruye en el proximo refresh
                logger.warning("product cache unreadable at %s: %s", self.path, exc)
                self._products = []
        return self._products

    def find(self, code: str) -> Optional[ProductRef]:
        return next((p for p in self._all() if p.code == code or p.barcode == code), None)

    def get(self, product_id: int) -> Optional[ProductRef]:
        return next((p for p in self._all() if p.id == product_id), None)

    def search(self, term: str, limit: int = 20) -> List[ProductRef]:
        t = term.lower()
        hits = [p for p in self._all() if t in p.name.lower() or t in p.code.lower() or (p.barcode and t in p.barcode)]
        return sorted(hits, key=lambda p: p.name)[:limit]
