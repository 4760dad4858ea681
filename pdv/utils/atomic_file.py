from __future__ import annotations

import io
import json
import os
import tempfile

__all__ = ["atomic_write_text", "write_json_atomic", "read_json"]


def atomic_write_text(path, text: str, encoding: str = "utf-8") -> None:
    """
    Escritura atomica por reemplazo: escribe en un temporal del mismo directorio,
    hace fsync y luego os.replace(). Un corte a mitad deja el archivo anterior intacto.
    """
    path = os.fspath(path)
    d = os.path.dirname(path) or "."
    os.makedirs(d, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=".tmp-", dir=d)
    try:
        with io.open(fd, "w", encoding=encoding, newline="") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    finally:
        if os.path.exists(tmp):
            os.remove(tmp)


def write_json_atomic(path, obj, ensure_ascii: bool = False) -> None:
    s = json.dumps(obj, ensure_ascii=ensure_ascii, separators=(",", ":"))
    atomic_write_text(path, s)


def read_json(path, default):
    """Devuelve ``default`` si el archivo no existe. Errores de parseo se propagan."""
    try:
        with open(os.fspath(path), encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return default
