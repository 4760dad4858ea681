import asyncio
import json
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

# Endpoints protegidos y la clave que debe traer el JSON de una respuesta valida
GUARDED = {
    "/checkout": "status",
}


class _Cache:
    def __init__(self, ttl=3600, max_entries=2048):
        self.ttl = ttl
        self.max_entries = max_entries
        self._store = {}
        self._lock = asyncio.Lock()

    async def get(self, key):
        async with self._lock:
            item = self._store.get(key)
            if not item:
                return None
            if item["exp"] < time.time():
                self._store.pop(key, None)
                return None
            return item

    async def set(self, key, val):
        async with self._lock:
            if len(self._store) >= self.max_entries:
                self._store.pop(next(iter(self._store)))
            self._store[key] = val


def _drop_content_length(headers: dict) -> dict:
    return {k: v for k, v in headers.items() if k.lower() != "content-length"}


def _replay(cached) -> Response:
    body_bytes = cached["body"]
    js = json.loads(body_bytes.decode("utf-8"))
    if isinstance(js, dict):
        js["replay"] = True
        body_bytes = json.dumps(js).encode("utf-8")
    headers = _drop_content_length(dict(cached["headers"]))
    headers["Idempotent-Replay"] = "true"
    return Response(content=body_bytes, status_code=cached["status"], media_type=cached["media_type"], headers=headers)


class CheckoutGuard(BaseHTTPMiddleware):
    """
    Un commit a la vez por terminal: un segundo POST mientras otro corre recibe
    409 ``commit_in_flight``. Con ``Idempotency-Key`` repetida se devuelve la
    respuesta guardada en lugar de cobrar otra vez.
    """

    def __init__(self, app, ttl: int = 3600):
        super().__init__(app)
        self.ttl = ttl
        self.cache = _Cache(ttl=ttl)
        self.in_flight = asyncio.Lock()

    async def dispatch(self, request, call_next):
        if request.method != "POST":
            return await call_next(request)
        success_key = GUARDED.get(request.url.path)
        if not success_key:
            return await call_next(request)

        idem_key = request.headers.get("Idempotency-Key")
        cache_key = f"{request.url.path}:{idem_key}" if idem_key else None

        # 1) Replay inmediato si esta cacheado
        if cache_key:
            cached = await self.cache.get(cache_key)
            if cached:
                return _replay(cached)

        if self.in_flight.locked():
            return JSONResponse({"detail": "commit_in_flight"}, status_code=409)

        # 2) Seccion critica: un checkout por vez
        async with self.in_flight:
            if cache_key:
                cached = await self.cache.get(cache_key)
                if cached:
                    return _replay(cached)

            response = await call_next(request)
            body_bytes = b""
            async for chunk in response.body_iterator:
                body_bytes += chunk
            headers = _drop_content_length(dict(response.headers))
            new_resp = Response(
                content=body_bytes,
                status_code=response.status_code,
                media_type=response.media_type,
                headers=headers,
            )

            # 3) Cachear solo 200 con la clave de exito
            should_cache = bool(cache_key) and response.status_code == 200
            if should_cache:
                try:
                    js = json.loads(body_bytes.decode("utf-8"))
                    should_cache = isinstance(js, dict) and success_key in js
                except ValueError:
                    should_cache = False
            if should_cache:
                await self.cache.set(
                    cache_key,
                    {
                        "status": new_resp.status_code,
                        "headers": dict(new_resp.headers),
                        "media_type": new_resp.media_type,
                        "body": body_bytes,
                        "exp": time.time() + self.ttl,
                    },
                )
            return new_resp


def install_checkout_guard(app):
    app.add_middleware(CheckoutGuard)
