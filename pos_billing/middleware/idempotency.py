import asyncio
import json
import time
from collections import OrderedDict
from contextlib import asynccontextmanager

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

log = structlog.get_logger()

# Rutas con replay -> campo que tiene que traer la respuesta para guardarla
REPLAYABLE = {
    "/billing/finalize": "billNo",
}
KEY_HEADERS = ("Idempotency-Key", "X-Idempotency-Key")


class FinalizeReplay:
    """Respuesta de un finalize ya completado, lista para reenviarse."""

    def __init__(self, status: int, body: bytes, media_type, headers: dict, ttl: float):
        self.status = status
        self.body = body
        self.media_type = media_type
        self.headers = {k: v for k, v in headers.items() if k.lower() != "content-length"}
        self.expires_at = time.monotonic() + ttl

    @property
    def expired(self) -> bool:
        return self.expires_at < time.monotonic()

    def to_response(self) -> Response:
        body = self.body
        try:
            js = json.loads(body.decode("utf-8"))
        except ValueError:
            js = None
        if isinstance(js, dict):
            body = json.dumps({**js, "replay": True}).encode("utf-8")
        return Response(
            content=body,
            status_code=self.status,
            media_type=self.media_type,
            headers={**self.headers, "Idempotent-Replay": "true"},
        )


class ReplayStore:
    """LRU acotado de respuestas por clave; expira por TTL al leer."""

    def __init__(self, ttl: float = 3600, max_entries: int = 512):
        self.ttl = ttl
        self.max_entries = max_entries
        self._entries = OrderedDict()

    def __len__(self):
        return len(self._entries)

    def get(self, key):
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expired:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return entry

    def put(self, key, status: int, body: bytes, media_type, headers: dict) -> None:
        self._entries[key] = FinalizeReplay(status, body, media_type, headers, self.ttl)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)


class KeyLocks:
    """Un asyncio.Lock por clave, vivo sólo mientras alguien lo usa o espera."""

    def __init__(self):
        self._held = {}

    def __len__(self):
        return len(self._held)

    @asynccontextmanager
    async def hold(self, key):
        # Todo corre en un único event loop: entre awaits el dict no cambia
        entry = self._held.get(key)
        if entry is None:
            entry = self._held[key] = [asyncio.Lock(), 0]
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                del self._held[key]


def is_replayable(status: int, body: bytes, required_field: str) -> bool:
    # Sólo un 200 con billNo: un fallo tiene que poder reintentarse
    if status != 200:
        return False
    try:
        js = json.loads(body.decode("utf-8"))
    except ValueError:
        return False
    return isinstance(js, dict) and required_field in js


class FinalizeIdempotency(BaseHTTPMiddleware):
    """Un reintento de finalize con la misma Idempotency-Key devuelve la
    respuesta original en vez de volver a descontar stock."""

    def __init__(self, app, ttl: float = 3600, max_entries: int = 512):
        super().__init__(app)
        self.store = ReplayStore(ttl=ttl, max_entries=max_entries)
        self.locks = KeyLocks()

    async def dispatch(self, request, call_next):
        required_field = REPLAYABLE.get(request.url.path) if request.method == "POST" else None
        idem_key = next((request.headers[h] for h in KEY_HEADERS if request.headers.get(h)), None)
        if not required_field or not idem_key:
            return await call_next(request)

        key = (request.url.path, idem_key)
        async with self.locks.hold(key):
            hit = self.store.get(key)
            if hit is not None:
                log.info("finalize_replayed", idempotency_key=idem_key)
                return hit.to_response()

            response = await call_next(request)
            body = b"".join([chunk async for chunk in response.body_iterator])
            if is_replayable(response.status_code, body, required_field):
                self.store.put(key, response.status_code, body, response.media_type, dict(response.headers))
            headers = {k: v for k, v in response.headers.items() if k.lower() != "content-length"}
            return Response(
                content=body,
                status_code=response.status_code,
                media_type=response.media_type,
                headers=headers,
            )


def install_idempotency(app):
    app.add_middleware(FinalizeIdempotency)
