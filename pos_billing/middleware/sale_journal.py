from __future__ import annotations

from datetime import datetime, timezone
import json
import threading

import structlog
from starlette.concurrency import iterate_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from ..core.config import settings
from ..utils.atomic_file import append_jsonl_atomic, read_jsonl

log = structlog.get_logger()

_LOCK = threading.Lock()


def _already_journaled(path, sale_id) -> bool:
    return any(ev.get("sale_id") == sale_id for ev in read_jsonl(path))


def journal_sale(path, data: dict, idempotency_key=None) -> bool:
    """Anexa una línea por venta cerrada.

    La clave es el saleId (o, sin él, la Idempotency-Key): el billNo es un
    número de cara al cliente y dos ventas distintas pueden compartirlo.
    """
    bill_no = data.get("billNo")
    if not bill_no:
        return False
    sale_id = data.get("saleId") or (idempotency_key and f"idem:{idempotency_key}")
    bill = data.get("bill") or {}
    invoice = data.get("invoice") or {}
    ev = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "kind": "finalized",
        "sale_id": sale_id,
        "bill_no": bill_no,
        "action": data.get("action"),
        "customer": invoice.get("customerName"),
        "items": [
            {"name": it.get("name"), "quantity": it.get("quantity"), "unit_price": it.get("unitPrice")}
            for it in invoice.get("items") or []
        ],
        "subtotal": bill.get("subtotal"),
        "discount_percent": bill.get("discountPercent"),
        "discount_amount": bill.get("discountAmount"),
        "total": bill.get("total"),
        "idempotency_key": idempotency_key,
    }
    with _LOCK:
        if sale_id and _already_journaled(path, sale_id):
            return False
        append_jsonl_atomic(path, ev)
    return True


class SaleJournalMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, path=None):
        super().__init__(app)
        self.path = path or settings.journal_file

    async def dispatch(self, request, call_next):
        response = await call_next(request)
        if request.method != "POST" or request.url.path != "/billing/finalize":
            return response
        if response.status_code != 200 or response.headers.get("Idempotent-Replay"):
            return response

        # Captura el body y lo reinyecta para no consumir el stream
        body_chunks = [section async for section in response.body_iterator]
        body_bytes = b"".join(body_chunks)
        response.body_iterator = iterate_in_threadpool(iter([body_bytes]))

        try:
            data = json.loads(body_bytes.decode("utf-8"))
        except ValueError:
            log.warning("sale_not_journaled", reason="response is not JSON")
            return response

        key = request.headers.get("Idempotency-Key") or request.headers.get("X-Idempotency-Key")
        try:
            journal_sale(self.path, data, idempotency_key=key)
        except OSError as exc:
            # la venta ya está confirmada; el diario no debe tumbar la respuesta
            log.error("sale_journal_failed", bill_no=data.get("billNo"), error=str(exc))
        return response


def install_sale_journal(app, path=None):
    app.add_middleware(SaleJournalMiddleware, path=path)
