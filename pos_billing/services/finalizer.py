from __future__ import annotations

import enum
import random
import threading
import uuid
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Set

import structlog

from ..core.errors import (
    BillingBusyError,
    CartContractError,
    EmptyCartError,
    FinalizationError,
    RenderError,
    ValidationError,
)
from ..core.schemas import (
    CartItem,
    Customer,
    FinalizeOutcome,
    InvoiceLine,
    InvoiceSnapshot,
    StockItem,
)
from .cart import CartStore
from .catalog import DEFAULT_COMMIT_ERROR, CatalogGateway, CatalogSnapshot
from .invoice import InvoiceRenderer
from .pricing import calculate_bill

log = structlog.get_logger()

ACTIONS = ("print", "download")
BILL_NO_ATTEMPTS = 1000


class FinalizerState(str, enum.Enum):
    IDLE = "idle"
    COMMITTING = "committing"
    RENDERING = "rendering"


def new_bill_no() -> str:
    return f"INV-{random.randint(0, 99999):05d}"


def stock_items(items: Iterable[CartItem]) -> List[StockItem]:
    """Líneas -> payload de update-stock. Un productId repetido es un bug del carrito."""
    out: List[StockItem] = []
    seen = set()
    for it in items:
        pid = it.product.id
        if pid in seen:
            raise CartContractError(f"Product {pid} appears twice in the cart", productId=pid)
        seen.add(pid)
        out.append(StockItem(product_id=pid, quantity=it.quantity))
    return out


class BillFinalizer:
    """
    Protocolo de cierre de cuenta:

        IDLE -> COMMITTING (update-stock) -> RENDERING (factura) -> IDLE

    - Fallo en COMMITTING: FinalizationError, carrito intacto, no se renderiza.
    - Fallo en RENDERING: RenderError; el stock NO se revierte y el carrito se
      limpia porque la venta ya quedó registrada.
    - Éxito: carrito y descuento a cero, snapshot de catálogo refrescado.

    Cada venta lleva un ``sale_id`` (uuid) como clave única; el ``bill_no``
    es el número visible y no se repite dentro de este proceso.
    """

    def __init__(
        self,
        gateway: CatalogGateway,
        renderer: InvoiceRenderer,
        cart: CartStore,
        catalog: CatalogSnapshot,
        bill_no_factory: Callable[[], str] = new_bill_no,
    ):
        self.gateway = gateway
        self.renderer = renderer
        self.cart = cart
        self.catalog = catalog
        self.bill_no_factory = bill_no_factory
        self.issued: Set[str] = set()
        self.state = FinalizerState.IDLE
        self._guard = threading.Lock()

    @property
    def is_processing(self) -> bool:
        return self.state is not FinalizerState.IDLE

    def _enter(self) -> None:
        with self._guard:
            if self.state is not FinalizerState.IDLE:
                raise BillingBusyError()
            self.state = FinalizerState.COMMITTING

    def next_bill_no(self) -> str:
        for _ in range(BILL_NO_ATTEMPTS):
            bill_no = self.bill_no_factory()
            if bill_no not in self.issued:
                self.issued.add(bill_no)
                return bill_no
        raise CartContractError("Could not allocate an unused bill number")

    def finalize(self, action: str, customer: Optional[Customer] = None) -> FinalizeOutcome:
        if action not in ACTIONS:
            raise ValidationError(f"Unknown action {action!r}", allowed=list(ACTIONS))
        if self.cart.is_empty():
            raise EmptyCartError()

        self._enter()
        try:
            # Snapshot atómico: ediciones posteriores no alteran lo enviado
            lines, discount = self.cart.snapshot()
            if not lines:
                raise EmptyCartError()
            items = stock_items(lines)
            bill = calculate_bill(lines, discount)
            invoice = InvoiceSnapshot(
                sale_id=uuid.uuid4().hex,
                bill_no=self.next_bill_no(),
                items=[
                    InvoiceLine(name=it.product.name, unit_price=it.product.price, quantity=it.quantity)
                    for it in lines
                ],
                customer_name=customer.name if customer else "Guest Customer",
                customer_phone=customer.phone if customer else "",
                subtotal=bill.subtotal,
                discount_percent=bill.discount_percent,
                discount_amount=bill.discount_amount,
                total=bill.total,
                timestamp=datetime.now(timezone.utc),
            )
            blog = log.bind(bill_no=invoice.bill_no, sale_id=invoice.sale_id)

            blog.info("stock_commit_started", items=len(items))
            res = self.gateway.update_stock(items)
            if not res.ok:
                blog.error("stock_commit_rejected", error=res.error, gateway_status=res.status_code)
                raise FinalizationError(res.error or DEFAULT_COMMIT_ERROR, gateway_status=res.status_code)

            self.state = FinalizerState.RENDERING
            try:
                artifact = self.renderer.render(invoice, action)
            except Exception as exc:
                blog.error("invoice_render_failed", action=action, error=str(exc), sale_recorded=True)
                self._reset_after_commit(lines)
                raise RenderError(
                    f"Sale recorded but the invoice could not be generated: {exc}",
                    bill_no=invoice.bill_no,
                    invoice=invoice,
                ) from exc

            refreshed = self._reset_after_commit(lines)
            blog.info("bill_finalized", action=action, total=bill.total)
            return FinalizeOutcome(
                action=action,
                sale_id=invoice.sale_id,
                bill_no=invoice.bill_no,
                bill=bill,
                invoice=invoice,
                artifact=artifact,
                catalog_refreshed=refreshed,
            )
        finally:
            self.state = FinalizerState.IDLE

    def _reset_after_commit(self, sent: List[CartItem]) -> bool:
        # Lo que entró al carrito durante el commit no se vendió: se descarta con aviso
        committed = {(it.product.id, it.quantity) for it in sent}
        dropped = [
            {"productId": it.product.id, "quantity": it.quantity}
            for it in self.cart.items
            if (it.product.id, it.quantity) not in committed
        ]
        if dropped:
            log.warning("cart_lines_dropped_after_commit", lines=dropped)
        self.cart.clear()
        return self.catalog.refresh()
