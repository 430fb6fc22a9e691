from __future__ import annotations

from typing import Any, Dict, Optional

import structlog

from ..core.config import settings
from ..core.errors import BillingBusyError, NotFoundError, RenderError, ValidationError
from ..core.schemas import Bill, CartItem, Customer, FinalizeOutcome, InvoiceArtifact, InvoiceSnapshot
from .cart import CartStore
from .catalog import CatalogGateway, CatalogSnapshot
from .finalizer import ACTIONS, BillFinalizer
from .invoice import InvoiceRenderer
from .pricing import calculate_bill

log = structlog.get_logger()


class InvoiceRecord:
    def __init__(self, invoice: InvoiceSnapshot, artifact: Optional[InvoiceArtifact] = None):
        self.invoice = invoice
        self.artifact = artifact


class BillingSession:
    """Estado de la pantalla de facturación de un operador."""

    def __init__(
        self,
        gateway: CatalogGateway,
        renderer: InvoiceRenderer,
        low_stock_threshold: Optional[int] = None,
    ):
        self.gateway = gateway
        self.renderer = renderer
        self.catalog = CatalogSnapshot(gateway)
        self.cart = CartStore(self.catalog)
        self.finalizer = BillFinalizer(gateway, renderer, self.cart, self.catalog)
        self.customer: Optional[Customer] = None
        self.invoices: Dict[str, InvoiceRecord] = {}
        self.low_stock_threshold = (
            settings.low_stock_threshold if low_stock_threshold is None else low_stock_threshold
        )

    @property
    def is_processing(self) -> bool:
        return self.finalizer.is_processing

    def load(self) -> bool:
        return self.catalog.refresh()

    def _ensure_idle(self) -> None:
        # Con un cierre en curso el carrito queda congelado hasta volver a IDLE
        if self.is_processing:
            raise BillingBusyError()

    # ---------- cliente ----------
    def select_customer(self, customer_id: Optional[str]) -> Optional[Customer]:
        self._ensure_idle()
        if not customer_id:
            self.customer = None
            self.cart.set_discount(0)
            return None
        customer = self.catalog.customer(customer_id)
        if customer is None:
            self.catalog.refresh()
            raise NotFoundError("Customer not found", customerId=str(customer_id))
        self.customer = customer
        self.cart.set_discount(customer.discount_percentage)
        return customer

    # ---------- carrito ----------
    def add_item(self, product_id: str, quantity: int) -> CartItem:
        self._ensure_idle()
        try:
            return self.cart.add_item(product_id, quantity)
        except NotFoundError:
            self.catalog.refresh()
            raise

    def remove_item(self, product_id: str) -> Optional[CartItem]:
        self._ensure_idle()
        return self.cart.remove_item(product_id)

    def cancel(self) -> None:
        self._ensure_idle()
        self.cart.clear()
        self.customer = None

    def bill(self) -> Bill:
        return calculate_bill(self.cart.items, self.cart.discount)

    # ---------- cierre ----------
    def finalize(self, action: str) -> FinalizeOutcome:
        try:
            outcome = self.finalizer.finalize(action, customer=self.customer)
        except RenderError as exc:
            self.customer = None
            if exc.invoice is not None:
                self.invoices[exc.bill_no] = InvoiceRecord(exc.invoice)
            raise
        self.customer = None
        self.invoices[outcome.bill_no] = InvoiceRecord(outcome.invoice, outcome.artifact)
        return outcome

    def rerender(self, bill_no: str, action: Optional[str] = None) -> InvoiceArtifact:
        """Regenera sólo el documento; nunca vuelve a tocar el stock."""
        record = self.invoices.get(bill_no)
        if record is None:
            raise NotFoundError("Invoice not found", billNo=bill_no)
        act = action or (record.artifact.action if record.artifact else "download")
        if act not in ACTIONS:
            raise ValidationError(f"Unknown action {act!r}", allowed=list(ACTIONS))
        try:
            record.artifact = self.renderer.render(record.invoice, act)
        except Exception as exc:
            log.error("invoice_rerender_failed", bill_no=bill_no, error=str(exc))
            raise RenderError(
                f"Invoice could not be generated: {exc}", bill_no=bill_no, invoice=record.invoice
            ) from exc
        log.info("invoice_rerendered", bill_no=bill_no, action=act)
        return record.artifact

    def invoice(self, bill_no: str) -> InvoiceRecord:
        record = self.invoices.get(bill_no)
        if record is None:
            raise NotFoundError("Invoice not found", billNo=bill_no)
        return record

    # ---------- vista ----------
    def product_view(self, query: str = "") -> list:
        return [
            {**p.model_dump(by_alias=True), "lowStock": p.stock <= self.low_stock_threshold}
            for p in self.catalog.search_products(query)
        ]

    def customer_view(self, query: str = "") -> list:
        return [c.model_dump(by_alias=True) for c in self.catalog.search_customers(query)]

    def state(self) -> Dict[str, Any]:
        bill = self.bill()
        return {
            "items": [
                {
                    "productId": it.product.id,
                    "name": it.product.name,
                    "price": it.product.price,
                    "quantity": it.quantity,
                    "amount": it.product.price * it.quantity,
                }
                for it in self.cart.items
            ],
            "customer": self.customer.model_dump(by_alias=True) if self.customer else None,
            "discount": self.cart.discount,
            "bill": bill.model_dump(by_alias=True),
            "isProcessing": self.is_processing,
            "catalogStale": self.catalog.stale,
        }
