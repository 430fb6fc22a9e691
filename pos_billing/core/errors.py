from __future__ import annotations

from typing import Any, Dict, Optional


class BillingError(Exception):
    """Base de todos los errores visibles para el operador.

    Cada subclase fija ``code`` (identificador estable para la UI) y
    ``status_code`` (respuesta HTTP del router de billing).
    """

    code = "billing_error"
    status_code = 400

    def __init__(self, detail: str, **extra: Any):
        super().__init__(detail)
        self.detail = detail
        self.extra = extra

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "detail": self.detail, **self.extra}


class ValidationError(BillingError):
    code = "validation_error"
    status_code = 422


class NotFoundError(BillingError):
    code = "not_found"
    status_code = 404


class StockError(BillingError):
    code = "insufficient_stock"
    status_code = 409

    def __init__(self, product_id: str, available: int, in_cart: int, requested: int):
        super().__init__(
            f"Insufficient stock! Only {available} items available. "
            f"You already have {in_cart} in cart.",
            productId=product_id,
            available=available,
            inCart=in_cart,
            requested=requested,
        )
        self.product_id = product_id
        self.available = available
        self.in_cart = in_cart
        self.requested = requested


class EmptyCartError(BillingError):
    code = "empty_cart"
    status_code = 409

    def __init__(self, detail: str = "Cart is empty"):
        super().__init__(detail)


class BillingBusyError(BillingError):
    code = "processing"
    status_code = 409

    def __init__(self, detail: str = "A bill is already being finalized"):
        super().__init__(detail)


class CartContractError(BillingError):
    """El carrito produjo un productId repetido: bug interno, no error de usuario."""

    code = "cart_contract_violation"
    status_code = 500


class FinalizationError(BillingError):
    code = "finalization_failed"
    status_code = 502

    def __init__(self, detail: str, gateway_status: Optional[int] = None):
        super().__init__(detail, gatewayStatus=gateway_status)
        self.gateway_status = gateway_status


class RenderError(BillingError):
    """Stock ya confirmado; sólo falta regenerar el documento."""

    code = "render_failed"
    status_code = 500

    def __init__(self, detail: str, bill_no: str, invoice: Any = None):
        super().__init__(detail, billNo=bill_no, saleRecorded=True)
        self.bill_no = bill_no
        self.invoice = invoice
