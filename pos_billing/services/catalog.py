from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence

import requests
import structlog
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as SchemaError

from ..core.config import settings
from ..core.schemas import Customer, Product, StockItem

log = structlog.get_logger()

DEFAULT_COMMIT_ERROR = "Failed to update stock. Bill not finalized."


class GatewayResult(BaseModel):
    """Canal explícito éxito/fallo: el gateway nunca lanza por errores de red."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    ok: bool
    value: Any = None
    error: Optional[str] = None
    status_code: Optional[int] = None

    @classmethod
    def success(cls, value: Any = None, status_code: Optional[int] = None) -> "GatewayResult":
        return cls(ok=True, value=value, status_code=status_code)

    @classmethod
    def failure(cls, error: str, status_code: Optional[int] = None) -> "GatewayResult":
        return cls(ok=False, error=error, status_code=status_code)


def _error_text(resp, fallback: str) -> str:
    try:
        js = resp.json()
    except ValueError:
        return fallback
    if isinstance(js, dict):
        msg = js.get("error") or js.get("detail")
        if isinstance(msg, str) and msg:
            return msg
    return fallback


class CatalogGateway:
    """Cliente HTTP del servicio de catálogo.

    ``http`` es cualquier objeto con ``get``/``post`` estilo requests
    (``requests.Session`` en producción, ``TestClient`` en tests).
    """

    def __init__(self, base_url: Optional[str] = None, http=None, timeout: Optional[float] = None):
        self.base_url = (base_url or settings.catalog_api_url).rstrip("/")
        self.http = http if http is not None else requests.Session()
        self.timeout = timeout if timeout is not None else settings.catalog_timeout

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _fetch_list(self, path: str, model) -> GatewayResult:
        try:
            r = self.http.get(self._url(path), timeout=self.timeout)
        except requests.RequestException as exc:
            return GatewayResult.failure(f"GET {path} failed: {exc}")
        if not 200 <= r.status_code < 300:
            return GatewayResult.failure(_error_text(r, f"GET {path} -> HTTP {r.status_code}"), r.status_code)
        try:
            rows = r.json()
            if not isinstance(rows, list):
                return GatewayResult.failure(f"GET {path}: expected a list", r.status_code)
            return GatewayResult.success([model.model_validate(row) for row in rows], r.status_code)
        except (ValueError, SchemaError) as exc:
            return GatewayResult.failure(f"GET {path}: bad payload ({exc})", r.status_code)

    def fetch_products(self) -> GatewayResult:
        return self._fetch_list("/api/products", Product)

    def fetch_customers(self) -> GatewayResult:
        return self._fetch_list("/api/customers", Customer)

    def update_stock(self, items: Sequence[StockItem]) -> GatewayResult:
        """All-or-nothing en el servidor: un fallo implica stock intacto."""
        body = {"items": [it.model_dump(by_alias=True) for it in items]}
        try:
            r = self.http.post(self._url("/api/products/update-stock"), json=body, timeout=self.timeout)
        except requests.RequestException as exc:
            log.error("update_stock_transport_error", error=str(exc))
            return GatewayResult.failure(DEFAULT_COMMIT_ERROR)
        if not 200 <= r.status_code < 300:
            return GatewayResult.failure(_error_text(r, DEFAULT_COMMIT_ERROR), r.status_code)
        try:
            payload = r.json()
        except ValueError:
            payload = None
        return GatewayResult.success(payload, r.status_code)


class CatalogSnapshot:
    """Última copia (posiblemente vieja) de productos y clientes."""

    def __init__(self, gateway: CatalogGateway):
        self.gateway = gateway
        self.products: List[Product] = []
        self.customers: List[Customer] = []
        self.stale = True
        self.refreshed_at: Optional[datetime] = None

    def refresh_products(self) -> bool:
        res = self.gateway.fetch_products()
        if not res.ok:
            log.warning("catalog_read_failed", resource="products", error=res.error, stale=True)
            self.stale = True
            return False
        self.products = res.value
        return True

    def refresh_customers(self) -> bool:
        res = self.gateway.fetch_customers()
        if not res.ok:
            log.warning("catalog_read_failed", resource="customers", error=res.error, stale=True)
            self.stale = True
            return False
        self.customers = res.value
        return True

    def refresh(self) -> bool:
        ok_products = self.refresh_products()
        ok_customers = self.refresh_customers()
        ok = ok_products and ok_customers
        if ok:
            self.stale = False
            self.refreshed_at = datetime.now(timezone.utc)
        return ok

    def product(self, product_id: str) -> Optional[Product]:
        return next((p for p in self.products if p.id == str(product_id)), None)

    def customer(self, customer_id: str) -> Optional[Customer]:
        return next((c for c in self.customers if c.id == str(customer_id)), None)

    def search_products(self, query: str = "") -> List[Product]:
        q = (query or "").strip().lower()
        if not q:
            return list(self.products)
        return [p for p in self.products if q in p.name.lower()]

    def search_customers(self, query: str = "") -> List[Customer]:
        q = (query or "").strip().lower()
        if not q:
            return list(self.customers)
        return [c for c in self.customers if q in f"{c.name} {c.phone}".lower()]
