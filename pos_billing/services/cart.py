from __future__ import annotations

from typing import List, Optional, Tuple

from ..core.errors import NotFoundError, StockError, ValidationError
from ..core.schemas import CartItem
from .catalog import CatalogSnapshot


class CartStore:
    """Líneas de la cuenta en curso.

    Orden de inserción = orden de despliegue; una fila por producto.
    El stock se valida contra el snapshot vigente en cada alta, nunca
    contra una copia guardada en la fila.
    """

    def __init__(self, catalog: CatalogSnapshot):
        self.catalog = catalog
        self._items: List[CartItem] = []
        self.discount: float = 0.0

    @property
    def items(self) -> List[CartItem]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def is_empty(self) -> bool:
        return not self._items

    def find(self, product_id: str) -> Optional[CartItem]:
        return next((it for it in self._items if it.product.id == str(product_id)), None)

    def add_item(self, product_id: str, quantity: int) -> CartItem:
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationError("Quantity must be a whole number")
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")

        product = self.catalog.product(product_id)
        if product is None:
            raise NotFoundError("Product not found", productId=str(product_id))

        existing = self.find(product.id)
        in_cart = existing.quantity if existing else 0
        requested = in_cart + quantity
        if requested > product.stock:
            raise StockError(product.id, product.stock, in_cart, requested)

        if existing:
            existing.product = product
            existing.quantity = requested
            return existing
        item = CartItem(product=product, quantity=quantity)
        self._items.append(item)
        return item

    def remove_item(self, product_id: str) -> Optional[CartItem]:
        item = self.find(product_id)
        if item is not None:
            self._items = [it for it in self._items if it is not item]
        return item

    def set_discount(self, percent: float) -> float:
        self.discount = min(100.0, max(0.0, float(percent or 0.0)))
        return self.discount

    def clear(self) -> None:
        self._items = []
        self.discount = 0.0

    def snapshot(self) -> Tuple[Tuple[CartItem, ...], float]:
        """Copia profunda de (líneas, descuento) al momento de la llamada."""
        return tuple(it.model_copy(deep=True) for it in self._items), self.discount
