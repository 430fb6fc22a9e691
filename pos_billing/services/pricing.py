from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from ..core.schemas import Bill, CartItem


def calculate_bill(items: Iterable[CartItem], discount_percent: float = 0.0) -> Bill:
    """
    subtotal = Σ price × qty; el descuento se aplica sobre el subtotal
    antes de calcular el total. Sin redondeo: sólo se formatea al presentar.
    """
    subtotal = sum((float(it.product.price) * int(it.quantity) for it in items), 0.0)
    discount = float(discount_percent or 0.0)
    discount_amount = subtotal * discount / 100
    return Bill(
        subtotal=subtotal,
        discount_percent=discount,
        discount_amount=discount_amount,
        total=subtotal - discount_amount,
    )


def money(v: float) -> str:
    return str(Decimal(str(v)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
