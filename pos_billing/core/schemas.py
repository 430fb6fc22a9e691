from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

FinalizeAction = Literal["print", "download"]


class CamelModel(BaseModel):
    # El catálogo y la UI hablan camelCase; en Python usamos snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ====== Catálogo ======
class Product(CamelModel):
    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    name: str
    price: float = Field(ge=0)
    stock: int = Field(default=0, ge=0)

    @field_validator("id", mode="before")
    @classmethod
    def id_as_str(cls, v):
        return str(v) if v is not None else v


class Customer(CamelModel):
    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    name: str
    phone: str = ""
    discount_percentage: float = Field(
        default=0.0,
        validation_alias=AliasChoices("discountPercentage", "discount_percentage"),
    )

    @field_validator("id", mode="before")
    @classmethod
    def id_as_str(cls, v):
        return str(v) if v is not None else v

    @field_validator("phone", mode="before")
    @classmethod
    def phone_as_str(cls, v):
        return "" if v is None else str(v)


class StockItem(CamelModel):
    product_id: str
    quantity: int = Field(ge=1)


class UpdateStockRequest(CamelModel):
    items: List[StockItem] = Field(..., min_length=1)


# ====== Carrito / cuenta ======
class CartItem(CamelModel):
    product: Product
    quantity: int = Field(ge=1)


class Bill(CamelModel):
    subtotal: float
    discount_percent: float
    discount_amount: float
    total: float


class InvoiceLine(CamelModel):
    name: str
    unit_price: float
    quantity: int

    @property
    def amount(self) -> float:
        return self.unit_price * self.quantity


class InvoiceSnapshot(CamelModel):
    # sale_id identifica la venta; bill_no es sólo el número impreso
    sale_id: str = Field(default_factory=lambda: uuid4().hex)
    bill_no: str
    items: List[InvoiceLine]
    customer_name: str
    customer_phone: str = ""
    subtotal: float
    discount_percent: float
    discount_amount: float
    total: float
    timestamp: datetime


class InvoiceArtifact(CamelModel):
    action: FinalizeAction
    filename: str
    media_type: str = "text/html"
    content: str = Field(exclude=True)
    path: Optional[str] = None


class FinalizeOutcome(CamelModel):
    status: Literal["completed"] = "completed"
    action: FinalizeAction
    sale_id: str
    bill_no: str
    bill: Bill
    invoice: InvoiceSnapshot
    artifact: InvoiceArtifact
    catalog_refreshed: bool = True


# ====== API de billing ======
class AddItemIn(CamelModel):
    product_id: str
    quantity: int = 1


class SelectCustomerIn(CamelModel):
    customer_id: Optional[str] = None


class FinalizeIn(CamelModel):
    action: FinalizeAction = "print"
