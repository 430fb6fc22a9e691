"""
Catálogo de desarrollo: implementa el contrato REST que consume el
CatalogGateway (productos, clientes y descuento de stock all-or-nothing).
No es el catálogo real; sirve para correr la caja en local y para tests.
"""
from __future__ import annotations

from collections import OrderedDict
from typing import Any, Dict

import structlog
from fastapi import Body, Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import ValidationError as SchemaError
from sqlalchemy.orm import Session

from ..core.schemas import UpdateStockRequest
from .db import Base, make_engine, make_sessionmaker
from .models import Customer, Product

log = structlog.get_logger()

DEMO_PRODUCTS = [
    {"name": "Notebook A5", "price": 100.0, "stock": 20},
    {"name": "Ball Pen", "price": 50.0, "stock": 40},
    {"name": "Stapler", "price": 249.5, "stock": 4},
]
DEMO_CUSTOMERS = [
    {"name": "Asha Rao", "phone": "9876543210", "discount_percentage": 10.0},
    {"name": "Vikram Shah", "phone": "9123456780", "discount_percentage": 0.0},
]


def seed(SessionLocal, products=None, customers=None):
    db: Session = SessionLocal()
    try:
        if db.query(Product).count() == 0:
            db.add_all(Product(**p) for p in (products if products is not None else DEMO_PRODUCTS))
        if db.query(Customer).count() == 0:
            db.add_all(Customer(**c) for c in (customers if customers is not None else DEMO_CUSTOMERS))
        db.commit()
    finally:
        db.close()


def _error(status: int, msg: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": msg})


def create_catalog_app(db_url: str = None, with_demo_data: bool = False) -> FastAPI:
    engine = make_engine(db_url)
    Base.metadata.create_all(bind=engine)
    SessionLocal = make_sessionmaker(engine)
    if with_demo_data:
        seed(SessionLocal)

    def get_db():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app = FastAPI(title="Catalog (dev)")
    app.state.engine = engine
    app.state.SessionLocal = SessionLocal

    @app.get("/api/products")
    def list_products(db: Session = Depends(get_db)):
        return [p.to_dict() for p in db.query(Product).order_by(Product.id).all()]

    @app.get("/api/customers")
    def list_customers(db: Session = Depends(get_db)):
        return [c.to_dict() for c in db.query(Customer).order_by(Customer.id).all()]

    @app.post("/api/products/update-stock")
    def update_stock(payload: Dict[str, Any] = Body(...), db: Session = Depends(get_db)):
        try:
            req = UpdateStockRequest.model_validate(payload)
        except SchemaError:
            return _error(400, "Invalid items payload")

        # Cantidades agregadas por producto (en el orden recibido)
        wanted: "OrderedDict[str, int]" = OrderedDict()
        for it in req.items:
            wanted[it.product_id] = wanted.get(it.product_id, 0) + it.quantity

        rows = {}
        for pid, qty in wanted.items():
            prod = db.get(Product, int(pid)) if pid.isdigit() else None
            if prod is None:
                return _error(404, f"Product {pid} not found")
            if qty > prod.stock:
                return _error(400, f"Insufficient stock for {prod.name}. Available: {prod.stock}")
            rows[pid] = prod

        # Todo validado: se aplica en una sola transacción
        try:
            for pid, qty in wanted.items():
                rows[pid].stock = rows[pid].stock - qty
            db.commit()
        except Exception:
            db.rollback()
            raise
        log.info("stock_updated", products=len(wanted))
        return {"message": "Stock updated successfully",
                "products": [rows[pid].to_dict() for pid in wanted]}

    return app
