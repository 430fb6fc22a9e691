from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response

from ..core.schemas import AddItemIn, FinalizeIn, SelectCustomerIn
from ..services.billing import BillingSession

router = APIRouter(prefix="/billing", tags=["billing"])


def get_session(request: Request) -> BillingSession:
    return request.app.state.billing


@router.get("")
def billing_state(billing: BillingSession = Depends(get_session)):
    return billing.state()


@router.get("/products")
def list_products(q: str = "", billing: BillingSession = Depends(get_session)):
    return billing.product_view(q)


@router.get("/customers")
def list_customers(q: str = "", billing: BillingSession = Depends(get_session)):
    return billing.customer_view(q)


@router.post("/refresh")
def refresh_catalog(billing: BillingSession = Depends(get_session)):
    ok = billing.load()
    return {"ok": ok, "stale": billing.catalog.stale, "products": len(billing.catalog.products),
            "customers": len(billing.catalog.customers)}


@router.post("/customer")
def select_customer(payload: SelectCustomerIn, billing: BillingSession = Depends(get_session)):
    billing.select_customer(payload.customer_id)
    return billing.state()


@router.post("/items")
def add_item(payload: AddItemIn, billing: BillingSession = Depends(get_session)):
    billing.add_item(payload.product_id, payload.quantity)
    return billing.state()


@router.delete("/items/{product_id}")
def remove_item(product_id: str, billing: BillingSession = Depends(get_session)):
    removed = billing.remove_item(product_id)
    return {**billing.state(), "removed": removed.product.name if removed else None}


@router.post("/cancel")
def cancel_bill(billing: BillingSession = Depends(get_session)):
    billing.cancel()
    return billing.state()


@router.post("/finalize")
def finalize_bill(payload: FinalizeIn, billing: BillingSession = Depends(get_session)):
    outcome = billing.finalize(payload.action)
    return outcome.model_dump(mode="json", by_alias=True)


@router.post("/invoices/{bill_no}/render")
def rerender_invoice(bill_no: str, action: Optional[str] = None,
                     billing: BillingSession = Depends(get_session)):
    artifact = billing.rerender(bill_no, action)
    return {"billNo": bill_no, "artifact": artifact.model_dump(mode="json", by_alias=True)}


@router.get("/invoices/{bill_no}")
def get_invoice(bill_no: str, billing: BillingSession = Depends(get_session)):
    record = billing.invoice(bill_no)
    if record.artifact is None:
        # venta registrada, documento pendiente de regenerar
        return JSONResponse(status_code=404, content={"error": "not_rendered", "billNo": bill_no})
    art = record.artifact
    if art.action == "download":
        return Response(
            content=art.content,
            media_type=art.media_type,
            headers={"Content-Disposition": f'attachment; filename="{art.filename}"'},
        )
    return HTMLResponse(art.content)
