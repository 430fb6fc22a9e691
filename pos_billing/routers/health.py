from datetime import datetime, timezone

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health", operation_id="health_v1")
def health(request: Request):
    billing = getattr(request.app.state, "billing", None)
    return {
        "status": "ok",
        "time": datetime.now(timezone.utc).isoformat(),
        "catalog_stale": billing.catalog.stale if billing else None,
    }
