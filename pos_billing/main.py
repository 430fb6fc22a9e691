import logging
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .core.config import settings
from .core.errors import BillingError
from .middleware.idempotency import install_idempotency
from .middleware.sale_journal import install_sale_journal
from .routers import billing, health, ui
from .services.billing import BillingSession
from .services.catalog import CatalogGateway
from .services.invoice import InvoiceRenderer

log = structlog.get_logger()


def configure_logging(level=None):
    # Eventos JSON, uno por línea; el nivel sale de LOG_LEVEL
    min_level = logging.getLevelName((level or settings.log_level).upper())
    if not isinstance(min_level, int):
        min_level = logging.INFO
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(min_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
    )


def build_session() -> BillingSession:
    return BillingSession(CatalogGateway(), InvoiceRenderer())


def create_app(session: BillingSession = None, journal_file=None, load_catalog=True) -> FastAPI:
    session = session or build_session()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Carga inicial; si el catálogo no responde se arranca con datos vacíos
        if load_catalog and not session.load():
            log.warning("catalog_unavailable_at_startup", catalog_url=session.gateway.base_url)
        yield

    app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)
    app.state.billing = session
    app.state.settings = settings

    @app.exception_handler(BillingError)
    async def _billing_error(request: Request, exc: BillingError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    install_sale_journal(app, path=journal_file)
    install_idempotency(app)

    app.include_router(health.router)
    app.include_router(ui.router)
    app.include_router(billing.router)
    return app


configure_logging()
app = create_app()
