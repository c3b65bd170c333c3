"""FastAPI application factory."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ranch_ledger import __version__
from ranch_ledger.api.routes import managers, stock
from ranch_ledger.config import get_settings
from ranch_ledger.errors import LedgerError
from ranch_ledger.services import LedgerServices, build_services

logger = structlog.get_logger(__name__)


def create_app(services: LedgerServices | None = None) -> FastAPI:
    """Build the API. Components are built from settings unless given."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        settings = get_settings()
        if getattr(app.state, "services", None) is None:
            app.state.services = build_services(settings)
        publisher = app.state.services.publisher
        if settings.ws_enabled:
            await publisher.start()
        logger.info("api_started", version=__version__)
        try:
            yield
        finally:
            if settings.ws_enabled:
                await publisher.stop()
            app.state.services.close()
            logger.info("api_stopped")

    app = FastAPI(title="Ranch Ledger", version=__version__, lifespan=lifespan)
    app.state.services = services

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
        log = logger.warning if exc.status_code < 500 else logger.error
        log(
            "request_failed",
            path=request.url.path,
            status_code=exc.status_code,
            error=exc.message,
        )
        body: dict = {"success": False, "error": exc.message}
        if exc.details:
            body["details"] = exc.details
        return JSONResponse(status_code=exc.status_code, content=body)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        first = errors[0] if errors else {}
        loc = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{loc}: {first.get('msg', 'invalid request')}" if loc else "invalid request"
        return JSONResponse(status_code=400, content={"success": False, "error": message})

    @app.get("/health")
    def health() -> dict:
        return {"success": True, "status": "ok", "version": __version__}

    app.include_router(managers.router, prefix="/api/managers", tags=["managers"])
    app.include_router(stock.router, prefix="/api/stock", tags=["stock"])

    return app
