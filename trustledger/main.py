"""
Briq Trust Ledger — API application

Start with:
    uvicorn trustledger.main:app --host 0.0.0.0 --port 8000
"""
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import structlog

from trustledger.api.trust import trust_router
from trustledger.config import get_settings
from trustledger.ledger import build_ledger
from trustledger.log import configure_logging

logger = structlog.get_logger()

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(json_logs=settings.LOG_JSON)
    logger.info("ledger_starting", version=VERSION, environment=settings.ENVIRONMENT)

    if getattr(app.state, "ledger", None) is None:
        app.state.ledger = build_ledger(settings)

    yield

    app.state.ledger.close()
    logger.info("ledger_stopped")


def create_app(ledger=None) -> FastAPI:
    """Build the API app. Pass a ledger to skip building one from settings."""
    app = FastAPI(
        title="Briq Trust Ledger",
        description="Tenant and landlord trust scores, payment history and signed rental agreements.",
        version=VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.ledger = ledger

    @app.middleware("http")
    async def request_middleware(request: Request, call_next):
        request_id = str(uuid.uuid4())[:8]
        start = time.time()
        request.state.request_id = request_id
        response = await call_next(request)
        duration_ms = round((time.time() - start) * 1000, 2)
        response.headers["X-Request-Id"] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms}ms"
        if request.url.path != "/v1/trust/health":
            logger.info("request",
                        method=request.method,
                        path=request.url.path,
                        status=response.status_code,
                        duration_ms=duration_ms,
                        request_id=request_id)
        return response

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error("unhandled_exception",
                     path=request.url.path,
                     error=str(exc),
                     type=type(exc).__name__)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "Something went wrong.",
                "request_id": getattr(request.state, "request_id", "unknown"),
            },
        )

    app.include_router(trust_router)
    return app


app = create_app()


def main():
    import uvicorn

    settings = get_settings()
    uvicorn.run("trustledger.main:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    main()
