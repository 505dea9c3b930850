"""
DigiNum Payments API — FastAPI Application

Multi-provider payment links (Stripe, Swychr, Fapshi, Campay, MTN MoMo),
vendor webhook receivers, order settlement and the exchange-rate cache.
"""
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi import HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from domain.responses import error_response
from routes import exchange_rates, health, orders, payments, webhooks
from services.async_executor import shutdown_executor
from services.exchange_rate_service import ExchangeRateCache

# ── Logging ─────────────────────────────────────────────────────────

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: validate settings, create DB tables, build the rate cache."""
    settings.validate_production_settings()

    from database import init_db
    await init_db()
    logger.info("Database initialized")

    app.state.rate_cache = ExchangeRateCache()
    if settings.test_mode:
        logger.warning("🧪 TEST_MODE enabled: payment links are synthetic")

    yield  # app runs here

    # Shutdown thread pool used for blocking Stripe/SMTP calls
    shutdown_executor()

    logger.info("Shutting down")


# ── App Factory ─────────────────────────────────────────────────────

app = FastAPI(
    title="DigiNum Payments API",
    description="Payment links, vendor webhooks and order settlement for the DigiNum marketplace",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routes ──────────────────────────────────────────────────────────

app.include_router(health.router)
app.include_router(payments.router)
app.include_router(webhooks.router)
app.include_router(orders.router)
app.include_router(exchange_rates.router)


# ── Exception Handlers ──────────────────────────────────────────────


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """
    Catch-all for unhandled exceptions.

    Never return raw exception details to clients; the full traceback is
    logged server-side.
    """
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=error_response("internal_server_error", "Internal server error"),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request, exc: RequestValidationError):
    """Malformed request bodies/params are 400s in the standard envelope."""
    errors = [
        {"field": ".".join(str(p) for p in err.get("loc", ())[1:]), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=error_response("validation", "Invalid request", {"errors": errors}),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    """
    Standardize HTTPException responses for frontend consumers.

    Keeps the original HTTP status code, but wraps the payload.
    """
    headers = getattr(exc, "headers", None)
    if hasattr(exc, "message") and hasattr(exc, "details"):
        # DomainError with structured error info
        error_code = exc.__class__.__name__.replace("Error", "").lower()
        if exc.status_code >= 500:
            logger.error(f"{error_code} on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(error_code, exc.message, exc.details),
            headers=headers,
        )

    # Regular HTTPException
    detail = exc.detail
    message = detail if isinstance(detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response("http_error", message, detail if not isinstance(detail, str) else None),
        headers=headers,
    )


# ── Entrypoint ──────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")
