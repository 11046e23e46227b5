"""Checkout FastAPI application.

Web server for M-Pesa payment initiation and callback reconciliation.
Commands are processed synchronously; every request runs inside the
checkout domain context.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Logging and domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV selects the config overlay from checkout/domain.toml.
from contextlib import asynccontextmanager

from checkout.domain import checkout
from checkout.utils.logging import clear_payment_context, configure_logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

configure_logging()
checkout.init()

_DOMAIN_PREFIXES = ("/payments", "/orders")


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Pending demo confirmations die with the process
    from checkout.payment.demo import reset_demo_scheduler

    reset_demo_scheduler()


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Checkout API",
    description="M-Pesa STK push payments and callback reconciliation",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the checkout domain context for domain routes."""
    clear_payment_context()
    if request.url.path.startswith(_DOMAIN_PREFIXES):
        with checkout.domain_context():
            response = await call_next(request)
        return response
    # Health check, docs, etc.
    return await call_next(request)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from checkout.api import order_router, payment_router  # noqa: E402

app.include_router(payment_router)
app.include_router(order_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    from checkout.config import get_settings

    settings = get_settings()
    return JSONResponse(
        content={
            "status": "ok",
            "domain": checkout.name,
            "payment_mode": "gateway" if settings.is_gateway_configured else "demo",
            "environment": settings.environment,
        }
    )
