"""
FastAPI application entry point.
Configures routes, middleware, and lifecycle events.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.database import close_db, init_db, ping_db
from app.exceptions import GatewayError, NotFoundError, PaymentValidationError
from app.logging_config import configure_logging

from app.api.webhooks.paytabs import router as paytabs_router
from app.api.payments import router as payments_router
from app.api.subscriptions import router as subscriptions_router
from app.api.subscription_plans import router as subscription_plans_router
from app.api.notifications import router as notifications_router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifecycle manager."""
    configure_logging()
    logging.info("Starting up Mawjood API...")

    if settings.database_auto_create:
        await init_db()

    yield

    await close_db()
    logging.info("Shutting down...")


app = FastAPI(
    title="Mawjood",
    description="Business directory API - payments and subscriptions",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
)


@app.exception_handler(PaymentValidationError)
async def validation_error_handler(request: Request, exc: PaymentValidationError):
    return JSONResponse(status_code=400, content={"status": "error", "message": exc.message})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"status": "error", "message": exc.message})


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    logging.error(f"Unhandled gateway error: {exc}")
    return JSONResponse(status_code=502, content={"status": "error", "message": exc.message})


# Global Exception Handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logging.error(f"Global exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"status": "error", "message": "Internal Server Error"},
    )


# CORS middleware
origins = [settings.frontend_url]
if settings.is_development:
    origins.append("*")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    database_ok = await ping_db()
    return {
        "status": "healthy" if database_ok else "degraded",
        "app": settings.app_name,
        "env": settings.app_env,
        "database": database_ok,
        "paytabs_configured": settings.paytabs_configured,
    }


# Gateway routes first: no user auth, trust comes from re-verification
app.include_router(
    paytabs_router,
    prefix="/api/payments",
    tags=["paytabs"],
)
app.include_router(
    payments_router,
    prefix="/api/payments",
    tags=["payments"],
)
app.include_router(
    subscriptions_router,
    prefix="/api/subscriptions",
    tags=["subscriptions"],
)
app.include_router(
    subscription_plans_router,
    prefix="/api/subscription-plans",
    tags=["subscription-plans"],
)
app.include_router(
    notifications_router,
    prefix="/api/notifications",
    tags=["notifications"],
)
