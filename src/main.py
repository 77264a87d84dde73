"""FastAPI application entry point."""

import logging
import structlog
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.api.v1.price_lists import router as price_lists_router
from src.api.v1.prices import router as prices_router
from src.api.v1.rates import router as rates_router
from src.config import settings
from src.currency.converter import RateConverter
from src.currency.provider import build_rate_provider
from src.database import async_session_factory
from src.errors import InvalidArgumentError, NotFoundError, PricingError, UpstreamFailureError
from src.repositories.currency import CurrencyRepository

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.dev.ConsoleRenderer() if settings.environment == "development"
        else structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        getattr(logging, settings.log_level.upper(), logging.INFO)
    ),
)

logger = structlog.get_logger()

ERROR_STATUS = (
    (NotFoundError, 404),
    (InvalidArgumentError, 400),
    (UpstreamFailureError, 502),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    logger.info(
        "app_starting",
        environment=settings.environment,
        base_currency=settings.default_currency,
    )
    converter = RateConverter(
        provider=build_rate_provider(settings),
        repository=CurrencyRepository(async_session_factory),
        base_currency=settings.default_currency,
    )
    await converter.initialize(settings.currency_update_interval_seconds)
    app.state.rate_converter = converter

    yield

    await converter.stop_periodic_updates()
    logger.info("app_shutting_down")


app = FastAPI(
    title="Pricing Service API",
    description="Price resolution and currency rates for the storefront and admin panel",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(PricingError)
async def pricing_error_handler(request: Request, exc: PricingError) -> JSONResponse:
    status_code = next((code for kind, code in ERROR_STATUS if isinstance(exc, kind)), 500)
    if status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.code, detail=exc.message)
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.code, "detail": exc.message, **exc.context},
    )


# Include routers
app.include_router(prices_router)
app.include_router(price_lists_router)
app.include_router(rates_router)


@app.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "ok", "version": "0.1.0"}
