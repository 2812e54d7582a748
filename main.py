"""
FastAPI application entry point.
"""
import asyncio

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from api.routes import provider as provider_routes
from api.routes import webhooks as webhook_routes
from api.middleware import RequestIDMiddleware, LoggingMiddleware
from application.dtos.payments import SecretBundle
from application.ports.commerce import SecretStore
from core.config import settings
from core.exceptions import register_exception_handlers
from core.response import success_response
from core.logging_config import get_logger, configure_logging
from core.settings import PaymentSettings, payment_settings
from infrastructure.external.commerce import CommercePlatformClient
from infrastructure.external.payments import get_checkout_gateway, get_webhook_key_provider


configure_logging()
logger = get_logger(__name__)


async def load_secrets(store: SecretStore, cfg: PaymentSettings) -> SecretBundle:
    """Resolve every secret once; a missing one is logged and left empty (handlers fail closed)."""
    names = {
        "mypos_signing_key": cfg.secrets.mypos_signing_key,
        "viva_webhook_secret": cfg.secrets.viva_webhook_secret,
    }
    values = {}
    for field, name in names.items():
        try:
            values[field] = await asyncio.wait_for(store.get_secret(name), timeout=cfg.timeouts.outbound) or None
        except Exception as exc:
            logger.error("secret_load_failed", secret=name, error=str(exc))
            values[field] = None
    logger.info("secrets_loaded", present=[k for k, v in values.items() if v])
    return SecretBundle(**values)


@asynccontextmanager
async def lifespan(app: FastAPI):
    cfg = payment_settings
    commerce = CommercePlatformClient(
        cfg.commerce.base_url,
        api_key=cfg.commerce.api_key,
        timeout=cfg.timeouts.total,
        max_retries=cfg.retry.max,
        retry_delay=cfg.retry.base_backoff,
        debug=settings.DEBUG,
    )
    secrets = await load_secrets(commerce, cfg)

    app.state.commerce = commerce
    app.state.secrets = secrets
    app.state.key_provider = get_webhook_key_provider(cfg)
    app.state.checkout_gateway = get_checkout_gateway(secrets, settings=cfg)
    logger.info("application_started", environment=settings.ENVIRONMENT)

    yield

    for client in (app.state.key_provider, app.state.checkout_gateway):
        close = getattr(client, "aclose", None)
        if callable(close):
            try:
                await close()
            except Exception as exc:
                logger.warning("client_close_failed", error=str(exc))
    await commerce.close()
    logger.info("application_shutdown", message="Application shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="Payment webhooks and checkout bridge for the events platform",
)

# middleware runs bottom-up: RequestID first so LoggingMiddleware sees request_id
app.add_middleware(LoggingMiddleware)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(webhook_routes.router, prefix=settings.API_PREFIX)
app.include_router(provider_routes.router, prefix=settings.API_PREFIX)


@app.get("/", tags=["Root"])
async def root():
    return success_response(
        data={
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "docs": "/docs",
            "redoc": "/redoc"
        },
        message="Welcome"
    )


@app.get("/health", tags=["Health"])
async def health_check():
    return success_response(data={"status": "healthy"}, message="OK")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
