from contextlib import asynccontextmanager
from fastapi import FastAPI
from promproxy.app.core.config import Settings, settings
from promproxy.app.core.logging import setup_logging
from promproxy.app.core.keystore import APIKeyStore, KeyStoreError
from promproxy.app.core.prometheus import PrometheusClient
from promproxy.app.core.observability import ObservabilityMiddleware
from promproxy.app.core.auth import BearerAuthMiddleware
from promproxy.app.api import cpu_usage, health, metrics
import logging

logger = logging.getLogger(__name__)


def create_app(app_settings: Settings) -> FastAPI:
    setup_logging(app_settings.log_level)

    key_store = APIKeyStore(
        app_settings.secret_file_path,
        override=app_settings.secure_api_key,
    )

    @asynccontextmanager
    async def lifespan(app_: FastAPI):
        logger.info("Starting Prometheus CPU usage proxy")
        logger.info(f"Prometheus URL: {app_settings.prometheus_url}")
        logger.info(f"Query timeout: {app_settings.query_timeout_sec}s")
        logger.info(f"API key required: {app_settings.secure_api_with_key}")
        if app_settings.secure_api_with_key:
            try:
                key_store.get_or_generate()
            except KeyStoreError:
                logger.critical("API key bootstrap failed, refusing to serve requests")
                raise
        logger.info("Proxy startup complete")
        yield
        logger.info("Shutting down Prometheus CPU usage proxy")

    app = FastAPI(title=app_settings.app_name, lifespan=lifespan)
    app.state.settings = app_settings
    app.state.key_store = key_store
    app.state.prometheus_client = PrometheusClient(
        app_settings.prometheus_url,
        timeout_sec=app_settings.query_timeout_sec,
    )

    # Last added runs first: observability wraps auth
    app.add_middleware(
        BearerAuthMiddleware,
        enabled=app_settings.secure_api_with_key,
        key_store=key_store,
    )
    app.add_middleware(ObservabilityMiddleware)

    app.include_router(cpu_usage.router)
    app.include_router(health.router)
    app.include_router(metrics.router)

    return app


app = create_app(settings)
