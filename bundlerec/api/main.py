"""FastAPI application main module.

Builds the BundleRec service: storefront data gateway, product cache,
catalog service and resolver are created in the lifespan handler and
shared by all requests through ``app.state``.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from bundlerec import __version__
from bundlerec.api.logging_config import RequestLoggingMiddleware, setup_logging
from bundlerec.api.metrics import MetricsService
from bundlerec.api.routes import recommend
from bundlerec.config import Settings, get_settings
from bundlerec.recommender.cache import AsyncTTLCache, CatalogService
from bundlerec.recommender.clients import StorefrontDataClient
from bundlerec.recommender.copurchase import CoPurchaseAnalyzer
from bundlerec.recommender.exceptions import BundleRecException
from bundlerec.recommender.gateways import StorefrontGateway
from bundlerec.recommender.local import load_local_gateway
from bundlerec.recommender.resolver import RecommendationResolver

# Configure module logger
logger = logging.getLogger(__name__)


def build_gateway(settings: Settings) -> StorefrontGateway:
    """Create the storefront gateway selected by ``settings.data_source``."""
    if settings.data_source == "http":
        if not settings.catalog_api_url:
            raise ValueError("BUNDLEREC_CATALOG_API_URL is required for the http data source")
        return StorefrontDataClient(
            base_url=settings.catalog_api_url,
            token=settings.catalog_api_token,
            timeout=settings.gateway_timeout_seconds,
        )
    return load_local_gateway(settings.data_dir)


def build_resolver(
    settings: Settings, gateway: StorefrontGateway, cache: AsyncTTLCache
) -> RecommendationResolver:
    catalog = CatalogService(
        gateway,
        cache,
        max_concurrency=settings.max_concurrent_lookups,
        timeout=settings.gateway_timeout_seconds,
    )
    return RecommendationResolver(
        gateway,
        catalog,
        analyzer=CoPurchaseAnalyzer(sample_limit=settings.order_sample_limit),
        timeout=settings.gateway_timeout_seconds,
        order_sample_limit=settings.order_sample_limit,
        candidate_pool_limit=settings.candidate_pool_limit,
        default_limit=settings.default_limit,
        max_limit=settings.max_limit,
    )


def create_app(
    settings: Optional[Settings] = None,
    gateway: Optional[StorefrontGateway] = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Service settings, defaults to ``get_settings()``.
        gateway: Pre-built storefront gateway. When omitted one is built
            from ``settings`` at startup.

    Returns:
        Configured application.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        active_gateway = gateway or build_gateway(settings)
        cache = AsyncTTLCache(
            ttl_seconds=settings.cache_ttl_seconds,
            max_entries=settings.cache_max_entries,
        )
        app.state.gateway = active_gateway
        app.state.cache = cache
        app.state.resolver = build_resolver(settings, active_gateway, cache)
        logger.info(
            "BundleRec started",
            extra={"data_source": settings.data_source, "version": __version__},
        )
        try:
            yield
        finally:
            await app.state.resolver.drain()
            aclose = getattr(active_gateway, "aclose", None)
            if aclose is not None:
                await aclose()
            logger.info("BundleRec stopped")

    app = FastAPI(
        title="BundleRec API",
        description="Product bundle and recommendation service for storefronts",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.metrics = MetricsService()

    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(recommend.router)

    @app.exception_handler(BundleRecException)
    async def bundlerec_exception_handler(request: Request, exc: BundleRecException) -> JSONResponse:
        logger.warning(
            "Request rejected",
            extra={
                "path": str(request.url.path),
                "error_type": type(exc).__name__,
                "status_code": exc.status_code,
            },
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": type(exc).__name__,
                "message": exc.message,
                "details": exc.details,
            },
        )

    @app.get("/ping")
    def ping() -> Dict[str, str]:
        """Health check endpoint.

        Returns:
            Dictionary with status key set to "ok".
        """
        return {"status": "ok"}

    @app.get("/status")
    def status(request: Request) -> Dict[str, Any]:
        """Cache and resolution metrics snapshot."""
        cache = getattr(request.app.state, "cache", None)
        return {
            "status": "ok",
            "version": __version__,
            "data_source": settings.data_source,
            "cache": cache.stats() if cache is not None else None,
            "metrics": request.app.state.metrics.get_metrics(),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    setup_logging(get_settings().log_level)
    uvicorn.run(
        "bundlerec.api.main:app",
        host="0.0.0.0",
        port=8000,
    )
