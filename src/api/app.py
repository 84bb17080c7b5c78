"""
FastAPI Application Factory.

This module provides a clean, configurable FastAPI application setup.

Usage:
    # Development
    uvicorn api.app:create_app --factory --reload

    # Production
    uvicorn api.app:app --host 0.0.0.0 --port 8080

    Serve a single worker process: session profiles and analytics are held
    in memory and are not shared between processes.

    # Or use the convenience function
    from api.app import create_app
    app = create_app()
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.errors import setup_error_handlers
from api.routes.search import ResponseCache
from config.settings import Settings, get_settings
from core.logging import configure_logging_from_settings, get_logger
from core.middleware import RequestTracingMiddleware
from search.factory import SearchStack, build_search_stack


logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan handler.

    Runs on startup:
    - Initialize logging
    - Build the search stack (unless one was injected)
    - Start the profile eviction sweeper

    Runs on shutdown:
    - Stop the sweeper, drain tracking, close retriever pools
    """
    settings: Settings = app.state.settings

    configure_logging_from_settings(settings)

    logger.info(
        "Starting hybrid search API",
        environment=settings.environment,
        port=settings.port,
    )

    if app.state.search_stack is None:
        app.state.search_stack = build_search_stack(settings)
    stack: SearchStack = app.state.search_stack
    stack.start()

    yield  # Application is running

    logger.info("Shutting down hybrid search API")
    stack.close()
    app.state.semantic_cache.clear()


def create_app(
    settings: Optional[Settings] = None,
    stack: Optional[SearchStack] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Settings to use (default: get_settings())
        stack: Prebuilt search stack; built in the lifespan when omitted

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Hybrid Search API",
        description="""
        Hybrid search and contextual personalization for a health-food storefront.

        ## Features

        - **Hybrid Retrieval**: semantic vector similarity fused with keyword matching
        - **Query Expansion**: nutrient, benefit, condition and property synonyms
        - **Contextual Boosting**: seasonal, regional and per-session personalization
        - **Analytics**: search, click and purchase tracking

        ## Main Endpoints

        - `/api/search/semantic` - Vector similarity search
        - `/api/search/hybrid` - Weighted semantic + keyword search
        - `/api/search/contextual` - Personalized search and suggestions
        - `/api/search/analytics` - Event tracking and summaries

        ## Health Checks

        - `/health` - Basic health check
        - `/api/search/health` - Search backend status
        - `/ready` - Kubernetes readiness probe
        - `/live` - Kubernetes liveness probe
        """,
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    app.state.settings = settings
    app.state.search_stack = stack
    app.state.semantic_cache = ResponseCache(
        ttl_seconds=settings.semantic_cache_ttl_seconds,
        max_entries=settings.semantic_cache_max_entries,
    )

    # =========================================================================
    # Middleware (order matters - first added = outermost)
    # =========================================================================

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request tracing (adds X-Request-ID, logs timing)
    app.add_middleware(RequestTracingMiddleware)

    setup_error_handlers(app)

    # =========================================================================
    # Routes
    # =========================================================================

    from api.routes.health import router as health_router
    app.include_router(health_router, tags=["Health"])

    from api.routes.search import router as search_router
    app.include_router(search_router)

    return app


# Create default app instance for uvicorn
# Usage: uvicorn api.app:app
app = create_app()


def main() -> None:
    """Run the API with uvicorn in a single worker process."""
    import uvicorn

    settings = get_settings()
    if settings.workers > 1:
        logger.warning(
            "Ignoring WORKERS: in-memory session state requires one process",
            requested_workers=settings.workers,
        )
    uvicorn.run(
        "api.app:app",
        host=settings.host,
        port=settings.port,
        workers=1,
        reload=settings.is_development,
    )


if __name__ == "__main__":
    main()
