"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from kgrag import __version__
from kgrag.api import categories_router, graph_router, kg_admin_router, query_router, upload_router
from kgrag.api.guards import RateLimiter, enforce_rate_limit, require_api_key
from kgrag.core.config import settings
from kgrag.core.logging import get_logger, setup_logging
from kgrag.db import dispose_engine
from kgrag.schemas import HealthResponse
from kgrag.services.llm_client import get_llm_client
from kgrag.services.vector_store import SearchCache

logger = get_logger(__name__)

API_PREFIX = "/api/v1"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    setup_logging()
    llm_client = get_llm_client()
    async with llm_client:
        app.state.llm_client = llm_client
        logger.info(
            "Service started",
            environment=settings.environment,
            llm_provider=llm_client.provider().value,
        )
        yield
    # Shutdown
    await dispose_engine()


def create_app() -> FastAPI:
    """Application factory for creating the FastAPI instance."""
    app = FastAPI(
        title="Knowledge Graph RAG API",
        description=(
            "Question answering over uploaded documents, combining vector search "
            "with a knowledge graph extracted by a language model.\n\n"
            "## Features\n"
            "- **Upload**: Chunk, embed and store PDF or text documents\n"
            "- **Query**: Graph-routed or retrieval-grounded answers, optionally streamed\n"
            "- **Graph**: Count relations and event participation of entities\n"
            "- **Admin**: Run and monitor knowledge-graph ingestion\n"
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Process-wide state shared by request handlers
    app.state.search_cache = SearchCache.from_settings()
    app.state.rate_limiter = RateLimiter.from_settings()

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    guards = [Depends(require_api_key), Depends(enforce_rate_limit)]

    # Register routers
    app.include_router(
        query_router,
        prefix=f"{API_PREFIX}/query",
        tags=["Query"],
        dependencies=guards,
    )
    app.include_router(
        upload_router,
        prefix=f"{API_PREFIX}/upload",
        tags=["Upload"],
        dependencies=guards,
    )
    app.include_router(
        kg_admin_router,
        prefix=f"{API_PREFIX}/admin/ingest/kg",
        tags=["Admin"],
        dependencies=guards,
    )
    app.include_router(
        graph_router,
        prefix=f"{API_PREFIX}/graph",
        tags=["Graph"],
        dependencies=guards,
    )
    app.include_router(
        categories_router,
        prefix=f"{API_PREFIX}/categories",
        tags=["Categories"],
        dependencies=guards,
    )

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check() -> HealthResponse:
        """Health check endpoint for container orchestration."""
        return HealthResponse(
            status="healthy",
            environment=settings.environment,
            llm_provider=settings.llm_provider,
        )

    @app.get("/", tags=["Root"])
    async def root() -> dict[str, str]:
        """Root endpoint with API information."""
        return {
            "service": "Knowledge Graph RAG API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    return app


# Create the app instance
app = create_app()
