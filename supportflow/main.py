"""
SupportFlow - Main Application
==============================

Multi-tenant support helpdesk backend.

Modules:
- Knowledge Library: upload, ingest and retrieve tenant and platform documents
- Support Agent: deterministic rules, RAG drafting and confidence routing

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities and value objects
- Infrastructure: Database, LLM, vector store, blob storage
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from supportflow.config import settings
from supportflow.container import build_container
from supportflow.core import ApplicationException, ConfigurationException
from supportflow.infrastructure.database import (
    init_database, close_database, create_tables, get_session_factory, ping_database
)
from supportflow.infrastructure.llm import ILLMClient, create_llm_client
from supportflow.infrastructure.vectorstore import MilvusVectorStore
from supportflow.knowledge.infrastructure import WorkerScheduler
from supportflow.knowledge.interfaces import knowledge_router
from supportflow.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    MetricsMiddleware,
    RequestStats,
    application_exception_handler,
    global_exception_handler,
)
from supportflow.shared.infrastructure.grafana import GrafanaOTLPExporter
from supportflow.shared.infrastructure.logging import setup_logging, get_logger
from supportflow.support.infrastructure import PolicyConfigManager
from supportflow.support.interfaces import support_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database (and create tables outside production)
    3. Load the routing policy and watch it for changes
    4. Initialize Grafana exporter and LLM client
    5. Initialize Milvus when it is the chunk backend
    6. Build the service container
    7. Start the in-process worker trigger when configured

    SHUTDOWN:
    1. Stop worker trigger
    2. Stop policy watcher
    3. Close database connections
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting SupportFlow", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    init_database()
    if not settings.is_production:
        # Production schemas are managed by migrations
        logger.info("Creating database tables")
        try:
            await create_tables()
        except (OSError, SQLAlchemyError) as e:
            logger.warning(
                "Database not available - running in degraded mode",
                extra={"error_message": str(e)}
            )

    policy_manager = PolicyConfigManager()
    policy_manager.load(settings.routing_policy_path)
    policy_manager.start_watching()

    exporter = GrafanaOTLPExporter.from_settings()

    llm_client: Optional[ILLMClient] = None
    try:
        llm_client = create_llm_client(settings, exporter)
    except ConfigurationException as e:
        logger.warning(
            "LLM client not configured - knowledge and drafting endpoints disabled",
            extra={"error_message": e.message}
        )

    vector_store: Optional[MilvusVectorStore] = None
    if settings.vector_backend == "milvus":
        vector_store = MilvusVectorStore()
        await vector_store.initialize()

    container = build_container(
        get_session_factory(),
        policy_manager,
        llm_client=llm_client,
        vector_store=vector_store,
        exporter=exporter,
    )
    app.state.container = container
    app.state.settings = settings

    scheduler: Optional[WorkerScheduler] = None
    if settings.worker_interval_seconds > 0 and container.worker is not None:
        scheduler = WorkerScheduler(container.worker, interval_seconds=settings.worker_interval_seconds)
        await scheduler.start()
    app.state.scheduler = scheduler

    logger.info("SupportFlow started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down SupportFlow")

    if scheduler:
        await scheduler.stop()

    policy_manager.stop_watching()

    await close_database()

    logger.info("SupportFlow shutdown complete")


app = FastAPI(
    title="SupportFlow API",
    description="""
    ## Multi-tenant Support Helpdesk

    ### Knowledge Library
    - `POST /knowledge/upload` - Upload a document (multipart)
    - `GET /knowledge/documents` - List documents
    - `DELETE /knowledge/documents/{id}` - Delete a document
    - `POST /knowledge/reindex` - Re-ingest a document
    - `GET|POST /knowledge/worker` - Process queued ingest jobs (cron)
    - `GET /knowledge/stats` - Document and chunk counts

    ### Support Agent
    - `POST /support/generate` - Draft and route a reply
    - `GET|PUT /support/agent-config` - Tenant agent config
    - `GET /support/stats` - Routing outcome statistics

    Routing: deterministic rule → `AUTO_REPLY`; otherwise the blended
    confidence decides between `AUTO` and `HUMAN_REVIEW`.
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# === CORS Middleware ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# === Custom Middleware ===
# Added innermost first; the correlation id is set before anything logs
app.state.request_stats = RequestStats()
app.add_middleware(LoggingMiddleware)
app.add_middleware(MetricsMiddleware, stats=app.state.request_stats)
app.add_middleware(CorrelationIDMiddleware)
app.add_exception_handler(ApplicationException, application_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# === Include Module Routers ===
app.include_router(knowledge_router)
app.include_router(support_router)


# === Health Check Endpoint ===

@app.get("/health", tags=["Health"], responses={
    200: {
        "description": "Service health",
        "content": {
            "application/json": {
                "example": {
                    "status": "healthy",
                    "version": "1.0.0",
                    "environment": "development",
                    "checks": {
                        "database": "connected",
                        "llm_client": "available (gpt-4.1-mini)",
                        "vector_store": "sql",
                        "routing_policy": "loaded (watching)",
                        "worker_scheduler": "stopped"
                    }
                }
            }
        }
    }
})
async def health_check(request: Request):
    """
    Health check endpoint for load balancers and orchestrators.

    Reports database connectivity, LLM client availability, chunk
    backend status and routing policy state.
    """
    container = getattr(request.app.state, "container", None)
    scheduler = getattr(request.app.state, "scheduler", None)
    checks = {
        "database": "connected",
        "llm_client": "not_configured",
        "vector_store": settings.vector_backend,
        "routing_policy": "not_loaded",
        "worker_scheduler": "running" if scheduler and scheduler.is_running else "stopped",
    }
    request_stats = getattr(request.app.state, "request_stats", None)

    try:
        await ping_database()
    except Exception as e:
        checks["database"] = f"error: {type(e).__name__}"

    if container is not None:
        if container.llm_client is not None:
            checks["llm_client"] = f"available ({container.llm_client.model})"

        if container.vector_store is not None:
            try:
                count = await container.vector_store.count()
                checks["vector_store"] = f"milvus ({count} chunks)"
            except ApplicationException as e:
                checks["vector_store"] = f"error: {e.message}"

        manager = container.policy_manager
        path = manager.path
        state = "loaded" if path is not None and path.exists() else "defaults"
        checks["routing_policy"] = f"{state} (watching)" if manager.is_watching else state

    healthy = checks["database"] == "connected" and container is not None
    return {
        "status": "healthy" if healthy else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks,
        "requests": request_stats.snapshot() if request_stats is not None else {},
    }


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "service": "SupportFlow",
        "version": settings.app_version,
        "architecture": "Clean Architecture / Modular Monolith",
        "docs": "/docs",
        "health": "/health",
        "modules": {
            "knowledge": {"prefix": "/knowledge"},
            "support": {"prefix": "/support"},
        }
    }


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "supportflow.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
