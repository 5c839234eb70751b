"""
Fire-Safety Planning API - Main Application

Startup order: tables, store registry (first snapshots), websocket
fan-out of store snapshots, renewal reconciler. Shutdown reverses it.

SECURITY FEATURES:
- Conditional API docs (disabled in production by default)
- Structured logging without sensitive data
- Production-hardened configuration
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
import asyncio
import logging

from app.api.v2.router import api_router
from app.config import settings
from app.database import init_db
from app.exceptions import APIException, SchedulingError, create_exception_handlers
from app.middleware.correlation import CorrelationIdMiddleware, CorrelationLogFilter
# Import all models to register them with SQLAlchemy metadata before init_db()
from app.models import Visit, Contract, Company, Branch, VisitLog  # noqa: F401
from app.services.weekly_planning import PlanningSession
from app.services.websocket_manager import forward_snapshots
from app.store.registry import StoreRegistry
from app.tasks.renewal_reconciler import start_renewal_reconciler, stop_renewal_reconciler

VERSION = "1.0.0"

# Configure secure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] [%(actor_id)s] %(message)s",
)
for handler in logging.getLogger().handlers:
    handler.addFilter(CorrelationLogFilter())
logger = logging.getLogger(__name__)

# Collections pushed to websocket viewers
BROADCAST_COLLECTIONS = ("visits", "contracts")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("Starting Fire-Safety Planning API...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    # SECURITY: Don't log full database URL, just prefix
    if settings.DATABASE_URL:
        logger.info(f"Database URL prefix: {settings.DATABASE_URL[:30]}...")
    await init_db()
    logger.info("Database initialized successfully")

    registry = StoreRegistry()
    await registry.start()
    app.state.registry = registry
    app.state.planning_session = PlanningSession()

    forwarders = [
        asyncio.create_task(forward_snapshots(name, registry.streams[name]))
        for name in BROADCAST_COLLECTIONS
    ]
    start_renewal_reconciler(registry.contracts)

    yield

    # Shutdown
    logger.info("Shutting down Fire-Safety Planning API...")
    stop_renewal_reconciler()
    await registry.stop()
    for task in forwarders:
        task.cancel()
    await asyncio.gather(*forwarders, return_exceptions=True)


# SECURITY: Conditionally enable docs based on settings
docs_url = "/docs" if settings.DOCS_ENABLED else None
redoc_url = "/redoc" if settings.DOCS_ENABLED else None

app = FastAPI(
    title="Fire-Safety Planning API",
    description="Maintenance visit scheduling, weekly planning and contract renewal",
    version=VERSION,
    docs_url=docs_url,
    redoc_url=redoc_url,
    lifespan=lifespan,
)

# CORS middleware
# SECURITY: Restrict origins to known frontend URLs
allowed_origins = [settings.FRONTEND_URL]
if not settings.is_production:
    allowed_origins.extend([
        "http://localhost:5173",  # Vite dev server
        "http://localhost:3000",  # Alternative dev port
    ])

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-ID", "X-Request-ID"],
)
app.add_middleware(CorrelationIdMiddleware)

handlers = create_exception_handlers(allowed_origins)
app.add_exception_handler(APIException, handlers["api"])
app.add_exception_handler(SchedulingError, handlers["domain"])
app.add_exception_handler(StarletteHTTPException, handlers["http"])
app.add_exception_handler(RequestValidationError, handlers["validation"])
app.add_exception_handler(Exception, handlers["generic"])

# Include routers
app.include_router(api_router, prefix="/api/v2")


@app.get("/")
async def root():
    """Root endpoint - API info."""
    response = {
        "name": "Fire-Safety Planning API",
        "version": VERSION,
        "health": "/health",
    }
    # Only include docs link if enabled
    if settings.DOCS_ENABLED:
        response["docs"] = "/docs"
    return response


@app.get("/health")
async def health_check():
    """Health check endpoint, including store subscription state."""
    registry = getattr(app.state, "registry", None)
    stores = (
        {name: store.state.value for name, store in registry.stores.items()}
        if registry is not None
        else {}
    )
    return {
        "status": "healthy",
        "version": VERSION,
        "environment": settings.ENVIRONMENT,
        "stores": stores,
    }


# For running with uvicorn directly (development only)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=5001,
        reload=settings.DEBUG,
    )
