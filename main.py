"""Main FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from giftmatch.api.routes import chat, context, events, occasions, recommendations
from giftmatch.config import get_settings
from giftmatch.core.langfuse_client import init_langfuse

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    langfuse = init_langfuse()
    yield
    langfuse.flush()


# Create FastAPI application
app = FastAPI(
    title="Giftmatch - Gift Recommendation API",
    description="Conversational gift recommendations with readiness gating and hybrid ranking",
    version="0.1.0",
    debug=settings.debug,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
def read_root():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "Giftmatch Gift Recommendation API",
        "version": "0.1.0",
    }


@app.get("/health")
def health_check():
    """Detailed health check: database and Redis connectivity."""
    from giftmatch.core.database import check_database
    from giftmatch.core.redis_client import redis_client

    try:
        database = check_database()
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        database = {"status": "error", "error": str(e)}

    try:
        redis_client.ping()
        redis_status = {"status": "connected"}
    except Exception as e:
        logger.warning(f"Redis health check failed: {e}")
        redis_status = {"status": "error", "error": str(e)}

    healthy = database["status"] == "connected" and redis_status["status"] == "connected"
    return {
        "status": "healthy" if healthy else "degraded",
        "environment": settings.environment,
        "database": database,
        "redis": redis_status,
        "vector_search": settings.vector_search_enabled,
        "rerank": settings.rerank_enabled,
    }


app.include_router(chat.router, prefix="/api", tags=["chat"])
app.include_router(recommendations.router, prefix="/api", tags=["recommendations"])
app.include_router(context.router, prefix="/api", tags=["context"])
app.include_router(occasions.router, prefix="/api", tags=["occasions"])
app.include_router(events.router, prefix="/api", tags=["events"])
