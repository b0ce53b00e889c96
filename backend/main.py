from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from api import community, courses, points, users
from core.config import settings
from core.database import engine, get_db, init_models
from core.logging import configure_logging, get_logger
from core.middleware import RequestLoggingMiddleware, SlowRequestMiddleware
from core.errors import register_error_handlers

# Initialize logging before anything else
configure_logging(
    level=settings.LOG_LEVEL,
    json_logs=settings.LOG_JSON,
    log_sql=settings.LOG_SQL,
)

log = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info("startup", message="Cohort API starting up")

    try:
        await init_models()
    except (SQLAlchemyError, OSError) as e:
        log.warning("database_unavailable", error=str(e), message="App starting without database")

    yield

    log.info("shutdown", message="Cohort API shutting down")
    await engine.dispose()


app = FastAPI(
    title="Cohort API",
    description="Community learning platform: courses with progress tracking, a social feed, points and a leaderboard",
    version="0.1.0",
    lifespan=lifespan,
)

register_error_handlers(app)

# Middleware (order matters: last added = first executed)
app.add_middleware(SlowRequestMiddleware, slow_threshold_ms=1000)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(users.router, prefix="/api/users", tags=["users"])
app.include_router(courses.router, prefix="/api/courses", tags=["courses"])
app.include_router(community.router, prefix="/api/posts", tags=["community"])
app.include_router(points.router, prefix="/api", tags=["points"])


@app.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    """Liveness plus a round trip to the database."""
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        log.warning("health_database_unreachable", error_type=type(e).__name__)
        return JSONResponse(status_code=503, content={"status": "degraded", "database": "unreachable"})
    return {"status": "healthy", "database": "ok", "version": app.version}


if __name__ == "__main__":
    import uvicorn

    log.info("server_config", host=settings.BACKEND_HOST, port=settings.BACKEND_PORT, debug=settings.APP_DEBUG)
    uvicorn.run(
        "main:app",
        host=settings.BACKEND_HOST,
        port=settings.BACKEND_PORT,
        reload=settings.APP_DEBUG,
        log_config=None,  # uvicorn logs flow through configure_logging
    )
