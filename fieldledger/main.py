from fastapi import FastAPI, Request, Depends
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import Response
from starlette.middleware.base import BaseHTTPMiddleware
from fieldledger.api import crews, finance, incassations, orders
from fieldledger.core.config import settings
from fieldledger.core.exceptions import (
    LedgerError, ValidationError, NotFoundError, ConflictError, AuthorizationError, PersistenceError,
)
from fieldledger.core.redis import init_redis, close_redis, redis_alive
from fieldledger.core.metrics import request_count, request_duration, db_connected, redis_connected, get_metrics_text
from fieldledger.db.session import get_db
from fieldledger.services import notifier
import time
import logging

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

ERROR_STATUS = (
    (ValidationError, 422),
    (NotFoundError, 404),
    (ConflictError, 409),
    (AuthorizationError, 403),
    (PersistenceError, 503),
)


def _endpoint(request: Request) -> str:
    # label by route template so /orders/1 and /orders/2 share a series
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            endpoint = _endpoint(request)
            request_count.labels(
                method=request.method,
                endpoint=endpoint,
                status=status
            ).inc()
            request_duration.labels(
                method=request.method,
                endpoint=endpoint
            ).observe(time.time() - start_time)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting...")

    logger.info("Initializing Redis connection...")
    try:
        await init_redis()
        redis_connected.set(1)
        logger.info("Redis connected")
    except Exception as e:
        logger.error(f"Redis connection failed: {e}")
        redis_connected.set(0)

    yield

    logger.info("Application shutting down...")
    await notifier.drain()
    await close_redis()
    redis_connected.set(0)
    logger.info("Shutdown complete")


app = FastAPI(
    title=settings.API_TITLE,
    description=settings.API_DESCRIPTION,
    version=settings.API_VERSION,
    lifespan=lifespan
)

app.add_middleware(MetricsMiddleware)

app.include_router(orders.router)
app.include_router(finance.router)
app.include_router(incassations.router)
app.include_router(crews.router)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    status_code = 400
    for error_class, code in ERROR_STATUS:
        if isinstance(exc, error_class):
            status_code = code
            break
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected ({exc.code}): {exc.message}")
    return JSONResponse(status_code=status_code, content={"detail": exc.message, "error": exc.code})


@app.get("/metrics", tags=["monitoring"])
async def metrics():
    return Response(
        content=get_metrics_text(),
        media_type="text/plain; version=0.0.4; charset=utf-8"
    )


@app.get("/health", tags=["monitoring"])
async def health_check(db: AsyncSession = Depends(get_db)):
    redis_healthy = await redis_alive()
    redis_connected.set(1 if redis_healthy else 0)

    try:
        await db.execute(text("SELECT 1"))
        db_healthy = True
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        db_healthy = False
    db_connected.set(1 if db_healthy else 0)

    return {
        "status": "healthy" if db_healthy else "degraded",
        "service": settings.API_TITLE,
        "version": settings.API_VERSION,
        "dependencies": {
            "redis": "connected" if redis_healthy else "disconnected",
            "database": "connected" if db_healthy else "disconnected"
        }
    }


@app.get("/", tags=["root"])
async def root():
    return {
        "message": settings.API_TITLE,
        "version": settings.API_VERSION,
        "docs": "/docs",
        "health": "/health",
        "metrics": "/metrics"
    }
