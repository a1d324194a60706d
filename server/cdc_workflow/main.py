"""CDC Travel booking workflow service: application factory and ASGI entry point."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from .core.config import settings
from .core.database import check_db, close_db, engine, init_db
from .core.exceptions import (
    ProblemDetailsException,
    generic_exception_handler,
    problem_details_handler,
    request_validation_handler,
)
from .core.middleware import setup_middleware
from .core.observability import (
    SERVICE_NAME,
    SERVICE_VERSION,
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_metrics,
    setup_structured_logging,
    setup_tracing,
)
from .core.rate_limit import close_rate_limiter
from .routers import booking, collaboration, metrics

setup_structured_logging()

# stdlib loggers (uvicorn, sqlalchemy, our modules) share one format
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

API_PREFIXES = {
    "bookings": "/v1/bookings",
    "collaborations": "/v1/collaborations",
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Wire observability and the booking store on startup, release the pool on shutdown."""
    logger.info(
        "Booking workflow service starting",
        extra={"environment": settings.environment, "debug": settings.debug},
    )

    setup_tracing()
    setup_metrics()
    instrument_sqlalchemy(engine)
    await init_db()
    logger.info("Booking store ready")

    yield

    try:
        await close_rate_limiter()
    except RedisError as e:
        logger.error("Closing the rate limiter failed", extra={"error": str(e)})
    try:
        await close_db()
    except SQLAlchemyError as e:
        logger.error("Closing the booking store failed", extra={"error": str(e)})
    logger.info("Booking workflow service stopped")


def _register_health_routes(app: FastAPI) -> None:
    """Liveness, readiness and service description, outside the /v1 surface."""

    @app.get("/health", tags=["Health"], summary="Liveness check", response_model=dict)
    async def health_check():
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "environment": settings.environment,
        }

    @app.get("/ready", tags=["Health"], summary="Readiness check", response_model=dict)
    async def readiness_check():
        """Ready once the booking store answers a trivial query."""
        try:
            await check_db()
        except (SQLAlchemyError, OSError) as e:
            logger.warning("Booking store unreachable", extra={"error": str(e)})
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={
                    "status": "not_ready",
                    "service": SERVICE_NAME,
                    "checks": {"database": "unavailable"},
                },
            )
        return {"status": "ready", "service": SERVICE_NAME, "checks": {"database": "ok"}}

    @app.get("/info", tags=["Info"], summary="Service description", response_model=dict)
    async def service_info():
        return {
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "description": "Booking status workflow and cross-team collaboration",
            "environment": settings.environment,
            "debug": settings.debug,
            "features": {
                "authentication": True,
                "rate_limiting": True,
                "distributed_rate_limiting": bool(settings.redis_url),
                "tracing": True,
                "problem_details": True,
                "workflow_history": False,
            },
            "endpoints": {
                **API_PREFIXES,
                "health": "/health",
                "readiness": "/ready",
                "metrics": "/metrics",
                "docs": "/docs" if settings.debug else None,
            },
        }


def create_app() -> FastAPI:
    """Build the API; docs are only served in development."""
    app = FastAPI(
        title="CDC Travel Booking Workflow API",
        description="Booking status workflow and cross-team collaboration for the AIR and CINT departments",
        version=SERVICE_VERSION,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After", "traceparent", "tracestate"],
    )
    setup_middleware(app, enable_logging=True)
    instrument_fastapi(app)

    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    _register_health_routes(app)
    for module in (booking, collaboration, metrics):
        app.include_router(module.router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "cdc_workflow.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
