"""
Admissions registry service.

`create_app()` wires the students API, middleware and error handlers; the
module-level `app` is what uvicorn serves.
"""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from admissions.api.v1.router import api_router
from admissions.config import settings
from admissions.core.logging import get_logger, setup_logging
from admissions.core.middleware import (
    REQUEST_ID_HEADER,
    NoStoreMiddleware,
    RequestIDMiddleware,
    RequestTimingMiddleware,
)
from admissions.core.rate_limit import limiter
from admissions.database import close_db, init_db

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Admissions registry starting",
        extra={"environment": settings.ENVIRONMENT, "version": settings.APP_VERSION},
    )
    # Tables are created here only in development; migrations own the schema elsewhere
    if settings.is_development:
        await init_db()
        logger.info("Development schema ready")
    yield
    await close_db()
    logger.info("Admissions registry stopped")


def _error_response(request: Request, status_code: int, detail: Any) -> JSONResponse:
    """Error body carrying the request id so operators can find the matching log line."""
    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "request_id": getattr(request.state, "request_id", None)},
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = jsonable_encoder(exc.errors())
    logger.warning(
        "Rejected malformed request",
        extra={
            "path": request.url.path,
            "method": request.method,
            "errors": errors,
            "correlation_id": getattr(request.state, "request_id", None),
        },
    )
    return _error_response(request, status.HTTP_422_UNPROCESSABLE_ENTITY, errors)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Request failed",
        extra={
            "path": request.url.path,
            "method": request.method,
            "error": str(exc),
            "correlation_id": getattr(request.state, "request_id", None),
        },
        exc_info=True,
    )
    return _error_response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Student admissions registry: access numbers, admission ids and duplicate prevention",
        lifespan=lifespan,
    )

    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    application.add_exception_handler(RequestValidationError, validation_exception_handler)
    application.add_exception_handler(Exception, unhandled_exception_handler)

    # Added last runs first: the request id exists before timing and cache headers
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=settings.ALLOWED_METHODS,
        allow_headers=[settings.ALLOWED_HEADERS],
        expose_headers=[REQUEST_ID_HEADER, "X-Process-Time"],
    )
    application.add_middleware(NoStoreMiddleware)
    application.add_middleware(RequestTimingMiddleware)
    application.add_middleware(RequestIDMiddleware)

    application.include_router(api_router, prefix=settings.API_V1_PREFIX)

    @application.get("/health", tags=["Health"])
    async def health_check():
        return {
            "status": "healthy",
            "app_name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
        }

    @application.get("/", tags=["Root"])
    async def root():
        """Where to find the registry's endpoints"""
        return {
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "students": f"{settings.API_V1_PREFIX}/students",
            "docs": application.docs_url,
            "health": "/health",
        }

    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "admissions.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
