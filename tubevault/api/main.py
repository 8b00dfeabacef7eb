"""
FastAPI application for the acquisition service.
Provides the REST endpoints, the WebSocket push channel, health and metrics.
"""

import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..config import settings
from ..config.logging_config import get_logger, setup_logging
from ..services.acquisition_service import AcquisitionService
from ..utils.exceptions import AcquisitionError, AgeRestrictedError, ConflictError
from .middleware.logging import LoggingMiddleware
from .routes import acquire_router, health_router, metrics_router
from .websockets.progress import router as websocket_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run the acquisition service for the lifetime of the app.

    A service that was already started by the caller is left alone on both
    ends.
    """
    service: Optional[AcquisitionService] = getattr(app.state, "service", None)
    if service is None:
        setup_logging()
        service = AcquisitionService()
        app.state.service = service

    owns_service = service.started_at is None
    if owns_service:
        try:
            await service.start()
        except Exception as e:
            logger.error(f"Acquisition service failed to start: {e}", exc_info=True)
            raise
    logger.info("API ready", extra={"owns_service": owns_service, "api_prefix": settings.API_PREFIX})

    yield

    if owns_service:
        try:
            await service.stop()
        except Exception as e:
            logger.error(f"Acquisition service did not stop cleanly: {e}", exc_info=True)
    logger.info("API stopped")


def create_app(service: Optional[AcquisitionService] = None) -> FastAPI:
    """Create and configure FastAPI application.

    A prebuilt ``service`` is used as is; otherwise the lifespan creates one
    from the global settings.
    """
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Media acquisition service: fetch, track and catalogue online videos",
        docs_url=settings.API_DOCS_URL if settings.DEBUG else None,
        redoc_url=settings.API_REDOC_URL if settings.DEBUG else None,
        openapi_url=f"{settings.API_PREFIX}/openapi.json" if settings.DEBUG else None,
        lifespan=lifespan
    )
    if service is not None:
        app.state.service = service

    setup_middleware(app)
    setup_routes(app)
    setup_exception_handlers(app)

    return app


def setup_middleware(app: FastAPI):
    # added last runs first: requests are logged before CORS handling
    cors = settings.cors_config
    if settings.DEBUG:
        cors["allow_origins"] = ["*"]
    app.add_middleware(CORSMiddleware, **cors)
    app.add_middleware(LoggingMiddleware)


def setup_routes(app: FastAPI):
    app.include_router(
        acquire_router,
        prefix=f"{settings.API_PREFIX}/acquire",
        tags=["Acquisition"]
    )
    app.include_router(health_router, prefix="/health", tags=["Health Check"])
    if settings.ENABLE_METRICS:
        app.include_router(metrics_router, prefix="/metrics", tags=["Metrics"])
    app.include_router(websocket_router, tags=["WebSocket"])

    @app.get("/")
    async def root(request: Request):
        service = request.app.state.service
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "api": f"{settings.API_PREFIX}/acquire",
            "push": "/ws",
            "maxConcurrent": service.settings.MAX_CONCURRENT_ACQUISITIONS,
        }

    @app.get("/ping")
    async def ping():
        """Liveness check; touches nothing."""
        return {"status": "ok", "timestamp": time.time()}


def _error_body(request: Request, status_code: int, error: Any, **extra: Any) -> Dict[str, Any]:
    return {
        "error": error,
        "status_code": status_code,
        "timestamp": time.time(),
        "path": str(request.url.path),
        **extra,
    }


def setup_exception_handlers(app: FastAPI):
    """Render every error as the JSON body produced by ``_error_body``."""

    @app.exception_handler(AcquisitionError)
    async def acquisition_exception_handler(request: Request, exc: AcquisitionError):
        """Domain errors carry their own HTTP status."""
        status_code = exc.http_status
        extra: Dict[str, Any] = {"errorCode": exc.error_code}
        if isinstance(exc, ConflictError) and exc.existing is not None:
            extra["job"] = exc.existing
        if isinstance(exc, AgeRestrictedError):
            extra["isAgeRestricted"] = True
        if status_code >= 500:
            logger.error(f"Request failed: {exc}", extra={"path": str(request.url.path)})
        else:
            logger.info(f"Request rejected: {exc.message}", extra={"path": str(request.url.path)})
        return JSONResponse(
            status_code=status_code,
            content=_error_body(request, status_code, exc.message, **extra)
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        details = [
            {"field": ".".join(str(part) for part in err.get("loc", ())), "message": err.get("msg")}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content=_error_body(request, 400, "Invalid request", details=details)
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(request, exc.status_code, exc.detail)
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        # the id ties the client-visible 500 to the logged traceback
        error_id = uuid.uuid4().hex
        logger.error(
            f"Unhandled {type(exc).__name__} on {request.method} {request.url.path}: {exc}",
            exc_info=True,
            extra={
                "error_id": error_id,
                "path": str(request.url.path),
                "method": request.method
            }
        )

        return JSONResponse(
            status_code=500,
            content=_error_body(request, 500, "Internal server error", error_id=error_id)
        )


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tubevault.api.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG,
        log_level="info"
    )
