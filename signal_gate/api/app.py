"""Main FastAPI application

Creates and configures the FastAPI application with all endpoints,
middleware and error handling for the signal platform.
"""

import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from signal_gate import __version__
from signal_gate.api.admin import router as admin_router
from signal_gate.api.auth import router as auth_router
from signal_gate.api.chat import router as chat_router
from signal_gate.api.signal_endpoints import router as signal_router
from signal_gate.api.users import router as users_router
from signal_gate.config.settings import Settings, get_settings
from signal_gate.exceptions import InternalError, SignalGateError, ValidationError
from signal_gate.services.container import ServiceContainer
from signal_gate.utils.logging import get_logger, setup_logging
from signal_gate.utils.monitoring import get_metrics_collector, setup_monitoring

logger = get_logger(__name__)

HTTP_ERROR_CODES = {
    400: "VALIDATION_ERROR",
    401: "AUTH_ERROR",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    503: "SERVICE_UNAVAILABLE",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    settings: Settings = app.state.settings
    services: ServiceContainer = app.state.services

    # Startup
    logger.info("Starting Signal Gate API")
    setup_monitoring(settings.monitoring)
    await services.startup()
    logger.info(f"Signal Gate API started on {settings.api.host}:{settings.api.port}")

    yield

    # Shutdown
    logger.info("Shutting down Signal Gate API")
    await services.shutdown()
    logger.info("Signal Gate API shutdown complete")


def create_app(settings: Optional[Settings] = None, services: Optional[ServiceContainer] = None) -> FastAPI:
    """Create and configure FastAPI application"""
    settings = settings or get_settings()
    services = services or ServiceContainer.from_settings(settings)

    app = FastAPI(
        title="Signal Gate API",
        description="""
        Subscription-gated trading signal distribution.

        Features:
        - Email-verified registration and JWT sessions
        - Admin signal lifecycle with approval notifications
        - Subscription-gated signal feed
        - AI coach chat
        """,
        version=__version__,
        docs_url="/docs" if settings.api.debug else None,
        redoc_url="/redoc" if settings.api.debug else None,
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.services = services

    # Add middleware
    setup_middleware(app, settings)

    # Add exception handlers
    setup_exception_handlers(app)

    # Include routers
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(signal_router)
    app.include_router(admin_router)
    app.include_router(chat_router)

    @app.get("/")
    async def root() -> Dict[str, Any]:
        """Root endpoint with API information"""
        return {
            "name": "Signal Gate API",
            "version": __version__,
            "docs_url": "/docs" if settings.api.debug else None,
            "health_url": "/health",
        }

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {
            "status": "healthy",
            "version": __version__,
            "pending_notifications": services.notifier.pending,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return app


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Setup middleware for the FastAPI app"""

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials="*" not in settings.api.cors_origins,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["*"],
    )

    # Request ID and timing middleware
    @app.middleware("http")
    async def add_request_id_and_timing(request: Request, call_next):
        """Add request ID and measure request timing"""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception as e:
            metrics = get_metrics_collector()
            metrics.increment_counter(
                "http_requests_errors_total",
                tags={
                    "method": request.method,
                    "error_type": type(e).__name__
                }
            )
            raise

        process_time = time.time() - start_time
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(process_time)

        route = request.scope.get("route")
        metrics = get_metrics_collector()
        metrics.record_histogram(
            "http_request_duration_seconds",
            process_time,
            {
                "method": request.method,
                "endpoint": getattr(route, "path", "unmatched"),
                "status_code": str(response.status_code)
            }
        )
        return response


def _error_response(request: Request, error: SignalGateError) -> JSONResponse:
    content = error.to_dict()
    content["error"]["request_id"] = getattr(request.state, "request_id", None)
    headers = {"WWW-Authenticate": "Bearer"} if error.status_code == 401 else None
    return JSONResponse(status_code=error.status_code, content=content, headers=headers)


def setup_exception_handlers(app: FastAPI) -> None:
    """Setup custom exception handlers"""

    @app.exception_handler(SignalGateError)
    async def platform_exception_handler(request: Request, exc: SignalGateError):
        """Render taxonomy errors"""
        if exc.status_code >= 500:
            logger.error(f"{exc.error_code} for {request.method} {request.url.path}: {exc.message}")
        else:
            logger.info(f"{exc.error_code} for {request.method} {request.url.path}: {exc.message}")
        return _error_response(request, exc)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle request validation errors"""
        logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
        errors = [
            {
                "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
                "message": err.get("msg", ""),
            }
            for err in exc.errors()
        ]
        return _error_response(request, ValidationError("Invalid request", details={"errors": errors}))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle HTTP exceptions"""
        error = SignalGateError(str(exc.detail))
        error.status_code = exc.status_code
        error.error_code = HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
        return _error_response(request, error)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle general exceptions"""
        logger.error(f"Unhandled error for {request.method} {request.url.path}: {exc}", exc_info=True)
        return _error_response(request, InternalError())


def run_server(settings: Optional[Settings] = None) -> None:
    """Run the FastAPI server"""
    settings = settings or get_settings()

    # Setup logging
    setup_logging(settings.logging)

    # Refuse unsafe settings before binding the port
    settings.validate()

    uvicorn.run(
        create_app(settings),
        host=settings.api.host,
        port=settings.api.port,
        log_level="info" if not settings.api.debug else "debug",
        access_log=True
    )
