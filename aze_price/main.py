"""
Main FastAPI application for AZE Price Service.
Includes lifespan management for the polling/cleanup trigger and service initialization.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
import time

from aze_price.core.config import settings
from aze_price.core.logging_config import setup_logging, create_logger
from aze_price.api.endpoints import router as price_router
from aze_price.api.schemas import ErrorResponse
from aze_price.services.pricing import PricingEngine

# Setup logging first
setup_logging()
logger = create_logger(__name__)


def create_app(pricing: Optional[PricingEngine] = None, run_scheduler: bool = True) -> FastAPI:
    """
    Build the FastAPI application around a pricing engine.

    Args:
        pricing: Engine to serve; built from settings when omitted
        run_scheduler: Start the polling and cleanup trigger during the lifespan
    """
    pricing = pricing or PricingEngine.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Lifespan context manager for FastAPI application.
        Handles startup and shutdown of the background trigger.
        """
        # Startup
        logger.info("Starting AZE Price Service", extra={
            "version": settings.app_version,
            "debug": settings.debug
        })

        try:
            await pricing.initialize()

            if run_scheduler:
                trigger = pricing.build_trigger(settings)
                await trigger.start()
                app.state.trigger = trigger

            app.state.startup_time = datetime.utcnow()
            logger.info("AZE Price Service started successfully")

        except Exception as e:
            logger.error("Failed to start AZE Price Service", extra={
                "error": str(e)
            })
            raise

        yield  # Application is running

        # Shutdown
        logger.info("Shutting down AZE Price Service")

        try:
            if app.state.trigger is not None:
                await app.state.trigger.shutdown()
                app.state.trigger = None

            await pricing.shutdown()

            logger.info("AZE Price Service shutdown completed")

        except Exception as e:
            logger.error("Error during service shutdown", extra={
                "error": str(e)
            })

    app = FastAPI(
        title=settings.app_name,
        description="BTC quote ingestion and AZE price history service",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan
    )
    app.state.pricing = pricing
    app.state.trigger = None
    app.state.startup_time = datetime.utcnow()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    # Request logging middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all HTTP requests and responses."""
        start_time = time.time()

        logger.info("Request received", extra={
            "method": request.method,
            "url": str(request.url),
            "client_ip": request.client.host if request.client else None,
            "user_agent": request.headers.get("user-agent")
        })

        try:
            response = await call_next(request)

            process_time = time.time() - start_time

            logger.info("Request completed", extra={
                "method": request.method,
                "url": str(request.url),
                "status_code": response.status_code,
                "process_time": round(process_time, 4)
            })

            response.headers["X-Process-Time"] = str(process_time)

            return response

        except Exception as e:
            process_time = time.time() - start_time

            logger.error("Request failed", extra={
                "method": request.method,
                "url": str(request.url),
                "error": str(e),
                "process_time": round(process_time, 4)
            })

            return JSONResponse(
                status_code=500,
                content=ErrorResponse(
                    error="Internal server error",
                    error_code="INTERNAL_ERROR"
                ).model_dump(mode="json")
            )

    # Exception handlers
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle HTTP exceptions with structured error response."""
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=str(exc.detail),
                error_code="NOT_FOUND" if exc.status_code == 404 else f"HTTP_{exc.status_code}",
                details={
                    "path": request.url.path,
                    "method": request.method
                }
            ).model_dump(mode="json")
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions with structured error response."""
        logger.error("Unhandled exception in API endpoint", extra={
            "error": str(exc),
            "path": request.url.path,
            "method": request.method
        })

        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="Internal server error",
                error_code="INTERNAL_ERROR",
                details={"message": "An unexpected error occurred"}
            ).model_dump(mode="json")
        )

    app.include_router(price_router, tags=["Price API"])

    @app.get("/", include_in_schema=False)
    async def root():
        """Root endpoint with service information."""
        return {
            "service": settings.app_name,
            "version": settings.app_version,
            "status": "running",
            "docs_url": "/docs" if settings.debug else "disabled",
            "timestamp": datetime.utcnow()
        }

    @app.get("/healthz", include_in_schema=False)
    async def healthz():
        """Liveness check: the polling trigger must be running."""
        trigger = app.state.trigger
        tasks_running = trigger is not None and trigger.is_running()

        if tasks_running:
            return {"status": "healthy"}
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "tasks": tasks_running}
        )

    @app.get("/info", include_in_schema=False)
    async def info():
        """Get detailed application information."""
        trigger = app.state.trigger
        uptime_seconds = (datetime.utcnow() - app.state.startup_time).total_seconds()

        return {
            "service": {
                "name": settings.app_name,
                "version": settings.app_version,
                "debug": settings.debug,
                "uptime_seconds": uptime_seconds,
                "startup_time": app.state.startup_time
            },
            "ingestion": {
                "provider": pricing.provider.name,
                "polling_interval_ms": settings.polling_interval_ms,
                "btc_divisor": settings.btc_divisor,
                **pricing.ingestor.get_status()
            },
            "background_tasks": {
                "running": trigger is not None and trigger.is_running(),
                "tasks": trigger.get_status() if trigger is not None else {}
            },
            "retention_days": pricing.retention.horizon.days,
            "timestamp": datetime.utcnow()
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "aze_price.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=True
    )
