"""FastAPI application for the supply control service."""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from supplycontrol.api.routes import router as api_router
from supplycontrol.config import settings
from supplycontrol.errors import SupplyControlError
from supplycontrol.service import SupplyControlService

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def create_app(
    service: SupplyControlService | None = None,
    api_tokens: dict[str, str] | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        service: Service to expose (defaults to one built from settings)
        api_tokens: Bearer token to identity map (defaults to settings.api_tokens)
    """
    service = service or SupplyControlService()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan events."""
        logger.info("Starting supply control API...")
        service.start()
        yield
        logger.info("Shutting down supply control API...")
        service.stop()

    app = FastAPI(
        title="Supply Control",
        description="Rate-limited mint and burn authorization for supply controllers",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.service = service
    app.state.api_tokens = api_tokens if api_tokens is not None else dict(settings.api_tokens)

    if not app.state.api_tokens:
        logger.warning("No API tokens configured, every request will be rejected")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request timing middleware
    @app.middleware("http")
    async def add_timing_header(request: Request, call_next):
        start_time = time.perf_counter()
        response = await call_next(request)
        process_time = (time.perf_counter() - start_time) * 1000
        response.headers["X-Process-Time-Ms"] = f"{process_time:.2f}"
        return response

    @app.exception_handler(SupplyControlError)
    async def supply_control_error_handler(request: Request, exc: SupplyControlError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"error": "invalid_value", "message": str(exc)})

    app.include_router(api_router, prefix="/v1")

    @app.get("/health")
    def health_check():
        database_ok = service.db_manager.health_check()
        return {
            "status": "healthy" if database_ok else "degraded",
            "database": database_ok,
            "controllers": len(service.registry),
            "version": VERSION,
        }

    @app.get("/")
    def root():
        return {
            "name": "Supply Control",
            "version": VERSION,
            "docs": "/docs",
            "openapi": "/openapi.json",
        }

    return app


# Create app instance
app = create_app()
