from fastapi import FastAPI
from fastapi import HTTPException
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from typing import Optional
import logging

from .config.settings import Settings, settings as default_settings
from .context import AppContext, build_context
from .api.routes import account, admin, public
from .middleware.logging import log_requests
from .utils.exceptions import (
    licensegate_exception_handler,
    http_exception_handler,
    LicenseGateException
)
from .utils.logging import configure_logging

logger = logging.getLogger(__name__)


def create_app(config: Optional[Settings] = None, context: Optional[AppContext] = None) -> FastAPI:
    """Build the API around an application context.

    Without a context one is built from ``config`` (or the global settings).
    Tables are created on startup.
    """
    if context is None:
        context = build_context(config or default_settings)
    config = context.settings
    configure_logging(config, context.audit)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Initialize services on startup"""
        context.init_db()
        logger.info("%s %s started (%s)", config.PROJECT_NAME, config.VERSION, config.ENVIRONMENT)
        yield
        context.dispose()

    # Create FastAPI app
    app = FastAPI(
        title=config.PROJECT_NAME,
        version=config.VERSION,
        openapi_url=f"{config.API_V1_STR}/openapi.json",
        docs_url="/docs" if config.ENABLE_DOCS else None,
        redoc_url="/redoc" if config.ENABLE_DOCS else None,
        lifespan=lifespan,
    )
    app.state.context = context

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=config.ALLOWED_METHODS,
        allow_headers=config.ALLOWED_HEADERS,
    )

    # Add logging middleware
    app.middleware("http")(log_requests)

    # Exception handlers
    app.add_exception_handler(LicenseGateException, licensegate_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)

    # Include routers
    app.include_router(public.router, prefix=config.API_V1_STR, tags=["auth"])
    app.include_router(account.router, prefix=f"{config.API_V1_STR}/account", tags=["account"])
    app.include_router(admin.router, prefix=f"{config.API_V1_STR}/admin", tags=["admin"])

    @app.get("/")
    async def root():
        """Root endpoint to verify API is running"""
        return {
            "name": config.PROJECT_NAME,
            "version": config.VERSION,
            "status": "operational",
            "environment": config.ENVIRONMENT
        }

    return app


def get_app() -> FastAPI:
    """Factory for ``uvicorn --factory licensegate.main:get_app``"""
    return create_app()
