"""Fee ledger FastAPI application."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from src.core.config import settings
from src.core.exceptions import AppException
from src.core.exceptions.handlers import (
    app_exception_handler,
    http_exception_handler,
    sqlalchemy_db_error_handler,
    validation_exception_handler,
)
from src.core.logging_config import setup_logging
from src.modules.additional_fees.router import router as additional_fees_router
from src.modules.fee_assignments.router import router as fee_assignments_router
from src.modules.fee_balances.router import router as fee_balances_router
from src.modules.fee_catalog.router import router as fee_catalog_router
from src.modules.legacy_migration.router import router as legacy_migration_router
from src.modules.reconciliation.router import router as reconciliation_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    setup_logging(settings.log_level)
    logger.info("Fee ledger starting (env=%s)", settings.app_env)
    yield
    # Shutdown


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title="Fee Ledger",
        description="Student fee ledger and payment reconciliation",
        version="0.1.0",
        debug=settings.debug,
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_db_error_handler)

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    # Routers
    app.include_router(fee_catalog_router, prefix="/api/v1")
    app.include_router(fee_assignments_router, prefix="/api/v1")
    app.include_router(fee_balances_router, prefix="/api/v1")
    app.include_router(additional_fees_router, prefix="/api/v1")
    app.include_router(reconciliation_router, prefix="/api/v1")
    app.include_router(legacy_migration_router, prefix="/api/v1")

    return app


app = create_app()
