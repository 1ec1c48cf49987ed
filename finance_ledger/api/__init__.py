"""
Finance Ledger API Application Factory
"""

from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from .auth import LedgerSystem
from .errors import ledger_error_handler, request_validation_handler, unhandled_error_handler
from .users import router as users_router
from .transfers import router as transfers_router
from .expenses import router as expenses_router
from .. import __version__
from ..config import get_config
from ..errors import LedgerError
from ..logging_config import get_logger, setup_logging


logger = get_logger(__name__)


def create_app(system: Optional[LedgerSystem] = None) -> FastAPI:
    """
    Create and configure the FastAPI application

    Args:
        system: Pre-built ledger system (tests). When omitted, one is built
            from configuration at startup and closed at shutdown.
    """
    config = system.config if system else get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(level=config.log_level, log_format=config.log_format,
                      log_file=config.log_file)
        if config.uses_default_secret:
            logger.warning("LEDGER_JWT_SECRET is not set; using the insecure default signing secret")
        if not config.auth_enabled:
            logger.warning("Authentication is disabled; every route trusts the caller")

        owned = app.state.ledger_system is None
        if owned:
            app.state.ledger_system = LedgerSystem(config)
        logger.info("Finance ledger started")
        try:
            yield
        finally:
            if owned:
                app.state.ledger_system.close()
                app.state.ledger_system = None
            logger.info("Finance ledger stopped")

    app = FastAPI(
        title="Finance Ledger API",
        description="Personal finance backend with peer-to-peer transfers and expense logging",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.ledger_system = system

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(LedgerError, ledger_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(users_router, tags=["Users"])
    app.include_router(transfers_router, tags=["Transfers"])
    app.include_router(expenses_router, tags=["Expenses"])

    @app.get("/health")
    def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "finance_ledger_api",
            "version": __version__
        }

    @app.get("/")
    def get_api_info():
        """Get API information"""
        return {
            "name": "Finance Ledger API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "signup": "/signup",
                "login": "/login",
                "transfer": "/transfer",
                "transactions": "/api/transactions",
                "expenses": "/api/expenses",
                "expense-types": "/api/expense-types",
                "settings": "/user/settings"
            }
        }

    return app


# Application instance for ASGI servers; storage opens at startup
app = create_app()


def run_server(host: Optional[str] = None, port: Optional[int] = None, debug: bool = False):
    """Run the FastAPI server"""
    config = get_config()
    uvicorn.run(
        "finance_ledger.api:app",
        host=host or config.api_host,
        port=port or config.api_port,
        reload=debug,
        log_level=config.log_level.lower()
    )
