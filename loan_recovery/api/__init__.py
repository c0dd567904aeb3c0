"""
Loan Recovery API Application Factory
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from .. import __version__
from ..config import get_config
from ..logging_config import setup_logging
from .imports import router as imports_router
from .cases import router as cases_router
from .calls import router as calls_router
from .directory import router as directory_router


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    config = get_config()
    setup_logging(config.log_level, fmt=config.log_format, log_file=config.log_file)

    app = FastAPI(
        title="Loan Recovery Case API",
        description="Case lifecycle, bulk reconciliation, call logging and payment ledger",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(imports_router, prefix="/imports", tags=["Imports"])
    app.include_router(cases_router, prefix="/cases", tags=["Cases"])
    app.include_router(calls_router, prefix="/cases", tags=["Calls"])
    app.include_router(directory_router, prefix="/admin", tags=["Directory"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "loan_recovery_api",
            "version": __version__
        }

    return app


def run_server(host: str = "0.0.0.0", port: int = 8090, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "loan_recovery.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )
