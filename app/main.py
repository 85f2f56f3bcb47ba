"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.db.database import init_db
from app.imports.errors import ImportPipelineError
from app.imports.router import router as imports_router

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


async def _import_pipeline_error_handler(request: Request, exc: ImportPipelineError) -> JSONResponse:
    logger.info(f"Import request rejected ({exc.status_code}): {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def register_exception_handlers(app: FastAPI) -> None:
    """Map domain errors onto HTTP responses.

    Everything else is left to FastAPI, so malformed request bodies still
    come back as its standard 422 validation errors.
    """
    app.add_exception_handler(ImportPipelineError, _import_pipeline_error_handler)


def create_app() -> FastAPI:
    """Build the application with its middleware, routers and error handlers."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Equipment registry for laboratory and facility inventories",
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.debug,
    )

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(imports_router, prefix="/api/equipment/import", tags=["imports"])

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "app": settings.app_name}

    register_exception_handlers(app)
    return app


app = create_app()
