"""
FastAPI application exposing manual workflow runs.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..core.config import get_settings
from ..core.logging_config import setup_logging
from ..engine.events import InMemoryEventBus
from ..engine.workflow_executor import WorkflowExecutor
from ..models.database import get_engine, init_db
from ..services.execution_repository import ExecutionRepository
from ..services.execution_service import ExecutionService
from .v1.executions import router as executions_router

logger = logging.getLogger(__name__)


def build_execution_service() -> ExecutionService:
    repository = ExecutionRepository()
    executor = WorkflowExecutor(repository=repository, event_publisher=InMemoryEventBus())
    return ExecutionService(repository=repository, executor=executor)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan events."""
    logger.info("🚀 Starting Payflow Engine API...")

    if getattr(app.state, "execution_service", None) is None:
        init_db(get_engine())
        app.state.execution_service = build_execution_service()
        logger.info("✅ Database ready")

    yield

    service: ExecutionService = app.state.execution_service
    if service.running_count:
        logger.info(f"Waiting for {service.running_count} running execution(s)")
        await service.wait_for_all()
    await service.executor.cache.close()
    logger.info("🛑 Shutting down Payflow Engine API...")


def create_app(execution_service: Optional[ExecutionService] = None) -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title="Payflow Engine API",
        description="Manual runs and execution status for payment workflows",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.execution_service = execution_service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(executions_router, prefix="/api/v1")

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": "payflow_engine"}

    return app


def main() -> None:
    import uvicorn

    settings = get_settings()
    setup_logging("payflow_engine", settings.log_level, settings.log_format)
    uvicorn.run(create_app(), host=settings.HOST, port=settings.PORT, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
