import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from insights import __version__
from insights.config import settings
from insights.core.database import close_db, init_db
from insights.core.errors import InsightsError
from insights.core.errors.middleware import insights_error_handler
from insights.core.errors.registry import error_registry
from insights.core.log_middleware import CorrelationMiddleware
from insights.core.structured_logging import setup_logging
from insights.routers import analysis, health, monitoring
from insights.services.llm_providers.base import LLMProviderError
from insights.services.pipeline import build_pipeline, set_pipeline

# Initialize structured logging before any logger calls
setup_logging(log_dir=settings.log_dir, log_level=settings.log_level.upper())

logger = logging.getLogger(__name__)

API_TITLE = "Feedback Insights API"


async def _guarded(name: str, coro):
    """Run a background coroutine, logging instead of dying silently."""
    try:
        await coro
    except asyncio.CancelledError:
        raise
    except Exception:
        logger.exception("Background task %s crashed", name)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Starts the analysis workers and recurring jobs; cancels them on shutdown.
    """
    logger.info("Starting %s v%s", API_TITLE, __version__)

    error_registry.load()
    init_db()
    logger.info("Database initialized")

    pipeline = None
    jobs_task = None
    try:
        pipeline = build_pipeline()
    except (LLMProviderError, ValueError) as e:
        logger.critical("Analysis provider not configured, pipeline disabled: %s", e)

    if pipeline is not None:
        set_pipeline(pipeline)
        pipeline.orchestrator.start(wrapper=_guarded)
        jobs_task = asyncio.create_task(_guarded("recurring_jobs", pipeline.jobs.run_forever()))
        logger.info("Analysis pipeline started (%d workers)", pipeline.orchestrator.worker_count)

    yield

    logger.info("Shutting down %s...", API_TITLE)
    if jobs_task is not None:
        jobs_task.cancel()
        try:
            await jobs_task
        except asyncio.CancelledError:
            logger.info("Recurring jobs cancelled")
    if pipeline is not None:
        await pipeline.orchestrator.shutdown()
        await pipeline.scheduler.drain()
        set_pipeline(None)
    close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=API_TITLE,
        version=__version__,
        lifespan=lifespan,
    )

    # request_id + correlation_id in every log line
    app.add_middleware(CorrelationMiddleware)

    app.add_exception_handler(InsightsError, insights_error_handler)

    # Catch-all handler so unhandled exceptions return JSON (not bare text)
    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        logger.error("Unhandled exception on %s %s: %s", request.method, request.url.path, exc, exc_info=True)
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})

    app.include_router(health.router, prefix="/api", tags=["Health"])
    app.include_router(analysis.router, prefix="/api/analysis", tags=["Analysis"])
    app.include_router(monitoring.router, prefix="/api/monitoring", tags=["Monitoring"])

    return app


app = create_app()
