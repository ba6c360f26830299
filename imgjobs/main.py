import asyncio
import signal
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI

from imgjobs.config.logging import get_logger, setup_logging
from imgjobs.config.settings import settings
from imgjobs.core.exceptions import CleanupFailureError, general_exception_handler
from imgjobs.core.registries import encoder_registry
from imgjobs.healthz import router as health_router
from imgjobs.worker import ConsumerWorker, create_worker

logger = get_logger(__name__)


def create_app(
    worker: ConsumerWorker | None = None,
    start_worker: bool = True,
    exit_on_halt: bool = True,
) -> FastAPI:
    """
    Create the health server; its lifespan runs the consumer worker.

    When the worker halts on a failed cleanup the server shuts itself down
    (``exit_on_halt``), so the process ends as it does under ``imgjobs run``.
    """

    # Initialize structured logging
    setup_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.worker = worker or create_worker(settings)
        task = None
        if start_worker:
            task = asyncio.create_task(app.state.worker.start(), name="consumer-worker")
            if exit_on_halt:
                task.add_done_callback(_shutdown_on_halt)
        logger.info("Lifespan startup: worker started", worker_started=start_worker)
        yield
        app.state.worker.stop()
        if task is not None:
            # A halted worker re-raises its fatal error; it was already logged
            with suppress(CleanupFailureError):
                await task
        await app.state.worker.close()
        logger.info("Lifespan shutdown.")

    app = FastAPI(
        title=settings.app_name,
        description="Queue-driven image compression worker",
        version=settings.version,
        debug=settings.debug,
        openapi_url="/v1/openapi.json" if settings.debug else None,
        docs_url="/v1/docs" if settings.debug else None,
        redoc_url=None,
        lifespan=lifespan,
    )

    app.add_exception_handler(Exception, general_exception_handler)
    app.include_router(health_router, prefix="/v1", tags=["health"])

    # Freeze registries in non-development environments to prevent runtime modifications
    if settings.environment != "development":
        encoder_registry.freeze()

    return app


def _shutdown_on_halt(task: asyncio.Task) -> None:
    if task.cancelled() or not isinstance(task.exception(), CleanupFailureError):
        return
    logger.critical("Worker halted, shutting down the server")
    # uvicorn treats SIGTERM as a graceful shutdown request
    signal.raise_signal(signal.SIGTERM)
