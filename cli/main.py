"""imgjobs CLI - Main Entry Point"""

import asyncio
import signal
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel

from imgjobs.config.logging import setup_logging
from imgjobs.config.settings import get_settings
from imgjobs.core.exceptions import CleanupFailureError, MetadataError
from imgjobs.worker import ConsumerWorker, create_worker

from .utils.formatting import (
    create_settings_table,
    print_error,
    print_info,
    print_success,
    print_warning,
)

console = Console()

app = typer.Typer(
    name="imgjobs",
    help="🖼️ imgjobs - queue-driven image compression worker",
    rich_markup_mode="rich",
)


async def _run_worker(worker: ConsumerWorker) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, worker.stop)
        except NotImplementedError:
            # Windows event loops have no signal handlers; Ctrl+C still interrupts
            pass
    try:
        await worker.start()
    finally:
        await worker.close()


@app.command()
def run():
    """🚀 Consume the job queue until interrupted"""
    settings = get_settings()
    setup_logging()
    if not settings.queue_url:
        print_warning("QUEUE_URL is not set; every poll will fail until it is configured")
    print_info(f"Polling {settings.queue_url or '<unset queue>'} every {settings.poll_interval_ms}ms")

    worker = create_worker(settings)
    try:
        asyncio.run(_run_worker(worker))
    except CleanupFailureError as e:
        print_error(f"Worker halted: {e.message}")
        raise typer.Exit(1) from None

    print_success("Worker stopped.")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address (defaults to settings)"),
    port: Optional[int] = typer.Option(None, help="Port (defaults to settings)"),
):
    """🩺 Run the worker behind a health endpoint"""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "imgjobs.main:create_app",
        factory=True,
        host=host or settings.host,
        port=port or settings.port,
        workers=1,
    )


@app.command()
def cleanup():
    """🧹 Purge stale session metadata once"""
    settings = get_settings()
    setup_logging()
    worker = create_worker(settings)

    async def _cleanup() -> int:
        try:
            return await worker.run_cleanup()
        finally:
            await worker.close()

    try:
        deleted = asyncio.run(_cleanup())
    except MetadataError as e:
        print_error(f"Cleanup failed: {e.message}")
        raise typer.Exit(1) from None

    print_success(f"Deleted {deleted} stale session record(s)")


@app.command()
def config():
    """📋 Show effective settings"""
    settings = get_settings()
    console.print(create_settings_table(settings.model_dump()))


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: Optional[bool] = typer.Option(
        None, "--version", "-v", help="Show version and exit"
    ),
):
    """
    🖼️ imgjobs - Queue-driven image compression worker

    Receives S3 upload notifications from SQS, compresses each image and
    publishes a signed download link for it.
    """
    if version:
        from . import __version__
        console.print(Panel(f"imgjobs v{__version__}", border_style="cyan"))
        raise typer.Exit()


if __name__ == "__main__":
    app()
