"""
Background Worker Entry Point.

Runs the intake poll loop and, alongside it, the reconciliation jobs every
RECONCILE_INTERVAL_SECONDS. SIGINT/SIGTERM stop both after the current
batch.
"""

import asyncio
import signal
import sys

from phi_claims.api.config import Settings, get_settings
from phi_claims.core.container import ServiceContainer, build_container
from phi_claims.utils.errors import PipelineError
from phi_claims.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


async def reconciliation_loop(container: ServiceContainer, stop_event: asyncio.Event) -> None:
    """Run both reconciliation jobs on a fixed interval."""
    sweeper = container.pending_sweeper()
    reconciler = container.event_reconciler()
    interval = container.settings.RECONCILE_INTERVAL_SECONDS
    logger.info(f"Reconciliation started (interval={interval}s)")

    while not stop_event.is_set():
        try:
            await sweeper.sweep()
            await reconciler.reconcile()
        except PipelineError as e:
            logger.error(f"Reconciliation pass failed: {e}")

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass


def install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()

    def handle(sig: signal.Signals) -> None:
        logger.info(f"Received {sig.name}, initiating graceful shutdown...")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, handle, sig)
        except NotImplementedError:
            # Windows event loops have no signal handler support
            signal.signal(sig, lambda s, f: stop_event.set())


async def main(settings: Settings | None = None) -> int:
    """
    Main worker entry point.

    Returns:
        Process exit code: 0 after a requested shutdown, 1 if a loop crashed
    """
    settings = settings or get_settings()
    setup_logging(
        level=settings.LOG_LEVEL,
        json_logs=settings.is_production,
        redact_phi=settings.redact_logs,
    )

    logger.info("=" * 60)
    logger.info(f"{settings.SERVICE_NAME} - intake worker")
    logger.info(f"Environment: {settings.ENVIRONMENT} / mode: {settings.INTEGRATION_MODE.value}")
    logger.info("=" * 60)

    stop_event = asyncio.Event()
    install_signal_handlers(stop_event)

    container = build_container(settings)
    worker = container.intake_worker()
    tasks = [
        asyncio.create_task(worker.run(stop_event)),
        asyncio.create_task(reconciliation_loop(container, stop_event)),
    ]

    stop_waiter = asyncio.create_task(stop_event.wait())
    exit_code = 0
    try:
        done, _ = await asyncio.wait(
            [*tasks, stop_waiter], return_when=asyncio.FIRST_COMPLETED
        )
        for task in tasks:
            if task in done and not task.cancelled() and task.exception() is not None:
                error = task.exception()
                logger.error(f"Worker loop crashed: {type(error).__name__}: {error}")
                exit_code = 1
        if exit_code == 0 and stop_waiter not in done:
            logger.error("Worker loop exited without a shutdown request")
            exit_code = 1

        stop_event.set()
        logger.info("Shutting down worker...")
        await asyncio.gather(*tasks, return_exceptions=True)
    finally:
        stop_waiter.cancel()
        for task in tasks:
            task.cancel()
        await container.close()

    logger.info("Worker shutdown complete")
    return exit_code


def cli() -> None:
    """Console entry point."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Worker interrupted")
        sys.exit(0)


if __name__ == "__main__":
    cli()
