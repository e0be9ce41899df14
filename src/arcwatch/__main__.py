"""Entry point for the live watcher."""

import asyncio
import contextlib
import signal
import sys

import structlog

from arcwatch.config import Settings
from arcwatch.errors import WatchStartupError
from arcwatch.events import EventFeed, EventPipeline
from arcwatch.lifecycle import GracefulShutdown
from arcwatch.logging import configure_logging

logger = structlog.get_logger()


async def tick_loop(feed: EventFeed, shutdown: GracefulShutdown, interval: float) -> None:
    """Age the feed once per tick until shutdown is triggered.

    Args:
        feed: Feed to age.
        shutdown: Shutdown coordinator instance.
        interval: Seconds between ticks.
    """
    while not shutdown.is_triggered:
        await asyncio.sleep(interval)
        feed.age_all()


async def report_errors(errors: asyncio.Queue[Exception]) -> None:
    """Log non-fatal watch errors until cancelled."""
    while True:
        error = await errors.get()
        logger.warning("watch_error_reported", error=str(error))


async def watch(settings: Settings) -> int:
    """Run the pipeline and feed until SIGINT or SIGTERM.

    Args:
        settings: Watcher configuration.

    Returns:
        Process exit code.
    """
    shutdown = GracefulShutdown(timeout=settings.shutdown_timeout)
    pipeline = EventPipeline(settings.root, settings, shutdown=shutdown)
    feed = EventFeed(
        capacity=settings.feed_capacity,
        highlight_ticks=settings.highlight_ticks,
        banner_ticks=settings.banner_ticks,
    )

    try:
        count = await pipeline.start()
    except WatchStartupError as e:
        logger.error("watch_startup_failed", path=e.path, error=str(e))
        return 1

    logger.info("watching", root=str(pipeline.root), directories=count)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown.trigger)

    consumers = [
        asyncio.create_task(feed.drain(pipeline.events)),
        asyncio.create_task(report_errors(pipeline.errors)),
    ]
    await asyncio.gather(
        tick_loop(feed, shutdown, settings.tick_interval),
        shutdown.wait_for_trigger(),
    )

    if not await shutdown.wait():
        logger.warning("pipeline_stop_timeout")
    for task in consumers:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
    return 0


def main() -> None:
    """Entry point for python -m arcwatch [root]."""
    settings = Settings()
    if len(sys.argv) > 1:
        settings = settings.model_copy(update={"root": sys.argv[1]})
    configure_logging(debug=settings.debug, json_output=settings.json_logs)

    code = 0
    with contextlib.suppress(KeyboardInterrupt):
        code = asyncio.run(watch(settings))

    sys.exit(code)


if __name__ == "__main__":
    main()
