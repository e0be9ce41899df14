"""structlog setup for the stderr log stream."""

import logging
import sys

import structlog


def configure_logging(debug: bool = False, json_output: bool = False) -> None:
    """Configure structlog for console or JSON output.

    Log lines go to stderr so they do not mix with the event feed on stdout.

    Args:
        debug: Enable debug-level logging when True.
        json_output: Render JSON lines instead of the console format.
    """
    level = logging.DEBUG if debug else logging.INFO

    renderer: structlog.typing.Processor
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=level,
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    logging.getLogger("watchdog").setLevel(logging.WARNING)
