"""Stop and completion signalling for the event pipeline."""
import asyncio

import structlog

logger = structlog.get_logger()


class GracefulShutdown:
    """Stop signal and completion report shared by the pipeline and its caller.

    Either side may trigger it: the caller on SIGINT or SIGTERM or through
    EventPipeline.stop, and the pipeline itself when its notification
    source closes. The receive loop and any publish blocked on a full
    channel wait on the trigger. Once the loop has stopped the observer it
    calls ``mark_done``, which releases ``wait``.

    Attributes:
        is_triggered: Whether shutdown has been triggered.
        is_done: Whether the pipeline has stopped its observer.
    """

    def __init__(self, timeout: float = 5.0) -> None:
        """Initialize shutdown coordinator.

        Args:
            timeout: Default seconds to wait for shutdown completion.
        """
        self._triggered = False
        self._event = asyncio.Event()
        self._done = asyncio.Event()
        self._timeout = timeout

    @property
    def is_triggered(self) -> bool:
        """Check if shutdown has been triggered.

        Returns:
            True if shutdown signal received.
        """
        return self._triggered

    @property
    def is_done(self) -> bool:
        """Check if the watched task has finished its cleanup."""
        return self._done.is_set()

    def trigger(self) -> None:
        """Signal all waiting tasks to begin shutdown.

        Idempotent - calling multiple times has no additional effect.
        """
        if self._triggered:
            return
        logger.info("shutdown_triggered")
        self._triggered = True
        self._event.set()

    def mark_done(self) -> None:
        """Report that cleanup has completed."""
        self._done.set()

    async def wait_for_trigger(self) -> None:
        """Wait indefinitely for shutdown signal.

        Blocks until trigger() is called from another task or signal handler.
        """
        await self._event.wait()

    async def wait(self, timeout: float | None = None) -> bool:
        """Wait for shutdown completion with optional timeout.

        Returns once the pipeline has stopped its observer.

        Args:
            timeout: Seconds to wait, uses default if None.

        Returns:
            True if completed within timeout, False if timeout exceeded.
        """
        t = timeout if timeout is not None else self._timeout
        try:
            await asyncio.wait_for(self._done.wait(), timeout=t)
            return True
        except asyncio.TimeoutError:
            logger.warning("shutdown_timeout", timeout_seconds=t)
            return False
