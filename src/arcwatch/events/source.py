"""Bridge from watchdog's observer thread to the asyncio pipeline."""

import asyncio

import structlog
from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)

from arcwatch.events.types import MutationKind, RawNotification

logger = structlog.get_logger()

KIND_BY_EVENT_TYPE: dict[str, MutationKind] = {
    EVENT_TYPE_CREATED: MutationKind.CREATED,
    EVENT_TYPE_MODIFIED: MutationKind.MODIFIED,
    EVENT_TYPE_DELETED: MutationKind.REMOVED,
    EVENT_TYPE_MOVED: MutationKind.RENAMED,
}


def decode_path(path: str | bytes) -> str:
    """Return a watchdog path as text."""
    if isinstance(path, str):
        return path
    return bytes(path).decode("utf-8", errors="replace")


def to_notifications(event: FileSystemEvent) -> list[RawNotification]:
    """Translate a watchdog event into raw notifications.

    A move becomes a rename of the old path followed by a creation of the
    new one. Directory modifications, which only mean that a child
    changed, and open/close events produce nothing.

    Args:
        event: Watchdog filesystem event.

    Returns:
        Zero or more raw notifications in delivery order.
    """
    kind = KIND_BY_EVENT_TYPE.get(event.event_type)
    if kind is None:
        return []
    if kind is MutationKind.MODIFIED and event.is_directory:
        return []

    notifications = [
        RawNotification(
            path=decode_path(event.src_path),
            kind=kind,
            is_directory=event.is_directory,
        )
    ]
    if kind is MutationKind.RENAMED and event.dest_path:
        notifications.append(
            RawNotification(
                path=decode_path(event.dest_path),
                kind=MutationKind.CREATED,
                is_directory=event.is_directory,
            )
        )
    return notifications


class NotificationSource(FileSystemEventHandler):
    """Watchdog handler feeding raw notifications into asyncio queues.

    Runs in the observer thread. Items are handed to the event loop in
    delivery order; the queues are unbounded because overflow behavior
    belongs to the OS primitive, not to this bridge. A None item on the
    notification queue means the source is closed.

    Attributes:
        notifications: Queue of raw notifications.
        errors: Queue of errors raised by the watch machinery.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        """Initialize the source.

        Args:
            loop: Event loop running the pipeline.
        """
        super().__init__()
        self._loop = loop
        self.notifications: asyncio.Queue[RawNotification | None] = asyncio.Queue()
        self.errors: asyncio.Queue[Exception] = asyncio.Queue()

    def _hand_off(self, queue: asyncio.Queue, item: object) -> None:
        if self._loop.is_closed():
            return
        try:
            self._loop.call_soon_threadsafe(queue.put_nowait, item)
        except RuntimeError as e:
            logger.warning("source_handoff_failed", error=str(e))

    def on_any_event(self, event: FileSystemEvent) -> None:
        """Handle a watchdog event.

        Args:
            event: Raw watchdog filesystem event.
        """
        for notification in to_notifications(event):
            self._hand_off(self.notifications, notification)

    def submit(self, notification: RawNotification) -> None:
        """Queue a notification from any thread."""
        self._hand_off(self.notifications, notification)

    def report_error(self, error: Exception) -> None:
        """Queue an error from any thread."""
        self._hand_off(self.errors, error)

    def close(self) -> None:
        """Signal that no more notifications will arrive."""
        self._hand_off(self.notifications, None)
