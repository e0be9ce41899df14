"""Event pipeline turning raw notifications into typed change events."""

import asyncio
import contextlib
import os
from collections import OrderedDict
from datetime import UTC, datetime
from pathlib import Path, PurePath
from typing import TypeVar

import structlog
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver
from watchdog.observers.polling import PollingObserver

from arcwatch.config import Settings
from arcwatch.errors import WatchStartupError
from arcwatch.events.classifier import classify
from arcwatch.events.filters import PathFilter, is_editor_transient, is_hidden, is_metadata_path
from arcwatch.events.preview import extract_preview
from arcwatch.events.source import NotificationSource
from arcwatch.events.types import (
    KIND_MAP,
    PREVIEW_KINDS,
    ChangeEvent,
    ChangeKind,
    GitOperation,
    MutationKind,
    RawNotification,
)
from arcwatch.events.watchset import RETIRING_KINDS, WatchSet
from arcwatch.lifecycle import GracefulShutdown

logger = structlog.get_logger()

T = TypeVar("T")

SYNTHESIZED_MEMORY = 1024
OBSERVER_JOIN_TIMEOUT = 5.0

FileIdentity = tuple[int, int]


def create_observer(polling: bool = False) -> BaseObserver:
    """Create the watchdog observer backing the pipeline."""
    if polling:
        return PollingObserver()
    return Observer()


def file_identity(path: str) -> FileIdentity | None:
    """Return the (device, inode) pair of path, None if it is gone."""
    try:
        stat = os.stat(path, follow_symlinks=False)
    except OSError:
        return None
    return stat.st_dev, stat.st_ino


class EventPipeline:
    """Single-task pipeline from OS notifications to change events.

    Reads raw notifications from the watchdog bridge, drops noise,
    classifies git metadata paths, grows the watch set when directories
    appear and publishes one ChangeEvent per accepted notification on a
    bounded queue. A full queue blocks the pipeline until the consumer
    catches up; events are never dropped or reordered.

    Attributes:
        events: Bounded queue of published change events.
        errors: Bounded queue of non-fatal errors.
        watch_count: Number of watched directories.
    """

    def __init__(
        self,
        root: str | Path,
        settings: Settings | None = None,
        *,
        observer: BaseObserver | None = None,
        shutdown: GracefulShutdown | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            root: Directory tree to watch.
            settings: Configuration instance. Creates default if None.
            observer: Watchdog observer, created from settings if None.
            shutdown: Stop signal shared with the caller.
        """
        if settings is None:
            settings = Settings()
        self._settings = settings
        self._root = Path(root).absolute()
        self._observer = observer if observer is not None else create_observer(settings.polling)
        self._shutdown = shutdown if shutdown is not None else GracefulShutdown(settings.shutdown_timeout)
        self._filter = PathFilter(settings.ignore_dirs)
        self._source: NotificationSource | None = None
        self._watches: WatchSet | None = None
        self._task: asyncio.Task[None] | None = None
        self._synthesized: OrderedDict[str, FileIdentity | None] = OrderedDict()

        self.events: asyncio.Queue[ChangeEvent] = asyncio.Queue(maxsize=settings.event_queue_size)
        self.errors: asyncio.Queue[Exception] = asyncio.Queue(maxsize=settings.error_queue_size)

    @property
    def root(self) -> Path:
        """Absolute root directory."""
        return self._root

    @property
    def watch_count(self) -> int:
        """Number of watched directories."""
        return self._watches.watch_count if self._watches is not None else 0

    @property
    def watches(self) -> WatchSet | None:
        """Watch set, None before start."""
        return self._watches

    @property
    def source(self) -> NotificationSource | None:
        """Notification bridge, None before start."""
        return self._source

    @property
    def is_running(self) -> bool:
        """Whether the receive loop is active."""
        return self._task is not None and not self._task.done()

    async def start(self) -> int:
        """Start the observer, watch the tree and launch the receive loop.

        Returns:
            Number of directories watched.

        Raises:
            WatchStartupError: If the observer cannot start or the root
                cannot be walked.
        """
        loop = asyncio.get_running_loop()
        self._source = NotificationSource(loop)
        self._watches = WatchSet(
            self._observer,
            self._source,
            self._filter,
            on_error=self._source.report_error,
        )

        try:
            self._observer.start()
        except OSError as e:
            raise WatchStartupError(f"Cannot start observer: {e}", str(self._root)) from e

        try:
            count = self._watches.initialize(self._root)
        except WatchStartupError:
            self._close_observer()
            raise

        self._task = asyncio.create_task(self.run())
        logger.info("pipeline_started", root=str(self._root), watch_count=count)
        return count

    async def stop(self) -> None:
        """Stop the receive loop and release the observer."""
        self._shutdown.trigger()
        if self._task is not None:
            await self._task
            self._task = None

    async def run(self) -> None:
        """Receive loop; ends on the stop signal or when the source closes."""
        if self._source is None:
            raise RuntimeError("Pipeline not started")
        source = self._source

        stop_waiter = asyncio.create_task(self._shutdown.wait_for_trigger())
        next_notification: asyncio.Task[RawNotification | None] | None = None
        next_error: asyncio.Task[Exception] | None = None

        try:
            while True:
                if next_notification is None:
                    next_notification = asyncio.create_task(source.notifications.get())
                if next_error is None:
                    next_error = asyncio.create_task(source.errors.get())

                done, _ = await asyncio.wait(
                    {next_notification, next_error, stop_waiter},
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if stop_waiter in done:
                    break

                if next_error in done:
                    error = next_error.result()
                    next_error = None
                    logger.warning("watch_error", error=str(error))
                    if not await self._publish(self.errors, error):
                        break

                if next_notification in done:
                    notification = next_notification.result()
                    next_notification = None
                    if notification is None:
                        logger.info("source_closed")
                        break
                    if not await self.process(notification):
                        break
        finally:
            for task in (next_notification, next_error, stop_waiter):
                if task is not None and not task.done():
                    task.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await task
            self._close_observer()
            self._shutdown.trigger()
            self._shutdown.mark_done()
            logger.info("pipeline_stopped", watch_count=self.watch_count)

    async def process(self, notification: RawNotification) -> bool:
        """Turn one raw notification into at most one published event.

        Notifications from directories outside the watch set are dropped.
        A removed or renamed directory leaves the watch set. A created
        directory is watched before its event is published, then its
        current children are processed as synthetic creations.

        Args:
            notification: Raw notification to process.

        Returns:
            False if the stop signal arrived while publishing.
        """
        if self._watches is not None:
            if not self._watches.covers(notification.path):
                return True
            if notification.kind in RETIRING_KINDS:
                self._watches.retire(notification.path)

        event = self._build_event(notification)
        if event is None:
            return True

        grew = False
        if event.kind is ChangeKind.CREATED and event.is_directory and self._watches is not None:
            grew = self._watches.on_notification(notification)

        if not await self._publish(self.events, event):
            return False
        logger.debug(
            "event_published",
            path=event.path,
            kind=event.kind.value,
            git_operation=event.git_operation.value if event.git_operation else None,
        )

        if grew:
            return await self._catch_up(notification.path)
        return True

    def _build_event(self, notification: RawNotification) -> ChangeEvent | None:
        path = notification.path
        name = os.path.basename(path.rstrip(os.sep)) or path
        if is_editor_transient(name):
            return None

        if not notification.synthetic and path in self._synthesized:
            identity = self._synthesized.pop(path)
            if (
                notification.kind is MutationKind.CREATED
                and identity is not None
                and identity == file_identity(path)
            ):
                return None

        relative = self._relative(path)
        git_operation: GitOperation | None = None
        if is_metadata_path(relative):
            result = classify(relative, name)
            if not isinstance(result, GitOperation):
                return None
            git_operation = result
        elif is_hidden(name):
            return None

        kind = KIND_MAP.get(notification.kind)
        if kind is None:
            return None

        is_directory = notification.is_directory
        if is_directory is None:
            is_directory = os.path.isdir(path)

        preview = None
        if git_operation is None and kind in PREVIEW_KINDS and not is_directory:
            preview = extract_preview(
                path,
                max_lines=self._settings.preview_lines,
                width=self._settings.preview_width,
            )

        return ChangeEvent(
            path=relative,
            name=name,
            kind=kind,
            timestamp=datetime.now(UTC),
            size=self._size(path),
            is_directory=is_directory,
            is_git_operation=git_operation is not None,
            git_operation=git_operation,
            preview=preview,
        )

    async def _catch_up(self, directory: str) -> bool:
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda entry: entry.name)
        except OSError as e:
            logger.debug("catch_up_failed", path=directory, error=str(e))
            return True

        for entry in entries:
            self._remember_synthesized(entry.path, file_identity(entry.path))
            notification = RawNotification(
                path=entry.path,
                kind=MutationKind.CREATED,
                is_directory=entry.is_dir(follow_symlinks=False),
                synthetic=True,
            )
            if not await self.process(notification):
                return False
        return True

    def _remember_synthesized(self, path: str, identity: FileIdentity | None) -> None:
        self._synthesized[path] = identity
        self._synthesized.move_to_end(path)
        while len(self._synthesized) > SYNTHESIZED_MEMORY:
            self._synthesized.popitem(last=False)

    async def _publish(self, queue: asyncio.Queue[T], item: T) -> bool:
        try:
            queue.put_nowait(item)
            return True
        except asyncio.QueueFull:
            pass

        logger.debug("publish_blocked", queue_size=queue.qsize())
        put = asyncio.create_task(queue.put(item))
        stop_waiter = asyncio.create_task(self._shutdown.wait_for_trigger())
        try:
            done, _ = await asyncio.wait({put, stop_waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (put, stop_waiter):
                if not task.done():
                    task.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await task
        return put in done

    def _relative(self, path: str) -> str:
        try:
            relative = PurePath(os.path.relpath(path, self._root)).as_posix()
        except ValueError:
            return PurePath(path).as_posix()
        return relative or path

    @staticmethod
    def _size(path: str) -> int:
        try:
            return os.stat(path).st_size
        except OSError:
            return 0

    def _close_observer(self) -> None:
        try:
            self._observer.stop()
            if self._observer.is_alive():
                self._observer.join(timeout=OBSERVER_JOIN_TIMEOUT)
        except RuntimeError as e:
            logger.warning("observer_stop_failed", error=str(e))
