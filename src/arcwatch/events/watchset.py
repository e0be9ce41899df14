"""Live set of watched directories under a root."""

import os
from collections.abc import Callable, Iterator
from pathlib import Path

import structlog
from watchdog.events import FileSystemEventHandler
from watchdog.observers.api import BaseObserver, ObservedWatch

from arcwatch.errors import WatchRegistrationError, WatchStartupError
from arcwatch.events.filters import METADATA_DIR, PathFilter, resolve_root, walk_directories
from arcwatch.events.types import MutationKind, RawNotification

logger = structlog.get_logger()

GIT_WATCH_DIRS: tuple[tuple[str, ...], ...] = (
    (METADATA_DIR,),
    (METADATA_DIR, "refs"),
    (METADATA_DIR, "refs", "heads"),
    (METADATA_DIR, "refs", "remotes"),
    (METADATA_DIR, "logs"),
    (METADATA_DIR, "logs", "refs"),
    (METADATA_DIR, "logs", "refs", "heads"),
)

RETIRING_KINDS = frozenset({MutationKind.REMOVED, MutationKind.RENAMED})


class WatchSet:
    """Owns the directories observed under a root.

    The observer holds a single recursive watch on the root, so the OS
    primitive costs one handle however many directories the tree has. The
    set maps every directory accepted by the path filter to that handle,
    and only notifications whose parent directory is in the set are
    observed. Removing or renaming a directory retires its entry and the
    entries below it; the observer drops the dead OS watches itself, and a
    directory recreated under the same name is registered again.

    Mutated only from the pipeline task.

    Attributes:
        root: Absolute root directory, None before initialization.
        watch_count: Number of watched directories.
    """

    def __init__(
        self,
        observer: BaseObserver,
        handler: FileSystemEventHandler,
        path_filter: PathFilter,
        on_error: Callable[[WatchRegistrationError], None] | None = None,
    ) -> None:
        """Initialize an empty watch set.

        Args:
            observer: Observer that owns the OS watch handle.
            handler: Handler receiving the watch's events.
            path_filter: Filter deciding which directories are watched.
            on_error: Called with each per-directory registration failure.
        """
        self._observer = observer
        self._handler = handler
        self._filter = path_filter
        self._on_error = on_error
        self._handle: ObservedWatch | None = None
        self._watches: dict[str, ObservedWatch] = {}
        self._root: Path | None = None

    @property
    def root(self) -> Path | None:
        """Absolute root directory."""
        return self._root

    @property
    def handle(self) -> ObservedWatch | None:
        """Observer handle covering the whole root."""
        return self._handle

    @property
    def watch_count(self) -> int:
        """Number of watched directories."""
        return len(self._watches)

    @property
    def paths(self) -> list[str]:
        """Watched directories in registration order."""
        return list(self._watches)

    def __contains__(self, path: object) -> bool:
        return str(path) in self._watches

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._watches))

    def initialize(self, root: str | Path) -> int:
        """Watch root and register every accepted directory under it.

        The git directories used for operation detection are registered
        first, even when the ignore list would prune them.

        Args:
            root: Directory to watch, absolute or relative.

        Returns:
            Number of watched directories.

        Raises:
            WatchStartupError: If root cannot be opened or walked, or the
                observer cannot watch it.
        """
        self._root = resolve_root(root)

        try:
            self._handle = self._observer.schedule(self._handler, str(self._root), recursive=True)
        except OSError as e:
            raise WatchStartupError(f"Cannot watch root: {e}", str(self._root)) from e

        for parts in GIT_WATCH_DIRS:
            git_dir = self._root.joinpath(*parts)
            if git_dir.is_dir():
                self.add(git_dir)

        try:
            for directory in walk_directories(self._root, self._filter):
                self.add(directory)
        except OSError as e:
            raise WatchStartupError(f"Cannot walk watch root: {e}", str(self._root)) from e

        logger.info("watch_set_initialized", root=str(self._root), watch_count=self.watch_count)
        return self.watch_count

    def add(self, path: str | Path) -> bool:
        """Register one directory under the root.

        A directory that cannot be listed is not registered. Failures are
        logged and reported to on_error, never raised.

        Args:
            path: Directory to watch.

        Returns:
            True if the directory was newly registered.

        Raises:
            RuntimeError: If called before initialize.
        """
        if self._handle is None:
            raise RuntimeError("Watch set not initialized")

        key = str(path)
        if key in self._watches:
            return False

        try:
            with os.scandir(key):
                pass
        except OSError as e:
            logger.warning("watch_failed", path=key, error=str(e))
            if self._on_error is not None:
                self._on_error(WatchRegistrationError(key, e))
            return False

        self._watches[key] = self._handle
        logger.debug("watch_added", path=key, watch_count=self.watch_count)
        return True

    def retire(self, path: str | Path) -> int:
        """Forget a directory that went away, with everything below it.

        Returns:
            Number of entries dropped.
        """
        key = str(path)
        if key not in self._watches:
            return 0
        prefix = key.rstrip(os.sep) + os.sep
        gone = [p for p in self._watches if p == key or p.startswith(prefix)]
        for p in gone:
            del self._watches[p]
        logger.debug("watch_retired", path=key, dropped=len(gone), watch_count=self.watch_count)
        return len(gone)

    def covers(self, path: str | Path) -> bool:
        """Check if a notification for path comes from a watched directory."""
        key = str(path)
        if self._root is not None and key == str(self._root):
            return True
        return os.path.dirname(key) in self._watches

    def on_notification(self, notification: RawNotification) -> bool:
        """Grow the set when a new directory appears.

        The directory is registered before returning, so that later
        notifications for files inside it are observed.

        Args:
            notification: Raw notification being processed.

        Returns:
            True if a new directory was registered.
        """
        if notification.kind is not MutationKind.CREATED:
            return False

        path = Path(notification.path)
        is_directory = notification.is_directory
        if is_directory is None:
            is_directory = os.path.isdir(path)
        if not is_directory:
            return False

        parent = path.parent
        if self._root is not None:
            try:
                parent = parent.relative_to(self._root)
            except ValueError:
                pass
        if self._filter.should_prune(parent, path.name):
            logger.debug("watch_skipped", path=str(path))
            return False

        return self.add(path)
