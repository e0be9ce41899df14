"""Exception types raised by the watch pipeline."""


class ArcwatchError(Exception):
    """Base class for all arcwatch errors."""


class WatchStartupError(ArcwatchError):
    """Raised when the watcher cannot be started for a root directory."""

    def __init__(self, message: str, path: str) -> None:
        """Initialize startup error.

        Args:
            message: Error description.
            path: The root or directory that could not be opened.
        """
        super().__init__(message)
        self.path = path


class WatchRegistrationError(ArcwatchError):
    """Raised when a single directory watch cannot be registered."""

    def __init__(self, path: str, cause: BaseException) -> None:
        super().__init__(f"Cannot watch {path}: {cause}")
        self.path = path
        self.cause = cause
