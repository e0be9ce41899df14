"""Watcher configuration loaded from environment variables."""
from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Watcher configuration loaded from environment variables.

    Attributes:
        root: Directory tree to watch.
        debug: Enable debug-level logging.
        json_logs: Render log lines as JSON instead of console output.
        shutdown_timeout: Seconds to wait for the pipeline to stop.
        polling: Use the polling observer instead of native notifications.
        ignore_dirs_raw: Comma-separated directory names never watched.
        event_queue_size: Capacity of the outbound event channel.
        error_queue_size: Capacity of the outbound error channel.
        preview_lines: Number of trailing lines kept in a preview.
        preview_width: Maximum width of a preview line.
        feed_capacity: Number of events retained by the feed.
        highlight_ticks: Ticks after which a feed entry loses its highlight.
        banner_ticks: Ticks after which the git operation banner clears.
        tick_interval: Seconds between feed ticks.
    """

    model_config = SettingsConfigDict(
        env_prefix="ARCWATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    root: str = "."
    debug: bool = False
    json_logs: bool = False
    shutdown_timeout: float = 5.0
    polling: bool = False

    ignore_dirs_raw: str = "node_modules,vendor,dist,__pycache__"
    event_queue_size: int = 100
    error_queue_size: int = 10
    preview_lines: int = 3
    preview_width: int = 60

    feed_capacity: int = 50
    highlight_ticks: int = 30
    banner_ticks: int = 50
    tick_interval: float = 0.1

    @computed_field
    @property
    def ignore_dirs(self) -> frozenset[str]:
        """Parse ignored directory names from comma-separated string.

        Returns:
            Set of directory names whose subtrees are never watched.
        """
        return frozenset(
            name.strip()
            for name in self.ignore_dirs_raw.split(",")
            if name.strip()
        )
