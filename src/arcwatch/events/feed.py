"""Bounded newest-first feed of change events for the display layer."""
import asyncio
from collections.abc import Sequence
from dataclasses import dataclass

import structlog

from arcwatch.events.types import ChangeEvent, GitOperation

logger = structlog.get_logger()

DEFAULT_CAPACITY = 50
DEFAULT_HIGHLIGHT_TICKS = 30
DEFAULT_BANNER_TICKS = 50


@dataclass
class FeedEntry:
    """Change event with display state.

    Attributes:
        event: The wrapped change event.
        age: Ticks since the event entered the feed.
        highlight: Whether the entry is still shown as new.
    """

    event: ChangeEvent
    age: int = 0
    highlight: bool = True


def describe(event: ChangeEvent) -> str:
    """One-line status text for an event."""
    if event.git_operation is not None:
        return f"Git {event.git_operation.value} detected!"
    return f"File {event.kind.value}: {event.name}"


class EventFeed:
    """Newest-first list of recent events driven by a periodic tick.

    Also tracks the most recent git operation as a banner that clears after
    a fixed number of ticks.

    Attributes:
        capacity: Maximum number of retained entries.
        status: Status line describing the latest event.
        banner: Git operation currently announced, if any.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        highlight_ticks: int = DEFAULT_HIGHLIGHT_TICKS,
        banner_ticks: int = DEFAULT_BANNER_TICKS,
    ) -> None:
        self._capacity = capacity
        self._highlight_ticks = highlight_ticks
        self._banner_ticks = banner_ticks
        self._entries: list[FeedEntry] = []
        self._banner: GitOperation | None = None
        self._banner_age = 0
        self.status = "Watching"

    @property
    def capacity(self) -> int:
        """Maximum number of retained entries."""
        return self._capacity

    @property
    def entries(self) -> Sequence[FeedEntry]:
        """Retained entries, newest first."""
        return tuple(self._entries)

    @property
    def banner(self) -> GitOperation | None:
        """Git operation currently announced."""
        return self._banner

    def __len__(self) -> int:
        return len(self._entries)

    def push(self, event: ChangeEvent) -> FeedEntry:
        """Insert an event at the front, evicting the oldest beyond capacity.

        Args:
            event: Event received from the pipeline.

        Returns:
            The new entry.
        """
        entry = FeedEntry(event=event)
        self._entries.insert(0, entry)
        del self._entries[self._capacity:]

        if event.git_operation is not None:
            self._banner = event.git_operation
            self._banner_age = 0
        self.status = describe(event)
        return entry

    def age_all(self) -> None:
        """Advance every entry by one tick and decay highlights and banner."""
        for entry in self._entries:
            entry.age += 1
            if entry.age > self._highlight_ticks:
                entry.highlight = False

        if self._banner is not None:
            self._banner_age += 1
            if self._banner_age > self._banner_ticks:
                self._banner = None
                self._banner_age = 0

    async def drain(self, queue: asyncio.Queue[ChangeEvent]) -> None:
        """Move events from the pipeline queue into the feed until cancelled.

        Args:
            queue: Outbound event queue of the pipeline.
        """
        while True:
            event = await queue.get()
            self.push(event)
            logger.info(
                "change_event",
                status=self.status,
                path=event.path,
                size=event.size,
                preview=list(event.preview) if event.preview else None,
            )
