"""Events subsystem for live change detection and git operation inference."""
from arcwatch.events.classifier import Verdict, classify
from arcwatch.events.feed import EventFeed, FeedEntry
from arcwatch.events.filters import PathFilter, walk_directories
from arcwatch.events.pipeline import EventPipeline
from arcwatch.events.preview import extract_preview
from arcwatch.events.source import NotificationSource
from arcwatch.events.types import (
    ChangeEvent,
    ChangeKind,
    GitOperation,
    MutationKind,
    RawNotification,
)
from arcwatch.events.watchset import WatchSet

__all__ = [
    "ChangeEvent",
    "ChangeKind",
    "EventFeed",
    "EventPipeline",
    "FeedEntry",
    "GitOperation",
    "MutationKind",
    "NotificationSource",
    "PathFilter",
    "RawNotification",
    "Verdict",
    "WatchSet",
    "classify",
    "extract_preview",
    "walk_directories",
]
