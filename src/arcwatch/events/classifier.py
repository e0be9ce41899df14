"""Heuristic classification of paths touched inside the git directory.

Git never announces what it is doing, so the operation is inferred from
which file it wrote. The rules are evaluated in order and the first match
wins. Specific markers come before ``HEAD`` because most operations rewrite
``HEAD`` as a side effect.

Known limitations: creating or checking out a branch touches ``refs/heads``
and is reported as a commit, and editing a ref file by hand is reported as
a commit or push.
"""

from enum import Enum
from pathlib import PurePath

from arcwatch.events.filters import METADATA_DIR, is_metadata_path
from arcwatch.events.types import GitOperation


class Verdict(str, Enum):
    """Classifier outcomes that are not git operations."""

    SUPPRESS = "suppress"
    ORDINARY = "ordinary"


Classification = GitOperation | Verdict

LOCK_SUFFIX = ".lock"

COMMIT_MESSAGE_FILES: frozenset[str] = frozenset({"COMMIT_EDITMSG", "MERGE_MSG"})
LOCAL_REFS = "refs/heads"
REMOTE_REFS = "refs/remotes"
STASH_REFS = "refs/stash"
REBASE_MARKERS: tuple[str, ...] = ("rebase-merge", "rebase-apply")
LOGS_DIR = "logs"

NAME_RULES: dict[str, GitOperation] = {
    "FETCH_HEAD": GitOperation.FETCH,
    "ORIG_HEAD": GitOperation.PULL,
    "MERGE_HEAD": GitOperation.MERGE,
}


def _in_logs(parts: tuple[str, ...]) -> bool:
    if METADATA_DIR in parts:
        last = len(parts) - 1 - parts[::-1].index(METADATA_DIR)
        parts = parts[last + 1:]
    return LOGS_DIR in parts[:-1]


def classify(path: str, name: str) -> Classification:
    """Classify a touched path.

    Args:
        path: Path of the entry, absolute or relative.
        name: Base name of the entry.

    Returns:
        The inferred git operation, SUPPRESS for uninteresting metadata
        bookkeeping, or ORDINARY for paths outside the git directory.
    """
    posix = PurePath(path).as_posix()

    if name.endswith(LOCK_SUFFIX):
        return Verdict.SUPPRESS

    if name in COMMIT_MESSAGE_FILES:
        return GitOperation.COMMIT

    if LOCAL_REFS in posix:
        return GitOperation.COMMIT

    if REMOTE_REFS in posix:
        return GitOperation.PUSH

    operation = NAME_RULES.get(name)
    if operation is not None:
        return operation

    if any(marker in posix for marker in REBASE_MARKERS):
        return GitOperation.REBASE

    if STASH_REFS in posix or name == "stash":
        return GitOperation.STASH

    if name == "HEAD" and not _in_logs(PurePath(path).parts):
        return GitOperation.CHECKOUT

    if is_metadata_path(path):
        return Verdict.SUPPRESS

    return Verdict.ORDINARY
