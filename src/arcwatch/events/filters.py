"""Path filtering policy shared by the watcher and tree scanners."""

import os
from collections.abc import Iterable, Iterator
from pathlib import Path, PurePath

import structlog

from arcwatch.errors import WatchStartupError

logger = structlog.get_logger()

METADATA_DIR = ".git"

DEFAULT_IGNORE_DIRS: frozenset[str] = frozenset({
    "node_modules",
    "vendor",
    "dist",
    "__pycache__",
})

# Bookkeeping directories directly under .git that are never watched.
PRUNED_METADATA_DIRS: frozenset[str] = frozenset({"objects"})

TRANSIENT_MARKER = ".tmp"
BACKUP_SUFFIX = "~"
SWAP_PREFIX = "#"


def is_hidden(name: str) -> bool:
    """Check if a name carries the hidden-file marker."""
    return name.startswith(".")


def is_editor_transient(name: str) -> bool:
    """Check if a base name belongs to an editor's safe-write temp file.

    Args:
        name: Base name of the file.

    Returns:
        True for temp files, backup files and swap files.
    """
    return (
        TRANSIENT_MARKER in name
        or name.endswith(BACKUP_SUFFIX)
        or name.startswith(SWAP_PREFIX)
    )


def is_metadata_path(path: str | PurePath) -> bool:
    """Check if any component of path is the git metadata directory."""
    return METADATA_DIR in PurePath(path).parts


class PathFilter:
    """Decides which entries of a tree are ever observed.

    Attributes:
        ignore_dirs: Directory names whose subtrees are pruned.
    """

    def __init__(self, ignore_dirs: Iterable[str] = DEFAULT_IGNORE_DIRS) -> None:
        self._ignore_dirs = frozenset(ignore_dirs)

    @property
    def ignore_dirs(self) -> frozenset[str]:
        """Directory names whose subtrees are pruned."""
        return self._ignore_dirs

    def should_ignore(
        self,
        name: str,
        is_directory: bool,
        *,
        inside_metadata: bool = False,
    ) -> bool:
        """Check if an entry should never be observed.

        Args:
            name: Base name of the entry.
            is_directory: Whether the entry is a directory.
            inside_metadata: Whether an ancestor is the git directory.

        Returns:
            True if the entry (and, for directories, its subtree) is ignored.
        """
        if is_directory and name in self._ignore_dirs:
            return True
        if is_hidden(name) and name != METADATA_DIR and not inside_metadata:
            return True
        return False

    def should_prune(self, parent: str | PurePath, name: str) -> bool:
        """Check if a subdirectory is left out of the watched tree.

        Applies should_ignore, and also skips the object store directly
        under a git directory.

        Args:
            parent: Root-relative path of the parent directory.
            name: Base name of the subdirectory.

        Returns:
            True if the subdirectory and its subtree are not watched.
        """
        parts = PurePath(parent).parts
        if parts and parts[-1] == METADATA_DIR and name in PRUNED_METADATA_DIRS:
            return True
        return self.should_ignore(name, True, inside_metadata=METADATA_DIR in parts)


def resolve_root(root: str | Path) -> Path:
    """Return root as an absolute directory path.

    Raises:
        WatchStartupError: If root does not exist or is not a directory.
    """
    root_path = Path(root).absolute()
    if not root_path.exists():
        raise WatchStartupError(f"Watch root does not exist: {root_path}", str(root_path))
    if not root_path.is_dir():
        raise WatchStartupError(f"Watch root is not a directory: {root_path}", str(root_path))
    return root_path


def walk_directories(root: str | Path, path_filter: PathFilter) -> Iterator[Path]:
    """Yield every directory under root accepted by the filter.

    The root itself is yielded first. Unreadable subdirectories are skipped.

    Args:
        root: Directory to walk.
        path_filter: Filter deciding which subtrees are pruned.

    Yields:
        Absolute paths of accepted directories, parents before children.

    Raises:
        WatchStartupError: If root does not exist or is not a directory.
    """
    root_path = resolve_root(root)

    def on_error(error: OSError) -> None:
        if Path(error.filename or "") == root_path:
            raise WatchStartupError(f"Cannot open watch root: {error}", str(root_path)) from error
        logger.debug("walk_skipped", path=error.filename, error=str(error))

    for dirpath, dirnames, _ in os.walk(root_path, onerror=on_error):
        current = Path(dirpath)
        relative = current.relative_to(root_path)
        dirnames[:] = sorted(d for d in dirnames if not path_filter.should_prune(relative, d))
        yield current
