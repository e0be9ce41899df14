"""Event types for filesystem monitoring."""
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class MutationKind(str, Enum):
    """Raw mutation kinds reported by the notification source."""

    CREATED = "created"
    MODIFIED = "modified"
    REMOVED = "removed"
    RENAMED = "renamed"
    PERMISSION_CHANGED = "permission_changed"


class ChangeKind(str, Enum):
    """Public mutation kinds carried by change events."""

    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


class GitOperation(str, Enum):
    """Git operations inferred from paths touched inside the git directory."""

    COMMIT = "commit"
    PUSH = "push"
    FETCH = "fetch"
    PULL = "pull"
    MERGE = "merge"
    REBASE = "rebase"
    STASH = "stash"
    CHECKOUT = "checkout"


KIND_MAP: dict[MutationKind, ChangeKind] = {
    MutationKind.CREATED: ChangeKind.CREATED,
    MutationKind.MODIFIED: ChangeKind.MODIFIED,
    MutationKind.REMOVED: ChangeKind.DELETED,
    MutationKind.RENAMED: ChangeKind.RENAMED,
}

PREVIEW_KINDS: frozenset[ChangeKind] = frozenset({
    ChangeKind.CREATED,
    ChangeKind.MODIFIED,
})


class RawNotification(BaseModel):
    """Single notification as delivered by the OS watch primitive.

    Attributes:
        path: Absolute path of the affected entry.
        kind: Raw mutation kind.
        is_directory: Whether the primitive reported a directory, None if unknown.
        synthetic: True for catch-up notifications generated by the pipeline.
    """

    model_config = ConfigDict(frozen=True)

    path: str = Field(description="Absolute path of the affected entry")
    kind: MutationKind = Field(description="Raw mutation kind")
    is_directory: bool | None = Field(default=None, description="Entry is a directory")
    synthetic: bool = Field(default=False, description="Generated by a catch-up scan")


class ChangeEvent(BaseModel):
    """Typed change event published by the pipeline.

    Attributes:
        path: File path relative to the watched root.
        name: Base name of the file.
        kind: Public mutation kind.
        timestamp: Processing time in UTC.
        size: Size in bytes at classification time, 0 if the entry is gone.
        is_directory: Whether the entry was a directory.
        is_git_operation: Whether the event describes a git operation.
        git_operation: The inferred git operation.
        preview: Trailing lines of a created or modified ordinary file.
    """

    model_config = ConfigDict(frozen=True)

    path: str = Field(description="Path relative to the watched root")
    name: str = Field(description="Base name")
    kind: ChangeKind = Field(description="Mutation kind")
    timestamp: datetime = Field(description="Processing timestamp (UTC)")
    size: int = Field(default=0, ge=0, description="Size in bytes")
    is_directory: bool = Field(default=False, description="Entry is a directory")
    is_git_operation: bool = Field(default=False, description="Event is a git operation")
    git_operation: GitOperation | None = Field(default=None, description="Inferred git operation")
    preview: tuple[str, ...] | None = Field(default=None, description="Trailing content lines")

    @model_validator(mode="after")
    def check_consistency(self) -> "ChangeEvent":
        """Reject events whose git and preview fields contradict each other."""
        if self.is_git_operation != (self.git_operation is not None):
            raise ValueError("git_operation must be set exactly when is_git_operation is true")
        if self.preview is not None:
            if self.is_git_operation:
                raise ValueError("git operations never carry a preview")
            if self.is_directory or self.kind not in PREVIEW_KINDS:
                raise ValueError("preview is only allowed for created or modified files")
        return self
