"""Pytest configuration and fixtures."""

import sys
from pathlib import Path
from types import SimpleNamespace

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from arcwatch.config import Settings


class FakeObserver:
    """Stand-in for a watchdog observer that records scheduled paths."""

    def __init__(self) -> None:
        self.scheduled: list[str] = []
        self.handlers: list[object] = []
        self.started = False
        self.stopped = False
        self._fail_paths: set[str] = set()

    def schedule(self, handler: object, path: str, recursive: bool = False) -> SimpleNamespace:
        if path in self._fail_paths:
            raise PermissionError(13, "Permission denied", path)
        self.scheduled.append(path)
        self.handlers.append(handler)
        return SimpleNamespace(path=path, is_recursive=recursive)

    def fail_on(self, path: str | Path) -> None:
        self._fail_paths.add(str(path))

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stopped = True

    def join(self, timeout: float | None = None) -> None:
        pass

    def is_alive(self) -> bool:
        return self.started and not self.stopped


@pytest.fixture
def settings() -> Settings:
    """Create test settings."""
    return Settings(debug=True, _env_file=None)


@pytest.fixture
def fake_observer() -> FakeObserver:
    """Create an observer that never touches the OS."""
    return FakeObserver()


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """Create a small source tree with a git directory."""
    root = tmp_path / "proj"
    for directory in (
        "src",
        "src/pkg",
        "node_modules/left-pad",
        ".venv/lib",
        ".git/objects/ab",
        ".git/refs/heads",
        ".git/refs/remotes/origin",
        ".git/refs/tags",
        ".git/logs/refs/heads",
    ):
        (root / directory).mkdir(parents=True)
    (root / "src" / "app.go").write_text("package main\n")
    (root / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
    return root
