"""Event pipeline tests driven through the notification bridge."""

import asyncio
import contextlib
import os
from collections.abc import AsyncIterator
from pathlib import Path

import pytest

from arcwatch.config import Settings
from arcwatch.errors import WatchRegistrationError, WatchStartupError
from arcwatch.events.pipeline import EventPipeline
from arcwatch.events.types import ChangeEvent, ChangeKind, GitOperation, MutationKind, RawNotification
from arcwatch.lifecycle import GracefulShutdown


@contextlib.asynccontextmanager
async def running(
    root: Path,
    settings: Settings,
    observer,
    shutdown: GracefulShutdown | None = None,
) -> AsyncIterator[EventPipeline]:
    pipeline = EventPipeline(root, settings, observer=observer, shutdown=shutdown)
    await pipeline.start()
    try:
        yield pipeline
    finally:
        await asyncio.wait_for(pipeline.stop(), timeout=5.0)


def notify(
    pipeline: EventPipeline,
    path: Path,
    kind: MutationKind = MutationKind.MODIFIED,
    is_directory: bool | None = None,
) -> None:
    assert pipeline.source is not None
    pipeline.source.submit(RawNotification(path=str(path), kind=kind, is_directory=is_directory))


async def next_event(pipeline: EventPipeline) -> ChangeEvent:
    return await asyncio.wait_for(pipeline.events.get(), timeout=2.0)


async def assert_dropped(pipeline: EventPipeline, root: Path) -> None:
    """Send a marker notification and check it is the next event out."""
    marker = root / "marker.txt"
    notify(pipeline, marker, MutationKind.REMOVED)
    event = await next_event(pipeline)
    assert event.path == "marker.txt"


def test_start_reports_watch_count(settings, fake_observer, project: Path) -> None:
    """Starting walks the tree and starts the observer."""

    async def scenario() -> None:
        async with running(project, settings, fake_observer) as pipeline:
            assert fake_observer.started
            assert pipeline.is_running
            assert fake_observer.scheduled == [str(project)]
            assert pipeline.watch_count > 1

    asyncio.run(scenario())
    assert fake_observer.stopped


def test_commit_message_is_commit(settings, fake_observer, project: Path) -> None:
    """Writing COMMIT_EDITMSG is reported as a commit without preview."""

    async def scenario() -> ChangeEvent:
        message = project / ".git" / "COMMIT_EDITMSG"
        message.write_text("Add feature\n")
        async with running(project, settings, fake_observer) as pipeline:
            notify(pipeline, message, MutationKind.CREATED, is_directory=False)
            return await next_event(pipeline)

    event = asyncio.run(scenario())

    assert event.is_git_operation
    assert event.git_operation is GitOperation.COMMIT
    assert event.preview is None
    assert event.path == ".git/COMMIT_EDITMSG"
    assert event.name == "COMMIT_EDITMSG"
    assert event.size == len("Add feature\n")


def test_remote_ref_is_push(settings, fake_observer, project: Path) -> None:
    """Updating a remote ref is reported as a push."""

    async def scenario() -> ChangeEvent:
        ref = project / ".git" / "refs" / "remotes" / "origin" / "main"
        ref.write_text("0" * 40 + "\n")
        async with running(project, settings, fake_observer) as pipeline:
            notify(pipeline, ref)
            return await next_event(pipeline)

    event = asyncio.run(scenario())

    assert event.git_operation is GitOperation.PUSH
    assert event.kind is ChangeKind.MODIFIED


def test_modified_file_has_preview(settings, fake_observer, project: Path) -> None:
    """An ordinary modification carries its last non-blank lines."""

    async def scenario() -> ChangeEvent:
        source = project / "src" / "app.go"
        source.write_text("package main\n\nfunc a() {}\nfunc b() {}\n\nfunc c() {}\n")
        async with running(project, settings, fake_observer) as pipeline:
            notify(pipeline, source)
            return await next_event(pipeline)

    event = asyncio.run(scenario())

    assert not event.is_git_operation
    assert event.git_operation is None
    assert event.path == "src/app.go"
    assert event.kind is ChangeKind.MODIFIED
    assert event.preview == ("func a() {}", "func b() {}", "func c() {}")
    assert all(len(line) <= settings.preview_width for line in event.preview)


@pytest.mark.parametrize("kind", list(MutationKind))
def test_editor_temp_files_are_dropped(settings, fake_observer, project: Path, kind: MutationKind) -> None:
    """Editor temp files never produce events."""

    async def scenario() -> None:
        async with running(project, settings, fake_observer) as pipeline:
            notify(pipeline, project / "editor.go.tmp", kind)
            notify(pipeline, project / "src" / "app.go~", kind)
            notify(pipeline, project / "src" / "#app.go#", kind)
            await assert_dropped(pipeline, project)

    asyncio.run(scenario())


@pytest.mark.parametrize("kind", list(MutationKind))
def test_lock_files_are_dropped(settings, fake_observer, project: Path, kind: MutationKind) -> None:
    """Git lock files never produce events."""

    async def scenario() -> None:
        async with running(project, settings, fake_observer) as pipeline:
            notify(pipeline, project / ".git" / "index.lock", kind)
            notify(pipeline, project / ".git" / "refs" / "heads" / "main.lock", kind)
            await assert_dropped(pipeline, project)

    asyncio.run(scenario())


def test_noise_is_dropped(settings, fake_observer, project: Path) -> None:
    """Hidden files, metadata bookkeeping and chmod produce nothing."""

    async def scenario() -> None:
        async with running(project, settings, fake_observer) as pipeline:
            notify(pipeline, project / ".env")
            notify(pipeline, project / ".git" / "objects" / "ab" / "cdef", MutationKind.CREATED)
            notify(pipeline, project / ".git" / "index")
            notify(pipeline, project / "src" / "app.go", MutationKind.PERMISSION_CHANGED)
            await assert_dropped(pipeline, project)

    asyncio.run(scenario())


def test_empty_file_has_zero_size_and_no_preview(settings, fake_observer, project: Path) -> None:
    """A zero-byte file yields size 0 and no preview."""

    async def scenario() -> ChangeEvent:
        empty = project / "src" / "empty.txt"
        empty.write_bytes(b"")
        async with running(project, settings, fake_observer) as pipeline:
            notify(pipeline, empty, MutationKind.CREATED, is_directory=False)
            return await next_event(pipeline)

    event = asyncio.run(scenario())

    assert event.size == 0
    assert event.preview is None
    assert event.kind is ChangeKind.CREATED


def test_deleted_file_is_low_information_event(settings, fake_observer, project: Path) -> None:
    """A file gone before inspection is still reported."""

    async def scenario() -> ChangeEvent:
        async with running(project, settings, fake_observer) as pipeline:
            notify(pipeline, project / "src" / "removed.py", MutationKind.REMOVED)
            return await next_event(pipeline)

    event = asyncio.run(scenario())

    assert event.kind is ChangeKind.DELETED
    assert event.size == 0
    assert event.preview is None


def test_rename_has_no_preview(settings, fake_observer, project: Path) -> None:
    """Renames are reported without preview."""

    async def scenario() -> ChangeEvent:
        async with running(project, settings, fake_observer) as pipeline:
            notify(pipeline, project / "src" / "app.go", MutationKind.RENAMED)
            return await next_event(pipeline)

    event = asyncio.run(scenario())

    assert event.kind is ChangeKind.RENAMED
    assert event.preview is None


def test_new_directory_contents_are_not_lost(settings, fake_observer, project: Path) -> None:
    """Files created in a new directory before its watch exists are reported."""

    async def scenario() -> list[ChangeEvent]:
        async with running(project, settings, fake_observer) as pipeline:
            sub = project / "sub"
            sub.mkdir()
            (sub / "f.txt").write_text("hello\n")
            notify(pipeline, sub, MutationKind.CREATED, is_directory=True)
            events = [await next_event(pipeline), await next_event(pipeline)]

            assert str(sub) in pipeline.watches
            notify(pipeline, sub / "f.txt", MutationKind.CREATED, is_directory=False)
            await assert_dropped(pipeline, project)
            return events

    directory, inner = asyncio.run(scenario())

    assert directory.path == "sub"
    assert directory.is_directory
    assert directory.preview is None
    assert inner.path == "sub/f.txt"
    assert inner.kind is ChangeKind.CREATED
    assert inner.preview == ("hello",)


def test_nested_directories_are_caught_up(settings, fake_observer, project: Path) -> None:
    """Catch-up recurses into directories that appeared together."""

    async def scenario() -> list[str]:
        async with running(project, settings, fake_observer) as pipeline:
            deep = project / "a" / "b"
            deep.mkdir(parents=True)
            (deep / "c.txt").write_text("x\n")
            notify(pipeline, project / "a", MutationKind.CREATED, is_directory=True)
            paths = [(await next_event(pipeline)).path for _ in range(3)]
            assert str(deep) in pipeline.watches
            return paths

    assert asyncio.run(scenario()) == ["a", "a/b", "a/b/c.txt"]


def test_new_branch_directory_is_watched(settings, fake_observer, project: Path) -> None:
    """Ref directories created by git are watched and classified."""

    async def scenario() -> ChangeEvent:
        branch_dir = project / ".git" / "refs" / "heads" / "feature"
        branch_dir.mkdir()
        async with running(project, settings, fake_observer) as pipeline:
            notify(pipeline, branch_dir, MutationKind.CREATED, is_directory=True)
            event = await next_event(pipeline)
            assert str(branch_dir) in pipeline.watches
            return event

    event = asyncio.run(scenario())
    assert event.git_operation is GitOperation.COMMIT


def test_events_keep_notification_order(settings, fake_observer, project: Path) -> None:
    """Events leave in the order notifications arrived, without coalescing."""

    async def scenario() -> list[tuple[str, ChangeKind]]:
        async with running(project, settings, fake_observer) as pipeline:
            app = project / "src" / "app.go"
            notify(pipeline, app)
            notify(pipeline, app)
            notify(pipeline, project / ".git" / "HEAD")
            notify(pipeline, project / "src" / "old.go", MutationKind.REMOVED)
            return [((e := await next_event(pipeline)).path, e.kind) for _ in range(4)]

    assert asyncio.run(scenario()) == [
        ("src/app.go", ChangeKind.MODIFIED),
        ("src/app.go", ChangeKind.MODIFIED),
        (".git/HEAD", ChangeKind.MODIFIED),
        ("src/old.go", ChangeKind.DELETED),
    ]


def test_backpressure_blocks_without_dropping(fake_observer, project: Path) -> None:
    """A full channel holds the pipeline back until the consumer drains."""
    settings = Settings(event_queue_size=2, _env_file=None)

    async def scenario() -> list[str]:
        async with running(project, settings, fake_observer) as pipeline:
            for i in range(5):
                notify(pipeline, project / f"file{i}.txt", MutationKind.REMOVED)
            await asyncio.sleep(0.1)

            assert pipeline.events.full()
            assert pipeline.is_running

            return [(await next_event(pipeline)).path for _ in range(5)]

    assert asyncio.run(scenario()) == [f"file{i}.txt" for i in range(5)]


def test_stop_while_blocked_on_full_channel(fake_observer, project: Path) -> None:
    """Stopping never hangs on a publish waiting for space."""
    settings = Settings(event_queue_size=1, _env_file=None)

    async def scenario() -> None:
        pipeline = EventPipeline(project, settings, observer=fake_observer)
        await pipeline.start()
        for i in range(3):
            notify(pipeline, project / f"file{i}.txt", MutationKind.REMOVED)
        await asyncio.sleep(0.1)

        await asyncio.wait_for(pipeline.stop(), timeout=2.0)
        assert not pipeline.is_running

    asyncio.run(scenario())
    assert fake_observer.stopped


def test_source_closure_ends_pipeline(settings, fake_observer, project: Path) -> None:
    """The loop ends when the notification source closes."""

    async def scenario() -> bool:
        shutdown = GracefulShutdown()
        pipeline = EventPipeline(project, settings, observer=fake_observer, shutdown=shutdown)
        await pipeline.start()
        assert pipeline.source is not None
        pipeline.source.close()
        finished = await shutdown.wait(timeout=2.0)
        await pipeline.stop()
        return finished

    assert asyncio.run(scenario())
    assert fake_observer.stopped


def test_source_errors_are_forwarded(settings, fake_observer, project: Path) -> None:
    """Errors reach the error channel and the loop keeps running."""

    async def scenario() -> Exception:
        async with running(project, settings, fake_observer) as pipeline:
            assert pipeline.source is not None
            pipeline.source.report_error(OSError("queue overflow"))
            error = await asyncio.wait_for(pipeline.errors.get(), timeout=2.0)
            await assert_dropped(pipeline, project)
            return error

    assert "queue overflow" in str(asyncio.run(scenario()))


def test_registration_failures_are_forwarded(settings, fake_observer, project: Path) -> None:
    """A created directory that cannot be watched is reported but not fatal."""
    gone = project / "short-lived"

    async def scenario() -> tuple[ChangeEvent, Exception]:
        async with running(project, settings, fake_observer) as pipeline:
            notify(pipeline, gone, MutationKind.CREATED, is_directory=True)
            event = await next_event(pipeline)
            error = await asyncio.wait_for(pipeline.errors.get(), timeout=2.0)
            assert pipeline.is_running
            return event, error

    event, error = asyncio.run(scenario())

    assert event.path == "short-lived"
    assert isinstance(error, WatchRegistrationError)
    assert error.path == str(gone)


def test_missing_root_fails_start(settings, fake_observer, tmp_path: Path) -> None:
    """A root that cannot be opened is a hard startup error."""

    async def scenario() -> None:
        pipeline = EventPipeline(tmp_path / "missing", settings, observer=fake_observer)
        await pipeline.start()

    with pytest.raises(WatchStartupError):
        asyncio.run(scenario())
    assert fake_observer.stopped


def test_relative_root_is_resolved(settings, fake_observer, project: Path, monkeypatch) -> None:
    """Event paths are relative to the resolved root."""
    monkeypatch.chdir(project)

    async def scenario() -> ChangeEvent:
        async with running(Path("."), settings, fake_observer) as pipeline:
            assert pipeline.root == project
            notify(pipeline, project / "src" / "app.go")
            return await next_event(pipeline)

    assert asyncio.run(scenario()).path == "src/app.go"


def test_replacing_caught_up_file_is_reported(settings, fake_observer, project: Path) -> None:
    """An atomic save over a file found by catch-up still produces its creation."""

    async def scenario() -> list[tuple[str, ChangeKind]]:
        async with running(project, settings, fake_observer) as pipeline:
            sub = project / "sub"
            sub.mkdir()
            (sub / "f.txt").write_text("old\n")
            notify(pipeline, sub, MutationKind.CREATED, is_directory=True)
            seen = [await next_event(pipeline), await next_event(pipeline)]
            assert [e.path for e in seen] == ["sub", "sub/f.txt"]

            (sub / "f.new").write_text("new\n")
            os.replace(sub / "f.new", sub / "f.txt")
            notify(pipeline, sub / "f.new", MutationKind.RENAMED, is_directory=False)
            notify(pipeline, sub / "f.txt", MutationKind.CREATED, is_directory=False)
            saved = [await next_event(pipeline), await next_event(pipeline)]
            assert saved[1].preview == ("new",)
            return [(e.path, e.kind) for e in saved]

    assert asyncio.run(scenario()) == [
        ("sub/f.new", ChangeKind.RENAMED),
        ("sub/f.txt", ChangeKind.CREATED),
    ]


def test_recreated_directory_is_caught_up(settings, fake_observer, project: Path) -> None:
    """A directory removed and created again is watched and scanned again."""

    async def scenario() -> list[tuple[str, ChangeKind]]:
        async with running(project, settings, fake_observer) as pipeline:
            sub = project / "sub"
            sub.mkdir()
            notify(pipeline, sub, MutationKind.CREATED, is_directory=True)
            seen = [await next_event(pipeline)]
            assert str(sub) in pipeline.watches

            sub.rmdir()
            notify(pipeline, sub, MutationKind.REMOVED, is_directory=True)
            seen.append(await next_event(pipeline))
            assert str(sub) not in pipeline.watches

            sub.mkdir()
            (sub / "f.txt").write_text("hello\n")
            notify(pipeline, sub, MutationKind.CREATED, is_directory=True)
            seen += [await next_event(pipeline), await next_event(pipeline)]
            assert str(sub) in pipeline.watches
            return [(e.path, e.kind) for e in seen]

    assert asyncio.run(scenario()) == [
        ("sub", ChangeKind.CREATED),
        ("sub", ChangeKind.DELETED),
        ("sub", ChangeKind.CREATED),
        ("sub/f.txt", ChangeKind.CREATED),
    ]


def test_renamed_directory_leaves_watch_set(settings, fake_observer, project: Path) -> None:
    """Notifications from inside a directory renamed away are dropped."""

    async def scenario() -> ChangeEvent:
        async with running(project, settings, fake_observer) as pipeline:
            notify(pipeline, project / "src", MutationKind.RENAMED, is_directory=True)
            event = await next_event(pipeline)
            assert str(project / "src" / "pkg") not in pipeline.watches
            notify(pipeline, project / "src" / "pkg" / "late.go", MutationKind.MODIFIED)
            await assert_dropped(pipeline, project)
            return event

    event = asyncio.run(scenario())
    assert event.kind is ChangeKind.RENAMED
    assert event.is_directory


def test_unwatched_subtrees_are_dropped(settings, fake_observer, project: Path) -> None:
    """Notifications below ignored, hidden or object store directories produce nothing."""

    async def scenario() -> None:
        async with running(project, settings, fake_observer) as pipeline:
            notify(pipeline, project / "node_modules" / "left-pad" / "index.js", MutationKind.CREATED)
            notify(pipeline, project / ".venv" / "lib" / "site.py")
            notify(pipeline, project / ".git" / "objects" / "ab" / "cdef", MutationKind.CREATED)
            await assert_dropped(pipeline, project)

    asyncio.run(scenario())
