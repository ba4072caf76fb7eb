import asyncio
import time

import pytest

from graphsense.config import settings
from graphsense.watcher.change_watcher import ChangeWatcher


def _recording_watcher(root, debounce=0.1):
    changes = []

    async def on_change(path):
        changes.append(path)

    watcher = ChangeWatcher(str(root), on_change, debounce_seconds=debounce)
    return watcher, changes


class TestShouldWatch:
    """Test path filtering."""

    @pytest.fixture
    def watcher(self, tmp_path):
        (tmp_path / ".gitignore").write_text("generated/\n*.d.ts\n")
        watcher, _ = _recording_watcher(tmp_path)
        return watcher

    def test_source_files_accepted(self, watcher, tmp_path):
        assert watcher.should_watch(str((tmp_path / "src" / "app.ts").resolve()))
        assert watcher.should_watch(str((tmp_path / "component.jsx").resolve()))

    def test_extension_case_is_ignored(self, watcher, tmp_path):
        assert watcher.should_watch(str((tmp_path / "Legacy.TS").resolve()))
        assert watcher.should_watch(str((tmp_path / "widget.Jsx").resolve()))

    def test_other_extensions_rejected(self, watcher, tmp_path):
        assert not watcher.should_watch(str((tmp_path / "notes.md").resolve()))
        assert not watcher.should_watch(str((tmp_path / "server.log").resolve()))

    def test_ignore_patterns(self, watcher, tmp_path):
        assert not watcher.should_watch(str((tmp_path / "node_modules" / "pkg" / "index.js").resolve()))
        assert not watcher.should_watch(str((tmp_path / "dist" / "bundle.js").resolve()))
        assert not watcher.should_watch(str((tmp_path / "packages" / "build" / "out.ts").resolve()))

    def test_gitignored_paths(self, watcher, tmp_path):
        assert not watcher.should_watch(str((tmp_path / "generated" / "api.ts").resolve()))
        assert not watcher.should_watch(str((tmp_path / "types" / "global.d.ts").resolve()))

    def test_outside_root(self, watcher, tmp_path):
        assert not watcher.should_watch("/elsewhere/app.ts")


def test_burst_of_events_fires_once(tmp_path):
    source = tmp_path / "app.ts"
    source.write_text("export function a() {}\n")
    watcher, changes = _recording_watcher(tmp_path, debounce=0.1)

    async def scenario():
        for _ in range(3):
            watcher.handle_event(str(source))
            await asyncio.sleep(0.02)
        assert changes == []
        await asyncio.sleep(0.3)
        await watcher.stop()

    asyncio.run(scenario())

    assert changes == [str(source.resolve())]


def test_each_event_restarts_the_timer(tmp_path):
    source = tmp_path / "app.ts"
    source.write_text("export function a() {}\n")
    fired = []

    async def on_change(path):
        fired.append(time.monotonic())

    watcher = ChangeWatcher(str(tmp_path), on_change, debounce_seconds=0.2)

    async def scenario():
        last_event = None
        for _ in range(3):
            last_event = time.monotonic()
            watcher.handle_event(str(source))
            await asyncio.sleep(0.15)
        await asyncio.sleep(0.3)
        await watcher.stop()
        return last_event

    last_event = asyncio.run(scenario())

    assert len(fired) == 1
    assert fired[0] - last_event >= watcher.debounce_seconds


def test_paths_are_debounced_independently(tmp_path):
    first = tmp_path / "a.ts"
    second = tmp_path / "b.ts"
    first.write_text("")
    second.write_text("")
    watcher, changes = _recording_watcher(tmp_path, debounce=0.05)

    async def scenario():
        watcher.handle_event(str(first))
        watcher.handle_event(str(second))
        watcher.handle_event(str(first))
        await asyncio.sleep(0.2)
        await watcher.stop()

    asyncio.run(scenario())

    assert sorted(changes) == sorted([str(first.resolve()), str(second.resolve())])


def test_vanished_file_is_not_reindexed(tmp_path):
    source = tmp_path / "temp.ts"
    source.write_text("")
    watcher, changes = _recording_watcher(tmp_path, debounce=0.05)

    async def scenario():
        watcher.handle_event(str(source))
        source.unlink()
        await asyncio.sleep(0.2)
        await watcher.stop()

    asyncio.run(scenario())

    assert changes == []


def test_ignored_events_start_no_timer(tmp_path):
    watcher, changes = _recording_watcher(tmp_path, debounce=0.05)

    async def scenario():
        watcher.handle_event(str(tmp_path / "node_modules" / "x.js"))
        watcher.handle_event(str(tmp_path / "README.md"))
        assert watcher.timers == {}
        await watcher.stop()

    asyncio.run(scenario())

    assert changes == []


def test_failing_callback_is_contained(tmp_path):
    source = tmp_path / "app.ts"
    source.write_text("")

    async def on_change(path):
        raise RuntimeError("graph down")

    watcher = ChangeWatcher(str(tmp_path), on_change, debounce_seconds=0.01)

    async def scenario():
        watcher.handle_event(str(source))
        await asyncio.sleep(0.1)
        await watcher.stop()

    asyncio.run(scenario())

    assert watcher.tasks == set()


def test_default_debounce_is_one_second(tmp_path):
    watcher, _ = _recording_watcher(tmp_path, debounce=None)

    assert watcher.debounce_seconds == settings.debounce_seconds == 1.0
