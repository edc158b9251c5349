"""Tests for WatchSessionController lifecycle and end-to-end uploads."""
import asyncio
import os
import sys

import pytest

from drivewatch.errors import ConfigurationError
from drivewatch.models import RemoteFile, StatusKind, WatchConfig, WatchSettings
from drivewatch.orchestrator.session import SessionState, WatchSessionController
from drivewatch.services.settings import JsonSettingsStore
from drivewatch.utils.events import StatusBus
from drivewatch.watcher.recursive import RecursiveWatcher


class FakeUploader:
    def __init__(self, gate=None):
        self.calls = []
        self._gate = gate

    async def upload(self, stream, name, mime_type):
        self.calls.append((name, mime_type))
        if self._gate is not None:
            await self._gate.wait()
        return RemoteFile(remote_id=f"id-{name}", remote_link=f"https://drive/{name}")


class RecordingNotifier:
    def __init__(self):
        self.events = []

    def notify(self, event):
        self.events.append(event)


async def wait_until(predicate, timeout=5.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.05)


@pytest.fixture
def root(tmp_path):
    path = tmp_path / "watch"
    path.mkdir()
    return os.path.realpath(path)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def settings(tmp_path):
    return JsonSettingsStore(tmp_path / "home" / "settings.json")


def make_controller(uploader, notifier, settings, tmp_path, observer_factory=None, **config):
    factory = None
    if observer_factory is not None:
        factory = lambda: RecursiveWatcher(observer_factory=observer_factory, debounce_seconds=0.5)
    return WatchSessionController(
        uploader,
        status=StatusBus(notifier),
        settings=settings,
        config=WatchConfig(ledger_path=tmp_path / "home" / "uploaded.json", **config),
        watcher_factory=factory,
    )


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_reports_and_persists(self, root, notifier, settings, tmp_path, fake_observer):
        controller = make_controller(FakeUploader(), notifier, settings, tmp_path, fake_observer)

        session = await controller.start_session(root)
        await controller.stop_session()

        assert session.root_path == root
        assert session.inert is False
        assert notifier.events[0].kind == StatusKind.WATCHING
        assert notifier.events[0].name == f"Watching: {root}"
        assert settings.load() == WatchSettings(root_path=root, watch_enabled=False)

    @pytest.mark.asyncio
    async def test_watch_enabled_while_running(self, root, notifier, settings, tmp_path, fake_observer):
        controller = make_controller(FakeUploader(), notifier, settings, tmp_path, fake_observer)

        await controller.start_session(root)

        assert controller.state == SessionState.WATCHING
        assert controller.is_watching
        assert settings.load().watch_enabled is True
        await controller.stop_session()

    @pytest.mark.asyncio
    async def test_missing_root_gives_inert_session(self, tmp_path, notifier, settings, fake_observer):
        missing = os.path.join(os.path.realpath(tmp_path), "missing")
        controller = make_controller(FakeUploader(), notifier, settings, tmp_path, fake_observer)

        session = await controller.start_session(missing)
        await controller.stop_session()

        assert session.inert is True
        assert notifier.events[0].name == f"Watching: {missing} (inactive: not a directory)"

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, root, notifier, settings, tmp_path, fake_observer):
        controller = make_controller(FakeUploader(), notifier, settings, tmp_path, fake_observer)
        await controller.stop_session()

        await controller.start_session(root)
        watcher = controller.watcher
        await controller.stop_session()
        await controller.stop_session()

        assert controller.state == SessionState.IDLE
        assert controller.watcher is None
        assert controller.session is None
        assert watcher.watched_directories == []

    @pytest.mark.asyncio
    async def test_restart_tears_down_previous_session(self, root, tmp_path, notifier, settings, fake_observer):
        other = tmp_path / "other"
        other.mkdir()
        controller = make_controller(FakeUploader(), notifier, settings, tmp_path, fake_observer)

        await controller.start_session(root)
        first = controller.watcher
        await controller.start_session(os.path.realpath(other))

        assert first.watched_directories == []
        assert not first.is_active
        assert controller.session.root_path == os.path.realpath(other)
        assert settings.load().root_path == os.path.realpath(other)
        await controller.stop_session()

    @pytest.mark.asyncio
    async def test_saved_root_is_used_when_none_given(self, root, notifier, settings, tmp_path, fake_observer):
        settings.save_root(root)
        controller = make_controller(FakeUploader(), notifier, settings, tmp_path, fake_observer)

        session = await controller.start_session()
        await controller.stop_session()

        assert session.root_path == root

    @pytest.mark.asyncio
    async def test_no_root_at_all_is_an_error(self, notifier, settings, tmp_path, fake_observer):
        controller = make_controller(FakeUploader(), notifier, settings, tmp_path, fake_observer)

        with pytest.raises(ConfigurationError):
            await controller.start_session()
        assert controller.state == SessionState.IDLE

    @pytest.mark.asyncio
    async def test_resume_if_enabled(self, root, notifier, settings, tmp_path, fake_observer):
        controller = make_controller(FakeUploader(), notifier, settings, tmp_path, fake_observer)
        assert await controller.resume_if_enabled() is None

        settings.save_root(root)
        assert await controller.resume_if_enabled() is None

        settings.set_watch_enabled(True)
        session = await controller.resume_if_enabled()
        assert session is not None
        assert session.root_path == root
        await controller.stop_session()

    @pytest.mark.asyncio
    async def test_context_manager_stops_session(self, root, notifier, settings, tmp_path, fake_observer):
        async with make_controller(FakeUploader(), notifier, settings, tmp_path, fake_observer) as controller:
            await controller.start_session(root)
        assert controller.state == SessionState.IDLE


class TestUploads:
    @pytest.mark.asyncio
    async def test_finalized_file_is_uploaded(self, root, notifier, settings, tmp_path, fake_observer):
        uploader = FakeUploader()
        controller = make_controller(uploader, notifier, settings, tmp_path, fake_observer)
        await controller.start_session(root)
        path = os.path.join(root, "report.pdf")
        with open(path, "wb") as f:
            f.write(b"%PDF")

        controller.watcher.handle_file_candidate(path)
        await wait_until(lambda: controller.tracker.is_done(path))
        await controller.stop_session()

        assert uploader.calls == [("report.pdf", "application/pdf")]
        kinds = [(e.kind, e.name) for e in notifier.events[1:]]
        assert kinds == [
            (StatusKind.UPLOADING, "report.pdf"),
            (StatusKind.COMPLETED, "report.pdf"),
        ]
        assert (tmp_path / "home" / "uploaded.json").exists()

    @pytest.mark.asyncio
    async def test_ledger_survives_restart(self, root, notifier, settings, tmp_path, fake_observer):
        path = os.path.join(root, "report.pdf")
        with open(path, "wb") as f:
            f.write(b"%PDF")
        uploader = FakeUploader()
        controller = make_controller(uploader, notifier, settings, tmp_path, fake_observer)
        await controller.start_session(root)
        controller.watcher.handle_file_candidate(path)
        await wait_until(lambda: controller.tracker.is_done(path))
        await controller.stop_session()

        fresh = make_controller(uploader, notifier, settings, tmp_path, fake_observer)
        await fresh.start_session(root)
        fresh.watcher.handle_file_candidate(path)
        await asyncio.sleep(0.2)
        await fresh.stop_session()

        assert len(uploader.calls) == 1

    @pytest.mark.asyncio
    async def test_stop_cancels_in_flight_uploads(self, root, notifier, settings, tmp_path, fake_observer):
        gate = asyncio.Event()
        uploader = FakeUploader(gate=gate)
        controller = make_controller(uploader, notifier, settings, tmp_path, fake_observer)
        await controller.start_session(root)
        path = os.path.join(root, "big.mov")
        with open(path, "wb") as f:
            f.write(b"\x00" * 1024)

        controller.watcher.handle_file_candidate(path)
        await wait_until(lambda: uploader.calls)
        await controller.stop_session()

        assert controller.tracker.in_flight == []
        assert not controller.tracker.is_done(path)
        assert all(e.kind != StatusKind.COMPLETED for e in notifier.events)


@pytest.mark.skipif(not sys.platform.startswith("linux"), reason="close-write events need inotify")
@pytest.mark.asyncio
async def test_live_session_uploads_new_file(root, notifier, settings, tmp_path):
    uploader = FakeUploader()
    controller = make_controller(uploader, notifier, settings, tmp_path)
    await controller.start_session(root)
    try:
        path = os.path.join(root, "report.pdf")
        with open(path, "wb") as f:
            f.write(b"%PDF-1.7")
        await wait_until(lambda: controller.tracker.is_done(path))
    finally:
        await controller.stop_session()

    assert uploader.calls == [("report.pdf", "application/pdf")]
    completed = [e for e in notifier.events if e.kind == StatusKind.COMPLETED]
    assert [e.name for e in completed] == ["report.pdf"]
