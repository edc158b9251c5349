"""Shared test doubles."""
import pytest


class FakeWatch:
    def __init__(self, path, recursive):
        self.path = path
        self.is_recursive = recursive


class FakeObserver:
    """Stands in for watchdog's Observer; records scheduled watches by path."""

    def __init__(self, refuse=()):
        self.refuse = set(refuse)
        self.scheduled = {}
        self.started = False
        self.stopped = False

    def start(self):
        self.started = True

    def schedule(self, handler, path, recursive=False, event_filter=None):
        if path in self.refuse:
            raise OSError(28, "inotify watch limit reached")
        watch = FakeWatch(path, recursive)
        self.scheduled[path] = watch
        return watch

    def unschedule(self, watch):
        del self.scheduled[watch.path]

    def unschedule_all(self):
        self.scheduled.clear()

    def stop(self):
        self.stopped = True

    def join(self, timeout=None):
        pass


@pytest.fixture
def fake_observer():
    """The FakeObserver class, usable as an observer factory."""
    return FakeObserver
