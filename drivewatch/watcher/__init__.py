"""Recursive folder watching."""
from .classifier import PathClassifier
from .recursive import RecursiveWatcher
from .stream import WatchEventStream

__all__ = ["PathClassifier", "RecursiveWatcher", "WatchEventStream"]
