"""Periodic spread watching."""

from .scheduler import SpreadWatcher, StartResult, StopResult, WatcherRegistry, WatchState

__all__ = ["SpreadWatcher", "StartResult", "StopResult", "WatchState", "WatcherRegistry"]
