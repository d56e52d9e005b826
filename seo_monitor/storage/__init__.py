"""Metric storage"""

from .snapshot_store import SeriesView, SnapshotStore

__all__ = ["SnapshotStore", "SeriesView"]
