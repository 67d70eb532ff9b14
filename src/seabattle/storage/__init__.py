"""Snapshot persistence for game sessions."""

from .snapshot import SavedSnapshot, SnapshotStore
from .writer import SaveQueue

__all__ = ["SavedSnapshot", "SnapshotStore", "SaveQueue"]
