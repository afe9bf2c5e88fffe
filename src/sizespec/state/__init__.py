"""Snapshot persistence and the undo/redo log."""

from .serialization import load_snapshot, read_snapshot, save_snapshot
from .snapshot_log import LogEntry, LogState, SnapshotLog

__all__ = [
    'LogEntry',
    'LogState',
    'SnapshotLog',
    'load_snapshot',
    'read_snapshot',
    'save_snapshot',
]
