# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 SIZESPEC Team <dev@sizespec.org>

"""
Persistent, linear undo/redo history of model snapshots.

Every committed snapshot is written to its own file named
``<prefix>_<session>_<seq>_<YYYY_MM_DD_at_HH_MM_SS>.npz``. The zero-padded
sequence number orders the entries; the UTC timestamp is for display only.
A cursor marks the current entry. Committing after an undo discards the
entries after the cursor.

One log per storage location and session id. Concurrent use of the same
location by several sessions is not supported.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Tuple, Union

from sizespec.core.exceptions import SnapshotLogError, ValidationError
from sizespec.model.snapshot import ModelSnapshot

from .serialization import load_snapshot, save_snapshot

if TYPE_CHECKING:
    from sizespec.core.config.models import SizespecConfig

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = '%Y_%m_%d_at_%H_%M_%S'
SEQ_WIDTH = 6


class LogState(Enum):
    EMPTY = 'empty'
    POSITIONED = 'positioned'
    CLOSED = 'closed'


@dataclass(frozen=True)
class LogEntry:
    """One persisted snapshot."""
    seq: int
    created_utc: datetime
    path: Path

    @property
    def label(self) -> str:
        return f"{self.seq}: {self.created_utc:%Y-%m-%d %H:%M:%S} UTC"


class SnapshotLog:
    """Ordered sequence of persisted snapshots with a cursor.

    The log starts Empty; ``initialize`` positions it on a recovered or a
    freshly persisted entry and ``close`` deletes everything and closes it
    for good. The cursor is 1-based.

    Args:
        log_dir: Directory holding the snapshot files.
        session_id: Identifies the session's files within ``log_dir``.
        file_prefix: Leading part of every file name.
    """

    def __init__(
        self,
        log_dir: Union[str, Path],
        session_id: str = 'default',
        file_prefix: str = 'sizespec_params',
    ):
        for name, value in (('session_id', session_id), ('file_prefix', file_prefix)):
            if not value or '/' in value or '\\' in value:
                raise ValidationError(f"{name} must be a non-empty name without path separators: {value!r}")
        self.log_dir = Path(log_dir)
        self.session_id = session_id
        self.file_prefix = file_prefix
        self._stem = f"{file_prefix}_{session_id}_"
        self._pattern = re.compile(
            rf"^{re.escape(self._stem)}(\d{{{SEQ_WIDTH},}})_"
            r"(\d{4}_\d{2}_\d{2}_at_\d{2}_\d{2}_\d{2})\.npz$"
        )
        self._entries: List[LogEntry] = []
        self._cursor = 0
        self._next_seq = 1
        self._state = LogState.EMPTY

    @classmethod
    def from_config(cls, config: 'SizespecConfig') -> 'SnapshotLog':
        settings = config.snapshot_log
        return cls(settings.log_path, settings.session_id, settings.file_prefix)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> LogState:
        return self._state

    @property
    def entries(self) -> Tuple[LogEntry, ...]:
        return tuple(self._entries)

    @property
    def cursor(self) -> int:
        """1-based position of the current entry; 0 before initialization."""
        return self._cursor

    @property
    def can_undo(self) -> bool:
        return self._state is LogState.POSITIONED and self._cursor > 1

    @property
    def can_redo(self) -> bool:
        return self._state is LogState.POSITIONED and self._cursor < len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return (
            f"SnapshotLog(log_dir={str(self.log_dir)!r}, session_id={self.session_id!r}, "
            f"state={self._state.value}, cursor={self._cursor}/{len(self._entries)})"
        )

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def _entry_path(self, seq: int, created_utc: datetime) -> Path:
        return self.log_dir / f"{self._stem}{seq:0{SEQ_WIDTH}d}_{created_utc.strftime(TIMESTAMP_FORMAT)}.npz"

    def _parse(self, path: Path) -> Optional[LogEntry]:
        match = self._pattern.match(path.name)
        if match is None:
            return None
        created = datetime.strptime(match.group(2), TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
        return LogEntry(seq=int(match.group(1)), created_utc=created, path=path)

    def scan(self) -> List[LogEntry]:
        """Entries of this session found on disk, ordered by sequence number."""
        if not self.log_dir.is_dir():
            return []
        found = [self._parse(p) for p in self.log_dir.iterdir() if p.is_file()]
        return sorted((e for e in found if e is not None), key=lambda e: e.seq)

    def _write(self, snapshot: ModelSnapshot) -> LogEntry:
        created = datetime.now(timezone.utc).replace(microsecond=0)
        seq = self._next_seq
        path = self._entry_path(seq, created)
        save_snapshot(snapshot, path, seq=seq, created_utc=created)
        self._next_seq = seq + 1
        return LogEntry(seq=seq, created_utc=created, path=path)

    @staticmethod
    def _delete(entries: List[LogEntry]) -> None:
        for entry in entries:
            entry.path.unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # State checks
    # ------------------------------------------------------------------

    def _require_open(self) -> None:
        if self._state is LogState.CLOSED:
            raise SnapshotLogError("Snapshot log has been closed")

    def _require_positioned(self) -> None:
        self._require_open()
        if self._state is not LogState.POSITIONED:
            raise SnapshotLogError("Snapshot log has not been initialized")

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def initialize(self, current: Optional[ModelSnapshot] = None) -> ModelSnapshot:
        """Recover persisted entries or start a new log from ``current``.

        Recovered entries take precedence over ``current``; the cursor is then
        placed on the last entry.

        Returns:
            The snapshot at the cursor.

        Raises:
            SnapshotLogError: If the log is not Empty, or there is nothing to
                recover and no ``current`` snapshot.
        """
        self._require_open()
        if self._state is LogState.POSITIONED:
            raise SnapshotLogError("Snapshot log is already initialized")

        recovered = self.scan()
        if recovered:
            if current is not None:
                logger.warning(
                    f"Recovered {len(recovered)} snapshot(s) for session '{self.session_id}'; "
                    f"ignoring the snapshot passed in"
                )
            self._entries = recovered
            self._cursor = len(recovered)
            self._next_seq = recovered[-1].seq + 1
            self._state = LogState.POSITIONED
            logger.info(f"Recovered {len(recovered)} snapshot(s) from {self.log_dir}")
            return self.current()

        if current is None:
            raise SnapshotLogError(
                f"No snapshots to recover in {self.log_dir} and no snapshot to start from"
            )
        entry = self._write(current)
        self._entries = [entry]
        self._cursor = 1
        self._state = LogState.POSITIONED
        logger.info(f"Started snapshot log in {self.log_dir}")
        return current.mark_committed()

    def commit(self, snapshot: ModelSnapshot) -> LogEntry:
        """Persist ``snapshot`` after the cursor and move the cursor onto it.

        Entries after the cursor are discarded. The new file is written
        before anything is deleted, so a failed write leaves the log as it was.
        """
        self._require_positioned()
        entry = self._write(snapshot)
        discarded = self._entries[self._cursor:]
        if discarded:
            self._delete(discarded)
            logger.info(f"Discarded {len(discarded)} snapshot(s) after position {self._cursor}")
        self._entries = self._entries[:self._cursor] + [entry]
        self._cursor = len(self._entries)
        logger.info(f"Committed snapshot {entry.seq} at position {self._cursor}")
        return entry

    def current(self) -> ModelSnapshot:
        """Load the snapshot at the cursor.

        Raises:
            CorruptLogError: If the stored file cannot be read.
        """
        self._require_positioned()
        return load_snapshot(self._entries[self._cursor - 1].path)

    def _move_to(self, position: int) -> ModelSnapshot:
        snapshot = load_snapshot(self._entries[position - 1].path)
        self._cursor = position
        return snapshot

    def undo(self) -> Optional[ModelSnapshot]:
        """Step back one entry; None if already at the first."""
        self._require_positioned()
        if not self.can_undo:
            logger.debug("Nothing to undo")
            return None
        snapshot = self._move_to(self._cursor - 1)
        logger.info(f"Undo to position {self._cursor} of {len(self._entries)}")
        return snapshot

    def redo(self) -> Optional[ModelSnapshot]:
        """Step forward one entry; None if already at the last."""
        self._require_positioned()
        if not self.can_redo:
            logger.debug("Nothing to redo")
            return None
        snapshot = self._move_to(self._cursor + 1)
        logger.info(f"Redo to position {self._cursor} of {len(self._entries)}")
        return snapshot

    def rewind_to_start(self) -> ModelSnapshot:
        """Move the cursor to the first entry and return its snapshot."""
        self._require_positioned()
        snapshot = self._move_to(1)
        logger.info("Rewound to the first snapshot")
        return snapshot

    def close(self) -> None:
        """Delete every file of this session and close the log.

        Also removes files left on disk by an earlier run when called on a
        log that was never initialized.
        """
        self._require_open()
        known = {e.path for e in self._entries}
        stale = [e for e in self.scan() if e.path not in known]
        self._delete(self._entries + stale)
        count = len(self._entries) + len(stale)
        self._entries = []
        self._cursor = 0
        self._state = LogState.CLOSED
        logger.info(f"Closed snapshot log for session '{self.session_id}', deleted {count} file(s)")
