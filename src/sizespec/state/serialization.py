# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 SIZESPEC Team <dev@sizespec.org>

"""
Snapshot persistence.

A snapshot is stored as a single ``.npz`` archive holding the weight grid,
abundance and growth arrays plus a JSON document (under ``__meta__``) with
the parameter tables and bookkeeping fields. Writes go to a temporary file
in the target directory which is then renamed over the target, so a reader
never sees a partially written snapshot.
"""

import json
import logging
import os
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import numpy as np

from sizespec.core.exceptions import CorruptLogError, SizespecError
from sizespec.model.snapshot import GearParams, ModelSnapshot, SpeciesParams
from sizespec.sizespec_version import __version__

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1
META_KEY = '__meta__'
ARRAY_NAMES = ('w', 'dw', 'initial_n', 'growth')


def _snapshot_metadata(
    snapshot: ModelSnapshot,
    seq: Optional[int],
    created_utc: Optional[datetime],
) -> Dict[str, Any]:
    created = created_utc or datetime.now(timezone.utc)
    return {
        'format_version': FORMAT_VERSION,
        'sizespec_version': __version__,
        'seq': seq,
        'created_utc': created.isoformat(),
        'species_params': [sp.to_dict() for sp in snapshot.species_params],
        'gear_params': [gp.to_dict() for gp in snapshot.gear_params],
        'metadata': snapshot.metadata,
    }


def save_snapshot(
    snapshot: ModelSnapshot,
    path: Union[str, Path],
    seq: Optional[int] = None,
    created_utc: Optional[datetime] = None,
) -> Path:
    """Atomically write ``snapshot`` to ``path``.

    The stored snapshot always has ``changed = False``.

    Args:
        snapshot: Snapshot to persist.
        path: Target file; its parent directory is created if needed.
        seq: Sequence number recorded in the metadata.
        created_utc: Creation time recorded in the metadata (default: now).

    Returns:
        The path written.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    meta = _snapshot_metadata(snapshot, seq, created_utc)
    arrays = {name: np.asarray(getattr(snapshot, name)) for name in ARRAY_NAMES}

    tmp_path = path.with_name(f".{path.name}.tmp")
    try:
        # Writing through a file object keeps numpy from appending a suffix
        with open(tmp_path, 'wb') as fh:
            np.savez(fh, **{META_KEY: np.array(json.dumps(meta))}, **arrays)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()

    logger.debug(f"Saved snapshot to {path}")
    return path


def read_snapshot(path: Union[str, Path]) -> Tuple[ModelSnapshot, Dict[str, Any]]:
    """Load a snapshot and the bookkeeping metadata stored with it.

    Raises:
        CorruptLogError: If the file is missing or cannot be decoded into a
            valid snapshot.
    """
    path = Path(path)
    try:
        with np.load(path, allow_pickle=False) as data:
            meta = json.loads(str(data[META_KEY][()]))
            arrays = {name: np.array(data[name], dtype=float) for name in ARRAY_NAMES}
        snapshot = ModelSnapshot(
            species_params=tuple(SpeciesParams.from_dict(d) for d in meta['species_params']),
            gear_params=tuple(GearParams.from_dict(d) for d in meta['gear_params']),
            changed=False,
            metadata=dict(meta.get('metadata') or {}),
            **arrays,
        )
    except FileNotFoundError as e:
        raise CorruptLogError(f"Snapshot file is missing: {path}") from e
    except (OSError, ValueError, KeyError, TypeError, zipfile.BadZipFile, SizespecError) as e:
        raise CorruptLogError(f"Could not read snapshot {path}: {e}") from e

    bookkeeping = {k: meta.get(k) for k in ('format_version', 'sizespec_version', 'seq', 'created_utc')}
    return snapshot, bookkeeping


def load_snapshot(path: Union[str, Path]) -> ModelSnapshot:
    """Load a snapshot written by ``save_snapshot``."""
    snapshot, _ = read_snapshot(path)
    return snapshot
