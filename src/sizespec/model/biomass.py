# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 SIZESPEC Team <dev@sizespec.org>

"""
Cutoff biomass.

Both the objective-data builder and the pipeline's conservation check go
through ``cutoff_biomass`` so that every recomputation performs the same
floating-point reduction and agrees bit for bit.
"""

import math
from typing import Dict, Optional

import numpy as np

from .snapshot import ModelSnapshot


def biomass_cutoff_index(w: np.ndarray, cutoff: Optional[float]) -> int:
    """Index of the first grid point at or above ``cutoff`` (0 without a cutoff)."""
    if cutoff is None or math.isnan(cutoff):
        return 0
    return int(np.sum(np.asarray(w) < cutoff))


def cutoff_biomass(
    w: np.ndarray,
    dw: np.ndarray,
    n: np.ndarray,
    cutoff: Optional[float] = None,
) -> float:
    """Sum of ``n * w * dw`` over grid points with ``w >= cutoff``."""
    idx = biomass_cutoff_index(w, cutoff)
    return float(np.sum((np.asarray(n) * np.asarray(w) * np.asarray(dw))[idx:]))


def species_biomass(snapshot: ModelSnapshot, species: str) -> float:
    """Cutoff biomass of one species over the full weight grid."""
    idx = snapshot.species_index(species)
    sp = snapshot.species_params[idx]
    return cutoff_biomass(snapshot.w, snapshot.dw, snapshot.initial_n[idx], sp.biomass_cutoff)


def biomass_by_species(snapshot: ModelSnapshot) -> Dict[str, float]:
    return {name: species_biomass(snapshot, name) for name in snapshot.species_names}
