# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 SIZESPEC Team <dev@sizespec.org>

"""
Objective data for the catch optimizer.

Assembles the numeric record that the external optimizer evaluates its
likelihood on: the aligned observed counts and interpolation coefficients,
the selected part of the weight grid with abundance-derived quantities, and
the observed yield/production targets with their penalty weights.

A penalty weight is forced to zero when its target is missing or not
positive, which switches the corresponding likelihood term off without any
special case in the optimizer.
"""

import logging
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional, Union

import numpy as np
import pandas as pd

from sizespec.core.exceptions import ValidationError
from sizespec.model.biomass import biomass_cutoff_index, cutoff_biomass
from sizespec.model.snapshot import ModelSnapshot, has_target

from .alignment import align_species

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InsufficientData:
    """Returned instead of objective data when a species cannot be fitted.

    This is not an error: the caller should skip fitting the species.
    """
    species: str
    reason: str


@dataclass(frozen=True, eq=False)
class ObjectiveData:
    """Flat numeric record handed to the optimizer for one species.

    Index fields are zero-based. ``bin_index``/``segment_index``/``coeff_*``
    refer to the selected grid ``w``; ``w_mat_idx`` refers to the full grid.
    """
    species: str
    use_counts: bool
    counts: np.ndarray
    bin_index: np.ndarray
    segment_index: np.ndarray
    coeff_left: np.ndarray
    coeff_right: np.ndarray
    w: np.ndarray
    dw: np.ndarray
    l: np.ndarray
    growth: np.ndarray
    biomass: float
    biomass_cutoff_idx: int
    w_mat: float
    w_mat_idx: int
    d: float
    yield_observed: float
    production_observed: float
    yield_lambda: float
    production_lambda: float
    grid_start: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Plain mapping of all fields, arrays included, for the optimizer."""
        return {f.name: getattr(self, f.name) for f in fields(self)}


ObjectiveResult = Union[ObjectiveData, InsufficientData]


def prepare_objective_data(
    snapshot: ModelSnapshot,
    species: str,
    catch: Optional[pd.DataFrame],
    yield_lambda: float = 1.0,
    production_lambda: float = 1.0,
    length_unit: str = 'cm',
) -> ObjectiveResult:
    """Prepare the optimizer's objective data for one species.

    The main preprocessing step makes sure the observed bins cover the whole
    viable size range, interpreting missing observations as zero counts (see
    ``sizespec.calibration.alignment``).

    Args:
        snapshot: Model state to take parameters, grid and abundances from.
        species: The species to prepare data for.
        catch: Observed binned catch; ``None`` means no observations.
        yield_lambda: Strength of the penalty for deviating from observed yield.
        production_lambda: Strength of the penalty for deviating from observed
            production.
        length_unit: Unit of the lengths in ``catch``.

    Returns:
        ``ObjectiveData``, or ``InsufficientData`` if there are neither
        observed counts nor an observed production.

    Raises:
        ValidationError: If the species is unknown, has several gears, or the
            observations are malformed.
    """
    sp = snapshot.get_species(species)
    sp_idx = snapshot.species_index(species)

    gears = snapshot.gears_for(species)
    if len(gears) > 1:
        raise ValidationError(
            f"{species} is fished by {len(gears)} gears; only a single gear per species is supported"
        )
    gear = gears[0] if gears else None

    if catch is None:
        catch = pd.DataFrame({'length': [], 'width': [], 'count': []})
    alignment = align_species(snapshot, species, catch, length_unit=length_unit)

    production_ok = has_target(sp.production_observed)
    if not alignment.use_counts and not production_ok:
        logger.info(f"Not enough data to fit {species}: no observed counts and no observed production")
        return InsufficientData(species=species, reason="no observed counts and no observed production")

    if production_ok:
        production = float(sp.production_observed)
    else:
        production = 0.0
        production_lambda = 0.0

    if gear is not None and has_target(gear.yield_observed):
        yield_observed = float(gear.yield_observed)
    else:
        yield_observed = 0.0
        yield_lambda = 0.0

    sel = alignment.grid_slice
    w = alignment.w
    dw = np.asarray(snapshot.dw[sel], dtype=float)
    n = np.asarray(snapshot.initial_n[sp_idx, sel], dtype=float)

    # The w_mat relevant for mortality is the grid point just below it
    w_mat_idx = max(int(np.sum(snapshot.w < sp.w_mat)) - 1, 0)

    data = ObjectiveData(
        species=species,
        use_counts=alignment.use_counts,
        counts=alignment.bins.counts,
        bin_index=alignment.edges.bin_index,
        segment_index=alignment.edges.segment_index,
        coeff_left=alignment.edges.coeff_left,
        coeff_right=alignment.edges.coeff_right,
        w=w,
        dw=dw,
        l=np.asarray(sp.weight_to_length(w), dtype=float),
        growth=np.asarray(snapshot.growth[sp_idx, sel], dtype=float),
        biomass=cutoff_biomass(w, dw, n, sp.biomass_cutoff),
        biomass_cutoff_idx=biomass_cutoff_index(w, sp.biomass_cutoff),
        w_mat=float(snapshot.w[w_mat_idx]),
        w_mat_idx=w_mat_idx,
        d=float(sp.d),
        yield_observed=yield_observed,
        production_observed=production,
        yield_lambda=float(yield_lambda),
        production_lambda=float(production_lambda),
        grid_start=alignment.grid_start,
    )
    logger.debug(
        f"Prepared objective data for {species}: {alignment.bins.n_bins} bins, "
        f"{w.size} grid points, yield_lambda={data.yield_lambda}, "
        f"production_lambda={data.production_lambda}"
    )
    return data
