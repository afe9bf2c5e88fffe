# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 SIZESPEC Team <dev@sizespec.org>

"""
Alignment of observed length bins with the model's weight grid.

Observed catch comes in irregular, possibly gappy length bins while the
model provides a density at the points of its weight grid. This module

1. fills the gaps between observed bins (and before/after them, down to the
   smallest and up to the largest viable size) with zero-count bins,
2. merges all bin edges into a minimal set of non-overlapping atomic bins
   expressed in weight,
3. restricts the weight grid to the sub-range bracketing those bins, and
4. precomputes the coefficients with which density values at grid points
   add up to the integral of the linearly interpolated density over each
   atomic bin.

Missing observations are interpreted as zero counts. Everything here is
recomputed on each call; nothing is cached.
"""

import logging
from dataclasses import dataclass
from typing import List, Tuple

import numpy as np
import pandas as pd

from sizespec.core.exceptions import AlignmentError, ValidationError
from sizespec.data.observations import valid_catch
from sizespec.model.snapshot import ModelSnapshot, SpeciesParams

logger = logging.getLogger(__name__)

# Relative slack when comparing observed sizes to w_max
_W_MAX_RTOL = 1e-10


@dataclass(frozen=True)
class AtomicBins:
    """Gapless, non-overlapping bins with their observed counts.

    Attributes:
        length_edges: Bin boundaries in length, ``n_bins + 1`` values.
        weight_edges: The same boundaries converted to weight.
        counts: Observed count per bin (0 where nothing was observed).
    """
    length_edges: np.ndarray
    weight_edges: np.ndarray
    counts: np.ndarray

    @property
    def n_bins(self) -> int:
        return int(self.counts.size)

    @property
    def weight_widths(self) -> np.ndarray:
        return np.diff(self.weight_edges)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            'length_start': self.length_edges[:-1],
            'length_end': self.length_edges[1:],
            'weight_start': self.weight_edges[:-1],
            'weight_end': self.weight_edges[1:],
            'count': self.counts,
        })

    @classmethod
    def empty(cls) -> 'AtomicBins':
        return cls(length_edges=np.empty(0), weight_edges=np.empty(0), counts=np.empty(0))


@dataclass(frozen=True)
class InterpolationEdges:
    """Sparse map from grid-point density values to atomic-bin integrals.

    Entry ``k`` says that grid segment ``segment_index[k]`` (between grid
    points ``j`` and ``j + 1``) overlaps atomic bin ``bin_index[k]`` and
    contributes ``coeff_left[k] * f[j] + coeff_right[k] * f[j + 1]`` to its
    integral. Entries are ordered by bin, then by segment.
    """
    bin_index: np.ndarray
    segment_index: np.ndarray
    coeff_left: np.ndarray
    coeff_right: np.ndarray

    def __len__(self) -> int:
        return int(self.bin_index.size)

    @classmethod
    def empty(cls) -> 'InterpolationEdges':
        return cls(
            bin_index=np.empty(0, dtype=np.int64),
            segment_index=np.empty(0, dtype=np.int64),
            coeff_left=np.empty(0),
            coeff_right=np.empty(0),
        )

    def integrate(self, f: np.ndarray, n_bins: int) -> np.ndarray:
        """Integrate the piecewise-linear interpolant of ``f`` over each bin."""
        f = np.asarray(f, dtype=float)
        contributions = (self.coeff_left * f[self.segment_index]
                         + self.coeff_right * f[self.segment_index + 1])
        return np.bincount(self.bin_index, weights=contributions, minlength=n_bins)


@dataclass(frozen=True)
class Alignment:
    """Result of aligning one species' observations with the weight grid.

    Attributes:
        species: Species name.
        bins: Atomic bins; empty when there are no observations.
        grid_start: Index of the first selected point of the full grid.
        grid_stop: One past the index of the last selected point.
        w: The selected part of the weight grid.
        edges: Interpolation coefficients relative to ``w``.
    """
    species: str
    bins: AtomicBins
    grid_start: int
    grid_stop: int
    w: np.ndarray
    edges: InterpolationEdges

    @property
    def use_counts(self) -> bool:
        """False when there are no observations and count terms must be disabled."""
        return self.bins.n_bins > 0

    @property
    def grid_slice(self) -> slice:
        return slice(self.grid_start, self.grid_stop)


def fill_bin_gaps(
    starts: np.ndarray,
    ends: np.ndarray,
    counts: np.ndarray,
    min_length: float,
    max_length: float,
) -> Tuple[np.ndarray, np.ndarray, Tuple[bool, bool]]:
    """Turn observed bins into gapless atomic bins.

    Zero-count guard bins are added from ``min_length`` to the first observed
    bin and from the last observed bin to ``max_length`` unless they would be
    empty. They make sure that density mass outside the observed range is
    penalised rather than ignored.

    Returns:
        ``(edges, counts, (lower_guard, upper_guard))`` where ``edges`` has one
        more entry than ``counts`` and the flags tell which guards were added.

    Raises:
        ValidationError: If observed bins overlap.
        AlignmentError: If a bin fails to map onto exactly one atomic bin.
    """
    order = np.argsort(starts, kind='stable')
    starts = np.asarray(starts, dtype=float)[order]
    ends = np.asarray(ends, dtype=float)[order]
    counts = np.asarray(counts, dtype=float)[order]

    overlapping = np.flatnonzero(ends[:-1] > starts[1:])
    if overlapping.size:
        k = int(overlapping[0])
        raise ValidationError(
            f"Bins in the catch data must not overlap: [{starts[k]}, {ends[k]}) "
            f"overlaps [{starts[k + 1]}, {ends[k + 1]})"
        )

    all_starts: List[np.ndarray] = [starts]
    all_ends: List[np.ndarray] = [ends]
    all_counts: List[np.ndarray] = [counts]

    lower_guard = starts[0] > min_length
    if lower_guard:
        all_starts.append(np.array([min_length]))
        all_ends.append(np.array([starts[0]]))
        all_counts.append(np.zeros(1))
    elif starts[0] < min_length:
        logger.warning(
            f"Observed bins start at length {starts[0]}, below the smallest viable length {min_length}"
        )

    upper_guard = max_length > ends[-1]
    if upper_guard:
        all_starts.append(np.array([ends[-1]]))
        all_ends.append(np.array([max_length]))
        all_counts.append(np.zeros(1))

    bin_starts = np.concatenate(all_starts)
    bin_ends = np.concatenate(all_ends)
    bin_counts = np.concatenate(all_counts)

    edges = np.unique(np.concatenate([bin_starts, bin_ends]))
    full_counts = np.zeros(edges.size - 1)

    idx = np.searchsorted(edges, bin_starts)
    matched = (idx < edges.size - 1)
    matched[matched] &= edges[idx[matched] + 1] == bin_ends[matched]
    if not np.all(matched) or np.unique(idx).size != idx.size:
        raise AlignmentError(
            "Could not map every observed bin onto a single atomic bin; "
            "this is a defect in the bin alignment"
        )
    full_counts[idx] = bin_counts

    return edges, full_counts, (bool(lower_guard), bool(upper_guard))


def interpolation_weights(bin_edges: np.ndarray, w: np.ndarray) -> InterpolationEdges:
    """Precompute weights for integrating a density over bins.

    The density is known at the grid points ``w`` and linearly interpolated in
    between. For each pair of a bin and a grid segment that overlap, the
    overlap ``[s, e]`` has fractional positions ``p0``, ``p1`` within the
    segment; the trapezoidal integral over the overlap is then
    ``(e - s) * ((1 - p) * f[j] + p * f[j + 1])`` with ``p = (p0 + p1) / 2``.

    Bins and grid are both sorted, so a single merge-like sweep visits every
    overlapping pair once.

    Args:
        bin_edges: Sorted bin boundaries (one more than the number of bins).
        w: Sorted grid points.

    Returns:
        The sparse interpolation coefficients.
    """
    bin_edges = np.asarray(bin_edges, dtype=float)
    w = np.asarray(w, dtype=float)
    n_bins = bin_edges.size - 1
    n_segments = w.size - 1
    if n_bins < 1 or n_segments < 1:
        return InterpolationEdges.empty()

    bin_index: List[int] = []
    segment_index: List[int] = []
    coeff_left: List[float] = []
    coeff_right: List[float] = []

    i = j = 0
    while i < n_bins and j < n_segments:
        bin_start, bin_end = bin_edges[i], bin_edges[i + 1]
        x0, x1 = w[j], w[j + 1]

        overlap_start = max(x0, bin_start)
        overlap_end = min(x1, bin_end)
        if overlap_start < overlap_end:
            dx = x1 - x0
            p0 = (overlap_start - x0) / dx
            p1 = (overlap_end - x0) / dx
            mean = (p0 + p1) / 2
            delta = overlap_end - overlap_start
            bin_index.append(i)
            segment_index.append(j)
            coeff_left.append(delta * (1 - mean))
            coeff_right.append(delta * mean)

        # Advance whichever interval ends first
        if x1 < bin_end:
            j += 1
        elif bin_end < x1:
            i += 1
        else:
            i += 1
            j += 1

    return InterpolationEdges(
        bin_index=np.asarray(bin_index, dtype=np.int64),
        segment_index=np.asarray(segment_index, dtype=np.int64),
        coeff_left=np.asarray(coeff_left, dtype=float),
        coeff_right=np.asarray(coeff_right, dtype=float),
    )


def _select_grid(w: np.ndarray, lower: float, upper: float, species: str) -> Tuple[int, int]:
    selected = np.flatnonzero((w >= lower) & (w <= upper))
    if selected.size == 0:
        raise ValidationError(
            f"The weight grid has no points between {lower} and {upper} for {species}"
        )
    return int(selected[0]), int(selected[-1]) + 1


def align_observations(
    species_params: SpeciesParams,
    w: np.ndarray,
    catch: pd.DataFrame,
    length_unit: str = 'cm',
) -> Alignment:
    """Align the observed catch of one species with the weight grid.

    Args:
        species_params: Parameters of the species being aligned.
        w: The model's full weight grid.
        catch: Observation table (validated with ``valid_catch``).
        length_unit: Unit of the lengths in ``catch``.

    Returns:
        The alignment; without observations its bins are empty and the grid
        covers the full viable range ``[w_min, w_max]``.

    Raises:
        ValidationError: On malformed observations, overlapping bins or
            observations heavier than ``w_max``.
    """
    sp = species_params
    w = np.asarray(w, dtype=float)
    obs = valid_catch(catch, sp.species, length_unit=length_unit)

    if obs.empty:
        start, stop = _select_grid(w, sp.w_min, sp.w_max, sp.species)
        logger.info(f"No observed catch for {sp.species}; count terms are disabled")
        return Alignment(
            species=sp.species,
            bins=AtomicBins.empty(),
            grid_start=start,
            grid_stop=stop,
            w=w[start:stop],
            edges=InterpolationEdges.empty(),
        )

    starts = obs['length'].to_numpy()
    ends = starts + obs['width'].to_numpy()

    max_weight = float(sp.length_to_weight(ends.max()))
    if max_weight > sp.w_max * (1 + _W_MAX_RTOL):
        raise ValidationError(
            f"For {sp.species} you have observed catches of larger weight ({max_weight:.6g}) "
            f"than the w_max ({sp.w_max:.6g}) that you specified"
        )

    length_edges, counts, (lower_guard, upper_guard) = fill_bin_gaps(
        starts, ends, obs['count'].to_numpy(), sp.l_min, sp.l_max
    )

    weight_edges = np.asarray(sp.length_to_weight(length_edges), dtype=float)
    # Guard bins end exactly on the viable weight range
    if lower_guard:
        weight_edges[0] = sp.w_min
    if upper_guard:
        weight_edges[-1] = sp.w_max

    below = w[w <= weight_edges[0]]
    lower = max(below.max(), sp.w_min) if below.size else sp.w_min
    above = w[w >= weight_edges[-1]]
    upper = min(above.min(), sp.w_max) if above.size else sp.w_max
    start, stop = _select_grid(w, lower, upper, sp.species)
    w_selected = w[start:stop]

    edges = interpolation_weights(weight_edges, w_selected)
    bins = AtomicBins(length_edges=length_edges, weight_edges=weight_edges, counts=counts)

    logger.debug(
        f"Aligned {len(obs)} observed bins for {sp.species} into {bins.n_bins} atomic bins, "
        f"{stop - start} grid points and {len(edges)} interpolation edges"
    )
    return Alignment(
        species=sp.species,
        bins=bins,
        grid_start=start,
        grid_stop=stop,
        w=w_selected,
        edges=edges,
    )


def align_species(
    snapshot: ModelSnapshot,
    species: str,
    catch: pd.DataFrame,
    length_unit: str = 'cm',
) -> Alignment:
    """Align observations for ``species`` using the snapshot's parameters and grid."""
    return align_observations(snapshot.get_species(species), snapshot.w, catch, length_unit)
