"""
Unit tests for aligning observed length bins with the weight grid.
"""

import logging

import numpy as np
import pandas as pd
import pytest

from sizespec.calibration.alignment import (
    align_observations,
    align_species,
    fill_bin_gaps,
    interpolation_weights,
)
from sizespec.core.exceptions import ValidationError


def _catch(rows):
    return pd.DataFrame(rows, columns=['length', 'width', 'count'])


def _naive_weights(bin_edges, w):
    """Check every (bin, segment) pair; slow but obviously correct."""
    entries = []
    for i in range(len(bin_edges) - 1):
        for j in range(len(w) - 1):
            start = max(bin_edges[i], w[j])
            end = min(bin_edges[i + 1], w[j + 1])
            if start < end:
                p = ((start - w[j]) + (end - w[j])) / 2 / (w[j + 1] - w[j])
                entries.append((i, j, (end - start) * (1 - p), (end - start) * p))
    return entries


class TestWorkedExample:
    """a = b = 1, viable range [0, 10], bins [0, 2) with 5 and [4, 6) with 3."""

    @pytest.fixture
    def alignment(self, species_factory):
        sp = species_factory(a=1.0, b=1.0, w_min=0.0, w_max=10.0)
        w = np.array([0.0, 2.0, 4.0, 6.0, 8.0, 10.0])
        return align_observations(sp, w, _catch([(0.0, 2.0, 5.0), (4.0, 2.0, 3.0)]))

    def test_atomic_bins(self, alignment):
        np.testing.assert_array_equal(alignment.bins.length_edges, [0.0, 2.0, 4.0, 6.0, 10.0])
        np.testing.assert_array_equal(alignment.bins.counts, [5.0, 0.0, 3.0, 0.0])

    def test_weight_edges_reach_w_max(self, alignment):
        np.testing.assert_array_equal(alignment.bins.weight_edges, [0.0, 2.0, 4.0, 6.0, 10.0])

    def test_full_grid_selected(self, alignment):
        assert (alignment.grid_start, alignment.grid_stop) == (0, 6)
        assert alignment.use_counts

    def test_interpolation_entries(self, alignment):
        edges = alignment.edges
        assert edges.bin_index.tolist() == [0, 1, 2, 3, 3]
        assert edges.segment_index.tolist() == [0, 1, 2, 3, 4]
        np.testing.assert_allclose(edges.coeff_left, 1.0)
        np.testing.assert_allclose(edges.coeff_right, 1.0)

    def test_frame(self, alignment):
        frame = alignment.bins.to_frame()
        assert list(frame.columns) == ['length_start', 'length_end', 'weight_start', 'weight_end', 'count']
        assert frame['count'].sum() == 8.0


class TestFillBinGaps:
    def test_guards_and_gaps(self):
        edges, counts, guards = fill_bin_gaps(
            np.array([20.0, 10.0]), np.array([25.0, 15.0]), np.array([2.0, 3.0]), 1.0, 100.0
        )
        np.testing.assert_array_equal(edges, [1.0, 10.0, 15.0, 20.0, 25.0, 100.0])
        np.testing.assert_array_equal(counts, [0.0, 3.0, 0.0, 2.0, 0.0])
        assert guards == (True, True)

    def test_counts_conserved(self):
        starts = np.array([3.0, 7.5, 12.0, 30.0])
        ends = np.array([7.5, 9.0, 20.0, 31.0])
        counts = np.array([4.0, 1.0, 9.0, 2.5])
        edges, filled, _ = fill_bin_gaps(starts, ends, counts, 0.0, 40.0)
        assert filled.sum() == pytest.approx(counts.sum())
        assert np.all(np.diff(edges) > 0)
        assert edges[0] == 0.0 and edges[-1] == 40.0

    def test_no_guards_when_range_is_covered(self):
        _, _, guards = fill_bin_gaps(np.array([1.0]), np.array([100.0]), np.array([1.0]), 1.0, 100.0)
        assert guards == (False, False)

    def test_overlapping_bins(self):
        with pytest.raises(ValidationError, match="must not overlap"):
            fill_bin_gaps(np.array([0.0, 2.0]), np.array([3.0, 5.0]), np.ones(2), 0.0, 10.0)

    def test_start_below_minimum_warns(self, caplog):
        with caplog.at_level(logging.WARNING, logger='sizespec.calibration.alignment'):
            fill_bin_gaps(np.array([0.5]), np.array([2.0]), np.ones(1), 1.0, 10.0)
        assert "below the smallest viable length" in caplog.text


class TestInterpolationWeights:
    BIN_EDGES = np.array([0.3, 1.0, 2.5, 6.0, 9.2])
    GRID = np.array([0.0, 0.7, 1.9, 3.2, 5.5, 7.1, 10.0])

    def test_exact_for_linear_density(self):
        edges = interpolation_weights(self.BIN_EDGES, self.GRID)
        f = 3.0 * self.GRID + 1.0
        a, b = self.BIN_EDGES[:-1], self.BIN_EDGES[1:]
        expected = 1.5 * (b ** 2 - a ** 2) + (b - a)
        np.testing.assert_allclose(edges.integrate(f, len(a)), expected, rtol=1e-12)

    @pytest.mark.parametrize("seed", range(25))
    def test_exact_for_any_alignment(self, seed):
        rng = np.random.default_rng(seed)
        grid = np.unique(np.concatenate([[0.0, 10.0], rng.uniform(0.0, 10.0, rng.integers(1, 15))]))
        # Some bin edges coincide with grid points
        bin_edges = np.unique(np.concatenate([
            rng.uniform(0.0, 10.0, rng.integers(2, 10)),
            rng.choice(grid, 2),
        ]))
        slope, intercept = rng.normal(size=2)
        a, b = bin_edges[:-1], bin_edges[1:]
        expected = slope / 2 * (b ** 2 - a ** 2) + intercept * (b - a)

        edges = interpolation_weights(bin_edges, grid)
        np.testing.assert_allclose(
            edges.integrate(slope * grid + intercept, a.size), expected, rtol=1e-9, atol=1e-10
        )

    def test_constant_density_gives_bin_widths(self):
        edges = interpolation_weights(self.BIN_EDGES, self.GRID)
        widths = np.diff(self.BIN_EDGES)
        np.testing.assert_allclose(edges.integrate(np.ones_like(self.GRID), widths.size), widths)

    def test_sweep_matches_pairwise_check(self):
        edges = interpolation_weights(self.BIN_EDGES, self.GRID)
        naive = _naive_weights(self.BIN_EDGES, self.GRID)
        assert edges.bin_index.tolist() == [e[0] for e in naive]
        assert edges.segment_index.tolist() == [e[1] for e in naive]
        np.testing.assert_allclose(edges.coeff_left, [e[2] for e in naive])
        np.testing.assert_allclose(edges.coeff_right, [e[3] for e in naive])

    def test_shared_edges(self):
        edges = interpolation_weights(np.array([0.0, 1.0, 2.0]), np.array([0.0, 1.0, 2.0]))
        assert len(edges) == 2

    def test_empty(self):
        assert len(interpolation_weights(np.array([1.0]), self.GRID)) == 0


class TestAlignObservations:
    def test_heavier_than_w_max(self, species_factory):
        sp = species_factory(w_min=1.0, w_max=10.0)
        with pytest.raises(ValidationError, match="larger weight"):
            align_observations(sp, np.arange(1.0, 11.0), _catch([(9.0, 2.0, 1.0)]))

    def test_no_observations(self, species_factory):
        sp = species_factory(w_min=2.0, w_max=8.0)
        alignment = align_observations(sp, np.arange(1.0, 11.0), _catch([]))
        assert not alignment.use_counts
        assert len(alignment.edges) == 0
        np.testing.assert_array_equal(alignment.w, np.arange(2.0, 9.0))

    def test_grid_restricted_to_bracketing_points(self, species_factory):
        sp = species_factory(w_min=1.0, w_max=100.0)
        w = np.array([0.5, 1.0, 3.0, 20.0, 100.0, 200.0])
        alignment = align_observations(sp, w, _catch([(5.0, 5.0, 1.0)]))
        np.testing.assert_array_equal(alignment.w, [1.0, 3.0, 20.0, 100.0])

    def test_bins_tile_viable_range(self, species_factory):
        sp = species_factory(a=0.01, b=3.0, w_min=0.01, w_max=1000.0)
        w = np.geomspace(0.01, 1000.0, 60)
        alignment = align_observations(sp, w, _catch([(5.0, 2.0, 4.0), (12.0, 3.0, 6.0)]))
        weight_edges = alignment.bins.weight_edges
        assert weight_edges[0] == sp.w_min
        assert weight_edges[-1] == sp.w_max
        assert np.all(np.diff(weight_edges) > 0)
        coverage = alignment.edges.integrate(np.ones_like(alignment.w), alignment.bins.n_bins)
        np.testing.assert_allclose(coverage, alignment.bins.weight_widths, rtol=1e-10)

    def test_lengths_in_millimetres(self, species_factory):
        sp = species_factory(w_min=1.0, w_max=100.0)
        alignment = align_observations(sp, np.arange(1.0, 101.0), _catch([(100.0, 50.0, 2.0)]),
                                       length_unit='mm')
        np.testing.assert_array_equal(alignment.bins.length_edges, [1.0, 10.0, 15.0, 100.0])

    def test_align_species(self, snapshot, cod_catch):
        alignment = align_species(snapshot, 'Cod', cod_catch)
        np.testing.assert_array_equal(alignment.bins.length_edges, [1.0, 10.0, 15.0, 20.0, 25.0, 100.0])
        np.testing.assert_array_equal(alignment.bins.counts, [0.0, 3.0, 7.0, 2.0, 0.0])
        assert alignment.grid_slice == slice(0, 100)
