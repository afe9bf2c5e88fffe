"""
Unit tests for building the catch optimizer's objective data.
"""

import numpy as np
import pytest

from sizespec.calibration.objective_data import (
    InsufficientData,
    ObjectiveData,
    prepare_objective_data,
)
from sizespec.core.exceptions import ValidationError
from sizespec.model.biomass import species_biomass


class TestPrepareObjectiveData:
    def test_cod_with_observations(self, snapshot, cod_catch):
        data = prepare_objective_data(snapshot, 'Cod', cod_catch, yield_lambda=2.0, production_lambda=0.5)

        assert isinstance(data, ObjectiveData)
        assert data.use_counts
        np.testing.assert_array_equal(data.counts, [0.0, 3.0, 7.0, 2.0, 0.0])
        assert data.w.size == 100
        assert data.grid_start == 0
        np.testing.assert_array_equal(data.l, data.w)
        assert data.biomass_cutoff_idx == 9
        assert data.biomass == pytest.approx(species_biomass(snapshot, 'Cod'))
        assert data.w_mat_idx == 28
        assert data.w_mat == 29.0
        assert data.d == -0.25
        assert data.yield_observed == 10.0
        assert data.yield_lambda == 2.0
        assert data.production_observed == 5.0
        assert data.production_lambda == 0.5

    def test_interpolation_refers_to_selected_grid(self, snapshot, cod_catch):
        data = prepare_objective_data(snapshot, 'Cod', cod_catch)
        assert data.segment_index.max() < data.w.size - 1
        assert data.bin_index.max() == data.counts.size - 1

    def test_missing_targets_disable_penalties(self, snapshot, cod_catch):
        data = prepare_objective_data(snapshot, 'Herring', cod_catch, yield_lambda=3.0, production_lambda=3.0)
        assert isinstance(data, ObjectiveData)
        assert data.yield_observed == 0.0
        assert data.yield_lambda == 0.0
        assert data.production_observed == 0.0
        assert data.production_lambda == 0.0
        assert data.counts.sum() == 4.0

    def test_production_only(self, snapshot):
        data = prepare_objective_data(snapshot, 'Cod', None)
        assert isinstance(data, ObjectiveData)
        assert not data.use_counts
        assert data.counts.size == 0
        assert data.production_lambda == 1.0

    def test_insufficient_data(self, snapshot):
        result = prepare_objective_data(snapshot, 'Herring', None)
        assert isinstance(result, InsufficientData)
        assert result.species == 'Herring'
        assert "no observed counts" in result.reason

    def test_several_gears_rejected(self, snapshot_factory, gear_factory):
        snap = snapshot_factory(gear_params=[gear_factory('Cod'), gear_factory('Cod', gear='gillnet')])
        with pytest.raises(ValidationError, match="single gear"):
            prepare_objective_data(snap, 'Cod', None)

    def test_unknown_species(self, snapshot, cod_catch):
        with pytest.raises(ValidationError, match="Unknown species"):
            prepare_objective_data(snapshot, 'Plaice', cod_catch)

    def test_to_dict(self, snapshot, cod_catch):
        record = prepare_objective_data(snapshot, 'Cod', cod_catch).to_dict()
        assert {'counts', 'bin_index', 'coeff_left', 'biomass', 'yield_lambda'} <= set(record)
        assert record['species'] == 'Cod'
