"""
Unit test fixtures and configuration.

Fixtures specific to unit tests (fast, isolated tests): a factory for small
model snapshots, an in-memory size-spectrum engine and a recording optimizer.
"""

import dataclasses
from typing import Any, Dict, List, Mapping, Optional

import numpy as np
import pandas as pd
import pytest

from sizespec.model.biomass import biomass_by_species, species_biomass
from sizespec.model.snapshot import GearParams, ModelSnapshot, SpeciesParams

# ============================================================================
# Snapshots
# ============================================================================

GRID = np.arange(1.0, 101.0)


def make_species(name: str = 'Cod', **overrides) -> SpeciesParams:
    params = dict(
        species=name, a=1.0, b=1.0, w_min=1.0, w_max=100.0, w_mat=30.0,
        d=-0.25, biomass_cutoff=10.0, production_observed=5.0,
    )
    params.update(overrides)
    return SpeciesParams(**params)


def make_gear(species: str = 'Cod', **overrides) -> GearParams:
    params = dict(
        species=species, gear='trawl', sel_func='sigmoid_length', catchability=0.5,
        l50=30.0, l25=25.0, yield_observed=10.0,
    )
    params.update(overrides)
    return GearParams(**params)


def make_snapshot(
    species_params: Optional[List[SpeciesParams]] = None,
    gear_params: Optional[List[GearParams]] = None,
    w: Optional[np.ndarray] = None,
    **kwargs,
) -> ModelSnapshot:
    if species_params is None:
        species_params = [
            make_species('Cod'),
            make_species('Herring', w_max=50.0, w_mat=15.0, biomass_cutoff=None,
                         production_observed=None),
        ]
    if gear_params is None:
        gear_params = [
            make_gear('Cod'),
            make_gear('Herring', gear='seine', sel_func='knife_edge', l50=None, l25=None,
                      knife_edge_size=20.0, yield_observed=None),
        ]
    w = GRID if w is None else np.asarray(w, dtype=float)
    n_sp = len(species_params)
    kwargs.setdefault('dw', np.gradient(w) if w.size > 1 else np.ones_like(w))
    kwargs.setdefault('initial_n', np.tile(1000.0 / w ** 2, (n_sp, 1)))
    kwargs.setdefault('growth', np.ones((n_sp, w.size)))
    return ModelSnapshot(species_params=species_params, gear_params=gear_params, w=w, **kwargs)


@pytest.fixture
def snapshot_factory():
    """Build small two-species snapshots on a 1..100 weight grid."""
    return make_snapshot


@pytest.fixture
def snapshot():
    return make_snapshot()


@pytest.fixture
def cod_catch():
    """Three contiguous 5 cm bins for Cod between 10 and 25 cm."""
    return pd.DataFrame({
        'species': ['Cod', 'Cod', 'Cod', 'Herring'],
        'gear': ['trawl', 'trawl', 'trawl', 'seine'],
        'length': [10.0, 15.0, 20.0, 12.0],
        'dl': [5.0, 5.0, 5.0, 2.0],
        'count': [3.0, 7.0, 2.0, 4.0],
    })


# ============================================================================
# Engine and optimizer doubles
# ============================================================================

class FakeEngine:
    """In-memory stand-in for the size-spectrum engine.

    Each matching stage records its call and appends its name to
    ``metadata['stages']``. ``drift`` maps a stage to a factor by which that
    stage rescales all abundances, which breaks biomass conservation.
    ``fail`` names stages that raise. ``match_biomasses`` rescales each
    species to its entry in ``observed_biomass``.
    """

    def __init__(
        self,
        observed_biomass: Dict[str, float],
        drift: Optional[Dict[str, float]] = None,
        fail: Optional[List[str]] = None,
    ):
        self.observed_biomass = dict(observed_biomass)
        self.drift = drift or {}
        self.fail = set(fail or ())
        self.calls: List[tuple] = []

    def _stage(self, stage: str, snapshot: ModelSnapshot, species: str) -> ModelSnapshot:
        self.calls.append((stage, species))
        if stage in self.fail:
            raise RuntimeError(f"{stage} did not converge")
        done = list(snapshot.metadata.get('stages', [])) + [stage]
        result = snapshot.evolve(metadata={**snapshot.metadata, 'stages': done})
        if stage in self.drift:
            result = result.evolve(initial_n=result.initial_n * self.drift[stage])
        return result

    def match_growth(self, snapshot, species):
        return self._stage('growth', snapshot, species)

    def match_yield(self, snapshot, species):
        return self._stage('yield', snapshot, species)

    def match_consumption(self, snapshot, species):
        return self._stage('consumption', snapshot, species)

    def match_biomasses(self, snapshot):
        self.calls.append(('biomasses', None))
        n = np.array(snapshot.initial_n)
        for species, target in self.observed_biomass.items():
            current = species_biomass(snapshot, species)
            if current > 0:
                n[snapshot.species_index(species)] *= target / current
        return snapshot.evolve(initial_n=n)

    def apply_catch_fit(self, snapshot, species, fitted: Mapping[str, Any]):
        gear = snapshot.gears_for(species)[0]
        updated = snapshot.with_gear_params(
            dataclasses.replace(gear, catchability=fitted['catchability'])
        )
        return self._stage('catch', updated, species)

    def finalise(self, snapshot):
        return snapshot.evolve(metadata={**snapshot.metadata, 'finalised': True})


class FakeOptimizer:
    """Records the objective data it receives and returns a fixed fit."""

    def __init__(self, result: Optional[Dict[str, Any]] = None):
        self.result = {'catchability': 0.8} if result is None else result
        self.received = []

    def __call__(self, data):
        self.received.append(data)
        return self.result


@pytest.fixture
def engine(snapshot):
    """Engine whose observed biomasses are those of the default snapshot."""
    return FakeEngine(biomass_by_species(snapshot))


@pytest.fixture
def optimizer():
    return FakeOptimizer()


@pytest.fixture
def engine_factory(snapshot):
    """Build engines with drifting or failing stages."""
    def _make(**kwargs):
        return FakeEngine(biomass_by_species(snapshot), **kwargs)
    return _make


@pytest.fixture
def species_factory():
    return make_species


@pytest.fixture
def gear_factory():
    return make_gear
