# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 SIZESPEC Team <dev@sizespec.org>

"""
Model snapshot data types.

Core data structures describing one complete model configuration:
- SpeciesParams: Immutable per-species allometry, size range and targets
- GearParams: Immutable per-gear selectivity and catchability
- ModelSnapshot: Immutable container for parameter tables plus the weight
  grid, abundance and growth arrays

Snapshots are values. Every modification returns a new snapshot; arrays that
are not modified are shared between the old and the new snapshot.
"""

import dataclasses
import json
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Tuple

import numpy as np

from sizespec.core.exceptions import ValidationError, require

SELECTIVITY_FUNCTIONS = ('knife_edge', 'sigmoid_length', 'double_sigmoid_length')


def _is_missing(value: Optional[float]) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def _optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    value = float(value)
    return None if math.isnan(value) else value


def _frozen_array(values: Any, ndim: int, name: str) -> np.ndarray:
    """Return a read-only float64 array, reusing ``values`` if it already is one."""
    if (isinstance(values, np.ndarray) and values.dtype == np.float64
            and not values.flags.writeable):
        arr = values
    else:
        arr = np.array(values, dtype=np.float64)
        arr.setflags(write=False)
    require(arr.ndim == ndim, f"{name} must be {ndim}-dimensional, got shape {arr.shape}")
    return arr


def _json_default(value: Any) -> Any:
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, np.ndarray):
        return value.tolist()
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


def _plain_mapping(value: Any, name: str) -> Dict[str, Any]:
    """Private copy of ``value`` in the form it has after a JSON round trip.

    Tuples become lists, numpy scalars and arrays become Python numbers and
    lists, and keys become strings, so a stored snapshot reads back equal.
    """
    try:
        return json.loads(json.dumps(dict(value or {}), default=_json_default, allow_nan=False))
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{name} must hold JSON-compatible values: {e}") from e


@dataclass(frozen=True)
class SpeciesParams:
    """Immutable parameters of one species.

    Attributes:
        species: Species name, unique within a snapshot.
        a: Coefficient of the weight-length relation ``w = a * l**b``.
        b: Exponent of the weight-length relation.
        w_min: Smallest viable weight.
        w_max: Largest viable weight.
        w_mat: Maturation weight.
        d: Exponent of the size-dependent external mortality.
        biomass_cutoff: Weight above which biomass is observed, if any.
        production_observed: Observed production, if any.
        extra: Additional parameters carried along unchanged. Held as a
            private, JSON-compatible copy.
    """
    species: str
    a: float
    b: float
    w_min: float
    w_max: float
    w_mat: float
    d: float = 0.0
    biomass_cutoff: Optional[float] = None
    production_observed: Optional[float] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        require(bool(self.species), "species name must not be empty")
        require(self.a > 0 and self.b > 0,
                f"{self.species}: weight-length coefficients a and b must be positive")
        require(0 <= self.w_min < self.w_max,
                f"{self.species}: need 0 <= w_min < w_max, got w_min={self.w_min}, w_max={self.w_max}")
        object.__setattr__(self, 'biomass_cutoff', _optional_float(self.biomass_cutoff))
        object.__setattr__(self, 'production_observed', _optional_float(self.production_observed))
        object.__setattr__(self, 'extra', _plain_mapping(self.extra, f"{self.species}: extra"))

    def length_to_weight(self, length):
        return self.a * np.power(length, self.b)

    def weight_to_length(self, weight):
        return np.power(np.asarray(weight, dtype=float) / self.a, 1.0 / self.b)

    @property
    def l_min(self) -> float:
        return float(self.weight_to_length(self.w_min))

    @property
    def l_max(self) -> float:
        return float(self.weight_to_length(self.w_max))

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SpeciesParams':
        return cls(**data)


@dataclass(frozen=True)
class GearParams:
    """Immutable parameters of the gear fishing one species.

    Which shape parameters are meaningful depends on ``sel_func``:
    ``knife_edge`` uses ``knife_edge_size``; ``sigmoid_length`` uses ``l50``
    and ``l25``; ``double_sigmoid_length`` additionally uses ``l50_right``
    and ``l25_right``.
    """
    species: str
    gear: str
    sel_func: str
    catchability: float = 1.0
    knife_edge_size: Optional[float] = None
    l50: Optional[float] = None
    l25: Optional[float] = None
    l50_right: Optional[float] = None
    l25_right: Optional[float] = None
    yield_observed: Optional[float] = None

    def __post_init__(self):
        require(self.sel_func in SELECTIVITY_FUNCTIONS,
                f"{self.species}/{self.gear}: unknown selectivity function '{self.sel_func}'; "
                f"expected one of {SELECTIVITY_FUNCTIONS}")
        require(self.catchability >= 0,
                f"{self.species}/{self.gear}: catchability must be non-negative")
        for name in ('knife_edge_size', 'l50', 'l25', 'l50_right', 'l25_right', 'yield_observed'):
            object.__setattr__(self, name, _optional_float(getattr(self, name)))

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GearParams':
        return cls(**data)


@dataclass(frozen=True, eq=False)
class ModelSnapshot:
    """Immutable, self-contained model configuration at one instant.

    Attributes:
        species_params: One entry per species, in row order of the arrays.
        gear_params: Gear entries; at most one per species is supported.
        w: Weight grid, strictly increasing.
        dw: Grid widths, one per grid point.
        initial_n: Abundance density, shape (n_species, n_w).
        growth: Growth rate, shape (n_species, n_w).
        changed: True if edited since it was last committed to the log.
        metadata: Free-form metadata (engine name, notes, ...). Held as a
            private, JSON-compatible copy.
    """
    species_params: Tuple[SpeciesParams, ...]
    gear_params: Tuple[GearParams, ...]
    w: np.ndarray
    dw: np.ndarray
    initial_n: np.ndarray
    growth: np.ndarray
    changed: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'species_params', tuple(self.species_params))
        object.__setattr__(self, 'gear_params', tuple(self.gear_params))
        object.__setattr__(self, 'w', _frozen_array(self.w, 1, 'w'))
        object.__setattr__(self, 'dw', _frozen_array(self.dw, 1, 'dw'))
        object.__setattr__(self, 'initial_n', _frozen_array(self.initial_n, 2, 'initial_n'))
        object.__setattr__(self, 'growth', _frozen_array(self.growth, 2, 'growth'))
        object.__setattr__(self, 'metadata', _plain_mapping(self.metadata, 'metadata'))

        n_sp, n_w = len(self.species_params), self.w.size
        require(n_w >= 2, "weight grid needs at least two points")
        require(bool(np.all(np.diff(self.w) > 0)), "weight grid must be strictly increasing")
        require(self.dw.shape == (n_w,), f"dw must have shape ({n_w},), got {self.dw.shape}")
        for name in ('initial_n', 'growth'):
            shape = getattr(self, name).shape
            require(shape == (n_sp, n_w), f"{name} must have shape ({n_sp}, {n_w}), got {shape}")

        names = self.species_names
        require(len(set(names)) == len(names), "species names must be unique")
        for gp in self.gear_params:
            require(gp.species in names, f"gear '{gp.gear}' refers to unknown species '{gp.species}'")

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    @property
    def species_names(self) -> Tuple[str, ...]:
        return tuple(sp.species for sp in self.species_params)

    def species_index(self, species: str) -> int:
        try:
            return self.species_names.index(species)
        except ValueError:
            raise ValidationError(
                f"Unknown species '{species}'; known species are {list(self.species_names)}"
            ) from None

    def get_species(self, species: str) -> SpeciesParams:
        return self.species_params[self.species_index(species)]

    def gears_for(self, species: str) -> Tuple[GearParams, ...]:
        self.species_index(species)
        return tuple(gp for gp in self.gear_params if gp.species == species)

    def get_gear(self, species: str, gear: str) -> GearParams:
        for gp in self.gears_for(species):
            if gp.gear == gear:
                return gp
        raise ValidationError(f"Species '{species}' is not fished by gear '{gear}'")

    # ------------------------------------------------------------------
    # Copy-on-write updates
    # ------------------------------------------------------------------

    def evolve(self, **changes) -> 'ModelSnapshot':
        """Return a copy with ``changes`` applied; unchanged fields are shared."""
        return dataclasses.replace(self, **changes)

    def with_species_params(self, params: SpeciesParams) -> 'ModelSnapshot':
        idx = self.species_index(params.species)
        species_params = list(self.species_params)
        species_params[idx] = params
        return self.evolve(species_params=tuple(species_params))

    def with_gear_params(self, params: GearParams) -> 'ModelSnapshot':
        self.get_gear(params.species, params.gear)
        gear_params = tuple(
            params if (gp.species, gp.gear) == (params.species, params.gear) else gp
            for gp in self.gear_params
        )
        return self.evolve(gear_params=gear_params)

    def with_species_arrays(
        self,
        species: str,
        n: Optional[Iterable[float]] = None,
        growth: Optional[Iterable[float]] = None,
    ) -> 'ModelSnapshot':
        """Replace the abundance and/or growth row of one species."""
        idx = self.species_index(species)
        changes = {}
        if n is not None:
            new_n = np.array(self.initial_n)
            new_n[idx, :] = np.asarray(n, dtype=float)
            changes['initial_n'] = new_n
        if growth is not None:
            new_growth = np.array(self.growth)
            new_growth[idx, :] = np.asarray(growth, dtype=float)
            changes['growth'] = new_growth
        return self.evolve(**changes) if changes else self

    def mark_changed(self) -> 'ModelSnapshot':
        return self if self.changed else self.evolve(changed=True)

    def mark_committed(self) -> 'ModelSnapshot':
        return self.evolve(changed=False) if self.changed else self

    # ------------------------------------------------------------------
    # Comparison
    # ------------------------------------------------------------------

    def equals(self, other: 'ModelSnapshot') -> bool:
        """Field-for-field equality, comparing arrays element-wise."""
        if not isinstance(other, ModelSnapshot):
            return False
        return (
            self.species_params == other.species_params
            and self.gear_params == other.gear_params
            and self.changed == other.changed
            and self.metadata == other.metadata
            and all(
                np.array_equal(getattr(self, name), getattr(other, name))
                for name in ('w', 'dw', 'initial_n', 'growth')
            )
        )


def has_target(value: Optional[float]) -> bool:
    """True if an observed target is present and positive."""
    return not _is_missing(value) and value > 0
