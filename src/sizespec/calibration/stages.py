# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 SIZESPEC Team <dev@sizespec.org>

"""
Matching stages and the interfaces of their external collaborators.

A stage takes a snapshot and returns a new one in which one group of
parameters has been matched to observations. The dynamics live in the
size-spectrum engine and the fitting in the optimizer; both are supplied by
the caller through the ``SpectrumEngine`` protocol and the ``Optimizer``
callable.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, runtime_checkable

import pandas as pd

from sizespec.core.exceptions import MatchError, sizespec_error_handler
from sizespec.model.snapshot import ModelSnapshot

from .objective_data import InsufficientData, ObjectiveData, prepare_objective_data

logger = logging.getLogger(__name__)

Optimizer = Callable[[ObjectiveData], Mapping[str, Any]]


@runtime_checkable
class SpectrumEngine(Protocol):
    """Operations the size-spectrum simulation engine provides."""

    def match_growth(self, snapshot: ModelSnapshot, species: str) -> ModelSnapshot:
        """Adjust growth parameters so that growth matches observed age at size."""
        ...

    def match_yield(self, snapshot: ModelSnapshot, species: str) -> ModelSnapshot:
        """Adjust catchability so that the yield matches the observed yield."""
        ...

    def match_consumption(self, snapshot: ModelSnapshot, species: str) -> ModelSnapshot:
        """Adjust feeding parameters so that consumption matches observations."""
        ...

    def match_biomasses(self, snapshot: ModelSnapshot) -> ModelSnapshot:
        """Rescale abundances so that every species matches its observed biomass."""
        ...

    def apply_catch_fit(
        self,
        snapshot: ModelSnapshot,
        species: str,
        fitted: Mapping[str, Any],
    ) -> ModelSnapshot:
        """Write optimizer results back onto the parameter tables."""
        ...

    def finalise(self, snapshot: ModelSnapshot) -> ModelSnapshot:
        """Prepare a snapshot for hand-over to the user."""
        ...


@dataclass(frozen=True)
class StageContext:
    """Everything a stage needs besides the snapshot."""
    engine: SpectrumEngine
    optimizer: Optional[Optimizer]
    species: str
    catch: Optional[pd.DataFrame] = None
    yield_lambda: float = 1.0
    production_lambda: float = 1.0
    length_unit: str = 'cm'


def _checked(result: Any, stage: str) -> ModelSnapshot:
    if not isinstance(result, ModelSnapshot):
        raise MatchError(
            f"Stage '{stage}' returned {type(result).__name__} instead of a ModelSnapshot"
        )
    return result


def growth_stage(snapshot: ModelSnapshot, ctx: StageContext) -> ModelSnapshot:
    return _checked(ctx.engine.match_growth(snapshot, ctx.species), 'growth')


def catch_stage(snapshot: ModelSnapshot, ctx: StageContext) -> ModelSnapshot:
    """Fit gear and mortality parameters to the observed catch.

    A species without usable data is left unchanged.
    """
    data = prepare_objective_data(
        snapshot,
        ctx.species,
        ctx.catch,
        yield_lambda=ctx.yield_lambda,
        production_lambda=ctx.production_lambda,
        length_unit=ctx.length_unit,
    )
    if isinstance(data, InsufficientData):
        logger.info(f"Skipping catch fit for {data.species}: {data.reason}")
        return snapshot
    if ctx.optimizer is None:
        raise MatchError("Catch matching requested but no optimizer was configured")

    with sizespec_error_handler(f"catch fit for {ctx.species}", logger, error_type=MatchError):
        fitted = ctx.optimizer(data)
    if not isinstance(fitted, Mapping):
        raise MatchError(f"Optimizer returned {type(fitted).__name__} instead of a mapping")
    logger.debug(f"Optimizer returned {sorted(fitted)} for {ctx.species}")
    return _checked(ctx.engine.apply_catch_fit(snapshot, ctx.species, fitted), 'catch')


def yield_stage(snapshot: ModelSnapshot, ctx: StageContext) -> ModelSnapshot:
    return _checked(ctx.engine.match_yield(snapshot, ctx.species), 'yield')


def consumption_stage(snapshot: ModelSnapshot, ctx: StageContext) -> ModelSnapshot:
    return _checked(ctx.engine.match_consumption(snapshot, ctx.species), 'consumption')


StageFunction = Callable[[ModelSnapshot, StageContext], ModelSnapshot]

# Keyed in the canonical order of STAGE_NAMES
STAGES: Dict[str, StageFunction] = {
    'growth': growth_stage,
    'catch': catch_stage,
    'yield': yield_stage,
    'consumption': consumption_stage,
}

