# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 SIZESPEC Team <dev@sizespec.org>

"""
Match pipeline.

Runs the requested matching stages on a working copy of a snapshot in the
fixed order growth → catch → yield → consumption. After every stage the
working snapshot is compared with an independently recomputed reference in
which all biomasses have been matched to their observed values: matching
stages must preserve the cutoff biomass of every species. The working
snapshot is committed to the snapshot log only if every stage succeeds.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, FrozenSet, Iterable, Iterator, List, Optional, Tuple

import numpy as np
import pandas as pd

from sizespec.core.config.models import STAGE_NAMES
from sizespec.core.exceptions import ConsistencyFault, ValidationError, require
from sizespec.model.biomass import biomass_by_species
from sizespec.model.snapshot import ModelSnapshot

from .stages import STAGES, Optimizer, SpectrumEngine, StageContext

if TYPE_CHECKING:
    from sizespec.core.config.models import SizespecConfig
    from sizespec.state.snapshot_log import LogEntry, SnapshotLog

# Name under which a biomass mismatch in the incoming snapshot is reported
INITIAL_CHECK = 'initial'


@dataclass(frozen=True)
class MatchRequest:
    """Which stages to run for which species, with the catch penalty weights."""
    species: str
    stages: FrozenSet[str]
    yield_lambda: float = 1.0
    production_lambda: float = 1.0

    def __post_init__(self):
        stages = frozenset(str(s).strip().lower() for s in self.stages)
        unknown = sorted(stages - set(STAGE_NAMES))
        if unknown:
            raise ValidationError(
                f"Unknown matching stage(s) {unknown}; valid stages are {list(STAGE_NAMES)}"
            )
        require(self.yield_lambda >= 0, "yield_lambda must be non-negative")
        require(self.production_lambda >= 0, "production_lambda must be non-negative")
        object.__setattr__(self, 'stages', stages)

    @property
    def ordered_stages(self) -> Tuple[str, ...]:
        return tuple(name for name in STAGE_NAMES if name in self.stages)

    @classmethod
    def from_log10(
        cls,
        species: str,
        stages: Iterable[str],
        log10_yield_lambda: float = 0.0,
        log10_production_lambda: float = 0.0,
    ) -> 'MatchRequest':
        """Build a request from penalty weights given on a log10 scale."""
        return cls(
            species=species,
            stages=frozenset(stages),
            yield_lambda=10.0 ** log10_yield_lambda,
            production_lambda=10.0 ** log10_production_lambda,
        )


@dataclass(frozen=True)
class StageFailure:
    """Which stage failed and why. ``fault`` marks a biomass consistency fault."""
    stage: str
    message: str
    fault: bool = False


@dataclass(frozen=True)
class MatchOutcome:
    """Result of one pipeline run."""
    request: MatchRequest
    applied_stages: Tuple[str, ...] = ()
    snapshot: Optional[ModelSnapshot] = None
    entry: Optional['LogEntry'] = None
    failure: Optional[StageFailure] = None

    @property
    def succeeded(self) -> bool:
        return self.failure is None


class MatchPipeline:
    """Applies matching stages and commits the result on success.

    Args:
        engine: The size-spectrum engine performing the individual matches.
        optimizer: Fits catch parameters; only needed for the catch stage.
        catch: Observed catch table used by the catch stage.
        length_unit: Unit of the lengths in ``catch``.
        rtol: Relative tolerance of the biomass conservation check.
        atol: Absolute tolerance of the biomass conservation check.
        logger: Logger to use (defaults to the module logger).
    """

    def __init__(
        self,
        engine: SpectrumEngine,
        optimizer: Optional[Optimizer] = None,
        catch: Optional[pd.DataFrame] = None,
        length_unit: str = 'cm',
        rtol: float = 1.5e-8,
        atol: float = 0.0,
        logger: Optional[logging.Logger] = None,
    ):
        self.engine = engine
        self.optimizer = optimizer
        self.catch = catch
        self.length_unit = length_unit
        self.rtol = rtol
        self.atol = atol
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_config(
        cls,
        config: 'SizespecConfig',
        engine: SpectrumEngine,
        optimizer: Optional[Optimizer] = None,
        catch: Optional[pd.DataFrame] = None,
        logger: Optional[logging.Logger] = None,
    ) -> 'MatchPipeline':
        return cls(
            engine,
            optimizer=optimizer,
            catch=catch,
            length_unit=config.alignment.length_unit,
            rtol=config.match.biomass_rtol,
            atol=config.match.biomass_atol,
            logger=logger,
        )

    # ------------------------------------------------------------------
    # Consistency check
    # ------------------------------------------------------------------

    def check_biomass(self, snapshot: ModelSnapshot, stage: str) -> None:
        """Raise ConsistencyFault unless ``snapshot`` preserves matched biomasses."""
        reference = self.engine.match_biomasses(snapshot)
        if not isinstance(reference, ModelSnapshot):
            raise ConsistencyFault(stage, "Biomass matching did not return a ModelSnapshot")

        actual = biomass_by_species(snapshot)
        expected = biomass_by_species(reference)
        if set(actual) != set(expected):
            raise ConsistencyFault(
                stage, f"Species changed after {stage}: {sorted(actual)} vs {sorted(expected)}"
            )
        mismatched = [
            name for name in actual
            if not np.isclose(actual[name], expected[name], rtol=self.rtol, atol=self.atol)
        ]
        if mismatched:
            details = ", ".join(
                f"{name}: {actual[name]:.10g} != {expected[name]:.10g}" for name in mismatched
            )
            when = "before matching" if stage == INITIAL_CHECK else f"after matching {stage}"
            raise ConsistencyFault(stage, f"Biomass has changed {when} ({details})")

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    def _context(self, request: MatchRequest) -> StageContext:
        return StageContext(
            engine=self.engine,
            optimizer=self.optimizer,
            species=request.species,
            catch=self.catch,
            yield_lambda=request.yield_lambda,
            production_lambda=request.production_lambda,
            length_unit=self.length_unit,
        )

    def _iter_stages(
        self,
        snapshot: ModelSnapshot,
        request: MatchRequest,
    ) -> Iterator[Tuple[str, ModelSnapshot]]:
        """Yield ``(stage, working snapshot)`` after each completed step.

        The first step is the initial biomass check of the incoming snapshot.
        """
        snapshot.species_index(request.species)
        self.check_biomass(snapshot, INITIAL_CHECK)
        yield INITIAL_CHECK, snapshot

        ctx = self._context(request)
        working = snapshot
        for stage in request.ordered_stages:
            self.logger.info(f"Matching {stage} for {request.species}")
            working = STAGES[stage](working, ctx)
            self.check_biomass(working, stage)
            yield stage, working

    def apply(self, snapshot: ModelSnapshot, request: MatchRequest) -> ModelSnapshot:
        """Run the requested stages and return the final working snapshot.

        Raises whatever a stage raises, and ConsistencyFault if the biomass
        check fails before the first or after any stage.
        """
        working = snapshot
        for _, working in self._iter_stages(snapshot, request):
            pass
        return working

    def run(
        self,
        snapshot: ModelSnapshot,
        request: MatchRequest,
        log: 'SnapshotLog',
    ) -> MatchOutcome:
        """Run the request and commit the result to ``log`` if every stage succeeds.

        Stage errors and consistency faults are not raised; they are returned
        as a ``StageFailure`` in the outcome and leave ``log`` untouched.
        """
        steps = (INITIAL_CHECK,) + request.ordered_stages
        completed: List[str] = []
        working = snapshot
        try:
            for stage, working in self._iter_stages(snapshot, request):
                completed.append(stage)
        except ConsistencyFault as e:
            self.logger.error(f"Consistency fault in stage '{e.stage}': {e}")
            return MatchOutcome(
                request=request,
                applied_stages=tuple(completed[1:]),
                failure=StageFailure(stage=e.stage, message=str(e), fault=True),
            )
        except Exception as e:  # noqa: BLE001
            # The step that failed is the first one that did not complete
            stage = steps[len(completed)]
            message = str(e) or type(e).__name__
            self.logger.error(f"Stage '{stage}' failed for {request.species}: {message}", exc_info=True)
            return MatchOutcome(
                request=request,
                applied_stages=tuple(completed[1:]),
                failure=StageFailure(stage=stage, message=message),
            )

        applied = completed[1:]
        entry = log.commit(working)
        committed = working.mark_committed()
        self.logger.info(
            f"Matched {', '.join(applied) or 'nothing'} for {request.species}; "
            f"committed snapshot {entry.seq}"
        )
        return MatchOutcome(
            request=request,
            applied_stages=tuple(applied),
            snapshot=committed,
            entry=entry,
        )
