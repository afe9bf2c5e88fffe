"""Observation alignment, objective data and the match pipeline."""

from .alignment import (
    Alignment,
    AtomicBins,
    InterpolationEdges,
    align_observations,
    align_species,
    fill_bin_gaps,
    interpolation_weights,
)
from .objective_data import InsufficientData, ObjectiveData, prepare_objective_data
from .pipeline import INITIAL_CHECK, MatchOutcome, MatchPipeline, MatchRequest, StageFailure
from .stages import STAGES, Optimizer, SpectrumEngine, StageContext

__all__ = [
    'Alignment',
    'AtomicBins',
    'INITIAL_CHECK',
    'InsufficientData',
    'InterpolationEdges',
    'MatchOutcome',
    'MatchPipeline',
    'MatchRequest',
    'ObjectiveData',
    'Optimizer',
    'STAGES',
    'SpectrumEngine',
    'StageContext',
    'StageFailure',
    'align_observations',
    'align_species',
    'fill_bin_gaps',
    'interpolation_weights',
    'prepare_objective_data',
]
