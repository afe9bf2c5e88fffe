# src/sizespec/__init__.py
from .sizespec_version import __version__

from .calibration import MatchPipeline, MatchRequest, prepare_objective_data
from .core.config import SizespecConfig
from .model import GearParams, ModelSnapshot, SpeciesParams
from .session import TuningSession
from .state import SnapshotLog

__all__ = [
    "GearParams",
    "MatchPipeline",
    "MatchRequest",
    "ModelSnapshot",
    "SizespecConfig",
    "SnapshotLog",
    "SpeciesParams",
    "TuningSession",
    "__version__",
    "prepare_objective_data",
]
