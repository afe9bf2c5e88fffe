"""
Configuration models for SIZESPEC.

Key design features:
- Type-safe hierarchical structure (config.match.yield_lambda vs config['YIELD_LAMBDA'])
- Factory methods: from_file(), from_dict()
- Immutable configs (frozen=True) to prevent mutation bugs
"""

from .models import (
    STAGE_NAMES,
    AlignmentConfig,
    LoggingConfig,
    MatchConfig,
    SizespecConfig,
    SnapshotLogConfig,
)

__all__ = [
    'STAGE_NAMES',
    'AlignmentConfig',
    'LoggingConfig',
    'MatchConfig',
    'SizespecConfig',
    'SnapshotLogConfig',
]
