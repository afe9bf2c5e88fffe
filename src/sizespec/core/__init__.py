"""Core infrastructure: exceptions, configuration and logging."""

from .exceptions import (
    AlignmentError,
    ConfigurationError,
    ConsistencyFault,
    CorruptLogError,
    MatchError,
    SizespecError,
    SnapshotLogError,
    ValidationError,
)
from .logging_config import configure_logging

__all__ = [
    'AlignmentError',
    'ConfigurationError',
    'ConsistencyFault',
    'CorruptLogError',
    'MatchError',
    'SizespecError',
    'SnapshotLogError',
    'ValidationError',
    'configure_logging',
]
