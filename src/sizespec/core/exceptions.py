# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 SIZESPEC Team <dev@sizespec.org>

"""
Custom exception hierarchy for SIZESPEC.

This module defines a hierarchy of exceptions that provide clear, specific
error types for the different failure modes of a calibration session.
"""

import logging
from contextlib import contextmanager
from typing import Optional


class SizespecError(Exception):
    """
    Base exception for all SIZESPEC-specific errors.

    All custom exceptions in SIZESPEC should inherit from this class.
    This allows catching all SIZESPEC errors with a single except clause.
    """
    pass


class ConfigurationError(SizespecError):
    """
    Configuration-related errors.

    Raised when:
    - Configuration file cannot be loaded or parsed
    - Configuration values fail schema validation
    """
    pass


class ValidationError(SizespecError):
    """
    Observation or parameter validation failures.

    Raised when:
    - Required observation columns are missing
    - Observations mix several gears for one species
    - Observed bins overlap
    - Observed sizes exceed the species' maximum weight
    - An unknown species, gear or matching stage is requested
    """
    pass


class AlignmentError(SizespecError):
    """
    Internal bin-alignment defect.

    Raised when an observed or guard bin cannot be mapped onto the atomic bin
    with the same edges. Bin edges are derived from the bins themselves, so
    this always indicates a bug in the aligner rather than bad input.
    """
    pass


class MatchError(SizespecError):
    """
    Failures while applying a matching stage.

    Raised when:
    - The simulation engine fails to produce a new snapshot
    - The optimizer returns an unusable result
    """
    pass


class ConsistencyFault(MatchError):
    """
    Biomass conservation invariant violated after a matching stage.

    A fault is never retried. It signals a defect in the stage that ran last,
    not bad input.
    """

    def __init__(self, stage: str, message: str):
        super().__init__(message)
        self.stage = stage


class SnapshotLogError(SizespecError):
    """
    Snapshot log misuse.

    Raised when:
    - An operation is attempted on a closed log
    - The log is initialized with nothing to recover and no snapshot
    - The log is used before it has been initialized
    """
    pass


class CorruptLogError(SnapshotLogError):
    """
    A persisted snapshot cannot be read back.

    Fatal to the session; the only recovery is discarding the log.
    """
    pass


# =============================================================================
# Validation Helpers
# =============================================================================

def require(condition: bool, message: str, error_type: type = None) -> None:
    """
    Validate a condition, raising an exception if it fails.

    Args:
        condition: The condition that must be True
        message: Error message if condition is False
        error_type: Exception type to raise (default: ValidationError)

    Raises:
        ValidationError (or specified error_type) if condition is False

    Example:
        >>> require(species.w_max > species.w_min, "w_max must exceed w_min")
    """
    if error_type is None:
        error_type = ValidationError
    if not condition:
        raise error_type(message)


@contextmanager
def sizespec_error_handler(
    operation: str,
    logger: Optional[logging.Logger] = None,
    reraise: bool = True,
    error_type: type = SizespecError
):
    """
    Context manager for standardized error handling.

    SIZESPEC errors are logged and re-raised unchanged; any other exception
    is logged and converted to ``error_type``.

    Args:
        operation: Description of the operation being performed (for logging)
        logger: Logger instance for error messages. If None, errors are not logged.
        reraise: Whether to re-raise the exception after handling (default: True)
        error_type: SIZESPEC exception type to convert generic exceptions to

    Example:
        >>> with sizespec_error_handler("growth matching", logger, error_type=MatchError):
        ...     engine.match_growth(snapshot, "cod")
    """
    try:
        yield
    except SizespecError:
        if logger:
            logger.error(f"Error during {operation}", exc_info=True)
        if reraise:
            raise
    except Exception as e:
        if logger:
            logger.error(f"Error during {operation}: {e}", exc_info=True)
        if reraise:
            raise error_type(f"Failed during {operation}: {e}") from e


# =============================================================================
# Public API
# =============================================================================

__all__ = [
    # Base
    'SizespecError',
    # Domain exceptions
    'ConfigurationError',
    'ValidationError',
    'AlignmentError',
    'MatchError',
    'ConsistencyFault',
    'SnapshotLogError',
    'CorruptLogError',
    # Helpers
    'require',
    'sizespec_error_handler',
]
