"""Observation data handling."""

from .observations import LENGTH_UNIT_FACTORS, read_catch, valid_catch

__all__ = ['LENGTH_UNIT_FACTORS', 'read_catch', 'valid_catch']
