# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 SIZESPEC Team <dev@sizespec.org>

"""
Observed catch-at-length tables.

Validates a raw observation table and extracts the rows of one species in
canonical form: columns ``length`` (bin start), ``width`` (bin width) and
``count``, with lengths in centimetres.
"""

import logging
from pathlib import Path
from typing import Union

import numpy as np
import pandas as pd

from sizespec.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

# Factor converting a length in the given unit to centimetres
LENGTH_UNIT_FACTORS = {
    'cm': 1.0,
    'mm': 0.1,
}

COLUMN_ALIASES = {
    'catch': 'count',
    'dl': 'width',
}

REQUIRED_COLUMNS = ('length', 'width', 'count')


def valid_catch(
    catch: pd.DataFrame,
    species: str,
    length_unit: str = 'cm',
) -> pd.DataFrame:
    """Validate observed catch data and extract the rows of a single species.

    ``catch`` is accepted as an alternative name for ``count`` and ``dl``
    for ``width``. If the table has a ``species`` column only the rows for
    ``species`` are kept. A table may contain a single gear per species.

    Args:
        catch: Raw observation table.
        species: Species whose observations are extracted.
        length_unit: Unit of ``length`` and ``width`` (``'cm'`` or ``'mm'``).

    Returns:
        A new DataFrame with float columns ``length``, ``width``, ``count``
        (plus ``species``/``gear`` if present), lengths in centimetres.

    Raises:
        ValidationError: On missing columns, mixed gears, unknown units or
            non-numeric, negative or non-finite values.
    """
    if not isinstance(catch, pd.DataFrame):
        raise ValidationError(f"Observed catch must be a pandas DataFrame, got {type(catch).__name__}")
    if length_unit not in LENGTH_UNIT_FACTORS:
        raise ValidationError(
            f"Unknown length unit '{length_unit}'; expected one of {list(LENGTH_UNIT_FACTORS)}"
        )

    df = catch.copy()
    for alias, canonical in COLUMN_ALIASES.items():
        if alias in df.columns and canonical not in df.columns:
            df = df.rename(columns={alias: canonical})

    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise ValidationError(
            f"Observed catch must contain columns 'length', 'width' (or 'dl') and "
            f"'count' (or 'catch'); missing {missing}"
        )

    if 'species' in df.columns:
        df = df[df['species'] == species].copy()

    if 'gear' in df.columns and df['gear'].nunique(dropna=False) > 1:
        gears = sorted(str(g) for g in df['gear'].unique())
        raise ValidationError(
            f"Observed catch for {species} mixes several gears {gears}; "
            f"only a single gear per species is supported"
        )

    for col in REQUIRED_COLUMNS:
        try:
            df[col] = pd.to_numeric(df[col]).astype(float)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Column '{col}' of the observed catch must be numeric: {e}") from e
        if not np.all(np.isfinite(df[col].to_numpy())):
            raise ValidationError(f"Column '{col}' of the observed catch contains missing or infinite values")

    if (df['length'] < 0).any():
        raise ValidationError(f"Observed catch for {species} has negative bin starts")
    if (df['width'] <= 0).any():
        raise ValidationError(f"Observed catch for {species} has bins of non-positive width")
    if (df['count'] < 0).any():
        raise ValidationError(f"Observed catch for {species} has negative counts")

    factor = LENGTH_UNIT_FACTORS[length_unit]
    if factor != 1.0:
        df['length'] = df['length'] * factor
        df['width'] = df['width'] * factor

    logger.debug(f"Validated {len(df)} observed bins for {species}")
    return df.reset_index(drop=True)


def read_catch(path: Union[str, Path]) -> pd.DataFrame:
    """Read an observation table from a CSV file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Observation file not found: {path}")
    try:
        return pd.read_csv(path)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise ValidationError(f"Could not read observation file {path}: {e}") from e
