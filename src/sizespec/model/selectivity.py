# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 SIZESPEC Team <dev@sizespec.org>

"""
Gear selectivity controls.

Operator edits to a gear between two matches. Only the controls that the
gear's selectivity function uses are applied; the others are ignored.
"""

import dataclasses
import logging
from typing import Optional

from sizespec.core.exceptions import require

from .snapshot import ModelSnapshot

logger = logging.getLogger(__name__)

_SIGMOID_FUNCTIONS = ('sigmoid_length', 'double_sigmoid_length')


def set_gear_controls(
    snapshot: ModelSnapshot,
    species: str,
    gear: str,
    catchability: Optional[float] = None,
    knife_edge_size: Optional[float] = None,
    l50: Optional[float] = None,
    ldiff: Optional[float] = None,
    l50_right: Optional[float] = None,
    ldiff_right: Optional[float] = None,
) -> ModelSnapshot:
    """Apply selectivity controls to one gear and return the edited snapshot.

    The sigmoid curves are controlled through their 50% length and the
    distance to the 25% length: ``l25 = l50 - ldiff`` on the left flank and
    ``l25_right = l50_right + ldiff_right`` on the right flank.

    Returns:
        A new snapshot tagged as changed, or ``snapshot`` itself if no
        applicable control was given.

    Raises:
        ValidationError: If the species/gear is unknown or a control is negative.
    """
    gp = snapshot.get_gear(species, gear)
    changes = {}

    if catchability is not None:
        require(catchability >= 0, "catchability must be non-negative")
        changes['catchability'] = float(catchability)

    if knife_edge_size is not None:
        if gp.sel_func == 'knife_edge':
            require(knife_edge_size > 0, "knife_edge_size must be positive")
            changes['knife_edge_size'] = float(knife_edge_size)
        else:
            logger.debug(f"Ignoring knife_edge_size for {species}/{gear} ({gp.sel_func})")

    if gp.sel_func in _SIGMOID_FUNCTIONS:
        l50_new = gp.l50 if l50 is None else float(l50)
        if l50 is not None:
            changes['l50'] = l50_new
        if ldiff is not None:
            require(ldiff >= 0, "ldiff must be non-negative")
            require(l50_new is not None, f"{species}/{gear} has no l50 to offset l25 from")
            changes['l25'] = l50_new - float(ldiff)
        elif l50 is not None and gp.l25 is not None and gp.l50 is not None:
            changes['l25'] = l50_new - (gp.l50 - gp.l25)
    elif l50 is not None or ldiff is not None:
        logger.debug(f"Ignoring l50/ldiff for {species}/{gear} ({gp.sel_func})")

    if gp.sel_func == 'double_sigmoid_length':
        l50_right_new = gp.l50_right if l50_right is None else float(l50_right)
        if l50_right is not None:
            changes['l50_right'] = l50_right_new
        if ldiff_right is not None:
            require(ldiff_right >= 0, "ldiff_right must be non-negative")
            require(l50_right_new is not None, f"{species}/{gear} has no l50_right to offset l25_right from")
            changes['l25_right'] = l50_right_new + float(ldiff_right)
        elif l50_right is not None and gp.l25_right is not None and gp.l50_right is not None:
            changes['l25_right'] = l50_right_new + (gp.l25_right - gp.l50_right)
    elif l50_right is not None or ldiff_right is not None:
        logger.debug(f"Ignoring right-flank controls for {species}/{gear} ({gp.sel_func})")

    if not changes:
        return snapshot
    return snapshot.with_gear_params(dataclasses.replace(gp, **changes)).mark_changed()
