"""Model parameter snapshots and derived quantities."""

from .biomass import biomass_by_species, biomass_cutoff_index, cutoff_biomass, species_biomass
from .selectivity import set_gear_controls
from .snapshot import SELECTIVITY_FUNCTIONS, GearParams, ModelSnapshot, SpeciesParams

__all__ = [
    'SELECTIVITY_FUNCTIONS',
    'GearParams',
    'ModelSnapshot',
    'SpeciesParams',
    'biomass_by_species',
    'biomass_cutoff_index',
    'cutoff_biomass',
    'set_gear_controls',
    'species_biomass',
]
