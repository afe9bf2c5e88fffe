# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 SIZESPEC Team <dev@sizespec.org>

"""
Configuration models for a SIZESPEC calibration session.

Contains AlignmentConfig, MatchConfig, SnapshotLogConfig, LoggingConfig
and the parent SizespecConfig. Every field carries the flat uppercase
alias used in YAML files and ``SIZESPEC_*`` environment variables.
"""

import tempfile
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from .base import FROZEN_CONFIG

# Canonical stage order; MatchPipeline applies requested stages in this order
STAGE_NAMES = ('growth', 'catch', 'yield', 'consumption')

LengthUnitType = Literal['cm', 'mm']
LogLevelType = Literal['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


class AlignmentConfig(BaseModel):
    """Observation alignment settings"""
    model_config = FROZEN_CONFIG

    length_unit: LengthUnitType = Field(default='cm', alias='OBSERVATION_LENGTH_UNIT')


class MatchConfig(BaseModel):
    """Matching stage selection, penalty weights and consistency tolerances"""
    model_config = FROZEN_CONFIG

    stages: Union[List[str], str] = Field(default_factory=lambda: list(STAGE_NAMES), alias='MATCH_STAGES')
    yield_lambda: float = Field(default=1.0, alias='YIELD_LAMBDA', ge=0)
    production_lambda: float = Field(default=1.0, alias='PRODUCTION_LAMBDA', ge=0)
    biomass_rtol: float = Field(default=1.5e-8, alias='BIOMASS_RTOL', gt=0)
    biomass_atol: float = Field(default=0.0, alias='BIOMASS_ATOL', ge=0)

    @field_validator('stages', mode='before')
    @classmethod
    def _split_stages(cls, v: Any) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            v = [s for s in (part.strip() for part in v.split(',')) if s]
        stages = [str(s).strip().lower() for s in v]
        unknown = sorted(set(stages) - set(STAGE_NAMES))
        if unknown:
            raise ValueError(
                f"Unknown matching stage(s) {unknown}; valid stages are {list(STAGE_NAMES)}"
            )
        return stages


class SnapshotLogConfig(BaseModel):
    """Persisted undo/redo log settings"""
    model_config = FROZEN_CONFIG

    log_dir: str = Field(default_factory=tempfile.gettempdir, alias='SNAPSHOT_LOG_DIR')
    session_id: str = Field(default='default', alias='SESSION_ID', min_length=1)
    file_prefix: str = Field(default='sizespec_params', alias='SNAPSHOT_FILE_PREFIX', min_length=1)

    @field_validator('session_id', 'file_prefix')
    @classmethod
    def _no_separators(cls, v: str) -> str:
        if '/' in v or '\\' in v:
            raise ValueError(f"'{v}' must not contain path separators")
        return v

    @property
    def log_path(self) -> Path:
        return Path(self.log_dir)


class LoggingConfig(BaseModel):
    """Logging settings"""
    model_config = FROZEN_CONFIG

    level: LogLevelType = Field(default='INFO', alias='LOG_LEVEL')
    log_file: Optional[str] = Field(default=None, alias='LOG_FILE')

    @field_validator('level', mode='before')
    @classmethod
    def _upper(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class SizespecConfig(BaseModel):
    """Root configuration for a calibration session"""
    model_config = FROZEN_CONFIG

    alignment: AlignmentConfig = Field(default_factory=AlignmentConfig)
    match: MatchConfig = Field(default_factory=MatchConfig)
    snapshot_log: SnapshotLogConfig = Field(default_factory=SnapshotLogConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_file(
        cls,
        path: Path,
        overrides: Optional[Dict[str, Any]] = None,
        *,
        use_env: bool = True,
    ) -> 'SizespecConfig':
        """Load configuration from a YAML file. See ``factories.from_file_factory``."""
        from .factories import from_file_factory
        return from_file_factory(cls, path, overrides, use_env=use_env)

    @classmethod
    def from_dict(
        cls,
        config: Dict[str, Any],
        *,
        use_env: bool = False,
    ) -> 'SizespecConfig':
        """Build configuration from a flat or nested dictionary."""
        from .factories import from_dict_factory
        return from_dict_factory(cls, config, use_env=use_env)

    def to_dict(self, flatten: bool = True) -> Dict[str, Any]:
        """Return the configuration as a flat (alias-keyed) or nested dictionary."""
        if not flatten:
            return self.model_dump()
        flat: Dict[str, Any] = {}
        for section in SECTION_MODELS:
            flat.update(getattr(self, section).model_dump(by_alias=True))
        return flat


SECTION_MODELS = {
    'alignment': AlignmentConfig,
    'match': MatchConfig,
    'snapshot_log': SnapshotLogConfig,
    'logging': LoggingConfig,
}
