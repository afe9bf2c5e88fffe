"""
Unit tests for the configuration models and factories.
"""

from pathlib import Path

import pytest
import yaml

from sizespec.core.config import STAGE_NAMES, SizespecConfig
from sizespec.core.config.factories import (
    _coerce_value,
    _deep_merge,
    transform_flat_to_nested,
)
from sizespec.core.exceptions import ConfigurationError


class TestDefaults:
    def test_default_values(self):
        cfg = SizespecConfig()
        assert cfg.alignment.length_unit == 'cm'
        assert cfg.match.stages == list(STAGE_NAMES)
        assert cfg.match.yield_lambda == 1.0
        assert cfg.match.production_lambda == 1.0
        assert cfg.match.biomass_rtol == pytest.approx(1.5e-8)
        assert cfg.snapshot_log.session_id == 'default'
        assert cfg.snapshot_log.file_prefix == 'sizespec_params'
        assert cfg.logging.level == 'INFO'
        assert cfg.logging.log_file is None

    def test_frozen(self):
        cfg = SizespecConfig()
        with pytest.raises(Exception):
            cfg.match.yield_lambda = 5.0


class TestFromDict:
    def test_flat_keys(self):
        cfg = SizespecConfig.from_dict({'YIELD_LAMBDA': 10.0, 'OBSERVATION_LENGTH_UNIT': 'mm'})
        assert cfg.match.yield_lambda == 10.0
        assert cfg.alignment.length_unit == 'mm'

    def test_nested_keys(self):
        cfg = SizespecConfig.from_dict({'match': {'production_lambda': 0.5}})
        assert cfg.match.production_lambda == 0.5

    def test_uppercase_section_names(self):
        cfg = SizespecConfig.from_dict({'MATCH': {'yield_lambda': 2.0}})
        assert cfg.match.yield_lambda == 2.0

    def test_stage_string_is_split(self):
        cfg = SizespecConfig.from_dict({'MATCH_STAGES': 'Growth, yield'})
        assert cfg.match.stages == ['growth', 'yield']

    def test_unknown_stage_rejected(self):
        with pytest.raises(ConfigurationError, match="Unknown matching stage"):
            SizespecConfig.from_dict({'MATCH_STAGES': ['growth', 'spawning']})

    def test_negative_lambda_rejected(self):
        with pytest.raises(ConfigurationError, match="(?i)yield_lambda"):
            SizespecConfig.from_dict({'YIELD_LAMBDA': -1})

    def test_session_id_without_separators(self):
        with pytest.raises(ConfigurationError):
            SizespecConfig.from_dict({'SESSION_ID': 'a/b'})

    def test_log_level_uppercased(self):
        cfg = SizespecConfig.from_dict({'LOG_LEVEL': 'debug'})
        assert cfg.logging.level == 'DEBUG'

    def test_env_ignored_unless_requested(self, monkeypatch):
        monkeypatch.setenv('SIZESPEC_YIELD_LAMBDA', '3.5')
        assert SizespecConfig.from_dict({}).match.yield_lambda == 1.0
        assert SizespecConfig.from_dict({}, use_env=True).match.yield_lambda == 3.5

    def test_numeric_strings_from_env(self, monkeypatch):
        monkeypatch.setenv('SIZESPEC_SESSION_ID', '42')
        monkeypatch.setenv('SIZESPEC_SNAPSHOT_FILE_PREFIX', '2024')
        monkeypatch.setenv('SIZESPEC_BIOMASS_RTOL', '1e-6')
        cfg = SizespecConfig.from_dict({}, use_env=True)
        assert cfg.snapshot_log.session_id == '42'
        assert cfg.snapshot_log.file_prefix == '2024'
        assert cfg.match.biomass_rtol == 1e-6


class TestFromFile:
    def _write(self, path: Path, data) -> Path:
        path.write_text(yaml.safe_dump(data))
        return path

    def test_load_flat_yaml(self, tmp_path):
        path = self._write(tmp_path / 'cfg.yaml', {'SESSION_ID': 'north_sea', 'BIOMASS_RTOL': 1e-6})
        cfg = SizespecConfig.from_file(path)
        assert cfg.snapshot_log.session_id == 'north_sea'
        assert cfg.match.biomass_rtol == pytest.approx(1e-6)

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        path = self._write(tmp_path / 'cfg.yaml', {'YIELD_LAMBDA': 2.0})
        monkeypatch.setenv('SIZESPEC_YIELD_LAMBDA', '4')
        assert SizespecConfig.from_file(path).match.yield_lambda == 4.0

    def test_overrides_win_over_environment(self, tmp_path, monkeypatch):
        path = self._write(tmp_path / 'cfg.yaml', {'YIELD_LAMBDA': 2.0})
        monkeypatch.setenv('SIZESPEC_YIELD_LAMBDA', '4')
        cfg = SizespecConfig.from_file(path, overrides={'YIELD_LAMBDA': 8.0})
        assert cfg.match.yield_lambda == 8.0

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            SizespecConfig.from_file(tmp_path / 'missing.yaml')

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / 'bad.yaml'
        path.write_text("match: [unclosed")
        with pytest.raises(ConfigurationError, match="Could not parse"):
            SizespecConfig.from_file(path)

    def test_non_mapping(self, tmp_path):
        path = tmp_path / 'list.yaml'
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            SizespecConfig.from_file(path)

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / 'empty.yaml'
        path.write_text("")
        assert SizespecConfig.from_file(path).match.stages == list(STAGE_NAMES)


class TestToDict:
    def test_flat_roundtrip(self):
        cfg = SizespecConfig.from_dict({'SESSION_ID': 'baltic', 'MATCH_STAGES': 'catch'})
        flat = cfg.to_dict()
        assert flat['SESSION_ID'] == 'baltic'
        assert flat['MATCH_STAGES'] == ['catch']
        assert SizespecConfig.from_dict(flat).snapshot_log.session_id == 'baltic'

    def test_nested(self):
        nested = SizespecConfig().to_dict(flatten=False)
        assert set(nested) == {'alignment', 'match', 'snapshot_log', 'logging'}


class TestHelpers:
    @pytest.mark.parametrize("raw, expected", [
        ('null', None),
        ('  ', None),
        ('12', '12'),
        ('1e-3', '1e-3'),
        (' growth,catch ', 'growth,catch'),
    ])
    def test_coerce_value(self, raw, expected):
        assert _coerce_value(raw) == expected

    def test_deep_merge(self):
        merged = _deep_merge({'match': {'a': 1, 'b': 2}}, {'match': {'b': 3}})
        assert merged == {'match': {'a': 1, 'b': 3}}

    def test_transform_flat_to_nested_keeps_unknown(self):
        nested = transform_flat_to_nested({'YIELD_LAMBDA': 1.5, 'CUSTOM': 'x'})
        assert nested == {'match': {'yield_lambda': 1.5}, 'CUSTOM': 'x'}
