import json

import pytest

from omr_config import DEFAULT_CONFIG, ScanConfig, load_config
from omr_types import ConfigError


def test_defaults_match_printed_sheet():
    assert DEFAULT_CONFIG.fill_threshold == 0.52
    assert DEFAULT_CONFIG.canonical_size == (595, 842)
    assert (DEFAULT_CONFIG.mark_min_area, DEFAULT_CONFIG.mark_max_area) == (70, 450)


def test_replace_returns_updated_copy():
    tuned = DEFAULT_CONFIG.replace(fill_threshold=0.6)

    assert tuned.fill_threshold == 0.6
    assert DEFAULT_CONFIG.fill_threshold == 0.52


def test_replace_rejects_unknown_keys():
    with pytest.raises(ConfigError):
        DEFAULT_CONFIG.replace(fill_treshold=0.6)


@pytest.mark.parametrize(
    "overrides",
    [
        {"fill_threshold": 0},
        {"fill_threshold": 1.5},
        {"fill_block_size": 14},
        {"marker_blur_kernel": 0},
        {"mark_min_area": 500},
        {"marker_min_aspect": 2.0},
        {"canonical_width": 0},
        {"marker_working_size": -1},
    ],
)
def test_invalid_values_are_rejected(overrides):
    with pytest.raises(ConfigError):
        ScanConfig(**overrides)


def test_load_config_applies_overrides(tmp_path):
    path = tmp_path / "scan.json"
    path.write_text(json.dumps({"fill_threshold": 0.45, "marker_c": 2.0}), encoding="utf-8")

    config = load_config(path)

    assert config.fill_threshold == 0.45
    assert config.marker_c == 2.0
    assert config.fill_block_size == DEFAULT_CONFIG.fill_block_size


def test_load_config_requires_object(tmp_path):
    path = tmp_path / "scan.json"
    path.write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(path)


def test_load_config_reports_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "nope.json")
