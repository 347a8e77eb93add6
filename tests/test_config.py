import json

import pytest

from SceneChangeDetection.config import (
    DEFAULT_CONFIG,
    create_config_from_preset,
    describe_preset,
    get_available_presets,
    get_default_config,
    get_estimator_config,
    load_config,
    merge_configs,
    save_config,
    validate_config,
)


@pytest.mark.parametrize("preset", get_available_presets())
def test_presets_are_valid(preset):
    config = create_config_from_preset(preset)
    assert validate_config(config)['errors'] == []
    assert describe_preset(preset) != "No description available"


def test_default_is_a_copy():
    config = get_default_config()
    config['alignment']['methods'].append('BRISK')
    assert 'BRISK' not in DEFAULT_CONFIG['alignment']['methods']


def test_default_weights_and_chain():
    config = get_default_config()
    assert config['alignment']['methods'] == ['SIFT', 'ORB', 'Harris']
    assert config['detection']['weights'] == {
        'pixel': 1.0, 'ssim': 1.0, 'edge': 0.5, 'texture': 0.5, 'spectral': 1.0,
    }
    assert get_estimator_config('Harris')['model'] == 'similarity'
    assert get_estimator_config('SIFT')['max_trials'] >= 2000


def test_merge_is_deep():
    merged = merge_configs({'a': {'b': 1, 'c': 2}, 'd': 3}, {'a': {'c': 5}})
    assert merged == {'a': {'b': 1, 'c': 5}, 'd': 3}


def test_unknown_preset():
    with pytest.raises(ValueError, match="Unknown preset"):
        create_config_from_preset('ultra')


def test_validation_reports_errors_and_warnings():
    config = get_default_config()
    config['alignment']['methods'] = ['SIFT', 'SURF']
    config['detection']['threshold_method'] = 'triangle'
    config['detection']['weights']['pixel'] = -1.0
    config['alignment']['estimator_params']['ORB']['max_trials'] = 100

    issues = validate_config(config)
    assert any('SURF' in e for e in issues['errors'])
    assert any('triangle' in e for e in issues['errors'])
    assert any('pixel' in e for e in issues['errors'])
    assert any('ORB' in w for w in issues['warnings'])


def test_validation_requires_sections():
    issues = validate_config({})
    assert "Missing required section: alignment" in issues['errors']
    assert "Missing required section: detection" in issues['errors']


def test_save_and_load_roundtrip(tmp_path):
    path = tmp_path / "config.json"
    config = create_config_from_preset('accurate')
    save_config(config, str(path))

    assert json.loads(path.read_text())['detection']['threshold_method'] == 'kmeans'
    assert load_config(str(path)) == config


def test_load_fills_missing_keys(tmp_path):
    path = tmp_path / "partial.json"
    path.write_text(json.dumps({'detection': {'percentile': 90.0}}))
    config = load_config(str(path))
    assert config['detection']['percentile'] == 90.0
    assert config['alignment']['strategy'] == 'auto'

    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "missing.json"))
