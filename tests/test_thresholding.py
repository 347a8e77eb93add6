import numpy as np
import pytest

from SceneChangeDetection.core_data_structures import ThresholdMethod
from SceneChangeDetection.thresholding import (
    THRESHOLD_BOUNDS,
    clamp_threshold,
    kmeans_threshold,
    otsu_threshold,
    percentile_threshold,
    select_threshold,
)


def sample_maps():
    rng = np.random.default_rng(0)
    bimodal = np.concatenate([rng.normal(0.2, 0.03, 500), rng.normal(0.8, 0.03, 500)])
    return {
        'zeros': np.zeros((32, 32)),
        'ones': np.ones((32, 32)),
        'uniform': rng.uniform(0, 1, (32, 32)),
        'bimodal': np.clip(bimodal, 0, 1).reshape(25, 40),
        'sparse': (rng.uniform(0, 1, (32, 32)) > 0.99).astype(float),
        'skewed': rng.uniform(0, 1, (32, 32)) ** 6,
    }


@pytest.mark.parametrize("method", [m.value for m in ThresholdMethod])
@pytest.mark.parametrize("map_name", list(sample_maps()))
def test_threshold_always_within_bounds(method, map_name):
    change_map = sample_maps()[map_name]
    threshold = select_threshold(change_map, method)
    low, high = THRESHOLD_BOUNDS
    assert low <= threshold <= high


def test_kmeans_midpoint_of_clusters():
    change_map = sample_maps()['bimodal']
    assert kmeans_threshold(change_map) == pytest.approx(0.5, abs=0.02)


def test_otsu_separates_bimodal_map():
    change_map = sample_maps()['bimodal']
    assert 0.3 < otsu_threshold(change_map) < 0.7


def test_constant_maps():
    assert otsu_threshold(np.full((4, 4), 0.3)) == pytest.approx(0.3)
    assert kmeans_threshold(np.zeros((4, 4))) == 0.0
    assert select_threshold(np.zeros((4, 4)), 'otsu') == 0.1
    assert select_threshold(np.ones((4, 4)), 'kmeans') == 0.9


def test_percentile_threshold():
    change_map = np.linspace(0, 1, 101)
    assert percentile_threshold(change_map, 95) == pytest.approx(0.95)
    assert select_threshold(change_map, 'percentile', percentile=50) == pytest.approx(0.5)
    assert select_threshold(change_map, ThresholdMethod.PERCENTILE) == pytest.approx(0.9)


def test_clamp_and_unknown_method():
    assert clamp_threshold(-1.0) == 0.1
    assert clamp_threshold(0.42) == 0.42
    assert clamp_threshold(5.0) == 0.9
    with pytest.raises(ValueError, match="Unknown threshold method"):
        select_threshold(np.zeros((2, 2)), 'triangle')
