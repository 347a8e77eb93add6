import numpy as np
import pytest

from SceneChangeDetection.change_signals import (
    SIGNAL_MAP,
    EdgeChangeSignal,
    PixelDifferenceSignal,
    SpectralAngleSignal,
    StructuralSimilaritySignal,
    TextureChangeSignal,
    compute_signal,
    create_signal,
)
from SceneChangeDetection.core_data_structures import SignalResult, SignalUnavailable
from SceneChangeDetection.exceptions import DimensionMismatch, UnsupportedBandCount


@pytest.mark.parametrize("name", ["pixel", "ssim", "edge", "texture"])
def test_identical_images_give_zero_map(name, textured_image):
    result = create_signal(name).compute(textured_image, textured_image.copy())
    assert isinstance(result, SignalResult)
    assert result.name == name
    assert result.change_map.shape == textured_image.shape
    assert np.all(result.change_map == 0)


@pytest.mark.parametrize("name", ["pixel", "ssim", "edge", "texture"])
def test_maps_are_normalized(name, block_pair):
    img1, img2 = block_pair
    change_map = create_signal(name).compute(img1, img2).change_map
    assert change_map.min() == pytest.approx(0.0)
    assert change_map.max() == pytest.approx(1.0)


def test_pixel_difference_marks_block(block_pair):
    img1, img2 = block_pair
    result = PixelDifferenceSignal().compute(img1, img2)

    assert np.all(result.change_map[30:70, 30:70] == 1.0)
    assert result.mask.sum() == 1600
    assert result.stats['mean_difference'] == pytest.approx(72 * 1600 / 10000)


def test_pixel_difference_smoothing_spreads_change(block_pair):
    img1, img2 = block_pair
    smoothed = PixelDifferenceSignal(smoothing_sigma=2.0).compute(img1, img2).change_map
    assert smoothed[29, 50] > 0.0
    assert smoothed[50, 50] == pytest.approx(1.0)


def test_ssim_reports_overall_score(block_pair):
    img1, img2 = block_pair
    result = StructuralSimilaritySignal().compute(img1, img2)
    assert 0.0 < result.stats['overall_ssim'] < 1.0
    assert result.change_map[50, 50] < result.change_map[30, 30]


def test_ssim_too_small_is_unavailable():
    tiny = np.zeros((6, 6), dtype=np.uint8)
    outcome = compute_signal(StructuralSimilaritySignal(), tiny, tiny)
    assert isinstance(outcome, SignalUnavailable)
    assert outcome.name == 'ssim'


def test_edge_change_counts_and_fixed_threshold(block_pair):
    img1, img2 = block_pair
    result = EdgeChangeSignal().compute(img1, img2)

    assert result.threshold == 0.1
    assert result.stats['edges_added'] > 0
    assert result.stats['edges_removed'] == 0
    assert set(np.unique(result.change_map)) <= {0.0, 1.0}
    assert not result.change_map[50, 50]


@pytest.mark.parametrize("dtype", [np.int32, np.int64, np.uint16])
def test_wide_integer_pairs_keep_edge_and_ssim_response(dtype, block_pair):
    img1, img2 = (img.astype(dtype) for img in block_pair)
    reference = [img.astype(np.float64) for img in block_pair]

    edge = EdgeChangeSignal().compute(img1, img2)
    assert edge.stats['edges_added'] > 0
    assert edge.change_map[30, 50] == 1.0

    ssim = StructuralSimilaritySignal().compute(img1, img2)
    assert ssim.stats['overall_ssim'] < 0.999
    assert np.allclose(ssim.change_map, StructuralSimilaritySignal().compute(*reference).change_map)


def test_texture_change_on_block_boundary(block_pair):
    img1, img2 = block_pair
    result = TextureChangeSignal(window_size=7).compute(img1, img2)
    assert result.change_map[30, 50] > 0.0
    assert result.change_map[50, 50] == pytest.approx(0.0, abs=1e-6)
    assert result.change_map[5, 5] == pytest.approx(0.0, abs=1e-6)
    with pytest.raises(ValueError):
        TextureChangeSignal(window_size=1)


def test_spectral_angle_ignores_brightness():
    rng = np.random.default_rng(0)
    img1 = rng.uniform(10, 100, size=(16, 16, 4))
    img2 = img1 * 2.0
    img2[:4, :4] = img1[:4, :4][:, :, ::-1]

    result = SpectralAngleSignal().compute(img1, img2)
    assert np.allclose(result.change_map[8:, 8:], 0.0, atol=1e-6)
    assert result.change_map[:4, :4].max() == pytest.approx(1.0)
    assert result.stats['num_bands'] == 4


def test_spectral_angle_zero_vectors():
    img1 = np.ones((4, 4, 3))
    img2 = np.ones((4, 4, 3))
    img1[0, 0] = 0.0
    img2[0, 0] = 0.0
    img2[1, 1] = 0.0

    result = SpectralAngleSignal().compute(img1, img2)
    assert result.change_map[0, 0] == 0.0
    assert result.change_map[1, 1] == 1.0
    assert result.stats['mean_spectral_angle'] == pytest.approx(np.pi / 2 / 16)


def test_spectral_angle_needs_bands(block_pair):
    img1, img2 = block_pair
    with pytest.raises(UnsupportedBandCount):
        SpectralAngleSignal().compute(img1, img2)

    outcome = compute_signal(SpectralAngleSignal(), img1, img2)
    assert isinstance(outcome, SignalUnavailable)
    assert "bands" in outcome.reason


def test_dimension_mismatch_is_fatal():
    img1 = np.zeros((20, 20), dtype=np.uint8)
    img2 = np.zeros((20, 21), dtype=np.uint8)
    for name in SIGNAL_MAP:
        with pytest.raises(DimensionMismatch):
            compute_signal(create_signal(name), img1, img2)


def test_fixed_threshold_overrides_otsu(block_pair):
    img1, img2 = block_pair
    result = create_signal('pixel', threshold=0.5).compute(img1, img2)
    assert result.threshold == 0.5
    with pytest.raises(ValueError):
        create_signal('ndvi')
