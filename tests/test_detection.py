import numpy as np
import pytest

from SceneChangeDetection.core_data_structures import DetectionResult, SignalUnavailable
from SceneChangeDetection.detection import ChangeDetector, detect_changes
from SceneChangeDetection.exceptions import DimensionMismatch

NO_CLEANUP = {'min_area': 0, 'fill_holes': False, 'closing_radius': 0, 'opening_radius': 0}


def assert_counts_consistent(result: DetectionResult):
    assert result.changed_pixels == int(result.change_mask.sum())
    assert result.total_pixels == result.change_mask.size
    assert result.change_percentage == pytest.approx(100.0 * result.changed_pixels / result.total_pixels)


@pytest.mark.parametrize("method", ["fusion", "pixel", "ssim", "edge", "texture", "spectral"])
def test_identical_constant_images_have_no_change(method, constant_pair):
    img1, img2 = constant_pair
    result = ChangeDetector().detect(img1, img2, method=method)

    assert not result.change_mask.any()
    assert result.change_percentage == 0.0
    assert result.num_regions == 0
    assert_counts_consistent(result)


def test_pixel_difference_block_count(block_pair):
    img1, img2 = block_pair
    result = ChangeDetector({'cleanup': NO_CLEANUP}).detect(img1, img2, method='pixel')

    assert abs(result.changed_pixels - 1600) <= 80
    assert result.signals_fused == ['pixel']
    assert result.num_regions == 1
    assert_counts_consistent(result)


def test_fusion_on_grayscale_skips_spectral(block_pair):
    img1, img2 = block_pair
    result = ChangeDetector().detect(img1, img2)

    assert result.method == 'fusion'
    assert result.signals_fused == ['pixel', 'ssim', 'edge', 'texture']
    assert isinstance(result.signal_results['spectral'], SignalUnavailable)
    assert 0.1 <= result.threshold <= 0.9
    assert result.change_mask[50, 50]
    assert not result.change_mask[5, 5]
    assert 0.0 <= result.change_map.min() and result.change_map.max() <= 1.0
    assert_counts_consistent(result)


def test_fusion_on_multiband_uses_spectral(multiband_pair):
    img1, img2 = multiband_pair
    result = ChangeDetector().detect(img1, img2)

    assert 'spectral' in result.signals_fused
    assert result.change_mask[30, 30]
    assert_counts_consistent(result)


def test_single_method_spectral_falls_back_to_pixel(block_pair):
    img1, img2 = block_pair
    result = ChangeDetector().detect(img1, img2, method='spectral')

    assert result.method == 'spectral'
    assert result.signals_fused == ['pixel']


def test_zero_weight_signals_are_not_computed(block_pair):
    img1, img2 = block_pair
    detector = ChangeDetector({'weights': {'edge': 0.0, 'texture': 0.0}})
    result = detector.detect(img1, img2)
    assert result.signals_fused == ['pixel', 'ssim']
    assert 'edge' not in result.signal_results


@pytest.mark.parametrize("threshold_method", ["otsu", "percentile", "kmeans"])
def test_threshold_methods_stay_in_bounds(threshold_method, block_pair):
    img1, img2 = block_pair
    result = ChangeDetector({'threshold_method': threshold_method}).detect(img1, img2)
    assert 0.1 <= result.threshold <= 0.9


def test_post_process_flag(block_pair):
    img1, img2 = block_pair
    img2 = img2.copy()
    img2[5, 5] = 255
    detector = ChangeDetector()

    raw = detector.detect(img1, img2, method='pixel', post_process=False)
    cleaned = detector.detect(img1, img2, method='pixel', post_process=True)
    assert raw.change_mask[5, 5]
    assert not cleaned.change_mask[5, 5]


@pytest.mark.parametrize("dtype", [np.int32, np.int64, np.uint16])
@pytest.mark.parametrize("method", ["edge", "ssim"])
def test_wide_integer_pairs_detect_block(dtype, method, block_pair):
    img1, img2 = (img.astype(dtype) for img in block_pair)
    result = ChangeDetector().detect(img1, img2, method=method)
    as_float = ChangeDetector().detect(*(img.astype(np.float64) for img in block_pair), method=method)

    assert result.changed_pixels > 0
    assert np.array_equal(result.change_mask, as_float.change_mask)
    assert not result.change_mask[5, 5]
    assert_counts_consistent(result)


def test_dimension_mismatch_is_surfaced():
    with pytest.raises(DimensionMismatch):
        detect_changes(np.zeros((10, 10)), np.zeros((10, 12)))
    with pytest.raises(DimensionMismatch):
        detect_changes(np.zeros((10, 10, 3)), np.zeros((10, 10)))


def test_unknown_method(constant_pair):
    img1, img2 = constant_pair
    with pytest.raises(ValueError, match="Unknown detection method"):
        ChangeDetector().detect(img1, img2, method='ndvi')


def test_summary_is_flat(block_pair):
    img1, img2 = block_pair
    summary = detect_changes(img1, img2, method='pixel').summary()
    assert summary['method'] == 'pixel'
    assert summary['signals_fused'] == ['pixel']
    assert set(summary) >= {'changed_pixels', 'change_percentage', 'threshold', 'num_regions'}
