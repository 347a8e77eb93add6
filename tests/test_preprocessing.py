import numpy as np
import pytest

from SceneChangeDetection.preprocessing import (
    PREPROCESSING_METHODS,
    denoise_image,
    enhance_contrast,
    estimate_noise,
    is_noisy,
    normalize_image,
    preprocess_image,
    process_multispectral,
)


@pytest.mark.parametrize("method", PREPROCESSING_METHODS)
def test_methods_keep_spatial_size(method, textured_image):
    result = preprocess_image(textured_image, method)
    assert result.shape[:2] == textured_image.shape
    assert result is not textured_image


def test_auto_handles_each_band_layout(textured_image):
    rgb = np.stack([textured_image, textured_image // 2, 255 - textured_image], axis=2)
    bands = np.stack([textured_image.astype(np.uint16) * 100] * 6, axis=2)

    gray_out = preprocess_image(textured_image, 'auto')
    rgb_out = preprocess_image(rgb, 'auto')
    ms_out = preprocess_image(bands, 'auto')

    assert gray_out.ndim == 2 and gray_out.dtype == np.uint8
    assert rgb_out.shape == rgb.shape and rgb_out.dtype == np.uint8
    assert ms_out.shape == textured_image.shape + (3,)


def test_auto_converts_16bit_to_8bit(textured_image):
    img16 = textured_image.astype(np.uint16) * 257
    assert preprocess_image(img16, 'auto').dtype == np.uint8


def test_enhance_stretches_to_full_range():
    low_contrast = np.tile(np.linspace(100, 140, 50), (50, 1)).astype(np.uint8)
    stretched = enhance_contrast(low_contrast)
    assert stretched.min() == 0
    assert stretched.max() == 255


def test_enhance_leaves_constant_image():
    constant = np.full((10, 10), 80, dtype=np.uint8)
    assert np.array_equal(enhance_contrast(constant), constant)


def test_denoise_removes_salt_noise():
    img = np.full((20, 20), 50, dtype=np.uint8)
    img[10, 10] = 255
    assert denoise_image(img, 3)[10, 10] == 50

    color = np.zeros((20, 20, 3), dtype=np.uint8)
    color[5, 5, 1] = 255
    assert denoise_image(color)[5, 5, 1] == 0


def test_normalize_methods():
    img = np.array([[10, 20], [30, 40]], dtype=np.uint8)
    assert normalize_image(img).tolist() == [[0, 85], [170, 255]]
    zscore = normalize_image(img, 'zscore')
    assert zscore.dtype == np.uint8
    assert zscore[0, 0] == 0
    with pytest.raises(ValueError):
        normalize_image(img, 'robust')


def test_multispectral_band_combination():
    bands = np.stack([np.full((8, 8), 10 * (b + 1), dtype=np.uint16) for b in range(5)], axis=2)
    bands[0, 0] = 0
    composite = process_multispectral(bands, band_combination=(4, 3, 2))
    assert composite.shape == (8, 8, 3)
    assert composite.dtype == np.uint8

    # A combination asking for missing bands falls back to the first three
    three = bands[:, :, :3]
    assert process_multispectral(three, band_combination=(4, 3, 2)).shape == (8, 8, 3)


def test_noise_estimate():
    assert estimate_noise(np.full((32, 32), 90, dtype=np.uint8)) == 0.0
    rng = np.random.default_rng(0)
    noisy = rng.integers(0, 256, size=(64, 64)).astype(np.uint8)
    assert is_noisy(noisy)
    assert not is_noisy(np.full((32, 32), 90, dtype=np.uint8))


def test_unknown_method(textured_image):
    with pytest.raises(ValueError, match="Unknown preprocessing method"):
        preprocess_image(textured_image, 'sharpen')
