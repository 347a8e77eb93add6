"""
Image preprocessing ahead of alignment and change detection.

Satellite scenes arrive as 8/16-bit grayscale, RGB or multispectral
rasters with uneven contrast. ``preprocess_image`` dispatches to one of
the methods below; ``auto`` picks a chain from the image characteristics.
"""

import cv2
import numpy as np
from scipy import ndimage
from typing import Any, Dict, Optional, Sequence

from .logger import get_logger
from .utils import normalize_minmax, num_bands, to_grayscale, to_uint8

logger = get_logger("preprocessing")

PREPROCESSING_METHODS = ['auto', 'enhance', 'denoise', 'normalize', 'multispectral']

DEFAULT_PARAMS = {
    'clip_limit': 2.0,
    'tile_grid_size': (8, 8),
    'stretch_limits': (1.0, 99.0),
    'filter_size': 3,
    'norm_method': 'minmax',
    'band_combination': (4, 3, 2),
    'noise_threshold': 10.0,
}

# 3x3 Laplacian with alpha = 0.2
LAPLACIAN_KERNEL = np.array([[1 / 6, 2 / 3, 1 / 6],
                             [2 / 3, -10 / 3, 2 / 3],
                             [1 / 6, 2 / 3, 1 / 6]], dtype=np.float64)


def preprocess_image(image: np.ndarray, method: str = 'auto',
                     params: Optional[Dict[str, Any]] = None) -> np.ndarray:
    """
    Preprocess an image with the selected method

    Args:
        image: (H, W) or (H, W, bands) array
        method: 'auto', 'enhance', 'denoise', 'normalize' or 'multispectral'
        params: Overrides for ``DEFAULT_PARAMS``

    Returns:
        New preprocessed image (uint8 for every method except 'denoise',
        which keeps the input dtype)

    Raises:
        ValueError: If method is unknown
    """
    if image is None or image.ndim not in (2, 3):
        raise ValueError("Image must be a 2D or 3D array")

    options = dict(DEFAULT_PARAMS)
    options.update(params or {})

    method = str(method).lower()
    if method == 'auto':
        return auto_preprocess(image, options)
    elif method == 'enhance':
        return enhance_contrast(image, options['stretch_limits'])
    elif method == 'denoise':
        return denoise_image(image, options['filter_size'])
    elif method == 'normalize':
        return normalize_image(image, options['norm_method'])
    elif method == 'multispectral':
        return process_multispectral(image, options['band_combination'], options['stretch_limits'])
    else:
        raise ValueError(f"Unknown preprocessing method: {method}. "
                         f"Available: {', '.join(PREPROCESSING_METHODS)}")


def auto_preprocess(image: np.ndarray, options: Dict[str, Any]) -> np.ndarray:
    """Pick band handling from the band count, denoise if needed, stretch"""
    processed = to_uint8(image)

    bands = num_bands(processed)
    if bands == 1:
        processed = apply_clahe(to_grayscale(processed), options['clip_limit'], options['tile_grid_size'])
    elif bands == 3:
        processed = enhance_rgb(processed, options['clip_limit'], options['tile_grid_size'])
    else:
        processed = process_multispectral(processed, options['band_combination'], options['stretch_limits'])

    if is_noisy(processed, options['noise_threshold']):
        logger.debug("Noise estimate above threshold, applying median filter")
        processed = denoise_image(processed, options['filter_size'])

    return enhance_contrast(processed, options['stretch_limits'])


def apply_clahe(gray: np.ndarray, clip_limit: float = 2.0,
                tile_grid_size: Sequence[int] = (8, 8)) -> np.ndarray:
    """Contrast limited adaptive histogram equalization of one uint8 band"""
    clahe = cv2.createCLAHE(clipLimit=clip_limit, tileGridSize=tuple(tile_grid_size))
    return clahe.apply(to_uint8(gray))


def enhance_rgb(image: np.ndarray, clip_limit: float = 2.0,
                tile_grid_size: Sequence[int] = (8, 8)) -> np.ndarray:
    """CLAHE on the lightness channel only, so hues are preserved"""
    lab = cv2.cvtColor(to_uint8(image), cv2.COLOR_RGB2LAB)
    lab[:, :, 0] = apply_clahe(lab[:, :, 0], clip_limit, tile_grid_size)
    return cv2.cvtColor(lab, cv2.COLOR_LAB2RGB)


def process_multispectral(image: np.ndarray, band_combination: Sequence[int] = (4, 3, 2),
                          stretch_limits: Sequence[float] = (1.0, 99.0)) -> np.ndarray:
    """
    Build a 3-band composite from a multispectral image

    Args:
        image: (H, W, bands) array
        band_combination: 1-based band indices; the default (4, 3, 2) is the
            NIR/red/green false color composite for blue-green-red-NIR
            ordered sensors. Falls back to the first three bands when the
            combination asks for a band the image does not have.
        stretch_limits: Percentiles used by the final contrast stretch
    """
    if image.ndim == 2:
        image = image[:, :, np.newaxis]
    bands = image.shape[2]

    if bands >= 4 and max(band_combination) <= bands:
        selected = image[:, :, [b - 1 for b in band_combination]]
    else:
        selected = image[:, :, :min(3, bands)]

    composite = np.stack(
        [np.round(normalize_minmax(selected[:, :, b]) * 255).astype(np.uint8)
         for b in range(selected.shape[2])],
        axis=2
    )
    return enhance_contrast(composite, stretch_limits)


def enhance_contrast(image: np.ndarray, stretch_limits: Sequence[float] = (1.0, 99.0)) -> np.ndarray:
    """Per-band linear stretch between two percentiles, output uint8"""
    low_pct, high_pct = stretch_limits

    def _stretch(band: np.ndarray) -> np.ndarray:
        data = band.astype(np.float64)
        low, high = np.percentile(data, [low_pct, high_pct])
        if high - low < 1e-12:
            return to_uint8(band)
        stretched = np.clip((data - low) / (high - low), 0.0, 1.0)
        return np.round(stretched * 255).astype(np.uint8)

    if image.ndim == 2:
        return _stretch(image)
    return np.stack([_stretch(image[:, :, b]) for b in range(image.shape[2])], axis=2)


def denoise_image(image: np.ndarray, filter_size: int = 3) -> np.ndarray:
    """Median filter applied per band"""
    size = (filter_size, filter_size) if image.ndim == 2 else (filter_size, filter_size, 1)
    return ndimage.median_filter(image, size=size, mode='reflect')


def normalize_image(image: np.ndarray, norm_method: str = 'minmax') -> np.ndarray:
    """
    Normalize every band to the full uint8 range

    Args:
        norm_method: 'minmax' or 'zscore' (standard scores clipped to [0, 1])
    """
    if norm_method not in ('minmax', 'zscore'):
        raise ValueError(f"Unknown normalization method: {norm_method}. Available: minmax, zscore")

    def _normalize(band: np.ndarray) -> np.ndarray:
        data = band.astype(np.float64)
        if norm_method == 'zscore':
            data = np.clip((data - data.mean()) / (data.std() + 1e-12), 0.0, 1.0)
        else:
            data = normalize_minmax(data)
        return np.round(data * 255).astype(np.uint8)

    if image.ndim == 2:
        return _normalize(image)
    return np.stack([_normalize(image[:, :, b]) for b in range(image.shape[2])], axis=2)


def estimate_noise(image: np.ndarray) -> float:
    """
    Noise level from the median absolute deviation of the Laplacian response

    Measured on the 8-bit grayscale version of the image.
    """
    gray = to_uint8(to_grayscale(image)).astype(np.float64)
    response = cv2.filter2D(gray, cv2.CV_64F, LAPLACIAN_KERNEL, borderType=cv2.BORDER_REPLICATE)
    mad = np.median(np.abs(response - np.median(response)))
    return float(mad / 0.6745)


def is_noisy(image: np.ndarray, threshold: float = 10.0) -> bool:
    return estimate_noise(image) > threshold


__all__ = [
    'PREPROCESSING_METHODS',
    'preprocess_image',
    'auto_preprocess',
    'apply_clahe',
    'enhance_rgb',
    'process_multispectral',
    'enhance_contrast',
    'denoise_image',
    'normalize_image',
    'estimate_noise',
    'is_noisy',
]
