"""
Utility functions for image handling and geometry.

This module contains the helpers shared by the alignment and change
detection stages: size validation, band and dtype conversion, min-max
normalization, structuring elements, warping and reprojection error.
"""

import cv2
import numpy as np
from typing import Tuple, Optional

# ITU-R BT.601 luma weights, the same ones cv2.COLOR_RGB2GRAY uses
RGB_WEIGHTS = np.array([0.299, 0.587, 0.114])

# Depths cv2.warpAffine can resample directly
WARP_DTYPES = (np.uint8, np.uint16, np.int16, np.float32, np.float64)


# =============================================================================
# Size Validation and Image Helpers
# =============================================================================

def validate_size(size: Tuple[int, int], name: str = "size") -> Tuple[int, int]:
    """
    Validate and return size tuple.

    Args:
        size: (width, height) tuple
        name: Parameter name for error messages

    Returns:
        Validated (width, height) tuple

    Raises:
        ValueError: If size is invalid
    """
    if not isinstance(size, (tuple, list)) or len(size) != 2:
        raise ValueError(f"{name} must be a tuple of (width, height)")

    width, height = size

    if not isinstance(width, (int, np.integer)) or not isinstance(height, (int, np.integer)):
        raise ValueError(f"{name} must contain integers, got ({type(width)}, {type(height)})")

    if width <= 0 or height <= 0:
        raise ValueError(f"{name} must be positive, got ({width}, {height})")

    return (int(width), int(height))


def image_size_from_shape(image: np.ndarray) -> Tuple[int, int]:
    """
    Extract (width, height) from image array.

    Args:
        image: Image array with shape (height, width) or (height, width, bands)

    Returns:
        Tuple of (width, height)
    """
    if image.ndim < 2:
        raise ValueError(f"Image must have at least 2 dimensions, got {image.ndim}")

    height, width = image.shape[:2]
    return (width, height)


def num_bands(image: np.ndarray) -> int:
    """Number of bands; 2D arrays are single band"""
    return 1 if image.ndim == 2 else image.shape[2]


def to_grayscale(image: np.ndarray) -> np.ndarray:
    """
    Reduce an image to a single band

    Three-band images are treated as RGB and converted with luma weights,
    any other band count is averaged. The dtype of the input is kept.
    """
    if image.ndim == 2:
        return image
    if image.ndim != 3:
        raise ValueError(f"Expected a 2D or 3D image, got shape {image.shape}")

    bands = image.shape[2]
    if bands == 1:
        return image[:, :, 0]

    if bands == 3:
        if image.dtype in (np.uint8, np.uint16, np.float32):
            return cv2.cvtColor(np.ascontiguousarray(image), cv2.COLOR_RGB2GRAY)
        gray = image.astype(np.float64) @ RGB_WEIGHTS
    else:
        gray = image.astype(np.float64).mean(axis=2)

    if np.issubdtype(image.dtype, np.integer):
        return np.round(gray).astype(image.dtype)
    return gray.astype(image.dtype)


def to_float(image: np.ndarray) -> np.ndarray:
    """Convert to float64; integer dtypes are scaled by their maximum"""
    if image.dtype == bool:
        return image.astype(np.float64)
    if np.issubdtype(image.dtype, np.integer):
        return image.astype(np.float64) / np.iinfo(image.dtype).max
    return image.astype(np.float64)


def to_uint8(image: np.ndarray, value_range: Optional[Tuple[float, float]] = None) -> np.ndarray:
    """
    Convert to uint8 for OpenCV feature detectors

    Integer images wider than uint8 are stretched by the values they hold,
    not by their dtype range, so 12-bit data in uint16 keeps its contrast.
    Float images in [0, 1] are multiplied by 255 and any other float range
    is min-max stretched.

    Args:
        image: Input image
        value_range: (low, high) mapped to 0 and 255 instead of the image's
            own range, so that several images share one scale

    Returns:
        uint8 image; a constant image with no range of its own maps to zeros
    """
    if image.dtype == np.uint8 and value_range is None:
        return image
    if image.dtype == bool:
        return image.astype(np.uint8) * 255

    data = np.nan_to_num(image.astype(np.float64))
    if value_range is not None:
        low, high = float(value_range[0]), float(value_range[1])
    elif data.size == 0:
        return data.astype(np.uint8)
    elif np.issubdtype(image.dtype, np.integer) or data.min() < 0.0 or data.max() > 1.0:
        low, high = float(data.min()), float(data.max())
    else:
        low, high = 0.0, 1.0

    if high - low < 1e-12:
        return np.zeros(data.shape, dtype=np.uint8)
    scaled = (data - low) / (high - low)
    return np.clip(np.round(scaled * 255), 0, 255).astype(np.uint8)


def joint_range(*images: np.ndarray) -> Optional[Tuple[float, float]]:
    """
    Common ``value_range`` for converting several images with ``to_uint8``

    Returns None when every image is already uint8. Float images that all
    lie in [0, 1] keep that range.
    """
    if all(image.dtype == np.uint8 for image in images):
        return None

    values = [np.nan_to_num(image.astype(np.float64)) for image in images if image.size]
    if not values:
        return None
    low = min(float(v.min()) for v in values)
    high = max(float(v.max()) for v in values)

    if all(np.issubdtype(image.dtype, np.floating) for image in images) and low >= 0.0 and high <= 1.0:
        return (0.0, 1.0)
    return (low, high)


def normalize_minmax(data: np.ndarray) -> np.ndarray:
    """
    Min-max scale an array to [0, 1]

    A constant array carries no contrast and maps to zeros.
    """
    data = np.nan_to_num(np.asarray(data, dtype=np.float64))
    if data.size == 0:
        return data
    low, high = float(data.min()), float(data.max())
    if high - low < 1e-12:
        return np.zeros_like(data)
    return (data - low) / (high - low)


def disk_kernel(radius: int) -> np.ndarray:
    """Disk-shaped structuring element; radius 0 is a single pixel"""
    radius = max(int(radius), 0)
    size = 2 * radius + 1
    return cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (size, size))


# =============================================================================
# Geometry Helpers
# =============================================================================

def warp_image(image: np.ndarray, matrix: np.ndarray, output_size: Tuple[int, int],
               interpolation: int = cv2.INTER_LINEAR, border_value: float = 0) -> np.ndarray:
    """
    Resample an image through a forward affine matrix

    Args:
        image: Moving image (H, W) or (H, W, bands)
        matrix: 2x3 or 3x3 matrix mapping moving coordinates to output coordinates
        output_size: Output (width, height), normally the fixed image size
        interpolation: OpenCV interpolation flag
        border_value: Fill value for samples outside the moving image

    Returns:
        Warped image with the output size and the input band count
    """
    width, height = validate_size(output_size, "output_size")
    affine = np.asarray(matrix, dtype=np.float64)[:2, :]

    if image.dtype == bool:
        source = image.astype(np.uint8)
    elif image.dtype not in WARP_DTYPES:
        source = image.astype(np.float64)
    else:
        source = image

    def _warp(band: np.ndarray) -> np.ndarray:
        return cv2.warpAffine(
            np.ascontiguousarray(band), affine, (width, height),
            flags=interpolation,
            borderMode=cv2.BORDER_CONSTANT,
            borderValue=border_value
        )

    # OpenCV remapping handles at most 4 channels
    if source.ndim == 3 and source.shape[2] > 4:
        warped = np.stack([_warp(source[:, :, b]) for b in range(source.shape[2])], axis=2)
    else:
        warped = _warp(source)
        if source.ndim == 3 and warped.ndim == 2:
            warped = warped[:, :, np.newaxis]

    if image.dtype == bool:
        return warped.astype(bool)
    if np.issubdtype(image.dtype, np.integer) and warped.dtype != image.dtype:
        info = np.iinfo(image.dtype)
        return np.clip(np.round(warped), info.min, info.max).astype(image.dtype)
    return warped.astype(image.dtype, copy=False)


def calculate_reprojection_error(src_points: np.ndarray, dst_points: np.ndarray,
                                 matrix: np.ndarray) -> np.ndarray:
    """Euclidean distance between mapped source points and destination points"""
    src_points = np.asarray(src_points, dtype=np.float64).reshape(-1, 2)
    dst_points = np.asarray(dst_points, dtype=np.float64).reshape(-1, 2)
    if len(src_points) == 0:
        return np.array([])

    homogeneous = np.hstack([src_points, np.ones((len(src_points), 1))])
    projected = homogeneous @ np.asarray(matrix, dtype=np.float64).T
    projected = projected[:, :2] / projected[:, 2:3]
    return np.linalg.norm(projected - dst_points, axis=1)


def paste_on_canvas(image: np.ndarray, size: Tuple[int, int], fill: float = 0) -> np.ndarray:
    """
    Crop or zero-pad an image to ``size`` keeping the top-left origin

    Pixel coordinates are unchanged, so a transform estimated on the canvas
    applies to the original image as is.
    """
    width, height = validate_size(size, "size")
    canvas_shape = (height, width) + image.shape[2:]
    canvas = np.full(canvas_shape, fill, dtype=image.dtype)
    h = min(height, image.shape[0])
    w = min(width, image.shape[1])
    canvas[:h, :w] = image[:h, :w]
    return canvas


def image_std(image: Optional[np.ndarray]) -> float:
    if image is None or image.size == 0:
        return 0.0
    return float(np.std(image.astype(np.float64)))


__all__ = [
    'validate_size',
    'image_size_from_shape',
    'num_bands',
    'to_grayscale',
    'to_float',
    'to_uint8',
    'joint_range',
    'normalize_minmax',
    'disk_kernel',
    'warp_image',
    'calculate_reprojection_error',
    'paste_on_canvas',
    'image_std',
]
