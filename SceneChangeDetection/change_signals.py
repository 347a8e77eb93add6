"""
Independent change signals over an aligned image pair.

Each signal turns the pair into a raw per-pixel change measure, min-max
normalizes it to [0, 1] and derives a standalone threshold for diagnostic
masks. The fused pipeline only consumes the continuous maps.
"""

import cv2
import numpy as np
from abc import ABC, abstractmethod
from skimage.feature import canny
from skimage.metrics import structural_similarity
from typing import Any, Dict, Optional, Tuple

from .core_data_structures import SignalOutcome, SignalResult, SignalUnavailable, SignalType
from .exceptions import DetectionError, DimensionMismatch, UnsupportedBandCount
from .logger import get_logger
from .thresholding import otsu_threshold
from .utils import (disk_kernel, joint_range, normalize_minmax, num_bands, to_float,
                    to_grayscale, to_uint8)

logger = get_logger("signals")


def check_same_shape(img1: np.ndarray, img2: np.ndarray):
    """
    Raises:
        DimensionMismatch: If the two images differ in height, width or bands
    """
    if img1.shape != img2.shape:
        raise DimensionMismatch(
            f"Images must be the same size for change detection: {img1.shape} vs {img2.shape}",
            details={'shape1': tuple(img1.shape), 'shape2': tuple(img2.shape)}
        )


def _gray(image: np.ndarray) -> np.ndarray:
    return to_grayscale(image).astype(np.float64)


class BaseChangeSignal(ABC):
    """Abstract base class for change signals"""

    name = "signal"

    def __init__(self, threshold: Optional[float] = None):
        """
        Args:
            threshold: Fixed standalone threshold; None derives one from the map
        """
        self.threshold = threshold

    def compute(self, img1: np.ndarray, img2: np.ndarray) -> SignalResult:
        """
        Compute the normalized change map of an aligned pair

        Raises:
            DimensionMismatch: If the images differ in shape
            UnsupportedBandCount: If the signal cannot handle the band count
        """
        check_same_shape(img1, img2)
        raw, stats = self.compute_raw(img1, img2)
        change_map = normalize_minmax(raw)

        if self.threshold is not None:
            threshold = float(self.threshold)
        else:
            threshold = self.standalone_threshold(change_map)

        stats['threshold'] = threshold
        return SignalResult(self.name, change_map, threshold, stats)

    @abstractmethod
    def compute_raw(self, img1: np.ndarray, img2: np.ndarray) -> Tuple[np.ndarray, Dict[str, Any]]:
        """Raw change measure and diagnostic statistics"""
        pass

    def standalone_threshold(self, change_map: np.ndarray) -> float:
        return otsu_threshold(change_map)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(threshold={self.threshold})"


class PixelDifferenceSignal(BaseChangeSignal):
    """Absolute intensity difference of the grayscale pair"""

    name = SignalType.PIXEL.value

    def __init__(self, smoothing_sigma: float = 0.0, threshold: Optional[float] = None):
        super().__init__(threshold)
        self.smoothing_sigma = smoothing_sigma

    def compute_raw(self, img1, img2):
        diff = np.abs(_gray(img2) - _gray(img1))
        stats = {
            'mean_difference': float(diff.mean()),
            'std_difference': float(diff.std()),
        }
        if self.smoothing_sigma > 0:
            diff = cv2.GaussianBlur(diff, (0, 0), self.smoothing_sigma)
        return diff, stats


class StructuralSimilaritySignal(BaseChangeSignal):
    """
    Local structural dissimilarity, ``1 - SSIM``

    SSIM combines luminance, contrast and structure terms over a Gaussian
    weighted window; the complement is high where the scene changed.
    """

    name = SignalType.SSIM.value

    def __init__(self, sigma: float = 1.5, threshold: Optional[float] = None):
        super().__init__(threshold)
        self.sigma = sigma

    @property
    def window_size(self) -> int:
        # Window skimage derives for gaussian weights (truncate = 3.5)
        return 2 * int(3.5 * self.sigma + 0.5) + 1

    def compute_raw(self, img1, img2):
        gray1, gray2 = to_grayscale(img1), to_grayscale(img2)
        if min(gray1.shape) < self.window_size:
            raise DetectionError(
                f"Image {gray1.shape} smaller than the SSIM window {self.window_size}",
                details={'shape': tuple(gray1.shape), 'window_size': self.window_size}
            )

        # Wider dtypes use the range the pair actually holds
        if gray1.dtype == np.uint8 and gray2.dtype == np.uint8:
            data_range = 255.0
        else:
            low, high = joint_range(gray1, gray2)
            data_range = (high - low) or 1.0

        score, ssim_map = structural_similarity(
            gray1.astype(np.float64),
            gray2.astype(np.float64),
            data_range=data_range,
            gaussian_weights=True,
            sigma=self.sigma,
            use_sample_covariance=False,
            full=True
        )
        return 1.0 - ssim_map, {'overall_ssim': float(score)}


class EdgeChangeSignal(BaseChangeSignal):
    """Symmetric difference of Canny edge maps, dilated into regions"""

    name = SignalType.EDGE.value

    def __init__(self, sigma: float = 1.0, dilation_radius: int = 3,
                 threshold: Optional[float] = None):
        super().__init__(threshold)
        self.sigma = sigma
        self.dilation_radius = dilation_radius

    def compute_raw(self, img1, img2):
        gray1, gray2 = to_grayscale(img1), to_grayscale(img2)
        # One shared scale for the pair
        value_range = joint_range(gray1, gray2)
        edges1 = canny(to_float(to_uint8(gray1, value_range)), sigma=self.sigma)
        edges2 = canny(to_float(to_uint8(gray2, value_range)), sigma=self.sigma)

        added = edges2 & ~edges1
        removed = edges1 & ~edges2
        changes = (added | removed).astype(np.uint8)

        if self.dilation_radius > 0:
            changes = cv2.dilate(changes, disk_kernel(self.dilation_radius))

        stats = {
            'edges_added': int(added.sum()),
            'edges_removed': int(removed.sum()),
        }
        return changes.astype(np.float64), stats

    def standalone_threshold(self, change_map):
        # Dilated edge maps are binary, any response counts
        return 0.1


class TextureChangeSignal(BaseChangeSignal):
    """Difference of local standard deviation maps"""

    name = SignalType.TEXTURE.value

    def __init__(self, window_size: int = 7, threshold: Optional[float] = None):
        if window_size < 2:
            raise ValueError(f"window_size must be at least 2, got {window_size}")
        super().__init__(threshold)
        self.window_size = window_size

    def local_std(self, gray: np.ndarray) -> np.ndarray:
        """Sample standard deviation over a square window"""
        ksize = (self.window_size, self.window_size)
        mean = cv2.blur(gray, ksize, borderType=cv2.BORDER_REFLECT)
        mean_sq = cv2.blur(gray * gray, ksize, borderType=cv2.BORDER_REFLECT)
        n = self.window_size * self.window_size
        variance = np.maximum(mean_sq - mean * mean, 0.0) * n / (n - 1)
        return np.sqrt(variance)

    def compute_raw(self, img1, img2):
        texture_diff = np.abs(self.local_std(_gray(img2)) - self.local_std(_gray(img1)))
        return texture_diff, {'mean_texture_change': float(texture_diff.mean())}


class SpectralAngleSignal(BaseChangeSignal):
    """
    Per-pixel angle between the band vectors of the two images

    Only defined for multi-band input. Brightness scaling of a pixel leaves
    its angle unchanged, so this signal isolates composition change.
    """

    name = SignalType.SPECTRAL.value

    def compute_raw(self, img1, img2):
        bands = num_bands(img1)
        if bands < 2:
            raise UnsupportedBandCount(
                "Spectral angle needs at least 2 bands",
                details={'num_bands': bands}
            )

        vec1 = img1.astype(np.float64)
        vec2 = img2.astype(np.float64)
        dot = np.sum(vec1 * vec2, axis=2)
        norm1 = np.linalg.norm(vec1, axis=2)
        norm2 = np.linalg.norm(vec2, axis=2)

        zero1 = norm1 < 1e-12
        zero2 = norm2 < 1e-12
        denom = np.where(zero1 | zero2, 1.0, norm1 * norm2)
        angle = np.arccos(np.clip(dot / denom, -1.0, 1.0))

        # Zero vectors carry no direction: two of them agree, one is orthogonal
        angle[zero1 & zero2] = 0.0
        angle[zero1 ^ zero2] = np.pi / 2

        stats = {
            'num_bands': bands,
            'mean_spectral_angle': float(angle.mean()),
        }
        return angle, stats


SIGNAL_MAP = {
    SignalType.PIXEL.value: PixelDifferenceSignal,
    SignalType.SSIM.value: StructuralSimilaritySignal,
    SignalType.EDGE.value: EdgeChangeSignal,
    SignalType.TEXTURE.value: TextureChangeSignal,
    SignalType.SPECTRAL.value: SpectralAngleSignal,
}


def create_signal(signal_type: str, **kwargs) -> BaseChangeSignal:
    """
    Factory function to create change signals

    Args:
        signal_type: 'pixel', 'ssim', 'edge', 'texture' or 'spectral'
        **kwargs: Parameters for the signal

    Raises:
        ValueError: If signal_type is not supported
    """
    key = signal_type.value if isinstance(signal_type, SignalType) else str(signal_type).lower()
    if key not in SIGNAL_MAP:
        available = ', '.join(SIGNAL_MAP.keys())
        raise ValueError(f"Unknown signal type: {signal_type}. Available: {available}")
    return SIGNAL_MAP[key](**kwargs)


def compute_signal(signal: BaseChangeSignal, img1: np.ndarray, img2: np.ndarray) -> SignalOutcome:
    """
    Compute a signal, turning a per-signal failure into an explicit marker

    Raises:
        DimensionMismatch: Always propagated, the pair is unusable for every signal
    """
    try:
        return signal.compute(img1, img2)
    except DimensionMismatch:
        raise
    except DetectionError as e:
        logger.info(f"Signal {signal.name} unavailable: {e.message}")
        return SignalUnavailable(signal.name, e.message)


__all__ = [
    'check_same_shape',
    'BaseChangeSignal',
    'PixelDifferenceSignal',
    'StructuralSimilaritySignal',
    'EdgeChangeSignal',
    'TextureChangeSignal',
    'SpectralAngleSignal',
    'SIGNAL_MAP',
    'create_signal',
    'compute_signal',
]
