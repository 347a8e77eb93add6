"""
Fusion of change signals, threshold selection and mask cleanup.
"""

import cv2
import numpy as np
from scipy import ndimage
from typing import Dict, Mapping, Optional, Tuple, Union

from .core_data_structures import FusionResult, SignalResult, SignalUnavailable
from .exceptions import DetectionError, DimensionMismatch
from .logger import get_logger
from .thresholding import select_threshold
from .utils import disk_kernel, normalize_minmax

logger = get_logger("fusion")

DEFAULT_WEIGHTS = {
    'pixel': 1.0,
    'ssim': 1.0,
    'edge': 0.5,
    'texture': 0.5,
    'spectral': 1.0,
}

FusionInput = Union[SignalResult, SignalUnavailable, np.ndarray]


# =============================================================================
# Mask cleanup
# =============================================================================

def remove_small_components(mask: np.ndarray, min_area: int) -> np.ndarray:
    """Drop 8-connected components with fewer than ``min_area`` pixels"""
    mask = np.asarray(mask, dtype=bool)
    if min_area <= 1 or not mask.any():
        return mask.copy()

    _, labels, stats, _ =cv2.connectedComponentsWithStats(mask.astype(np.uint8), connectivity=8)
    keep = stats[:, cv2.CC_STAT_AREA] >= min_area
    keep[0] = False
    return keep[labels]


def morphological_close(mask: np.ndarray, radius: int) -> np.ndarray:
    if radius <= 0:
        return mask.copy()
    closed = cv2.morphologyEx(mask.astype(np.uint8), cv2.MORPH_CLOSE, disk_kernel(radius))
    return closed.astype(bool)


def morphological_open(mask: np.ndarray, radius: int) -> np.ndarray:
    if radius <= 0:
        return mask.copy()
    opened = cv2.morphologyEx(mask.astype(np.uint8), cv2.MORPH_OPEN, disk_kernel(radius))
    return opened.astype(bool)


def cleanup_mask(mask: np.ndarray, min_area: int = 50, fill_holes: bool = False,
                 closing_radius: int = 2, opening_radius: int = 1) -> np.ndarray:
    """
    Fixed cleanup pipeline for a binary change mask

    Small components are removed, enclosed holes optionally filled, then a
    closing bridges small gaps and an opening strips thin spurs. A radius
    of 0 skips the corresponding morphological step.

    Returns:
        New boolean mask
    """
    cleaned = remove_small_components(mask, min_area)
    if fill_holes:
        cleaned = ndimage.binary_fill_holes(cleaned)
    cleaned = morphological_close(cleaned, closing_radius)
    cleaned = morphological_open(cleaned, opening_radius)
    return cleaned


# =============================================================================
# Fusion engine
# =============================================================================

class FusionEngine:
    """
    Weighted average of the available change signals

    Usage:
        engine = FusionEngine()
        fused = engine.fuse({'pixel': pixel_result, 'spectral': SignalUnavailable(...)})
        mask, threshold = engine.threshold(fused.change_map)
    """

    def __init__(self, weights: Optional[Dict[str, float]] = None,
                 threshold_method: str = 'otsu', percentile: float = 95.0,
                 renormalize: bool = True):
        """
        Args:
            weights: Per-signal weights; missing names use ``DEFAULT_WEIGHTS``
            threshold_method: 'otsu', 'percentile' or 'kmeans'
            percentile: Percentile used by the 'percentile' method
            renormalize: Min-max stretch the weighted average back to [0, 1]
        """
        self.weights = dict(DEFAULT_WEIGHTS)
        self.weights.update(weights or {})
        for name, weight in self.weights.items():
            if weight < 0:
                raise ValueError(f"Weight for {name} must be non-negative, got {weight}")

        self.threshold_method = threshold_method
        self.percentile = percentile
        self.renormalize = renormalize

    def fuse(self, signals: Mapping[str, FusionInput],
             weights: Optional[Dict[str, float]] = None) -> FusionResult:
        """
        Combine signals into one change map

        The divisor is the sum of the weights of the signals actually used,
        so an unavailable signal drops out of the average instead of
        failing the fusion.

        Args:
            signals: Name -> SignalResult, bare [0, 1] array or SignalUnavailable
            weights: Optional per-call weights overriding the engine's

        Raises:
            DimensionMismatch: If the available maps differ in shape
            DetectionError: If no signal with positive weight is available
        """
        active_weights = dict(self.weights)
        active_weights.update(weights or {})

        accumulator = None
        divisor = 0.0
        fused = []
        unavailable = []

        for name, outcome in signals.items():
            if isinstance(outcome, SignalUnavailable):
                unavailable.append(name)
                continue

            weight = float(active_weights.get(name, 0.0))
            if weight <= 0:
                continue

            change_map = outcome.change_map if isinstance(outcome, SignalResult) else np.asarray(outcome)
            change_map = change_map.astype(np.float64)

            if accumulator is None:
                accumulator = np.zeros_like(change_map)
            elif change_map.shape != accumulator.shape:
                raise DimensionMismatch(
                    f"Signal {name} has shape {change_map.shape}, expected {accumulator.shape}",
                    details={'signal': name}
                )

            accumulator += weight * change_map
            divisor += weight
            fused.append(name)

        if accumulator is None or divisor <= 0:
            raise DetectionError(
                "No change signal available for fusion",
                details={'signals_unavailable': unavailable}
            )

        change_map = accumulator / divisor
        if self.renormalize:
            change_map = normalize_minmax(change_map)

        logger.debug(f"Fused {fused} with divisor {divisor:.2f}; unavailable: {unavailable}")

        return FusionResult(
            change_map=change_map,
            weight_divisor=divisor,
            signals_fused=fused,
            signals_unavailable=unavailable
        )

    def select_threshold(self, change_map: np.ndarray, method: Optional[str] = None) -> float:
        return select_threshold(change_map, method or self.threshold_method, self.percentile)

    def threshold(self, change_map: np.ndarray, method: Optional[str] = None) -> Tuple[np.ndarray, float]:
        """
        Threshold a change map

        Returns:
            (mask, threshold) with mask = change_map > threshold
        """
        threshold = self.select_threshold(change_map, method)
        return change_map > threshold, threshold


__all__ = [
    'DEFAULT_WEIGHTS',
    'remove_small_components',
    'morphological_close',
    'morphological_open',
    'cleanup_mask',
    'FusionEngine',
]
