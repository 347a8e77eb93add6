"""
Change detection over an aligned image pair.

``ChangeDetector.detect`` runs either the full signal fusion or a single
signal, thresholds the resulting map and optionally cleans the mask.
"""

import time
import numpy as np
from typing import Any, Dict, Optional, Tuple

from .change_signals import SIGNAL_MAP, BaseChangeSignal, check_same_shape, compute_signal, create_signal
from .config import DEFAULT_CONFIG, merge_configs
from .core_data_structures import DetectionResult, SignalOutcome, SignalResult, SignalType
from .fusion import FusionEngine, cleanup_mask
from .logger import get_logger
from .utils import num_bands

logger = get_logger("detection")

FUSION_METHOD = 'fusion'


class ChangeDetector:
    """
    Multi-signal change detector

    Usage:
        >>> detector = ChangeDetector()
        >>> result = detector.detect(before, aligned_after)
        >>> print(result.change_percentage, result.signals_fused)
        >>> ssim_only = detector.detect(before, aligned_after, method='ssim')
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Args:
            config: Detection section overrides (see ``DEFAULT_CONFIG['detection']``)
        """
        self.config = merge_configs(DEFAULT_CONFIG['detection'], config or {})

        signal_params = self.config.get('signals', {})
        self.signals: Dict[str, BaseChangeSignal] = {
            name: create_signal(name, **signal_params.get(name, {}))
            for name in SIGNAL_MAP
        }

        self.fusion = FusionEngine(
            weights=self.config.get('weights'),
            threshold_method=self.config.get('threshold_method', 'otsu'),
            percentile=self.config.get('percentile', 95.0),
            renormalize=self.config.get('renormalize', True)
        )

    @property
    def available_methods(self):
        return [FUSION_METHOD] + list(SIGNAL_MAP.keys())

    def detect(self, img1: np.ndarray, img2: np.ndarray, method: Optional[str] = None,
               post_process: Optional[bool] = None) -> DetectionResult:
        """
        Detect changes between two aligned images

        Args:
            img1: Reference image
            img2: Image aligned to img1, same shape
            method: 'fusion' or one signal name; defaults to the configured method
            post_process: Apply mask cleanup; defaults to the configured value

        Returns:
            DetectionResult

        Raises:
            DimensionMismatch: If the images differ in shape
            ValueError: If method is unknown
        """
        for label, image in (('img1', img1), ('img2', img2)):
            if image is None or image.ndim not in (2, 3) or image.size == 0:
                raise ValueError(f"{label} must be a non-empty 2D or 3D array")
        check_same_shape(img1, img2)

        method = str(method or self.config.get('method', FUSION_METHOD)).lower()
        if method not in self.available_methods:
            raise ValueError(f"Unknown detection method: {method}. "
                             f"Available: {', '.join(self.available_methods)}")
        if post_process is None:
            post_process = self.config.get('post_process', True)

        start_time = time.time()
        if method == FUSION_METHOD:
            change_map, threshold, fused, outcomes = self._detect_fusion(img1, img2)
        else:
            change_map, threshold, fused, outcomes = self._detect_single(img1, img2, method)

        change_mask = change_map > threshold
        if post_process:
            change_mask = cleanup_mask(change_mask, **self.config.get('cleanup', {}))

        result = DetectionResult.from_mask(
            change_map, change_mask, threshold, fused,
            method=method, signal_results=outcomes
        )

        logger.info(
            f"{method}: {result.changed_pixels}/{result.total_pixels} pixels changed "
            f"({result.change_percentage:.2f}%), threshold {threshold:.3f}, "
            f"{time.time() - start_time:.2f}s"
        )
        return result

    def compute_signals(self, img1: np.ndarray, img2: np.ndarray) -> Dict[str, SignalOutcome]:
        """Every signal with a positive fusion weight, as result or unavailable marker"""
        outcomes = {}
        for name, signal in self.signals.items():
            if self.fusion.weights.get(name, 0.0) <= 0:
                continue
            outcomes[name] = compute_signal(signal, img1, img2)
        return outcomes

    def _detect_fusion(self, img1, img2) -> Tuple[np.ndarray, float, list, Dict[str, SignalOutcome]]:
        outcomes = self.compute_signals(img1, img2)
        fused = self.fusion.fuse(outcomes)
        threshold = self.fusion.select_threshold(fused.change_map)
        return fused.change_map, threshold, fused.signals_fused, outcomes

    def _detect_single(self, img1, img2, method) -> Tuple[np.ndarray, float, list, Dict[str, SignalOutcome]]:
        signal = self.signals[method]
        if method == SignalType.SPECTRAL.value and num_bands(img1) < 2:
            logger.info("Single-band input, spectral angle falls back to pixel difference")
            signal = self.signals[SignalType.PIXEL.value]

        outcome: SignalResult = signal.compute(img1, img2)
        return outcome.change_map, outcome.threshold, [outcome.name], {outcome.name: outcome}


def detect_changes(img1: np.ndarray, img2: np.ndarray, method: str = FUSION_METHOD,
                   config: Optional[Dict[str, Any]] = None) -> DetectionResult:
    """Convenience wrapper around ``ChangeDetector.detect``"""
    return ChangeDetector(config).detect(img1, img2, method)
