"""
Threshold selection for [0, 1] change maps.

Three interchangeable policies: histogram-variance maximization (Otsu),
a fixed percentile of the value distribution, and 2-means clustering with
the threshold at the midpoint of the two cluster centers. The selected
value is always clamped to ``THRESHOLD_BOUNDS``.
"""

import numpy as np
from skimage.filters import threshold_otsu
from sklearn.cluster import KMeans
from typing import Union

from .core_data_structures import ThresholdMethod

THRESHOLD_BOUNDS = (0.1, 0.9)


def _values(change_map: np.ndarray) -> np.ndarray:
    values = np.asarray(change_map, dtype=np.float64).ravel()
    return values[np.isfinite(values)]


def otsu_threshold(change_map: np.ndarray) -> float:
    """Otsu threshold, unclamped; a constant map returns its value"""
    values = _values(change_map)
    if values.size == 0:
        return 0.0
    if values.max() - values.min() < 1e-12:
        return float(values[0])
    return float(threshold_otsu(values))


def percentile_threshold(change_map: np.ndarray, percentile: float = 95.0) -> float:
    values = _values(change_map)
    if values.size == 0:
        return 0.0
    return float(np.percentile(values, percentile))


def kmeans_threshold(change_map: np.ndarray) -> float:
    """
    Midpoint of the centers of a 2-means clustering of the pixel values

    The clusters are seeded at the minimum and maximum value so the result
    is deterministic.
    """
    values = _values(change_map)
    if values.size == 0:
        return 0.0
    low, high = float(values.min()), float(values.max())
    if high - low < 1e-12:
        return low

    kmeans = KMeans(n_clusters=2, init=np.array([[low], [high]]), n_init=1)
    kmeans.fit(values.reshape(-1, 1))
    return float(kmeans.cluster_centers_.mean())


def clamp_threshold(threshold: float) -> float:
    low, high = THRESHOLD_BOUNDS
    return float(min(max(threshold, low), high))


def select_threshold(change_map: np.ndarray,
                     method: Union[str, ThresholdMethod] = ThresholdMethod.OTSU,
                     percentile: float = 95.0) -> float:
    """
    Select a threshold for a change map

    Args:
        change_map: Float array with values in [0, 1]
        method: 'otsu', 'percentile' or 'kmeans'
        percentile: Percentile used by the 'percentile' method

    Returns:
        Threshold clamped to [0.1, 0.9]

    Raises:
        ValueError: If method is unknown
    """
    try:
        method = ThresholdMethod(method.value if isinstance(method, ThresholdMethod) else str(method).lower())
    except ValueError:
        available = ', '.join(m.value for m in ThresholdMethod)
        raise ValueError(f"Unknown threshold method: {method}. Available: {available}") from None

    if method is ThresholdMethod.OTSU:
        threshold = otsu_threshold(change_map)
    elif method is ThresholdMethod.PERCENTILE:
        threshold = percentile_threshold(change_map, percentile)
    else:
        threshold = kmeans_threshold(change_map)

    return clamp_threshold(threshold)


__all__ = [
    'THRESHOLD_BOUNDS',
    'otsu_threshold',
    'percentile_threshold',
    'kmeans_threshold',
    'clamp_threshold',
    'select_threshold',
]
