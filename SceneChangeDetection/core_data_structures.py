"""
Core data structures and enums for the change detection system.

This module contains the data classes passed between the alignment stages
(features, correspondences, transforms) and the change detection stages
(per-signal change maps, fused maps, detection results).
"""

import math
import cv2
import numpy as np
from typing import List, Tuple, Dict, Optional, Union, Any
from dataclasses import dataclass, field
from enum import Enum


class DetectorType(Enum):
    """Enumeration of available keypoint detector types"""
    SIFT = "SIFT"          # blob-like, float descriptor
    ORB = "ORB"            # binary descriptor
    AKAZE = "AKAZE"        # binary descriptor, nonlinear scale space
    BRISK = "BRISK"        # binary descriptor
    HARRIS = "Harris"      # corner-like, SIFT descriptor


class ModelFamily(Enum):
    """Geometric model families supported by the consensus estimator"""
    SIMILARITY = "similarity"
    AFFINE = "affine"

    @property
    def min_samples(self) -> int:
        """Size of the minimal sample needed for a closed-form solve"""
        return 2 if self is ModelFamily.SIMILARITY else 3


class ThresholdMethod(Enum):
    """Threshold selection policies for change maps"""
    OTSU = "otsu"
    PERCENTILE = "percentile"
    KMEANS = "kmeans"


class SignalType(Enum):
    """Independent change signals"""
    PIXEL = "pixel"
    SSIM = "ssim"
    EDGE = "edge"
    TEXTURE = "texture"
    SPECTRAL = "spectral"


# =============================================================================
# Features and correspondences
# =============================================================================

@dataclass
class FeatureData:
    """Container for feature detection results"""
    keypoints: List[cv2.KeyPoint]
    descriptors: Optional[np.ndarray]
    method: str
    detection_time: float = 0.0

    def __len__(self):
        return len(self.keypoints)

    @property
    def points(self) -> np.ndarray:
        """Keypoint locations as an (N, 2) float array"""
        if not self.keypoints:
            return np.zeros((0, 2), dtype=np.float64)
        return np.array([kp.pt for kp in self.keypoints], dtype=np.float64)


@dataclass(frozen=True)
class Correspondence:
    """A claimed match between keypoint ``query_idx`` in image A and
    keypoint ``train_idx`` in image B"""
    query_idx: int
    train_idx: int
    distance: float
    confidence: float = 0.0


@dataclass
class MatchData:
    """Container for descriptor matching results"""
    matches: List[Correspondence]
    method: str = "unknown"
    num_raw_matches: int = 0
    matching_time: float = 0.0

    def __len__(self):
        return len(self.matches)

    @property
    def matches_idx(self) -> np.ndarray:
        """(M, 2) array of (query_idx, train_idx)"""
        if not self.matches:
            return np.zeros((0, 2), dtype=np.int32)
        return np.array([[m.query_idx, m.train_idx] for m in self.matches], dtype=np.int32)

    @property
    def distances(self) -> np.ndarray:
        return np.array([m.distance for m in self.matches], dtype=np.float64)

    def get_points(self, keypoints1: List[cv2.KeyPoint],
                   keypoints2: List[cv2.KeyPoint]) -> Tuple[np.ndarray, np.ndarray]:
        """
        Get matched point coordinates

        Args:
            keypoints1: Keypoints of image A (query side)
            keypoints2: Keypoints of image B (train side)

        Returns:
            Tuple of (pts1, pts2), each an (M, 2) float array
        """
        if not self.matches:
            empty = np.zeros((0, 2), dtype=np.float64)
            return empty, empty.copy()
        pts1 = np.array([keypoints1[m.query_idx].pt for m in self.matches], dtype=np.float64)
        pts2 = np.array([keypoints2[m.train_idx].pt for m in self.matches], dtype=np.float64)
        return pts1, pts2


# =============================================================================
# Geometry
# =============================================================================

@dataclass
class Transform:
    """
    2D similarity/affine mapping as a 3x3 matrix on homogeneous coordinates.

    The matrix maps points of the moving image into the frame of the fixed
    image. ``inlier_mask`` is set once the transform has been estimated from
    correspondences.
    """
    matrix: np.ndarray
    model: ModelFamily = ModelFamily.AFFINE
    inlier_mask: Optional[np.ndarray] = None

    def __post_init__(self):
        matrix = np.asarray(self.matrix, dtype=np.float64)
        if matrix.shape == (2, 3):
            matrix = np.vstack([matrix, [0.0, 0.0, 1.0]])
        if matrix.shape != (3, 3):
            raise ValueError(f"Transform matrix must be 2x3 or 3x3, got {matrix.shape}")
        self.matrix = matrix
        if self.inlier_mask is not None:
            self.inlier_mask = np.asarray(self.inlier_mask, dtype=bool)

    @classmethod
    def identity(cls, model: ModelFamily = ModelFamily.AFFINE) -> 'Transform':
        return cls(np.eye(3), model=model)

    @property
    def affine_matrix(self) -> np.ndarray:
        """Top 2x3 block, the form OpenCV warping functions expect"""
        return self.matrix[:2, :].copy()

    @property
    def determinant(self) -> float:
        return float(np.linalg.det(self.matrix[:2, :2]))

    @property
    def scale(self) -> float:
        return math.sqrt(abs(self.determinant))

    @property
    def rotation_degrees(self) -> float:
        return math.degrees(math.atan2(self.matrix[1, 0], self.matrix[0, 0]))

    @property
    def translation(self) -> Tuple[float, float]:
        return float(self.matrix[0, 2]), float(self.matrix[1, 2])

    @property
    def num_inliers(self) -> int:
        return int(self.inlier_mask.sum()) if self.inlier_mask is not None else 0

    @property
    def inlier_ratio(self) -> float:
        if self.inlier_mask is None or len(self.inlier_mask) == 0:
            return 0.0
        return self.num_inliers / len(self.inlier_mask)

    def apply(self, points: np.ndarray) -> np.ndarray:
        """Map an (N, 2) array of points"""
        points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        homogeneous = np.hstack([points, np.ones((len(points), 1))])
        mapped = homogeneous @ self.matrix.T
        return mapped[:, :2] / mapped[:, 2:3]

    def inverse(self) -> 'Transform':
        return Transform(np.linalg.inv(self.matrix), model=self.model)

    def is_identity(self, atol: float = 1e-3) -> bool:
        return bool(np.allclose(self.matrix, np.eye(3), atol=atol))


@dataclass
class AlignmentAttempt:
    """Record of one failed step of the alignment fallback chain"""
    method: str
    stage: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AlignmentResult:
    """
    Result of aligning a moving image onto a fixed image

    ``aligned_image`` always has the fixed image's height and width; on
    failure it holds the moving image under the identity transform.
    """
    transform: Transform
    aligned_image: np.ndarray
    method: str
    strategy: str
    success: bool
    num_keypoints1: int = 0
    num_keypoints2: int = 0
    num_matches: int = 0
    num_inliers: int = 0
    correlation: Optional[float] = None
    attempts: List[AlignmentAttempt] = field(default_factory=list)
    processing_time: float = 0.0

    @property
    def inlier_ratio(self) -> float:
        return self.num_inliers / self.num_matches if self.num_matches else 0.0

    def summary(self) -> Dict[str, Any]:
        return {
            'method': self.method,
            'strategy': self.strategy,
            'success': self.success,
            'num_keypoints1': self.num_keypoints1,
            'num_keypoints2': self.num_keypoints2,
            'num_matches': self.num_matches,
            'num_inliers': self.num_inliers,
            'inlier_ratio': self.inlier_ratio,
            'scale': self.transform.scale,
            'rotation_degrees': self.transform.rotation_degrees,
            'translation': self.transform.translation,
            'correlation': self.correlation,
            'failed_attempts': [a.method for a in self.attempts],
            'processing_time': self.processing_time,
        }


# =============================================================================
# Change detection
# =============================================================================

@dataclass
class SignalResult:
    """Normalized [0, 1] change map produced by one change signal"""
    name: str
    change_map: np.ndarray
    threshold: float
    stats: Dict[str, Any] = field(default_factory=dict)

    @property
    def mask(self) -> np.ndarray:
        """Standalone diagnostic mask from the signal's own threshold"""
        return self.change_map > self.threshold


@dataclass(frozen=True)
class SignalUnavailable:
    """Marker for a signal that could not be computed for the input pair"""
    name: str
    reason: str


SignalOutcome = Union[SignalResult, SignalUnavailable]


@dataclass
class FusionResult:
    """Weighted combination of the available change signals"""
    change_map: np.ndarray
    weight_divisor: float
    signals_fused: List[str]
    signals_unavailable: List[str] = field(default_factory=list)


@dataclass
class DetectionResult:
    """Fused change map, cleaned mask and change statistics"""
    change_map: np.ndarray
    change_mask: np.ndarray
    total_pixels: int
    changed_pixels: int
    change_percentage: float
    threshold: float
    signals_fused: List[str]
    method: str = "fusion"
    num_regions: int = 0
    signal_results: Dict[str, SignalOutcome] = field(default_factory=dict)

    @classmethod
    def from_mask(cls, change_map: np.ndarray, change_mask: np.ndarray, threshold: float,
                  signals_fused: List[str], method: str = "fusion",
                  signal_results: Optional[Dict[str, SignalOutcome]] = None) -> 'DetectionResult':
        """Build a result whose pixel counts are derived from the mask itself"""
        change_mask = np.asarray(change_mask, dtype=bool)
        total_pixels = int(change_mask.size)
        changed_pixels = int(np.count_nonzero(change_mask))
        percentage = 100.0 * changed_pixels / total_pixels if total_pixels else 0.0

        num_regions = 0
        if changed_pixels:
            num_labels, _ = cv2.connectedComponents(change_mask.astype(np.uint8), connectivity=8)
            num_regions = num_labels - 1

        return cls(
            change_map=change_map,
            change_mask=change_mask,
            total_pixels=total_pixels,
            changed_pixels=changed_pixels,
            change_percentage=percentage,
            threshold=float(threshold),
            signals_fused=list(signals_fused),
            method=method,
            num_regions=num_regions,
            signal_results=dict(signal_results or {}),
        )

    def summary(self) -> Dict[str, Any]:
        return {
            'method': self.method,
            'total_pixels': self.total_pixels,
            'changed_pixels': self.changed_pixels,
            'change_percentage': self.change_percentage,
            'threshold': self.threshold,
            'signals_fused': list(self.signals_fused),
            'num_regions': self.num_regions,
        }
