"""
Traditional keypoint detectors (SIFT, ORB, AKAZE, BRISK, Harris).

Each detector differs in its interest point criterion (blob response,
binary pattern response, corner strength) and parameterization
(response threshold, scale-space octave count).
"""

import cv2
import numpy as np
from enum import Enum
from typing import List, Optional, Tuple
from .base_classes import BaseFeatureDetector


class _OpenCVFeature2DDetector(BaseFeatureDetector):
    """Detector backed by a single cv2.Feature2D instance"""

    detector = None

    def detect_keypoints(self, gray: np.ndarray) -> List[cv2.KeyPoint]:
        return list(self.detector.detect(gray, None))

    def describe(self, gray: np.ndarray,
                 keypoints: List[cv2.KeyPoint]) -> Tuple[List[cv2.KeyPoint], Optional[np.ndarray]]:
        keypoints, descriptors = self.detector.compute(gray, keypoints)
        return list(keypoints), descriptors


class SIFTDetector(_OpenCVFeature2DDetector):
    """SIFT (Scale-Invariant Feature Transform) blob detector"""

    norm_type = 'L2'
    default_ratio = 0.7

    def __init__(self, max_features: int = 5000, min_features: int = 20,
                 contrast_threshold: float = 0.04, edge_threshold: float = 10,
                 n_octave_layers: int = 3, sigma: float = 1.6):
        """
        Initialize SIFT detector

        Args:
            max_features: Maximum number of features to keep
            min_features: Floor below which detection fails
            contrast_threshold: Threshold for filtering weak features
            edge_threshold: Threshold for filtering edge-like features
            n_octave_layers: Layers per octave of the scale space
            sigma: Gaussian sigma for the first octave
        """
        super().__init__(max_features, min_features)
        self.name = "SIFT"
        self.detector = cv2.SIFT_create(
            nfeatures=max_features,
            nOctaveLayers=n_octave_layers,
            contrastThreshold=contrast_threshold,
            edgeThreshold=edge_threshold,
            sigma=sigma
        )


class ORBDetector(_OpenCVFeature2DDetector):
    """ORB (Oriented FAST and Rotated BRIEF) binary detector"""

    norm_type = 'HAMMING'
    default_ratio = 0.8

    def __init__(self, max_features: int = 5000, min_features: int = 20,
                 scale_factor: float = 1.2, n_levels: int = 8,
                 edge_threshold: int = 31, fast_threshold: int = 20):
        """
        Initialize ORB detector

        Args:
            max_features: Maximum number of features to detect
            min_features: Floor below which detection fails
            scale_factor: Pyramid decimation ratio
            n_levels: Number of pyramid levels
            edge_threshold: Size of border where features are not detected
            fast_threshold: FAST corner response threshold
        """
        super().__init__(max_features, min_features)
        self.name = "ORB"
        self.detector = cv2.ORB_create(
            nfeatures=max_features,
            scaleFactor=scale_factor,
            nlevels=n_levels,
            edgeThreshold=edge_threshold,
            fastThreshold=fast_threshold
        )


class AKAZEDetector(_OpenCVFeature2DDetector):
    """AKAZE (Accelerated-KAZE) detector with binary MLDB descriptors"""

    norm_type = 'HAMMING'
    default_ratio = 0.8

    def __init__(self, max_features: int = 5000, min_features: int = 20,
                 threshold: float = 0.001, n_octaves: int = 4):
        """
        Initialize AKAZE detector

        Args:
            max_features: Maximum number of features to keep
            min_features: Floor below which detection fails
            threshold: Detector response threshold
            n_octaves: Maximum number of octaves
        """
        super().__init__(max_features, min_features)
        self.name = "AKAZE"
        self.detector = cv2.AKAZE_create(
            descriptor_type=cv2.AKAZE_DESCRIPTOR_MLDB,
            threshold=threshold,
            nOctaves=n_octaves
        )


class BRISKDetector(_OpenCVFeature2DDetector):
    """BRISK (Binary Robust Invariant Scalable Keypoints) detector"""

    norm_type = 'HAMMING'
    default_ratio = 0.8

    def __init__(self, max_features: int = 5000, min_features: int = 20,
                 threshold: int = 30, octaves: int = 3, pattern_scale: float = 1.0):
        """
        Initialize BRISK detector

        Args:
            max_features: Maximum number of features to keep
            min_features: Floor below which detection fails
            threshold: AGAST detection threshold
            octaves: Detection octaves
            pattern_scale: Apply this scale to the pattern used for sampling
        """
        super().__init__(max_features, min_features)
        self.name = "BRISK"
        self.detector = cv2.BRISK_create(
            thresh=threshold,
            octaves=octaves,
            patternScale=pattern_scale
        )


class HarrisCornerDetector(BaseFeatureDetector):
    """Harris corner detector with SIFT descriptors"""

    norm_type = 'L2'
    default_ratio = 0.6

    def __init__(self, max_features: int = 5000, min_features: int = 20,
                 quality_level: float = 0.001, min_distance: float = 5,
                 block_size: int = 5, k: float = 0.04, keypoint_size: float = 10.0):
        """
        Initialize Harris corner detector

        Args:
            max_features: Maximum number of corners to detect
            min_features: Floor below which detection fails
            quality_level: Minimal accepted corner quality relative to the best corner
            min_distance: Minimum possible Euclidean distance between corners
            block_size: Size of averaging block for computing derivative covariation
            k: Harris detector free parameter
            keypoint_size: Support region diameter used for the descriptors
        """
        super().__init__(max_features, min_features)
        self.name = "Harris"
        self.quality_level = quality_level
        self.min_distance = min_distance
        self.block_size = block_size
        self.k = k
        self.keypoint_size = keypoint_size

        # Use SIFT for descriptor computation
        self.descriptor_extractor = cv2.SIFT_create()

    def detect_keypoints(self, gray: np.ndarray) -> List[cv2.KeyPoint]:
        corners = cv2.goodFeaturesToTrack(
            gray,
            maxCorners=self.max_features,
            qualityLevel=self.quality_level,
            minDistance=self.min_distance,
            blockSize=self.block_size,
            useHarrisDetector=True,
            k=self.k
        )
        if corners is None:
            return []

        # Corner strength doubles as the keypoint response
        response = cv2.cornerHarris(np.float32(gray), self.block_size, 3, self.k)
        height, width = gray.shape[:2]

        keypoints = []
        for corner in corners:
            x, y = corner.ravel()
            row = min(int(round(y)), height - 1)
            col = min(int(round(x)), width - 1)
            keypoints.append(cv2.KeyPoint(
                x=float(x), y=float(y), size=self.keypoint_size,
                response=float(response[row, col])
            ))
        return keypoints

    def describe(self, gray: np.ndarray,
                 keypoints: List[cv2.KeyPoint]) -> Tuple[List[cv2.KeyPoint], Optional[np.ndarray]]:
        keypoints, descriptors = self.descriptor_extractor.compute(gray, keypoints)
        return list(keypoints), descriptors


# Factory function for easy detector creation
DETECTOR_MAP = {
    'SIFT': SIFTDetector,
    'ORB': ORBDetector,
    'AKAZE': AKAZEDetector,
    'BRISK': BRISKDetector,
    'Harris': HarrisCornerDetector,
}


def resolve_detector_name(detector_type: str) -> str:
    """Map a case-insensitive detector name to its canonical spelling"""
    lookup = {name.lower(): name for name in DETECTOR_MAP}
    key = str(detector_type.value if isinstance(detector_type, Enum) else detector_type).lower()
    if key not in lookup:
        available = ', '.join(DETECTOR_MAP.keys())
        raise ValueError(f"Unknown detector type: {detector_type}. Available: {available}")
    return lookup[key]


def create_traditional_detector(detector_type: str, **kwargs) -> BaseFeatureDetector:
    """
    Factory function to create keypoint detectors

    Args:
        detector_type: Type of detector ('SIFT', 'ORB', 'AKAZE', 'BRISK', 'Harris'),
            case-insensitive
        **kwargs: Additional parameters for the detector

    Returns:
        Initialized detector instance

    Raises:
        ValueError: If detector_type is not supported
    """
    return DETECTOR_MAP[resolve_detector_name(detector_type)](**kwargs)
