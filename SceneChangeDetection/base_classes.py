"""
Base classes and interfaces for keypoint detection and matching.

This module defines the abstract base classes that all keypoint detectors
and descriptor matchers must implement.
"""

import time
import cv2
import numpy as np
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from .core_data_structures import FeatureData, MatchData
from .exceptions import InsufficientFeatures
from .utils import to_grayscale, to_uint8


class BaseFeatureDetector(ABC):
    """Abstract base class for all keypoint detectors"""

    # Descriptor distance used by matchers ('L2' or 'HAMMING')
    norm_type = 'L2'
    # Default nearest/second-nearest ratio for this descriptor family
    default_ratio = 0.7

    def __init__(self, max_features: int = 5000, min_features: int = 20, **kwargs):
        self.max_features = max_features
        self.min_features = min_features
        self.name = self.__class__.__name__

    @abstractmethod
    def detect_keypoints(self, gray: np.ndarray) -> List[cv2.KeyPoint]:
        """
        Find interest points in a preprocessed grayscale image

        Args:
            gray: uint8 grayscale image

        Returns:
            List of keypoints
        """
        pass

    @abstractmethod
    def describe(self, gray: np.ndarray,
                 keypoints: List[cv2.KeyPoint]) -> Tuple[List[cv2.KeyPoint], Optional[np.ndarray]]:
        """
        Compute descriptors for keypoints

        Keypoints for which no descriptor can be computed (e.g. too close to
        the border) are dropped, so the returned lists stay aligned 1:1.

        Returns:
            Tuple of (keypoints, descriptors)
        """
        pass

    def detect(self, image: np.ndarray) -> FeatureData:
        """
        Detect and describe keypoints in an image

        Args:
            image: Input image (RGB, multi-band or grayscale)

        Returns:
            FeatureData object containing keypoints and descriptors

        Raises:
            InsufficientFeatures: If fewer than ``min_features`` keypoints survive
        """
        start_time = time.time()
        gray = self.preprocess_image(image)

        keypoints = list(self.detect_keypoints(gray))
        if keypoints:
            keypoints, descriptors = self.describe(gray, keypoints)
            keypoints, descriptors = self.postprocess_features(list(keypoints), descriptors)
        else:
            descriptors = None

        if len(keypoints) < self.min_features or descriptors is None:
            raise InsufficientFeatures(
                f"Insufficient {self.name} features detected: "
                f"{len(keypoints)} < {self.min_features}",
                details={
                    'method': self.name,
                    'num_keypoints': len(keypoints),
                    'min_features': self.min_features,
                }
            )

        return FeatureData(
            keypoints=keypoints,
            descriptors=descriptors,
            method=self.name,
            detection_time=time.time() - start_time
        )

    def preprocess_image(self, image: np.ndarray) -> np.ndarray:
        """
        Preprocess image for keypoint detection

        Args:
            image: Input image

        Returns:
            uint8 grayscale image
        """
        return to_uint8(to_grayscale(image))

    def postprocess_features(self, keypoints: List[cv2.KeyPoint],
                             descriptors: Optional[np.ndarray]) -> tuple:
        """
        Keep the strongest ``max_features`` keypoints

        Args:
            keypoints: Detected keypoints
            descriptors: Keypoint descriptors

        Returns:
            Tuple of (processed_keypoints, processed_descriptors)
        """
        if self.max_features and len(keypoints) > self.max_features:
            order = sorted(range(len(keypoints)), key=lambda i: keypoints[i].response,
                           reverse=True)[:self.max_features]
            keypoints = [keypoints[i] for i in order]
            if descriptors is not None:
                descriptors = descriptors[order]

        return keypoints, descriptors

    def __repr__(self) -> str:
        return f"{self.name}(max_features={self.max_features}, min_features={self.min_features})"


class BaseFeatureMatcher(ABC):
    """Abstract base class for descriptor matchers"""

    @abstractmethod
    def match(self, features1: FeatureData, features2: FeatureData) -> MatchData:
        """
        Match features between two sets

        Args:
            features1: Features from first image
            features2: Features from second image

        Returns:
            MatchData object containing correspondences
        """
        pass

    def validate_features(self, features1: FeatureData, features2: FeatureData) -> bool:
        """
        Validate that features can be matched

        Returns:
            True if features are valid for matching
        """
        return (len(features1) > 0 and len(features2) > 0 and
                features1.descriptors is not None and features2.descriptors is not None)
