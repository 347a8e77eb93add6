"""
Descriptor matching with nearest/second-nearest ratio rejection.
"""

import time
import cv2
import numpy as np
from typing import Dict, List, Optional

from .base_classes import BaseFeatureDetector, BaseFeatureMatcher
from .core_data_structures import Correspondence, FeatureData, MatchData
from .exceptions import InsufficientMatches
from .logger import get_logger

logger = get_logger("matching")

NORM_TYPES = {
    'L2': cv2.NORM_L2,
    'HAMMING': cv2.NORM_HAMMING,
}


class DescriptorMatcher(BaseFeatureMatcher):
    """
    Brute force matcher with ratio test and optional 1:1 uniqueness

    A candidate is accepted only if its best descriptor distance is smaller
    than ``ratio_threshold`` times the second best distance.
    """

    def __init__(self, ratio_threshold: float = 0.7, norm_type: str = 'L2',
                 unique: bool = True, min_matches: int = 4,
                 max_distance: Optional[float] = None):
        """
        Args:
            ratio_threshold: Nearest/second-nearest distance ratio
            norm_type: 'L2' for float descriptors, 'HAMMING' for binary ones
            unique: Keep only the best match per train keypoint
            min_matches: Floor below which matching fails (4 is the minimum
                for a 2D affine solve with one redundant point)
            max_distance: Optional absolute cap on the best distance
        """
        if not 0.0 < ratio_threshold <= 1.0:
            raise ValueError(f"ratio_threshold must be in (0, 1], got {ratio_threshold}")
        if norm_type not in NORM_TYPES:
            raise ValueError(f"Unknown norm type: {norm_type}. Available: {', '.join(NORM_TYPES)}")

        self.ratio_threshold = ratio_threshold
        self.norm_type = norm_type
        self.unique = unique
        self.min_matches = min_matches
        self.max_distance = max_distance
        self.matcher = cv2.BFMatcher(NORM_TYPES[norm_type], crossCheck=False)

    @classmethod
    def for_detector(cls, detector: BaseFeatureDetector, **kwargs) -> 'DescriptorMatcher':
        """Create a matcher with the norm and default ratio of a detector"""
        kwargs.setdefault('ratio_threshold', detector.default_ratio)
        kwargs.setdefault('norm_type', detector.norm_type)
        return cls(**kwargs)

    @property
    def name(self) -> str:
        return f"BruteForce-{self.norm_type}"

    def match(self, features1: FeatureData, features2: FeatureData) -> MatchData:
        """
        Match descriptors of image A (query) against image B (train)

        Raises:
            InsufficientMatches: If fewer than ``min_matches`` correspondences survive
        """
        start_time = time.time()

        if not self.validate_features(features1, features2):
            raise InsufficientMatches(
                "No descriptors to match",
                details={'num_matches': 0, 'num_raw_matches': 0, 'min_matches': self.min_matches}
            )

        desc1 = self._prepare(features1.descriptors)
        desc2 = self._prepare(features2.descriptors)

        # Ratio test needs two neighbours in the train set
        raw_matches = self.matcher.knnMatch(desc1, desc2, k=2) if len(desc2) >= 2 else []

        candidates = []
        for match_pair in raw_matches:
            if len(match_pair) < 2:
                continue
            best, second = match_pair
            if best.distance >= self.ratio_threshold * second.distance:
                continue
            if self.max_distance is not None and best.distance > self.max_distance:
                continue
            confidence = 1.0 - (best.distance / (second.distance + 1e-8))
            candidates.append(Correspondence(
                query_idx=best.queryIdx,
                train_idx=best.trainIdx,
                distance=float(best.distance),
                confidence=float(confidence)
            ))

        if self.unique:
            candidates = self._enforce_unique(candidates)

        logger.debug(f"{len(candidates)}/{len(raw_matches)} matches passed ratio {self.ratio_threshold}")

        if len(candidates) < self.min_matches:
            raise InsufficientMatches(
                f"Insufficient feature matches: {len(candidates)} < {self.min_matches}",
                details={
                    'num_matches': len(candidates),
                    'num_raw_matches': len(raw_matches),
                    'min_matches': self.min_matches,
                }
            )

        return MatchData(
            matches=candidates,
            method=f"{features1.method}+{self.name}",
            num_raw_matches=len(raw_matches),
            matching_time=time.time() - start_time
        )

    def _prepare(self, descriptors: np.ndarray) -> np.ndarray:
        if self.norm_type == 'HAMMING':
            return np.ascontiguousarray(descriptors, dtype=np.uint8)
        return np.ascontiguousarray(descriptors, dtype=np.float32)

    @staticmethod
    def _enforce_unique(candidates: List[Correspondence]) -> List[Correspondence]:
        """Keep the lowest-distance correspondence for every train keypoint"""
        best_by_train: Dict[int, Correspondence] = {}
        for candidate in candidates:
            current = best_by_train.get(candidate.train_idx)
            if current is None or candidate.distance < current.distance:
                best_by_train[candidate.train_idx] = candidate
        return sorted(best_by_train.values(), key=lambda c: c.query_idx)
