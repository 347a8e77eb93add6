"""
Alignment of a moving ("later") image onto a fixed ("earlier") image.

The pipeline walks an ordered list of strategies. Each keypoint strategy
runs detection -> matching -> robust estimation; the intensity strategy
maximizes the enhanced correlation coefficient directly over the warp
parameters. The first strategy that yields a valid transform wins. When
every strategy fails the identity transform and the untouched moving image
are returned with ``success=False``.
"""

import time
import cv2
import numpy as np
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from .base_classes import BaseFeatureDetector
from .config import DEFAULT_CONFIG, merge_configs
from .core_data_structures import AlignmentAttempt, AlignmentResult, ModelFamily, Transform
from .descriptor_matcher import DescriptorMatcher
from .exceptions import AlignmentError, DegenerateModel, IntensityRegistrationError
from .logger import get_logger
from .traditional_detectors import DETECTOR_MAP, create_traditional_detector, resolve_detector_name
from .transform_estimation import RobustTransformEstimator, resolve_model
from .utils import (image_size_from_shape, image_std, joint_range, paste_on_canvas, to_float,
                    to_grayscale, to_uint8, warp_image)

logger = get_logger("alignment")

INTENSITY_STRATEGY = 'intensity'


@dataclass
class StrategyOutcome:
    """Transform found by one strategy plus the counts behind it"""
    transform: Transform
    num_keypoints1: int = 0
    num_keypoints2: int = 0
    num_matches: int = 0
    num_inliers: int = 0
    correlation: Optional[float] = None


class AlignmentStrategy(ABC):
    """One step of the alignment fallback chain"""

    name = "strategy"

    @abstractmethod
    def estimate(self, fixed: np.ndarray, moving: np.ndarray) -> StrategyOutcome:
        """
        Estimate the transform mapping ``moving`` into the frame of ``fixed``

        Raises:
            AlignmentError: Any typed failure; the pipeline moves on to the
                next strategy
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.name})"


class FeatureAlignmentStrategy(AlignmentStrategy):
    """Keypoint detection + descriptor matching + consensus estimation"""

    def __init__(self, detector: BaseFeatureDetector, matcher: DescriptorMatcher,
                 estimator: RobustTransformEstimator):
        self.detector = detector
        self.matcher = matcher
        self.estimator = estimator
        self.name = detector.name

    def estimate(self, fixed: np.ndarray, moving: np.ndarray) -> StrategyOutcome:
        counts: Dict[str, Any] = {'method': self.name}
        try:
            features1 = self.detector.detect(fixed)
            counts['num_keypoints1'] = len(features1)
            features2 = self.detector.detect(moving)
            counts['num_keypoints2'] = len(features2)

            # Query side is the fixed image A, train side the moving image B
            match_data = self.matcher.match(features1, features2)
            counts['num_matches'] = len(match_data)

            fixed_pts, moving_pts = match_data.get_points(features1.keypoints, features2.keypoints)
            transform = self.estimator.estimate(moving_pts, fixed_pts)
        except AlignmentError as e:
            for key, value in counts.items():
                e.details.setdefault(key, value)
            raise
        except cv2.error as e:
            raise AlignmentError(f"OpenCV failure in {self.name}: {e}",
                                 stage="detection", details=counts) from e

        logger.debug(
            f"{self.name}: {len(features1)}/{len(features2)} keypoints, "
            f"{len(match_data)} matches, {transform.num_inliers} inliers"
        )

        return StrategyOutcome(
            transform=transform,
            num_keypoints1=len(features1),
            num_keypoints2=len(features2),
            num_matches=len(match_data),
            num_inliers=transform.num_inliers
        )


class IntensityAlignmentStrategy(AlignmentStrategy):
    """
    Direct intensity registration by ECC maximization

    No keypoints are used: the warp parameters are optimized to maximize the
    enhanced correlation coefficient between the two images, with a bounded
    iteration count.
    """

    name = INTENSITY_STRATEGY

    def __init__(self, model: Union[str, ModelFamily] = ModelFamily.AFFINE,
                 max_iterations: int = 300, termination_eps: float = 1e-5,
                 gauss_filter_size: int = 5, min_correlation: float = 0.5,
                 max_area_distortion: float = 10.0):
        """
        Args:
            model: 'affine', or 'similarity' which is solved as a rigid
                (rotation + translation) ECC motion
            max_iterations: Iteration bound for the optimizer
            termination_eps: Correlation increment below which it stops
            gauss_filter_size: Gaussian pre-smoothing kernel size
            min_correlation: Lowest final correlation accepted as converged
            max_area_distortion: Bound on the determinant of the result
        """
        self.model = resolve_model(model)
        self.max_iterations = int(max_iterations)
        self.termination_eps = float(termination_eps)
        self.gauss_filter_size = int(gauss_filter_size)
        self.min_correlation = float(min_correlation)
        self.max_area_distortion = float(max_area_distortion)

    @property
    def motion_type(self) -> int:
        return cv2.MOTION_AFFINE if self.model is ModelFamily.AFFINE else cv2.MOTION_EUCLIDEAN

    def estimate(self, fixed: np.ndarray, moving: np.ndarray) -> StrategyOutcome:
        fixed_gray, moving_gray = to_grayscale(fixed), to_grayscale(moving)
        value_range = joint_range(fixed_gray, moving_gray)
        template = to_float(to_uint8(fixed_gray, value_range)).astype(np.float32)
        # Same-size canvas keeps the moving image's pixel coordinates
        source = paste_on_canvas(to_uint8(moving_gray, value_range), image_size_from_shape(fixed))
        source = to_float(source).astype(np.float32)

        std_fixed, std_moving = image_std(template), image_std(source)
        if std_fixed < 1e-6 or std_moving < 1e-6:
            raise IntensityRegistrationError(
                "Images carry no intensity structure to register",
                details={'std_fixed': std_fixed, 'std_moving': std_moving}
            )

        warp = np.eye(2, 3, dtype=np.float32)
        criteria = (cv2.TERM_CRITERIA_EPS | cv2.TERM_CRITERIA_COUNT,
                    self.max_iterations, self.termination_eps)
        try:
            correlation, warp = cv2.findTransformECC(
                template,
                source,
                warp,
                self.motion_type,
                criteria,
                None,
                self.gauss_filter_size
            )
        except cv2.error as e:
            raise IntensityRegistrationError(
                f"Intensity-based alignment failed: {e}",
                details={'max_iterations': self.max_iterations}
            ) from e

        if not np.isfinite(correlation) or correlation < self.min_correlation:
            raise IntensityRegistrationError(
                f"Correlation {correlation:.3f} below {self.min_correlation}",
                details={'correlation': float(correlation), 'min_correlation': self.min_correlation}
            )

        # ECC warps template coordinates into the moving image; invert it
        ecc_matrix = np.vstack([warp.astype(np.float64), [0.0, 0.0, 1.0]])
        determinant = float(np.linalg.det(ecc_matrix[:2, :2]))
        bound = self.max_area_distortion
        if not np.all(np.isfinite(ecc_matrix)) or not 1.0 / bound <= determinant <= bound:
            raise DegenerateModel(
                f"Intensity warp determinant {determinant:.4g} is not physical",
                stage=INTENSITY_STRATEGY,
                details={'determinant': determinant, 'max_area_distortion': bound}
            )

        transform = Transform(np.linalg.inv(ecc_matrix), model=self.model)
        logger.debug(f"intensity: correlation {correlation:.4f}")
        return StrategyOutcome(transform=transform, correlation=float(correlation))


class AlignmentPipeline:
    """
    Ordered fallback chain of alignment strategies

    Usage:
        >>> pipeline = AlignmentPipeline()
        >>> result = pipeline.align(before, after)            # auto chain
        >>> result = pipeline.align(before, after, 'orb')     # pinned method
        >>> if result.success:
        ...     print(result.method, result.transform.matrix)
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Args:
            config: Alignment section overrides (see ``DEFAULT_CONFIG['alignment']``)
        """
        self.config = merge_configs(DEFAULT_CONFIG['alignment'], config or {})

    @property
    def available_strategies(self) -> List[str]:
        return list(DETECTOR_MAP.keys()) + [INTENSITY_STRATEGY]

    def create_strategy(self, name: str) -> AlignmentStrategy:
        """
        Build one strategy from the configuration

        Args:
            name: Detector name ('SIFT', 'ORB', 'AKAZE', 'BRISK', 'Harris') or
                'intensity', case-insensitive

        Raises:
            ValueError: If name is unknown
        """
        if str(name).lower() == INTENSITY_STRATEGY:
            return IntensityAlignmentStrategy(**self.config.get('intensity', {}))

        try:
            method = resolve_detector_name(name)
        except ValueError:
            available = ', '.join(self.available_strategies)
            raise ValueError(f"Unknown alignment strategy: {name}. Available: auto, {available}") from None

        detector = create_traditional_detector(
            method, **self.config.get('detector_params', {}).get(method, {})
        )

        matcher_params = dict(self.config.get('matcher_params', {}).get(method, {}))
        matcher_params.setdefault('min_matches', self.config.get('min_matches', 4))
        matcher_params.setdefault('unique', self.config.get('unique_matches', True))
        matcher = DescriptorMatcher.for_detector(detector, **matcher_params)

        estimator_params = dict(self.config.get('estimator_params', {}).get(method, {}))
        estimator_params.setdefault('min_inlier_ratio', self.config.get('min_inlier_ratio', 0.2))
        estimator_params.setdefault('max_area_distortion', self.config.get('max_area_distortion', 10.0))
        estimator_params.setdefault('seed', self.config.get('seed'))
        estimator = RobustTransformEstimator(**estimator_params)

        return FeatureAlignmentStrategy(detector, matcher, estimator)

    def strategy_chain(self, strategy: str = 'auto') -> List[AlignmentStrategy]:
        """
        Ordered strategies for a strategy name

        'auto' walks every configured keypoint method and then the intensity
        fallback; any other name pins that single method.
        """
        if str(strategy).lower() != 'auto':
            return [self.create_strategy(strategy)]

        chain = [self.create_strategy(method) for method in self.config.get('methods', [])]
        if self.config.get('use_intensity_fallback', True):
            chain.append(self.create_strategy(INTENSITY_STRATEGY))
        return chain

    def align(self, fixed: np.ndarray, moving: np.ndarray,
              strategy: Optional[str] = None) -> AlignmentResult:
        """
        Align ``moving`` onto ``fixed``

        Args:
            fixed: Reference image A; defines the output frame
            moving: Image B to be resampled; may differ in size
            strategy: 'auto' (default from config) or a method name

        Returns:
            AlignmentResult; ``aligned_image`` has the width and height of
            ``fixed`` with out-of-bounds samples set to zero. When every
            method fails it is the unchanged moving image, cropped or
            zero-padded to that size if the sizes differ
        """
        for label, image in (('fixed', fixed), ('moving', moving)):
            if image is None or image.ndim not in (2, 3) or image.size == 0:
                raise ValueError(f"{label} image must be a non-empty 2D or 3D array")

        strategy = strategy or self.config.get('strategy', 'auto')
        chain = self.strategy_chain(strategy)
        output_size = image_size_from_shape(fixed)

        start_time = time.time()
        attempts = []

        for step in chain:
            logger.info(f"Trying {step.name} alignment...")
            try:
                outcome = step.estimate(fixed, moving)
            except AlignmentError as e:
                logger.warning(f"{step.name} alignment failed at {e.stage}: {e.message}")
                attempts.append(AlignmentAttempt(step.name, e.stage, e.message, dict(e.details)))
                continue

            aligned = warp_image(moving, outcome.transform.matrix, output_size)
            logger.info(f"Successfully aligned using {step.name}")

            return AlignmentResult(
                transform=outcome.transform,
                aligned_image=aligned,
                method=step.name,
                strategy=str(strategy).lower(),
                success=True,
                num_keypoints1=outcome.num_keypoints1,
                num_keypoints2=outcome.num_keypoints2,
                num_matches=outcome.num_matches,
                num_inliers=outcome.num_inliers,
                correlation=outcome.correlation,
                attempts=attempts,
                processing_time=time.time() - start_time
            )

        logger.warning("All alignment methods failed. Returning original image.")
        # Identity placement in the fixed frame; a same-size image is returned as is
        if moving.shape[:2] == fixed.shape[:2]:
            unaligned = moving
        else:
            unaligned = paste_on_canvas(moving, output_size)

        return AlignmentResult(
            transform=Transform.identity(),
            aligned_image=unaligned,
            method='none',
            strategy=str(strategy).lower(),
            success=False,
            attempts=attempts,
            processing_time=time.time() - start_time
        )


def align_images(fixed: np.ndarray, moving: np.ndarray, strategy: str = 'auto',
                 config: Optional[Dict[str, Any]] = None) -> AlignmentResult:
    """Convenience wrapper around ``AlignmentPipeline.align``"""
    return AlignmentPipeline(config).align(fixed, moving, strategy)
