"""
Robust 2D transform estimation by random-sample consensus.

Correspondence sets from image pairs with repetitive or sparse texture are
noisy. The estimator repeatedly draws minimal samples, solves the model in
closed form, scores every correspondence by reprojection residual and keeps
the largest consensus set. The final model is refit on all inliers by
least squares, unless the refit loses inliers, in which case the best
sampled model is kept.
"""

import math
import numpy as np
from typing import Optional, Union

from .core_data_structures import ModelFamily, Transform
from .exceptions import DegenerateModel, InsufficientMatches, InsufficientTrials
from .logger import get_logger
from .utils import calculate_reprojection_error

logger = get_logger("estimation")


# =============================================================================
# Closed-form solvers
# =============================================================================

def fit_similarity(src: np.ndarray, dst: np.ndarray) -> Optional[np.ndarray]:
    """
    Least-squares similarity (rotation, uniform scale, translation)

    Solves u = a*x - b*y + tx, v = b*x + a*y + ty. Two distinct points
    determine the model exactly.

    Returns:
        3x3 matrix, or None when the points do not constrain the model
    """
    n = len(src)
    A = np.zeros((2 * n, 4))
    rhs = np.zeros(2 * n)
    A[0::2] = np.column_stack([src[:, 0], -src[:, 1], np.ones(n), np.zeros(n)])
    A[1::2] = np.column_stack([src[:, 1], src[:, 0], np.zeros(n), np.ones(n)])
    rhs[0::2] = dst[:, 0]
    rhs[1::2] = dst[:, 1]

    params, _, rank, _ = np.linalg.lstsq(A, rhs, rcond=None)
    if rank < 4:
        return None

    a, b, tx, ty = params
    return np.array([[a, -b, tx],
                     [b, a, ty],
                     [0.0, 0.0, 1.0]])


def fit_affine(src: np.ndarray, dst: np.ndarray) -> Optional[np.ndarray]:
    """
    Least-squares affine transform (adds non-uniform scale and shear)

    Three non-collinear points determine the model exactly.

    Returns:
        3x3 matrix, or None when the points are collinear
    """
    A = np.column_stack([src, np.ones(len(src))])
    solution, _, rank, _ = np.linalg.lstsq(A, dst, rcond=None)
    if rank < 3:
        return None

    matrix = np.eye(3)
    matrix[:2, :] = solution.T
    return matrix


SOLVERS = {
    ModelFamily.SIMILARITY: fit_similarity,
    ModelFamily.AFFINE: fit_affine,
}


def resolve_model(model: Union[str, ModelFamily]) -> ModelFamily:
    if isinstance(model, ModelFamily):
        return model
    try:
        return ModelFamily(str(model).lower())
    except ValueError:
        available = ', '.join(m.value for m in ModelFamily)
        raise ValueError(f"Unknown model family: {model}. Available: {available}") from None


# =============================================================================
# Estimator
# =============================================================================

class RobustTransformEstimator:
    """
    Random-sample consensus estimator for similarity/affine transforms

    Usage:
        estimator = RobustTransformEstimator('similarity', max_trials=2000, seed=0)
        transform = estimator.estimate(moving_pts, fixed_pts)
        print(transform.num_inliers, transform.matrix)
    """

    def __init__(self, model: Union[str, ModelFamily] = ModelFamily.AFFINE,
                 max_trials: int = 2000, max_residual: float = 3.0,
                 confidence: float = 0.999, min_inlier_ratio: float = 0.2,
                 max_area_distortion: float = 10.0, seed: Optional[int] = None):
        """
        Args:
            model: Model family ('similarity' or 'affine')
            max_trials: Upper bound on the number of minimal samples drawn
            max_residual: Reprojection distance (pixels) for a correspondence
                to count as an inlier
            confidence: Stop once the probability of having drawn an
                all-inlier sample exceeds this value
            min_inlier_ratio: Smallest consensus fraction accepted
            max_area_distortion: Bound on the determinant of the linear part;
                models with det outside [1/bound, bound] or det <= 0 are
                rejected as non-physical
            seed: Seed for the sampling generator; each call to ``estimate``
                starts a fresh generator from it
        """
        if max_trials < 1:
            raise ValueError(f"max_trials must be positive, got {max_trials}")
        if max_residual <= 0:
            raise ValueError(f"max_residual must be positive, got {max_residual}")
        if not 0.0 < confidence < 1.0:
            raise ValueError(f"confidence must be in (0, 1), got {confidence}")
        if max_area_distortion < 1.0:
            raise ValueError(f"max_area_distortion must be >= 1, got {max_area_distortion}")

        self.model = resolve_model(model)
        self.max_trials = int(max_trials)
        self.max_residual = float(max_residual)
        self.confidence = float(confidence)
        self.min_inlier_ratio = float(min_inlier_ratio)
        self.max_area_distortion = float(max_area_distortion)
        self.seed = seed

    def estimate(self, src_points: np.ndarray, dst_points: np.ndarray,
                 rng: Optional[np.random.Generator] = None) -> Transform:
        """
        Estimate the transform mapping ``src_points`` onto ``dst_points``

        Args:
            src_points: (N, 2) points in the moving image
            dst_points: (N, 2) corresponding points in the fixed image
            rng: Optional generator overriding the configured seed

        Returns:
            Transform with ``inlier_mask`` set; every flagged correspondence
            lies within ``max_residual`` of the returned matrix

        Raises:
            InsufficientMatches: Fewer correspondences than a minimal sample
            InsufficientTrials: No sample reached the minimum inlier fraction
            DegenerateModel: Refit model is singular or non-physical
        """
        src = np.asarray(src_points, dtype=np.float64).reshape(-1, 2)
        dst = np.asarray(dst_points, dtype=np.float64).reshape(-1, 2)
        if len(src) != len(dst):
            raise ValueError(f"Point sets differ in length: {len(src)} vs {len(dst)}")

        n = len(src)
        sample_size = self.model.min_samples
        solver = SOLVERS[self.model]

        if n < sample_size:
            raise InsufficientMatches(
                f"{self.model.value} model needs {sample_size} correspondences, got {n}",
                stage="estimation",
                details={'num_matches': n, 'min_matches': sample_size}
            )

        if rng is None:
            rng = np.random.default_rng(self.seed)

        best_model = None
        best_mask = None
        best_count = 0
        best_error = math.inf
        required_trials = self.max_trials
        trials = 0

        while trials < required_trials:
            trials += 1
            sample = rng.choice(n, size=sample_size, replace=False)
            candidate = solver(src[sample], dst[sample])
            if candidate is None:
                continue

            residuals = calculate_reprojection_error(src, dst, candidate)
            mask = residuals <= self.max_residual
            count = int(mask.sum())
            error = float(residuals[mask].sum())

            # Ties go to the tighter consensus set
            if count > best_count or (count == best_count and count > 0 and error < best_error):
                best_model, best_mask, best_count, best_error = candidate, mask, count, error
                required_trials = min(self.max_trials,
                                      max(trials, self._required_trials(count / n, sample_size)))

        min_inliers = max(sample_size + 1, int(math.ceil(self.min_inlier_ratio * n)))
        if best_mask is None or best_count < min_inliers:
            raise InsufficientTrials(
                f"No consensus set reached {min_inliers} inliers after {trials} trials "
                f"(best {best_count}/{n})",
                details={
                    'num_trials': trials,
                    'num_matches': n,
                    'best_inliers': best_count,
                    'min_inliers': min_inliers,
                }
            )

        matrix = solver(src[best_mask], dst[best_mask])
        if matrix is None:
            raise DegenerateModel(
                "Inlier set does not constrain the model",
                details={'num_inliers': best_count}
            )

        # Refit never shrinks the consensus set; the mask always belongs to
        # the returned matrix
        refit_mask = calculate_reprojection_error(src, dst, matrix) <= self.max_residual
        if refit_mask.sum() >= best_count:
            inlier_mask = refit_mask
        else:
            matrix, inlier_mask = best_model, best_mask

        self._validate(matrix, best_count)

        logger.debug(
            f"{self.model.value}: {int(inlier_mask.sum())}/{n} inliers after {trials} trials"
        )
        return Transform(matrix, model=self.model, inlier_mask=inlier_mask)

    def _required_trials(self, inlier_ratio: float, sample_size: int) -> int:
        """Trials needed to draw one all-inlier sample with ``confidence``"""
        p_good = inlier_ratio ** sample_size
        if p_good >= 1.0 - 1e-12:
            return 1
        if p_good <= 1e-12:
            return self.max_trials
        return int(math.ceil(math.log(1.0 - self.confidence) / math.log(1.0 - p_good)))

    def _validate(self, matrix: np.ndarray, num_inliers: int):
        determinant = float(np.linalg.det(matrix[:2, :2]))
        lower = 1.0 / self.max_area_distortion
        upper = self.max_area_distortion
        if not np.all(np.isfinite(matrix)) or not lower <= determinant <= upper:
            raise DegenerateModel(
                f"Refit determinant {determinant:.4g} outside [{lower:.3g}, {upper:.3g}]",
                details={
                    'determinant': determinant,
                    'max_area_distortion': self.max_area_distortion,
                    'num_inliers': num_inliers,
                }
            )

    def __repr__(self) -> str:
        return (f"RobustTransformEstimator(model={self.model.value}, max_trials={self.max_trials}, "
                f"max_residual={self.max_residual}, confidence={self.confidence})")
