"""
Typed errors raised by the alignment and change detection stages.

Every error carries the stage that failed and the counts observed at the
time of failure so callers can log or display them without parsing
messages.
"""

from typing import Any, Dict, Optional


class ChangeDetectionError(Exception):
    """Base class for all errors raised by the library"""

    stage = "core"

    def __init__(self, message: str, stage: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if stage is not None:
            self.stage = stage
        self.details = dict(details or {})

    def to_dict(self) -> Dict[str, Any]:
        return {
            'error': self.__class__.__name__,
            'stage': self.stage,
            'message': self.message,
            'details': self.details,
        }


# =============================================================================
# Alignment
# =============================================================================

class AlignmentError(ChangeDetectionError):
    stage = "alignment"


class InsufficientFeatures(AlignmentError):
    """Fewer keypoints than the configured floor"""
    stage = "detection"


class InsufficientMatches(AlignmentError):
    """Fewer surviving correspondences than the configured floor"""
    stage = "matching"


class DegenerateModel(AlignmentError):
    """Estimated transform is singular, reflective or non-physical"""
    stage = "estimation"


class InsufficientTrials(AlignmentError):
    """No consensus sample reached the minimum inlier fraction"""
    stage = "estimation"


class IntensityRegistrationError(AlignmentError):
    """Intensity-based registration could not converge"""
    stage = "intensity"


# =============================================================================
# Change detection
# =============================================================================

class DetectionError(ChangeDetectionError):
    stage = "change_detection"


class DimensionMismatch(DetectionError):
    """The two inputs of change detection differ in shape"""


class UnsupportedBandCount(DetectionError):
    """A signal cannot be computed for the given number of bands"""
