"""
SceneChangeDetection - Change Detection for Satellite Image Pairs

Compares two images of the same scene taken at different times and reports
where the scene changed.

Key Features:
- Robust alignment with a SIFT -> ORB -> Harris -> intensity fallback chain
- Random-sample consensus estimation of similarity/affine transforms
- Five change signals (pixel, SSIM, edge, texture, spectral angle)
- Weighted signal fusion with Otsu, percentile or k-means thresholds
- Morphological mask cleanup and change statistics

Quick Start:
    >>> from SceneChangeDetection import create_pipeline
    >>>
    >>> # Create pipeline
    >>> pipeline = create_pipeline('balanced')
    >>>
    >>> # Align the later image onto the earlier one and detect changes
    >>> result = pipeline.analyze(before, after)
    >>> print(result.detection.change_percentage)
"""

__version__ = '1.0.0'

# =============================================================================
# CORE PIPELINE
# =============================================================================

from .pipeline import (
    ChangeAnalysisPipeline,
    AnalysisResult,
    create_pipeline,
)

# =============================================================================
# CORE DATA STRUCTURES
# =============================================================================

from .core_data_structures import (
    DetectorType,
    ModelFamily,
    ThresholdMethod,
    SignalType,
    FeatureData,
    Correspondence,
    MatchData,
    Transform,
    AlignmentAttempt,
    AlignmentResult,
    SignalResult,
    SignalUnavailable,
    FusionResult,
    DetectionResult,
)

# =============================================================================
# ERRORS
# =============================================================================

from .exceptions import (
    ChangeDetectionError,
    AlignmentError,
    InsufficientFeatures,
    InsufficientMatches,
    DegenerateModel,
    InsufficientTrials,
    IntensityRegistrationError,
    DetectionError,
    DimensionMismatch,
    UnsupportedBandCount,
)

# =============================================================================
# ALIGNMENT
# =============================================================================

from .traditional_detectors import (
    SIFTDetector,
    ORBDetector,
    AKAZEDetector,
    BRISKDetector,
    HarrisCornerDetector,
    create_traditional_detector,
)

from .descriptor_matcher import DescriptorMatcher

from .transform_estimation import (
    RobustTransformEstimator,
    fit_similarity,
    fit_affine,
)

from .alignment import (
    AlignmentStrategy,
    FeatureAlignmentStrategy,
    IntensityAlignmentStrategy,
    AlignmentPipeline,
    align_images,
)

# =============================================================================
# CHANGE DETECTION
# =============================================================================

from .change_signals import (
    PixelDifferenceSignal,
    StructuralSimilaritySignal,
    EdgeChangeSignal,
    TextureChangeSignal,
    SpectralAngleSignal,
    create_signal,
    compute_signal,
)

from .thresholding import select_threshold

from .fusion import (
    FusionEngine,
    cleanup_mask,
)

from .detection import (
    ChangeDetector,
    detect_changes,
)

# =============================================================================
# PREPROCESSING
# =============================================================================

from .preprocessing import (
    preprocess_image,
    estimate_noise,
    is_noisy,
)

# =============================================================================
# CONFIGURATION
# =============================================================================

from .config import (
    get_default_config,
    create_config_from_preset,
    merge_configs,
    validate_config,
    save_config,
    load_config,
)

# =============================================================================
# LOGGING
# =============================================================================

from .logger import (
    setup_logger,
    get_logger,
    configure_root_logger,
    set_level,
)


__all__ = [
    # Pipeline
    'ChangeAnalysisPipeline',
    'AnalysisResult',
    'create_pipeline',

    # Data structures
    'DetectorType',
    'ModelFamily',
    'ThresholdMethod',
    'SignalType',
    'FeatureData',
    'Correspondence',
    'MatchData',
    'Transform',
    'AlignmentAttempt',
    'AlignmentResult',
    'SignalResult',
    'SignalUnavailable',
    'FusionResult',
    'DetectionResult',

    # Errors
    'ChangeDetectionError',
    'AlignmentError',
    'InsufficientFeatures',
    'InsufficientMatches',
    'DegenerateModel',
    'InsufficientTrials',
    'IntensityRegistrationError',
    'DetectionError',
    'DimensionMismatch',
    'UnsupportedBandCount',

    # Alignment
    'SIFTDetector',
    'ORBDetector',
    'AKAZEDetector',
    'BRISKDetector',
    'HarrisCornerDetector',
    'create_traditional_detector',
    'DescriptorMatcher',
    'RobustTransformEstimator',
    'fit_similarity',
    'fit_affine',
    'AlignmentStrategy',
    'FeatureAlignmentStrategy',
    'IntensityAlignmentStrategy',
    'AlignmentPipeline',
    'align_images',

    # Change detection
    'PixelDifferenceSignal',
    'StructuralSimilaritySignal',
    'EdgeChangeSignal',
    'TextureChangeSignal',
    'SpectralAngleSignal',
    'create_signal',
    'compute_signal',
    'select_threshold',
    'FusionEngine',
    'cleanup_mask',
    'ChangeDetector',
    'detect_changes',

    # Preprocessing
    'preprocess_image',
    'estimate_noise',
    'is_noisy',

    # Configuration
    'get_default_config',
    'create_config_from_preset',
    'merge_configs',
    'validate_config',
    'save_config',
    'load_config',

    # Logging
    'setup_logger',
    'get_logger',
    'configure_root_logger',
    'set_level',
]
