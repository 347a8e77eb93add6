"""
End-to-end change analysis: preprocessing -> alignment -> change detection.
"""

import time
import numpy as np
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .alignment import AlignmentPipeline
from .config import get_default_config, merge_configs, validate_config
from .core_data_structures import AlignmentResult, DetectionResult
from .detection import ChangeDetector
from .logger import get_logger
from .preprocessing import preprocess_image

logger = get_logger("pipeline")


@dataclass
class AnalysisResult:
    """Alignment and detection results of one image pair"""
    alignment: AlignmentResult
    detection: DetectionResult
    preprocessed: bool = False
    processing_time: float = 0.0

    @property
    def success(self) -> bool:
        return self.alignment.success

    def summary(self) -> Dict[str, Any]:
        return {
            'alignment': self.alignment.summary(),
            'detection': self.detection.summary(),
            'preprocessed': self.preprocessed,
            'processing_time': self.processing_time,
        }


class ChangeAnalysisPipeline:
    """
    Change analysis pipeline for a pair of images of the same scene

    Usage:
        >>> pipeline = create_pipeline('balanced')
        >>>
        >>> # Full analysis, image B is aligned into image A's frame
        >>> result = pipeline.analyze(before, after)
        >>> print(result.alignment.method, result.detection.change_percentage)
        >>>
        >>> # Individual stages
        >>> aligned = pipeline.align(before, after, strategy='SIFT')
        >>> detection = pipeline.detect(before, aligned.aligned_image, method='ssim')
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize pipeline with configuration

        Args:
            config: Configuration dictionary with 'preprocessing', 'alignment'
                and 'detection' sections; missing keys use the defaults

        Raises:
            ValueError: If the configuration is invalid
        """
        self.config = merge_configs(get_default_config(), config or {})

        issues = validate_config(self.config)
        for warning in issues['warnings']:
            logger.warning(warning)
        if issues['errors']:
            raise ValueError("Invalid configuration: " + "; ".join(issues['errors']))

        self.aligner = AlignmentPipeline(self.config['alignment'])
        self.detector = ChangeDetector(self.config['detection'])

        logger.info(
            f"Pipeline ready: alignment {self.config['alignment']['strategy']} "
            f"{self.config['alignment']['methods']}, detection {self.config['detection']['method']}"
        )

    def preprocess(self, image: np.ndarray) -> np.ndarray:
        section = self.config['preprocessing']
        return preprocess_image(image, section.get('method', 'auto'), section.get('params'))

    def align(self, img1: np.ndarray, img2: np.ndarray,
              strategy: Optional[str] = None) -> AlignmentResult:
        """Align img2 onto img1; see ``AlignmentPipeline.align``"""
        return self.aligner.align(img1, img2, strategy)

    def detect(self, img1: np.ndarray, img2: np.ndarray, method: Optional[str] = None,
               post_process: Optional[bool] = None) -> DetectionResult:
        """Detect changes in an aligned pair; see ``ChangeDetector.detect``"""
        return self.detector.detect(img1, img2, method, post_process)

    def analyze(self, img1: np.ndarray, img2: np.ndarray, strategy: Optional[str] = None,
                method: Optional[str] = None) -> AnalysisResult:
        """
        Run the full analysis on an image pair

        Args:
            img1: Reference ("earlier") image, defines the output frame
            img2: Later image, any size
            strategy: Alignment strategy override
            method: Detection method override

        Returns:
            AnalysisResult. A failed alignment is reported through
            ``result.alignment.success`` and detection runs on the
            unaligned image when the sizes allow it.

        Raises:
            DimensionMismatch: If alignment failed and the images differ in
                size, or the two images differ in band count
        """
        start_time = time.time()

        preprocessed = bool(self.config['preprocessing'].get('enabled', True))
        if preprocessed:
            img1 = self.preprocess(img1)
            img2 = self.preprocess(img2)

        alignment = self.align(img1, img2, strategy)
        if not alignment.success:
            logger.warning("Alignment failed, detecting changes on the unaligned pair")

        detection = self.detect(img1, alignment.aligned_image, method)

        result = AnalysisResult(
            alignment=alignment,
            detection=detection,
            preprocessed=preprocessed,
            processing_time=time.time() - start_time
        )
        logger.info(
            f"Analysis complete: aligned with {alignment.method}, "
            f"{detection.change_percentage:.2f}% changed in {result.processing_time:.2f}s"
        )
        return result


def create_pipeline(
    preset: str = 'balanced',
    log_level: str = 'INFO',
    log_file: Optional[str] = None,
    **kwargs
) -> ChangeAnalysisPipeline:
    """
    Create a change analysis pipeline with preset or custom configuration

    Args:
        preset: Preset name ('fast', 'balanced', 'accurate', 'multispectral', 'custom')
        log_level: Logging level ('DEBUG', 'INFO', 'WARNING', 'ERROR')
        log_file: Optional path to log file
        **kwargs: Configuration sections merged over the preset, e.g.
            ``detection={'threshold_method': 'kmeans'}``

    Returns:
        ChangeAnalysisPipeline instance

    Examples:
        >>> pipeline = create_pipeline('fast')
        >>> pipeline = create_pipeline('accurate', log_level='DEBUG', log_file='analysis.log')
        >>> pipeline = create_pipeline(alignment={'strategy': 'ORB'})
    """
    from .config import create_config_from_preset
    from .logger import configure_root_logger

    configure_root_logger(level=log_level, log_file=log_file)

    if preset != 'custom':
        config = create_config_from_preset(preset)
    else:
        config = get_default_config()

    config = merge_configs(config, kwargs)

    return ChangeAnalysisPipeline(config)
