"""
Configuration management for the change detection system.

This module provides the default configuration, presets, per-method
defaults, validation and JSON persistence.
"""

import copy
import json
import os
from typing import Dict, List, Any

from .core_data_structures import DetectorType, ModelFamily, SignalType, ThresholdMethod
from .logger import get_logger

logger = get_logger("config")


# =============================================================================
# Per-method Defaults
# =============================================================================

# Constructor parameters of each keypoint detector
DETECTOR_SPECIFIC_CONFIGS = {
    'SIFT': {
        'max_features': 5000,
        'min_features': 20,
        'contrast_threshold': 0.04,
        'edge_threshold': 10,
        'n_octave_layers': 3,
    },
    'ORB': {
        'max_features': 5000,
        'min_features': 20,
        'scale_factor': 1.2,
        'n_levels': 8,
        'fast_threshold': 20,
    },
    'AKAZE': {
        'max_features': 5000,
        'min_features': 20,
        'threshold': 0.001,
        'n_octaves': 4,
    },
    'BRISK': {
        'max_features': 5000,
        'min_features': 20,
        'threshold': 30,
        'octaves': 3,
    },
    'Harris': {
        'max_features': 5000,
        'min_features': 20,
        'quality_level': 0.001,
        'min_distance': 5,
        'block_size': 5,
    },
}

# Ratio test thresholds: binary descriptors are noisier than float ones
MATCHER_SPECIFIC_CONFIGS = {
    'SIFT': {'ratio_threshold': 0.7},
    'ORB': {'ratio_threshold': 0.8},
    'AKAZE': {'ratio_threshold': 0.8},
    'BRISK': {'ratio_threshold': 0.8},
    'Harris': {'ratio_threshold': 0.6},
}

# Consensus parameters tuned per method in field testing on satellite pairs
ESTIMATOR_SPECIFIC_CONFIGS = {
    'SIFT': {
        'model': 'affine',
        'max_trials': 3000,
        'max_residual': 3.0,
        'confidence': 0.999,
    },
    'ORB': {
        'model': 'affine',
        'max_trials': 3000,
        'max_residual': 5.0,
        'confidence': 0.99,
    },
    'AKAZE': {
        'model': 'affine',
        'max_trials': 3000,
        'max_residual': 3.0,
        'confidence': 0.999,
    },
    'BRISK': {
        'model': 'affine',
        'max_trials': 3000,
        'max_residual': 3.0,
        'confidence': 0.999,
    },
    'Harris': {
        'model': 'similarity',
        'max_trials': 2000,
        'max_residual': 10.0,
        'confidence': 0.99,
    },
}


# =============================================================================
# Default Configuration
# =============================================================================

DEFAULT_CONFIG = {
    'preprocessing': {
        'enabled': True,
        'method': 'auto',
        'params': {},
    },
    'alignment': {
        'strategy': 'auto',
        'methods': ['SIFT', 'ORB', 'Harris'],
        'use_intensity_fallback': True,
        'min_matches': 4,
        'unique_matches': True,
        'min_inlier_ratio': 0.2,
        'max_area_distortion': 10.0,
        'seed': 0,
        'detector_params': copy.deepcopy(DETECTOR_SPECIFIC_CONFIGS),
        'matcher_params': copy.deepcopy(MATCHER_SPECIFIC_CONFIGS),
        'estimator_params': copy.deepcopy(ESTIMATOR_SPECIFIC_CONFIGS),
        'intensity': {
            'model': 'affine',
            'max_iterations': 300,
            'termination_eps': 1e-5,
            'gauss_filter_size': 5,
            'min_correlation': 0.5,
            'max_area_distortion': 10.0,
        },
    },
    'detection': {
        'method': 'fusion',
        'weights': {
            'pixel': 1.0,
            'ssim': 1.0,
            'edge': 0.5,
            'texture': 0.5,
            'spectral': 1.0,
        },
        'threshold_method': 'otsu',
        'percentile': 95.0,
        'renormalize': True,
        'signals': {
            'pixel': {'smoothing_sigma': 0.0},
            'ssim': {'sigma': 1.5},
            'edge': {'sigma': 1.0, 'dilation_radius': 3},
            'texture': {'window_size': 7},
            'spectral': {},
        },
        'post_process': True,
        'cleanup': {
            'min_area': 50,
            'fill_holes': False,
            'closing_radius': 2,
            'opening_radius': 1,
        },
    },
}


PRESET_CONFIGS = {
    'fast': {
        'preprocessing': {'enabled': False},
        'alignment': {
            'methods': ['ORB'],
            'detector_params': {'ORB': {'max_features': 1500}},
            'estimator_params': {'ORB': {'max_trials': 1000}},
            'intensity': {'max_iterations': 100},
        },
        'detection': {
            'weights': {'edge': 0.0, 'texture': 0.0},
        },
    },

    'balanced': {},

    'accurate': {
        'alignment': {
            'methods': ['SIFT', 'AKAZE', 'ORB', 'Harris'],
            'detector_params': {'SIFT': {'contrast_threshold': 0.03}},
            'estimator_params': {
                'SIFT': {'max_trials': 5000, 'max_residual': 2.5},
                'AKAZE': {'max_trials': 5000, 'max_residual': 2.5},
            },
            'intensity': {'max_iterations': 500},
        },
        'detection': {
            'threshold_method': 'kmeans',
            'cleanup': {'fill_holes': True},
        },
    },

    'multispectral': {
        'preprocessing': {'method': 'normalize'},
        'detection': {
            'weights': {'spectral': 1.5, 'edge': 0.25},
        },
    },
}


# =============================================================================
# Configuration Functions
# =============================================================================

def get_default_config() -> Dict[str, Any]:
    """Get a copy of the default configuration"""
    return copy.deepcopy(DEFAULT_CONFIG)


def create_config_from_preset(preset: str) -> Dict[str, Any]:
    """
    Create configuration from a preset

    Args:
        preset: Preset name ('fast', 'balanced', 'accurate', 'multispectral')

    Returns:
        Configuration dictionary

    Raises:
        ValueError: If preset is not available
    """
    if preset not in PRESET_CONFIGS:
        available = ', '.join(PRESET_CONFIGS.keys())
        raise ValueError(f"Unknown preset: {preset}. Available: {available}")

    return merge_configs(get_default_config(), PRESET_CONFIGS[preset])


def merge_configs(base_config: Dict[str, Any], override_config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge two configuration dictionaries

    Args:
        base_config: Base configuration
        override_config: Configuration to override base with

    Returns:
        Merged configuration
    """
    merged = copy.deepcopy(base_config)

    for key, value in override_config.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = merge_configs(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)

    return merged


def validate_config(config: Dict[str, Any]) -> Dict[str, List[str]]:
    """
    Validate configuration and return any issues

    Args:
        config: Configuration to validate

    Returns:
        Dictionary with validation results:
        {
            'errors': [list of error messages],
            'warnings': [list of warning messages]
        }
    """
    errors = []
    warnings = []

    for section in ('alignment', 'detection'):
        if section not in config:
            errors.append(f"Missing required section: {section}")
        elif not isinstance(config[section], dict):
            errors.append(f"'{section}' must be a dictionary")

    alignment = config.get('alignment', {})
    if isinstance(alignment, dict):
        valid_methods = [d.value for d in DetectorType]
        methods = alignment.get('methods', [])
        if not isinstance(methods, list):
            errors.append("'alignment.methods' must be a list")
        else:
            for method in methods:
                if str(method) not in valid_methods:
                    errors.append(f"Unknown alignment method: {method}")
            if not methods and not alignment.get('use_intensity_fallback', True):
                errors.append("No alignment methods and intensity fallback disabled")

        strategy = str(alignment.get('strategy', 'auto')).lower()
        valid_strategies = ['auto', 'intensity'] + [m.lower() for m in valid_methods]
        if strategy not in valid_strategies:
            errors.append(f"'alignment.strategy' must be one of: {valid_strategies}")

        for method, params in alignment.get('estimator_params', {}).items():
            if not isinstance(params, dict):
                errors.append(f"Estimator parameters for {method} must be a dictionary")
                continue
            model = params.get('model', 'affine')
            if model not in [m.value for m in ModelFamily]:
                errors.append(f"Unknown model family for {method}: {model}")
            if params.get('max_trials', 1) < 1:
                errors.append(f"'max_trials' for {method} must be positive")
            if params.get('max_residual', 1.0) <= 0:
                errors.append(f"'max_residual' for {method} must be positive")
            if params.get('max_trials', 2000) < 2000:
                warnings.append(f"{method}: fewer than 2000 trials may not converge on sparse texture")

        if alignment.get('min_matches', 4) < 3:
            warnings.append("'min_matches' below 3 cannot constrain an affine model")

    detection = config.get('detection', {})
    if isinstance(detection, dict):
        valid_signals = [s.value for s in SignalType]

        method = detection.get('method', 'fusion')
        if method not in ['fusion'] + valid_signals:
            errors.append(f"'detection.method' must be one of: {['fusion'] + valid_signals}")

        weights = detection.get('weights', {})
        for name, weight in weights.items():
            if name not in valid_signals:
                warnings.append(f"Weight given for unknown signal: {name}")
            elif not isinstance(weight, (int, float)) or weight < 0:
                errors.append(f"Weight for {name} must be a non-negative number")
        if weights and all(w == 0 for w in weights.values() if isinstance(w, (int, float))):
            errors.append("At least one signal weight must be positive")

        threshold_method = detection.get('threshold_method', 'otsu')
        if threshold_method not in [t.value for t in ThresholdMethod]:
            errors.append(f"Unknown threshold method: {threshold_method}")

        percentile = detection.get('percentile', 95.0)
        if not 0.0 <= percentile <= 100.0:
            errors.append("'detection.percentile' must be in [0, 100]")

        cleanup = detection.get('cleanup', {})
        for key in ('min_area', 'closing_radius', 'opening_radius'):
            if cleanup.get(key, 0) < 0:
                errors.append(f"'detection.cleanup.{key}' must be non-negative")

    return {'errors': errors, 'warnings': warnings}


def save_config(config: Dict[str, Any], filepath: str):
    """
    Save configuration to JSON file

    Args:
        config: Configuration to save
        filepath: Path to save file
    """
    with open(filepath, 'w') as f:
        json.dump(config, f, indent=2)
    logger.info(f"Configuration saved to: {filepath}")


def load_config(filepath: str) -> Dict[str, Any]:
    """
    Load configuration from JSON file

    Missing keys are filled in from the default configuration.

    Args:
        filepath: Path to configuration file

    Returns:
        Loaded configuration

    Raises:
        FileNotFoundError: If file doesn't exist
        json.JSONDecodeError: If file is not valid JSON
    """
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"Configuration file not found: {filepath}")

    with open(filepath, 'r') as f:
        config = json.load(f)

    logger.info(f"Configuration loaded from: {filepath}")
    return merge_configs(get_default_config(), config)


def get_detector_config(detector_type: str) -> Dict[str, Any]:
    """Get default constructor parameters for a specific detector"""
    return copy.deepcopy(DETECTOR_SPECIFIC_CONFIGS.get(detector_type, {}))


def get_matcher_config(detector_type: str) -> Dict[str, Any]:
    """Get default matcher parameters for a specific detector"""
    return copy.deepcopy(MATCHER_SPECIFIC_CONFIGS.get(detector_type, {}))


def get_estimator_config(detector_type: str) -> Dict[str, Any]:
    """Get default consensus parameters for a specific detector"""
    return copy.deepcopy(ESTIMATOR_SPECIFIC_CONFIGS.get(detector_type, {}))


def get_available_presets() -> List[str]:
    """Get list of available preset configurations"""
    return list(PRESET_CONFIGS.keys())


def describe_preset(preset: str) -> str:
    """
    Get description of a preset configuration

    Args:
        preset: Preset name

    Returns:
        Description string
    """
    descriptions = {
        'fast': "ORB alignment only, no preprocessing, pixel and SSIM signals",
        'balanced': "SIFT -> ORB -> Harris -> intensity chain with all signals",
        'accurate': "Four keypoint methods, more consensus trials, k-means threshold",
        'multispectral': "Band normalization with the spectral angle signal weighted up",
    }

    return descriptions.get(preset, "No description available")
