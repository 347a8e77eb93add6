import numpy as np
import pytest

from SceneChangeDetection.core_data_structures import DetectorType, FeatureData
from SceneChangeDetection.exceptions import InsufficientFeatures
from SceneChangeDetection.traditional_detectors import (
    DETECTOR_MAP,
    HarrisCornerDetector,
    ORBDetector,
    SIFTDetector,
    create_traditional_detector,
    resolve_detector_name,
)


@pytest.mark.parametrize("name", ["SIFT", "ORB", "AKAZE", "BRISK", "Harris"])
def test_detectors_find_features_on_textured_image(name, textured_image):
    detector = create_traditional_detector(name)
    features = detector.detect(textured_image)

    assert isinstance(features, FeatureData)
    assert features.method == name
    assert len(features) >= detector.min_features
    assert features.descriptors.shape[0] == len(features)
    assert features.points.shape == (len(features), 2)


@pytest.mark.parametrize("name", list(DETECTOR_MAP))
def test_blank_image_raises_insufficient_features(name, blank_pair):
    blank, _ = blank_pair
    with pytest.raises(InsufficientFeatures) as info:
        create_traditional_detector(name).detect(blank)

    error = info.value
    assert error.stage == "detection"
    assert error.details['num_keypoints'] == 0
    assert error.details['method'] == name


def test_max_features_keeps_strongest(textured_image):
    features = SIFTDetector(max_features=30, min_features=5).detect(textured_image)
    assert len(features) <= 30


def test_color_and_float_input(textured_image):
    rgb = np.stack([textured_image] * 3, axis=2)
    assert len(ORBDetector().detect(rgb)) > 0
    as_float = textured_image.astype(np.float64) / 255.0
    assert len(SIFTDetector().detect(as_float)) > 0


def test_harris_uses_float_descriptors(textured_image):
    detector = HarrisCornerDetector()
    features = detector.detect(textured_image)
    assert detector.norm_type == 'L2'
    assert features.descriptors.dtype == np.float32


def test_factory_names_are_case_insensitive():
    assert isinstance(create_traditional_detector('sift'), SIFTDetector)
    assert isinstance(create_traditional_detector(DetectorType.HARRIS), HarrisCornerDetector)
    assert resolve_detector_name('harris') == 'Harris'
    with pytest.raises(ValueError, match="Unknown detector type"):
        create_traditional_detector('SURF')
