import numpy as np
import pytest

from SceneChangeDetection import (
    AnalysisResult,
    ChangeAnalysisPipeline,
    DimensionMismatch,
    create_pipeline,
)


@pytest.fixture
def changed_pair(shifted_pair):
    """Shifted pair with a bright 50x50 building added to the later image"""
    fixed, moving = shifted_pair
    moving = moving.copy()
    moving[100:150, 100:150] = 250
    return fixed, moving


def test_analyze_aligns_then_detects(changed_pair):
    fixed, moving = changed_pair
    pipeline = create_pipeline('balanced', log_level='WARNING')
    result = pipeline.analyze(fixed, moving)

    assert isinstance(result, AnalysisResult)
    assert result.success
    assert result.preprocessed
    tx, ty = result.alignment.transform.translation
    assert tx == pytest.approx(7.0, abs=1.5)
    assert ty == pytest.approx(-5.0, abs=1.5)

    detection = result.detection
    assert detection.change_mask.shape == fixed.shape
    # The building sits at (107..157, 95..145) in the fixed frame
    assert detection.change_mask[120:130, 125:135].mean() > 0.5
    assert detection.change_percentage > 0.0

    summary = result.summary()
    assert summary['alignment']['method'] == 'SIFT'
    assert summary['detection']['changed_pixels'] == detection.changed_pixels


def test_stages_can_run_separately(changed_pair):
    fixed, moving = changed_pair
    pipeline = create_pipeline('fast', log_level='WARNING')

    alignment = pipeline.align(fixed, moving)
    assert alignment.method == 'ORB'
    detection = pipeline.detect(fixed, alignment.aligned_image, method='ssim')
    assert detection.method == 'ssim'


def test_failed_alignment_still_detects(blank_pair):
    fixed, moving = blank_pair
    result = create_pipeline('balanced', log_level='WARNING').analyze(fixed, moving)

    assert not result.success
    assert result.alignment.transform.is_identity()
    assert result.detection.change_percentage == 0.0


def test_band_mismatch_is_fatal(textured_image):
    rgb = np.stack([textured_image] * 3, axis=2)
    pipeline = ChangeAnalysisPipeline({'preprocessing': {'enabled': False}})
    with pytest.raises(DimensionMismatch):
        pipeline.analyze(textured_image, rgb)


def test_overrides_are_merged():
    pipeline = create_pipeline('accurate', log_level='WARNING',
                               alignment={'strategy': 'orb'},
                               detection={'percentile': 90.0})
    assert pipeline.config['alignment']['strategy'] == 'orb'
    assert pipeline.config['detection']['threshold_method'] == 'kmeans'
    assert pipeline.detector.fusion.percentile == 90.0


def test_invalid_configuration_raises():
    with pytest.raises(ValueError, match="Invalid configuration"):
        ChangeAnalysisPipeline({'detection': {'method': 'ndvi'}})
    with pytest.raises(ValueError, match="Unknown preset"):
        create_pipeline('turbo')


def test_custom_preset_uses_defaults():
    pipeline = create_pipeline('custom', log_level='WARNING')
    assert pipeline.config['alignment']['methods'] == ['SIFT', 'ORB', 'Harris']
