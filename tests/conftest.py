"""
Shared fixtures: synthetic, seeded scenes with enough structure for
keypoint detectors, and the small pairs used by the change detection tests.
"""

import sys
from pathlib import Path

import cv2
import numpy as np
import pytest

# Allow running pytest from the repository root without installing
_repo_root = str(Path(__file__).resolve().parents[1])
if _repo_root not in sys.path:
    sys.path.insert(0, _repo_root)


def make_scene(height=360, width=360, seed=0, num_shapes=80):
    """Random rectangles and disks on a mid-gray background, lightly blurred"""
    rng = np.random.default_rng(seed)
    scene = np.full((height, width), 90, dtype=np.uint8)

    for _ in range(num_shapes):
        color = int(rng.integers(0, 256))
        x, y = int(rng.integers(0, width)), int(rng.integers(0, height))
        if rng.random() < 0.5:
            w, h = int(rng.integers(8, 40)), int(rng.integers(8, 40))
            cv2.rectangle(scene, (x, y), (x + w, y + h), color, -1)
        else:
            cv2.circle(scene, (x, y), int(rng.integers(4, 20)), color, -1)

    noise = rng.normal(0.0, 3.0, size=scene.shape)
    scene = np.clip(scene.astype(np.float64) + noise, 0, 255).astype(np.uint8)
    return cv2.GaussianBlur(scene, (3, 3), 0)


def crop_pair(scene, size=256, origin=(40, 40), shift=(0, 0)):
    """
    Two windows of a scene; pixel (x, y) of the moving window shows the
    same point as pixel (x + dx, y + dy) of the fixed window
    """
    x0, y0 = origin
    dx, dy = shift
    fixed = scene[y0:y0 + size, x0:x0 + size].copy()
    moving = scene[y0 + dy:y0 + dy + size, x0 + dx:x0 + dx + size].copy()
    return fixed, moving


@pytest.fixture
def scene():
    return make_scene()


@pytest.fixture
def textured_image(scene):
    return scene[40:296, 40:296].copy()


@pytest.fixture
def shifted_pair(scene):
    """Pair whose true moving -> fixed transform is a translation by (7, -5)"""
    return crop_pair(scene, shift=(7, -5))


@pytest.fixture
def blank_pair():
    blank = np.zeros((128, 128), dtype=np.uint8)
    return blank, blank.copy()


@pytest.fixture
def constant_pair():
    img = np.full((100, 100), 120, dtype=np.uint8)
    return img, img.copy()


@pytest.fixture
def block_pair():
    """100x100 pair differing only in a 40x40 block shifted by +72 levels"""
    img1 = np.full((100, 100), 100, dtype=np.uint8)
    img2 = img1.copy()
    img2[30:70, 30:70] += 72
    return img1, img2


@pytest.fixture
def multiband_pair():
    """4-band pair whose band composition changes inside a 20x20 block"""
    rng = np.random.default_rng(3)
    img1 = rng.integers(60, 200, size=(64, 64, 4)).astype(np.uint8)
    img2 = img1.copy()
    img2[20:40, 20:40] = img2[20:40, 20:40][:, :, ::-1]
    return img1, img2
