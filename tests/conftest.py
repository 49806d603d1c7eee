"""Shared test fixtures for MoleGuide."""

import os
import tempfile
from pathlib import Path

import cv2
import numpy as np
import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from core.utils import Frame, LesionDetection, Point, QualityMetrics, Rect

FRAME_WIDTH = 640
FRAME_HEIGHT = 480
SKIN_BGR = (125, 150, 190)
LESION_BGR = (45, 65, 110)
LESION_RADIUS = 40


def synthetic_skin(width=FRAME_WIDTH, height=FRAME_HEIGHT, seed=0):
    """Uniform skin tone with mild sensor noise."""
    rng = np.random.default_rng(seed)
    base = np.empty((height, width, 3), dtype=np.float32)
    base[:] = SKIN_BGR
    noise = rng.normal(0.0, 4.0, size=base.shape)
    return np.clip(base + noise, 0, 255).astype(np.uint8)


def synthetic_lesion(center=None, radius=LESION_RADIUS, gain=1.0, width=FRAME_WIDTH, height=FRAME_HEIGHT, seed=0):
    """Skin with a dark round mole drawn at center, optionally scaled by gain."""
    if center is None:
        center = (width // 2, height // 2)
    img = np.empty((height, width, 3), dtype=np.uint8)
    img[:] = SKIN_BGR
    cv2.circle(img, center, radius, LESION_BGR, thickness=-1, lineType=cv2.LINE_AA)
    rng = np.random.default_rng(seed)
    noisy = img.astype(np.float32) + rng.normal(0.0, 4.0, size=img.shape)
    return np.clip(noisy * gain, 0, 255).astype(np.uint8)


@pytest.fixture
def tmp_dir():
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as d:
        yield Path(d)


@pytest.fixture
def skin_frame():
    """640x480 frame of plain skin, no lesion."""
    return Frame(pixels=synthetic_skin(), timestamp_ms=0)


@pytest.fixture
def lesion_frame():
    """640x480 frame with a sharp, well-lit mole at the frame center."""
    return Frame(pixels=synthetic_lesion(), timestamp_ms=0)


@pytest.fixture
def good_metrics():
    return QualityMetrics(sharpness=0.8, brightness=130.0, contrast=0.35)


@pytest.fixture
def centered_detection():
    return LesionDetection(
        center=Point(320.0, 240.0),
        bounding_box=Rect(280, 200, 80, 80),
        area=5000.0,
        confidence=0.9,
    )


@pytest.fixture
def sample_image_folder(tmp_dir):
    """Folder with three mole images and one non-image file."""
    from PIL import Image

    folder = tmp_dir / "frames"
    folder.mkdir()
    for i, x in enumerate((220, 320, 420)):
        bgr = synthetic_lesion(center=(x, 240), seed=i)
        Image.fromarray(bgr[:, :, ::-1]).save(folder / f"frame_{i:03d}.png")
    (folder / "notes.txt").write_text("not an image")
    return folder


@pytest.fixture(scope="session")
def qapp():
    """QCoreApplication for tests that run QThread workers."""
    from PyQt6.QtCore import QCoreApplication

    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


@pytest.fixture(autouse=True)
def _init_i18n():
    """Initialize i18n in English for all tests."""
    import i18n
    i18n.init("en")
