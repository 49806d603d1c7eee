"""Still-image loading for replay sources."""

from pathlib import Path

import numpy as np
from PIL import Image


class ImagePreprocessor:
    """Loads images from disk in the channel orders the pipeline needs."""

    @staticmethod
    def load_rgb(image_path: str) -> np.ndarray:
        """Load an image file as an (H, W, 3) uint8 RGB array.

        Supports JPEG, PNG, BMP, TIFF. Raises OSError for missing or unreadable files.
        """
        path = Path(image_path)
        if not path.is_file():
            raise OSError(f"Not a file: {image_path}")
        with Image.open(str(path)) as img:
            return np.array(img.convert("RGB"))

    @staticmethod
    def load_bgr(image_path: str) -> np.ndarray:
        """Load an image file in the BGR channel order the detector uses."""
        rgb = ImagePreprocessor.load_rgb(image_path)
        return np.ascontiguousarray(rgb[:, :, ::-1])
