"""Decode image files into single-channel intensity grids."""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
from PIL import Image, UnidentifiedImageError

from bloom_wnn.inference.wnn_common import DecodeError

logger = logging.getLogger(__name__)

# 16-bit samples narrow to 8 bits by this factor (65535 / 255).
_WIDE_SAMPLE_SCALE = 257


def _narrow_wide_samples(image: Image.Image) -> np.ndarray:
    samples = np.asarray(image).astype(np.int64)
    return np.clip(samples // _WIDE_SAMPLE_SCALE, 0, 255).astype(np.uint8)


def load_image(path: Path | str) -> np.ndarray:
    """Return the red channel of the image at ``path`` as ``uint8 [h, w]``.

    Images are converted to RGB first so that grayscale, palette and RGBA
    inputs all map onto the same intensities the models were trained on.
    Single-channel integer images (``I;16`` and ``I``) are scaled down to
    8 bits rather than clipped. File-system errors propagate unchanged;
    undecodable data raises :class:`DecodeError`.
    """

    path = Path(path).expanduser()
    try:
        with Image.open(path) as image:
            if image.mode.startswith("I"):
                pixels = _narrow_wide_samples(image)
            else:
                pixels = np.asarray(image.convert("RGB"), dtype=np.uint8)[:, :, 0]
    except (FileNotFoundError, IsADirectoryError, NotADirectoryError, PermissionError):
        raise
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise DecodeError(f"Unable to decode image {path}: {exc}") from exc

    logger.debug("Decoded %s as %dx%d", path, pixels.shape[0], pixels.shape[1])
    return np.ascontiguousarray(pixels)


__all__ = ["load_image"]
