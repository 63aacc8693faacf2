"""Thermometer binarization and the learned bit permutation."""

from __future__ import annotations

import numpy as np

from .model import Model
from .wnn_common import ShapeMismatch


def encode(model: Model, image) -> np.ndarray:
    """Binarize ``image`` against the model's per-pixel thresholds.

    Bit ``(r, c, b)`` is set iff ``image[r, c] >= thresholds[r, c, b]``. The
    result is flattened in row-major ``(r, c, b)`` order, giving
    ``num_inputs * bits_per_input`` booleans.
    """

    pixels = np.asarray(image)
    expected = (model.width, model.width)
    if pixels.shape != expected:
        raise ShapeMismatch(f"Image has shape {pixels.shape}, model expects {expected}")
    bits = pixels.astype(np.float32)[:, :, np.newaxis] >= model.thresholds
    return bits.reshape(-1)


class Permuter:
    """Gather feature bits into the order the filters were trained on."""

    def __init__(self, model: Model) -> None:
        self._order = model.input_order

    def _check(self, bits: np.ndarray) -> np.ndarray:
        bits = np.asarray(bits)
        if bits.shape != self._order.shape:
            raise ShapeMismatch(
                f"Expected {self._order.shape[0]} feature bits, got shape {bits.shape}"
            )
        return bits

    def apply(self, bits) -> np.ndarray:
        return self._check(bits)[self._order]

    def inverse(self, permuted) -> np.ndarray:
        """Undo :meth:`apply`: ``inverse(apply(x)) == x``."""

        permuted = self._check(permuted)
        restored = np.empty_like(permuted)
        restored[self._order] = permuted
        return restored


__all__ = ["Permuter", "encode"]
