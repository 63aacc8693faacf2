"""Tuple packing and the multiplicative hash family addressing the filters.

Scheme version 1 (``HASH_SCHEME_VERSION``):

* A tuple is ``tuple_width`` consecutive permuted bits. Its ``i``-th bit
  contributes ``2**i`` to the packed value ``v`` (first bit least significant).
* Address ``j`` of a tuple is ``((v * a_j + b_j) mod P) mod M`` with
  ``a_j = 1 + ((j + 1) * 0x9E3779B1) mod (P - 1)`` and
  ``b_j = ((j + 1) * 0x85EBCA77) mod P``.

The trained filters were populated with exactly this scheme; any change to it
must bump the scheme version recorded in model files.
"""

from __future__ import annotations

from typing import List, Tuple

import numpy as np

from .model import Model
from .wnn_common import GOLDEN_MULTIPLIER, OFFSET_MULTIPLIER, ShapeMismatch


def hash_constants(num_hashes: int, hash_param: int) -> List[Tuple[int, int]]:
    """Return the ``(a_j, b_j)`` pairs for hash indices ``0..num_hashes-1``."""

    if hash_param < 2:
        raise ValueError("hash_param must be at least 2")
    constants = []
    for j in range(num_hashes):
        a = 1 + ((j + 1) * GOLDEN_MULTIPLIER) % (hash_param - 1)
        b = ((j + 1) * OFFSET_MULTIPLIER) % hash_param
        constants.append((a, b))
    return constants


def pack_tuples(bits, tuple_width: int) -> np.ndarray:
    """Pack consecutive groups of ``tuple_width`` bits into ``uint64`` values."""

    bits = np.asarray(bits)
    if bits.ndim != 1 or bits.shape[0] % tuple_width:
        raise ShapeMismatch(
            f"Cannot split {bits.shape} bits into tuples of {tuple_width}"
        )
    tuples = bits.reshape(-1, tuple_width).astype(np.uint64)
    weights = np.left_shift(np.uint64(1), np.arange(tuple_width, dtype=np.uint64))
    return np.sum(tuples * weights, axis=1, dtype=np.uint64)


class TupleHasher:
    """Compute the ``num_hashes`` filter addresses of every tuple."""

    def __init__(self, model: Model) -> None:
        self.tuple_width = model.tuple_width
        self.num_filters = model.num_filters
        self.filter_size = model.filter_size
        self.hash_param = model.hash_param
        self.constants = tuple(hash_constants(model.num_hashes, model.hash_param))
        self._a = np.array([a for a, _ in self.constants], dtype=np.uint64)
        self._b = np.array([b for _, b in self.constants], dtype=np.uint64)

    def hashes(self, value: int) -> Tuple[int, ...]:
        """Addresses in ``[0, filter_size)`` for one packed tuple value."""

        reduced = int(value) % self.hash_param
        return tuple(
            ((reduced * a + b) % self.hash_param) % self.filter_size
            for a, b in self.constants
        )

    def tuple_values(self, permuted) -> np.ndarray:
        values = pack_tuples(permuted, self.tuple_width)
        if values.shape[0] != self.num_filters:
            raise ShapeMismatch(
                f"Expected {self.num_filters} tuples, got {values.shape[0]}"
            )
        return values

    def addresses(self, permuted) -> np.ndarray:
        """Return the ``[num_filters, num_hashes]`` address matrix."""

        # v < P < 2**32 after reduction, so v * a + b stays below 2**64.
        reduced = self.tuple_values(permuted) % np.uint64(self.hash_param)
        mixed = reduced[:, np.newaxis] * self._a + self._b
        addresses = (mixed % np.uint64(self.hash_param)) % np.uint64(self.filter_size)
        return addresses.astype(np.intp)


__all__ = ["TupleHasher", "hash_constants", "pack_tuples"]
