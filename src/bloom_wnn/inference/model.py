"""Validated, immutable parameters of a trained Bloom-filter classifier."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict

import numpy as np

from .wnn_common import (
    HASH_SCHEME_VERSION,
    MAX_HASH_PARAM,
    MAX_TUPLE_WIDTH,
    SUPPORTED_HASH_SCHEMES,
    FormatError,
    ShapeError,
)


def _coerce_positive_int(name: str, value: object) -> int:
    if isinstance(value, (bool, np.bool_)):
        raise FormatError(f"Model parameter '{name}' must be an integer, got {value!r}")
    try:
        coerced = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError) as exc:
        raise FormatError(
            f"Model parameter '{name}' must be an integer, got {value!r}"
        ) from exc
    if coerced != value:
        raise FormatError(f"Model parameter '{name}' must be an integer, got {value!r}")
    if coerced <= 0:
        raise FormatError(f"Model parameter '{name}' must be positive, got {coerced}")
    return coerced


def _frozen_copy(array: np.ndarray, dtype) -> np.ndarray:
    copy = np.array(array, dtype=dtype, order="C", copy=True)
    copy.setflags(write=False)
    return copy


@dataclass(frozen=True, eq=False)
class Model:
    """A trained classifier: scalar geometry plus its three tensors.

    Construction validates every invariant the pipeline relies on and either
    returns a fully usable instance or raises :class:`FormatError` /
    :class:`ShapeError`. Tensors are copied into C-contiguous, read-only
    arrays so a model can be shared freely between threads.

    ``thresholds`` must already be expressed in pixel intensity units; stores
    persisting fractions of full scale rescale them before construction.
    """

    num_classes: int
    num_inputs: int
    bits_per_input: int
    tuple_width: int
    filter_size: int
    num_hashes: int
    hash_param: int
    bloom_filters: np.ndarray = field(repr=False)
    thresholds: np.ndarray = field(repr=False)
    input_order: np.ndarray = field(repr=False)
    hash_scheme: int = HASH_SCHEME_VERSION

    def __post_init__(self) -> None:
        for name in (
            "num_classes",
            "num_inputs",
            "bits_per_input",
            "tuple_width",
            "filter_size",
            "num_hashes",
            "hash_param",
            "hash_scheme",
        ):
            object.__setattr__(self, name, _coerce_positive_int(name, getattr(self, name)))

        if self.hash_scheme not in SUPPORTED_HASH_SCHEMES:
            raise FormatError(
                f"Unsupported hash scheme {self.hash_scheme}; "
                f"supported: {', '.join(str(v) for v in SUPPORTED_HASH_SCHEMES)}"
            )
        if self.tuple_width > MAX_TUPLE_WIDTH:
            raise FormatError(
                f"tuple_width must be at most {MAX_TUPLE_WIDTH}, got {self.tuple_width}"
            )
        if not 2 <= self.hash_param < MAX_HASH_PARAM:
            raise FormatError(
                f"hash_param must lie in [2, 2**32), got {self.hash_param}"
            )

        width = math.isqrt(self.num_inputs)
        if width * width != self.num_inputs:
            raise ShapeError(f"num_inputs={self.num_inputs} is not a perfect square")
        num_input_bits = self.num_inputs * self.bits_per_input
        if num_input_bits % self.tuple_width:
            raise ShapeError(
                f"{num_input_bits} input bits do not tile into tuples of "
                f"{self.tuple_width}"
            )
        num_filters = num_input_bits // self.tuple_width

        object.__setattr__(
            self,
            "bloom_filters",
            self._validate_bloom_filters(
                (self.num_classes, num_filters, self.filter_size)
            ),
        )
        object.__setattr__(
            self,
            "thresholds",
            self._validate_thresholds((width, width, self.bits_per_input)),
        )
        object.__setattr__(self, "input_order", self._validate_input_order(num_input_bits))

    def _validate_bloom_filters(self, expected: tuple) -> np.ndarray:
        filters = np.asarray(self.bloom_filters)
        if filters.dtype != np.bool_:
            if not np.issubdtype(filters.dtype, np.integer):
                raise FormatError(
                    f"bloom_filters must be boolean, got dtype {filters.dtype}"
                )
            if filters.size and not np.all((filters == 0) | (filters == 1)):
                raise FormatError("bloom_filters must only contain 0 and 1")
        if filters.shape != expected:
            raise ShapeError(
                f"bloom_filters has shape {filters.shape}, expected {expected}"
            )
        return _frozen_copy(filters, np.bool_)

    def _validate_thresholds(self, expected: tuple) -> np.ndarray:
        thresholds = np.asarray(self.thresholds)
        if not (
            np.issubdtype(thresholds.dtype, np.integer)
            or np.issubdtype(thresholds.dtype, np.floating)
        ):
            raise FormatError(
                f"thresholds must be numeric, got dtype {thresholds.dtype}"
            )
        if thresholds.shape != expected:
            raise ShapeError(
                f"thresholds has shape {thresholds.shape}, expected {expected}"
            )
        thresholds = _frozen_copy(thresholds, np.float32)
        if not np.all(np.isfinite(thresholds)):
            raise FormatError("thresholds must be finite")
        # Thermometer encoding needs every pixel's thresholds sorted by plane.
        if np.any(np.diff(thresholds, axis=-1) < 0):
            raise FormatError("thresholds must be non-decreasing across bit planes")
        return thresholds

    def _validate_input_order(self, num_input_bits: int) -> np.ndarray:
        order = np.asarray(self.input_order)
        if not np.issubdtype(order.dtype, np.integer):
            raise FormatError(f"input_order must be integral, got dtype {order.dtype}")
        if order.shape != (num_input_bits,):
            raise ShapeError(
                f"input_order has shape {order.shape}, expected ({num_input_bits},)"
            )
        if not np.array_equal(np.sort(order), np.arange(num_input_bits)):
            raise ShapeError(f"input_order is not a permutation of [0, {num_input_bits})")
        return _frozen_copy(order, np.intp)

    @property
    def width(self) -> int:
        return math.isqrt(self.num_inputs)

    @property
    def num_input_bits(self) -> int:
        return self.num_inputs * self.bits_per_input

    @property
    def num_filters(self) -> int:
        return self.num_input_bits // self.tuple_width

    def geometry(self) -> Dict[str, int]:
        """Return the scalar parameters, including derived sizes."""

        return {
            "num_classes": self.num_classes,
            "num_inputs": self.num_inputs,
            "bits_per_input": self.bits_per_input,
            "tuple_width": self.tuple_width,
            "filter_size": self.filter_size,
            "num_hashes": self.num_hashes,
            "hash_param": self.hash_param,
            "hash_scheme": self.hash_scheme,
            "width": self.width,
            "num_filters": self.num_filters,
        }


__all__ = ["Model"]
