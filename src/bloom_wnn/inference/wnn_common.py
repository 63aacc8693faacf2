"""Shared constants and error types used across the runtime and tooling."""

from __future__ import annotations

from typing import Dict, Tuple

# Version of the tuple packing and hash-constant derivation implemented by
# :mod:`bloom_wnn.inference.hashing`. Bloom filters trained against another
# scheme produce plausible but wrong votes, so stores refuse to load them.
HASH_SCHEME_VERSION = 1
SUPPORTED_HASH_SCHEMES: Tuple[int, ...] = (HASH_SCHEME_VERSION,)

GOLDEN_MULTIPLIER = 0x9E3779B1
OFFSET_MULTIPLIER = 0x85EBCA77
MAX_HASH_PARAM = 1 << 32
MAX_TUPLE_WIDTH = 64

# Thresholds are persisted as fractions of full scale.
INTENSITY_SCALE = 255.0

SCALAR_NUM_CLASSES = "num_classes"
SCALAR_NUM_INPUTS = "num_inputs"
SCALAR_BITS_PER_INPUT = "bits_per_input"
SCALAR_TUPLE_WIDTH = "num_filter_inputs"
SCALAR_FILTER_SIZE = "num_filter_entries"
SCALAR_NUM_HASHES = "num_filter_hashes"
SCALAR_HASH_PARAM = "hash_param"
SCALAR_HASH_PARAM_LEGACY = "p"
SCALAR_HASH_SCHEME = "hash_scheme"

TENSOR_BLOOM_FILTERS = "bloom_filters"
TENSOR_THRESHOLDS = "binarization_thresholds"
TENSOR_INPUT_ORDER = "input_order"

# Persisted scalar name -> Model field name.
SCALAR_FIELDS: Dict[str, str] = {
    SCALAR_NUM_CLASSES: "num_classes",
    SCALAR_NUM_INPUTS: "num_inputs",
    SCALAR_BITS_PER_INPUT: "bits_per_input",
    SCALAR_TUPLE_WIDTH: "tuple_width",
    SCALAR_FILTER_SIZE: "filter_size",
    SCALAR_NUM_HASHES: "num_hashes",
    SCALAR_HASH_PARAM: "hash_param",
}
TENSOR_NAMES: Tuple[str, ...] = (
    TENSOR_BLOOM_FILTERS,
    TENSOR_THRESHOLDS,
    TENSOR_INPUT_ORDER,
)


class WnnError(RuntimeError):
    """Base class for every failure raised by the package."""


class FormatError(WnnError):
    """Raised when persisted scalars or tensors are missing or malformed."""


class ShapeError(WnnError):
    """Raised when tensor dimensions disagree with the declared scalars."""


class DecodeError(WnnError):
    """Raised when an image cannot be decoded."""


class ShapeMismatch(WnnError):
    """Raised when a runtime input does not match the trained geometry."""


__all__ = [
    "GOLDEN_MULTIPLIER",
    "HASH_SCHEME_VERSION",
    "INTENSITY_SCALE",
    "MAX_HASH_PARAM",
    "MAX_TUPLE_WIDTH",
    "OFFSET_MULTIPLIER",
    "SCALAR_BITS_PER_INPUT",
    "SCALAR_FIELDS",
    "SCALAR_FILTER_SIZE",
    "SCALAR_HASH_PARAM",
    "SCALAR_HASH_PARAM_LEGACY",
    "SCALAR_HASH_SCHEME",
    "SCALAR_NUM_CLASSES",
    "SCALAR_NUM_HASHES",
    "SCALAR_NUM_INPUTS",
    "SCALAR_TUPLE_WIDTH",
    "SUPPORTED_HASH_SCHEMES",
    "TENSOR_BLOOM_FILTERS",
    "TENSOR_INPUT_ORDER",
    "TENSOR_NAMES",
    "TENSOR_THRESHOLDS",
    "DecodeError",
    "FormatError",
    "ShapeError",
    "ShapeMismatch",
    "WnnError",
]
