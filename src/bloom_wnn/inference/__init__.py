"""Inference runtime for Bloom-filter weightless classifiers."""

from .encoding import Permuter, encode
from .hashing import TupleHasher, hash_constants, pack_tuples
from .model import Model
from .wnn import Discriminator, Prediction, WnnClassifier, classify
from .wnn_common import (
    HASH_SCHEME_VERSION,
    DecodeError,
    FormatError,
    ShapeError,
    ShapeMismatch,
    WnnError,
)

__all__ = [
    "HASH_SCHEME_VERSION",
    "DecodeError",
    "Discriminator",
    "FormatError",
    "Model",
    "Permuter",
    "Prediction",
    "ShapeError",
    "ShapeMismatch",
    "TupleHasher",
    "WnnClassifier",
    "WnnError",
    "classify",
    "encode",
    "hash_constants",
    "pack_tuples",
]
