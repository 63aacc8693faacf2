"""Read and write persisted classifier models.

Two containers share one layout. HDF5 files (the format produced by the
original training code) keep the scalar parameters as file attributes;
safetensors files keep them as decimal strings in the header metadata. Both
store the ``bloom_filters``, ``binarization_thresholds`` and ``input_order``
tensors under those names, with thresholds expressed as fractions of full
scale.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Mapping, Tuple

import h5py
import numpy as np
from safetensors import SafetensorError, safe_open
from safetensors.numpy import save_file

from bloom_wnn.inference.model import Model
from bloom_wnn.inference.wnn_common import (
    HASH_SCHEME_VERSION,
    INTENSITY_SCALE,
    SCALAR_FIELDS,
    SCALAR_HASH_PARAM,
    SCALAR_HASH_PARAM_LEGACY,
    SCALAR_HASH_SCHEME,
    TENSOR_BLOOM_FILTERS,
    TENSOR_INPUT_ORDER,
    TENSOR_NAMES,
    TENSOR_THRESHOLDS,
    FormatError,
)

logger = logging.getLogger(__name__)

HDF5_SUFFIXES = frozenset({".h5", ".hdf5", ".hdf"})
SAFETENSORS_SUFFIXES = frozenset({".safetensors"})
_KNOWN_SCALARS = frozenset(SCALAR_FIELDS) | {SCALAR_HASH_PARAM_LEGACY, SCALAR_HASH_SCHEME}


def _container_for(path: Path) -> str:
    suffix = path.suffix.lower()
    if suffix in HDF5_SUFFIXES:
        return "hdf5"
    if suffix in SAFETENSORS_SUFFIXES:
        return "safetensors"
    raise FormatError(
        f"Unsupported model container '{path.suffix}' for {path}; expected one of "
        + ", ".join(sorted(HDF5_SUFFIXES | SAFETENSORS_SUFFIXES))
    )


def _scalar_value(name: str, raw: object) -> object:
    value = np.asarray(raw)
    if value.size != 1:
        raise FormatError(f"Model scalar '{name}' must hold a single value, got shape {value.shape}")
    return value.reshape(()).item()


def model_from_arrays(
    scalars: Mapping[str, object],
    tensors: Mapping[str, object],
) -> Model:
    """Assemble a :class:`Model` from persisted scalars and tensors.

    ``scalars`` uses the persisted names (``num_filter_inputs`` and so on)
    and may spell the hash parameter either ``hash_param`` or ``p``.
    Thresholds in ``tensors`` are fractions of full scale.
    """

    missing = [
        name
        for name in SCALAR_FIELDS
        if name not in scalars
        and not (name == SCALAR_HASH_PARAM and SCALAR_HASH_PARAM_LEGACY in scalars)
    ]
    missing.extend(name for name in TENSOR_NAMES if name not in tensors)
    if missing:
        raise FormatError("Model is missing required fields: " + ", ".join(missing))

    kwargs: Dict[str, object] = {}
    for persisted, field_name in SCALAR_FIELDS.items():
        if persisted == SCALAR_HASH_PARAM and persisted not in scalars:
            persisted = SCALAR_HASH_PARAM_LEGACY
        kwargs[field_name] = _scalar_value(persisted, scalars[persisted])
    kwargs["hash_scheme"] = _scalar_value(
        SCALAR_HASH_SCHEME, scalars.get(SCALAR_HASH_SCHEME, HASH_SCHEME_VERSION)
    )

    thresholds = np.asarray(tensors[TENSOR_THRESHOLDS])
    if not (
        np.issubdtype(thresholds.dtype, np.integer)
        or np.issubdtype(thresholds.dtype, np.floating)
    ):
        raise FormatError(f"{TENSOR_THRESHOLDS} must be numeric, got dtype {thresholds.dtype}")

    return Model(
        bloom_filters=tensors[TENSOR_BLOOM_FILTERS],
        thresholds=thresholds.astype(np.float32) * np.float32(INTENSITY_SCALE),
        input_order=tensors[TENSOR_INPUT_ORDER],
        **kwargs,
    )


def model_to_arrays(model: Model) -> Tuple[Dict[str, int], Dict[str, np.ndarray]]:
    """Inverse of :func:`model_from_arrays`, using the canonical scalar names."""

    scalars = {
        persisted: int(getattr(model, field_name))
        for persisted, field_name in SCALAR_FIELDS.items()
    }
    scalars[SCALAR_HASH_SCHEME] = model.hash_scheme
    tensors = {
        TENSOR_BLOOM_FILTERS: np.ascontiguousarray(model.bloom_filters),
        TENSOR_THRESHOLDS: (model.thresholds / np.float32(INTENSITY_SCALE)).astype(np.float32),
        TENSOR_INPUT_ORDER: model.input_order.astype(np.uint64),
    }
    return scalars, tensors


def _read_hdf5(path: Path) -> Tuple[Dict[str, object], Dict[str, np.ndarray]]:
    with h5py.File(path, "r") as handle:
        scalars = {name: handle.attrs[name] for name in handle.attrs.keys()}
        tensors = {}
        for name in TENSOR_NAMES:
            node = handle.get(name)
            if node is None:
                continue
            if not isinstance(node, h5py.Dataset):
                raise FormatError(f"HDF5 node '{name}' in {path} is not a dataset")
            tensors[name] = node[()]
    logger.debug("Read %d attributes and %d datasets from %s", len(scalars), len(tensors), path)
    return scalars, tensors


def _read_safetensors(path: Path) -> Tuple[Dict[str, object], Dict[str, np.ndarray]]:
    try:
        with safe_open(str(path), framework="numpy") as handle:
            metadata = handle.metadata() or {}
            tensors = {name: handle.get_tensor(name) for name in handle.keys() if name in TENSOR_NAMES}
    except SafetensorError as exc:
        raise FormatError(f"Unable to read safetensors model {path}: {exc}") from exc

    scalars: Dict[str, object] = {}
    for name, text in metadata.items():
        # Writers commonly add entries such as {"format": "np"}.
        if name not in _KNOWN_SCALARS:
            continue
        try:
            scalars[name] = int(text)
        except ValueError as exc:
            raise FormatError(
                f"Metadata entry '{name}' in {path} is not an integer: {text!r}"
            ) from exc
    logger.debug("Read %d metadata entries and %d tensors from %s", len(scalars), len(tensors), path)
    return scalars, tensors


def load_model(path: Path | str) -> Model:
    """Load and validate the model stored at ``path``.

    Raises :class:`FormatError` for an unknown container or missing/malformed
    fields and :class:`ShapeError` when tensor shapes disagree with the
    scalars. ``FileNotFoundError`` and h5py's ``OSError`` propagate unchanged.
    """

    path = Path(path).expanduser()
    container = _container_for(path)
    if not path.exists():
        raise FileNotFoundError(f"Model file {path} does not exist")

    if container == "hdf5":
        scalars, tensors = _read_hdf5(path)
    else:
        scalars, tensors = _read_safetensors(path)
    model = model_from_arrays(scalars, tensors)
    logger.info(
        "Loaded %s model from %s: %d classes, %d filters x %d entries, %d hashes",
        container,
        path,
        model.num_classes,
        model.num_filters,
        model.filter_size,
        model.num_hashes,
    )
    return model


def save_model(model: Model, path: Path | str) -> Path:
    """Write ``model`` to ``path``; the container is chosen by suffix."""

    path = Path(path).expanduser()
    container = _container_for(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    scalars, tensors = model_to_arrays(model)

    if container == "hdf5":
        with h5py.File(path, "w") as handle:
            for name, value in scalars.items():
                handle.attrs[name] = np.int64(value)
            for name, value in tensors.items():
                handle.create_dataset(name, data=value)
    else:
        save_file(tensors, str(path), metadata={name: str(value) for name, value in scalars.items()})
    logger.info("Wrote %s model to %s", container, path)
    return path


__all__ = [
    "HDF5_SUFFIXES",
    "SAFETENSORS_SUFFIXES",
    "load_model",
    "model_from_arrays",
    "model_to_arrays",
    "save_model",
]
