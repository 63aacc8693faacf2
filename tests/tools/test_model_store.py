from __future__ import annotations

from pathlib import Path

import h5py
import numpy as np
import pytest
from safetensors.numpy import save_file

from bloom_wnn.inference.wnn import classify
from bloom_wnn.inference.wnn_common import FormatError, ShapeError
from bloom_wnn.tools import model_store
from tests.model_fixtures import make_model, random_images


def _write_original_hdf5(path: Path, *, drop: str | None = None, **overrides) -> Path:
    """Write a file shaped like the ones produced by the training scripts."""

    attrs = {
        "num_classes": 2,
        "num_inputs": 4,
        "bits_per_input": 2,
        "num_filter_inputs": 4,
        "num_filter_entries": 16,
        "num_filter_hashes": 2,
        "p": 17,
    }
    datasets = {
        "bloom_filters": np.ones((2, 2, 16), dtype=bool),
        "binarization_thresholds": np.tile(
            np.array([0.25, 0.75], dtype=np.float32), (2, 2, 1)
        ),
        "input_order": np.arange(8, dtype=np.uint64),
    }
    for name, value in overrides.items():
        if name in datasets:
            datasets[name] = value
        else:
            attrs[name] = value
    attrs.pop(drop, None)
    datasets.pop(drop, None)

    with h5py.File(path, "w") as handle:
        for name, value in attrs.items():
            handle.attrs[name] = np.int64(value)
        for name, value in datasets.items():
            handle.create_dataset(name, data=value)
    return path


@pytest.mark.parametrize("suffix", [".h5", ".hdf5", ".safetensors"])
def test_save_and_load_round_trip(tmp_path: Path, suffix: str) -> None:
    model = make_model(num_classes=3, filter_size=64, num_hashes=3)
    path = model_store.save_model(model, tmp_path / "nested" / f"model{suffix}")

    loaded = model_store.load_model(path)

    assert loaded.geometry() == model.geometry()
    np.testing.assert_array_equal(loaded.bloom_filters, model.bloom_filters)
    np.testing.assert_array_equal(loaded.input_order, model.input_order)
    np.testing.assert_allclose(loaded.thresholds, model.thresholds, rtol=1e-6)


def test_loaded_model_classifies_like_the_original(tmp_path: Path) -> None:
    model = make_model(num_classes=4, seed=9)
    loaded = model_store.load_model(model_store.save_model(model, tmp_path / "model.h5"))

    # Integer intensities never sit within float error of a random threshold.
    for image in random_images(model, 10):
        assert classify(loaded, image).votes.tolist() == classify(model, image).votes.tolist()


def test_loads_original_layout_with_legacy_hash_param(tmp_path: Path) -> None:
    model = model_store.load_model(_write_original_hdf5(tmp_path / "wnn.hdf5"))

    assert model.hash_param == 17
    assert model.num_filters == 2
    assert model.hash_scheme == 1
    np.testing.assert_allclose(model.thresholds[0, 0], [63.75, 191.25])


def test_hash_param_takes_precedence_over_legacy_name(tmp_path: Path) -> None:
    path = _write_original_hdf5(tmp_path / "wnn.h5", hash_param=19)

    assert model_store.load_model(path).hash_param == 19


@pytest.mark.parametrize(
    "missing, reported",
    [
        ("num_classes", "num_classes"),
        ("num_filter_hashes", "num_filter_hashes"),
        ("p", "hash_param"),
        ("bloom_filters", "bloom_filters"),
        ("input_order", "input_order"),
        ("binarization_thresholds", "binarization_thresholds"),
    ],
)
def test_missing_fields_raise_format_error(tmp_path: Path, missing: str, reported: str) -> None:
    path = _write_original_hdf5(tmp_path / "wnn.h5", drop=missing)

    with pytest.raises(FormatError, match=rf"required fields: (.*, )?{reported}\b"):
        model_store.load_model(path)


def test_infinite_scalar_raises_format_error(tmp_path: Path) -> None:
    path = _write_original_hdf5(tmp_path / "wnn.h5")
    with h5py.File(path, "a") as handle:
        handle.attrs["num_filter_hashes"] = np.float64("inf")

    with pytest.raises(FormatError, match="num_hashes"):
        model_store.load_model(path)


def test_group_in_place_of_dataset_raises_format_error(tmp_path: Path) -> None:
    path = _write_original_hdf5(tmp_path / "wnn.h5", drop="input_order")
    with h5py.File(path, "a") as handle:
        handle.create_group("input_order")

    with pytest.raises(FormatError):
        model_store.load_model(path)


def test_filter_shape_mismatch_raises_shape_error(tmp_path: Path) -> None:
    path = _write_original_hdf5(
        tmp_path / "wnn.h5", bloom_filters=np.ones((2, 2, 17), dtype=bool)
    )

    with pytest.raises(ShapeError):
        model_store.load_model(path)


def test_unsupported_hash_scheme_is_refused(tmp_path: Path) -> None:
    path = _write_original_hdf5(tmp_path / "wnn.h5", hash_scheme=2)

    with pytest.raises(FormatError, match="hash scheme"):
        model_store.load_model(path)


def test_unknown_container_suffix(tmp_path: Path) -> None:
    path = tmp_path / "model.npz"
    path.write_bytes(b"")

    with pytest.raises(FormatError):
        model_store.load_model(path)


def test_missing_file_propagates_file_not_found(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        model_store.load_model(tmp_path / "absent.h5")


def _safetensors_tensors() -> dict:
    return {
        "bloom_filters": np.zeros((1, 1, 16), dtype=bool),
        "binarization_thresholds": np.full((2, 2, 1), 0.5, dtype=np.float32),
        "input_order": np.array([3, 2, 1, 0], dtype=np.uint64),
    }


def _safetensors_metadata(**overrides) -> dict:
    metadata = {
        "num_classes": "1",
        "num_inputs": "4",
        "bits_per_input": "1",
        "num_filter_inputs": "4",
        "num_filter_entries": "16",
        "num_filter_hashes": "1",
        "hash_param": "17",
    }
    metadata.update(overrides)
    return metadata


def test_safetensors_ignores_unrelated_metadata(tmp_path: Path) -> None:
    path = tmp_path / "model.safetensors"
    save_file(_safetensors_tensors(), str(path), metadata=_safetensors_metadata(format="np"))

    model = model_store.load_model(path)

    assert model.num_filters == 1
    np.testing.assert_allclose(model.thresholds, 127.5)


def test_safetensors_non_integer_scalar(tmp_path: Path) -> None:
    path = tmp_path / "model.safetensors"
    save_file(_safetensors_tensors(), str(path), metadata=_safetensors_metadata(num_classes="one"))

    with pytest.raises(FormatError, match="num_classes"):
        model_store.load_model(path)


def test_corrupt_safetensors_raises_format_error(tmp_path: Path) -> None:
    path = tmp_path / "model.safetensors"
    path.write_bytes(b"definitely not a safetensors payload")

    with pytest.raises(FormatError):
        model_store.load_model(path)


def test_model_from_arrays_rejects_non_numeric_thresholds() -> None:
    scalars, tensors = model_store.model_to_arrays(make_model())
    tensors["binarization_thresholds"] = np.full(
        tensors["binarization_thresholds"].shape, "x", dtype=object
    )

    with pytest.raises(FormatError):
        model_store.model_from_arrays(scalars, tensors)
