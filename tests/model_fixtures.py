from __future__ import annotations

import numpy as np

from bloom_wnn.inference.model import Model


def make_model(
    *,
    num_classes: int = 3,
    width: int = 4,
    bits_per_input: int = 2,
    tuple_width: int = 4,
    filter_size: int = 32,
    num_hashes: int = 2,
    hash_param: int = 1021,
    fill: str = "random",
    seed: int = 0,
) -> Model:
    """Build a synthetic, fully valid model.

    ``fill`` selects the Bloom filter contents: ``"ones"``, ``"zeros"`` or
    ``"random"`` (each bit set with probability one half).
    """

    rng = np.random.default_rng(seed)
    num_inputs = width * width
    num_filters = num_inputs * bits_per_input // tuple_width
    shape = (num_classes, num_filters, filter_size)
    if fill == "ones":
        bloom = np.ones(shape, dtype=bool)
    elif fill == "zeros":
        bloom = np.zeros(shape, dtype=bool)
    else:
        bloom = rng.random(shape) < 0.5
    thresholds = np.sort(
        rng.uniform(1.0, 255.0, size=(width, width, bits_per_input)), axis=-1
    ).astype(np.float32)
    return Model(
        num_classes=num_classes,
        num_inputs=num_inputs,
        bits_per_input=bits_per_input,
        tuple_width=tuple_width,
        filter_size=filter_size,
        num_hashes=num_hashes,
        hash_param=hash_param,
        bloom_filters=bloom,
        thresholds=thresholds,
        input_order=rng.permutation(num_inputs * bits_per_input),
    )


def random_images(model: Model, count: int, seed: int = 1) -> list[np.ndarray]:
    rng = np.random.default_rng(seed)
    return [
        rng.integers(0, 256, size=(model.width, model.width), dtype=np.uint8)
        for _ in range(count)
    ]


def tiny_model(bloom_bits: list[int], *, num_hashes: int = 1) -> Model:
    """The 2x2, single-filter model used by the end-to-end checks.

    ``C=1, K=4, M=16, P=17`` with thresholds of 128 and input order
    ``[3, 2, 1, 0]``; ``bloom_bits`` lists the set filter entries.
    """

    bloom = np.zeros((1, 1, 16), dtype=bool)
    bloom[0, 0, bloom_bits] = True
    return Model(
        num_classes=1,
        num_inputs=4,
        bits_per_input=1,
        tuple_width=4,
        filter_size=16,
        num_hashes=num_hashes,
        hash_param=17,
        bloom_filters=bloom,
        thresholds=np.full((2, 2, 1), 128.0, dtype=np.float32),
        input_order=np.array([3, 2, 1, 0], dtype=np.uint64),
    )


TINY_IMAGE = np.array([[200, 10], [130, 50]], dtype=np.uint8)
