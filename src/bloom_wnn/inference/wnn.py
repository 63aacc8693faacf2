"""Per-class Bloom-filter discriminators and the voting classifier."""

from __future__ import annotations

import logging
from typing import Iterable, List, NamedTuple

import numpy as np

from .encoding import Permuter, encode
from .hashing import TupleHasher
from .model import Model
from .wnn_common import ShapeMismatch

logger = logging.getLogger(__name__)


class Prediction(NamedTuple):
    """Winning class index and the vote of every class."""

    label: int
    votes: np.ndarray

    @property
    def margin(self) -> int:
        """Votes separating the winner from the runner-up (0 on a tie).

        A single-class model has no runner-up; its margin is the vote itself.
        """

        if self.votes.shape[0] < 2:
            return int(self.votes[self.label])
        runner_up = np.partition(self.votes, -2)[-2]
        return int(self.votes[self.label] - runner_up)


def _check_addresses(addresses, num_filters: int, num_hashes: int) -> np.ndarray:
    addresses = np.asarray(addresses)
    if addresses.shape != (num_filters, num_hashes):
        raise ShapeMismatch(
            f"Expected addresses of shape {(num_filters, num_hashes)}, got {addresses.shape}"
        )
    return addresses


class Discriminator:
    """The Bloom filters of a single class."""

    def __init__(self, model: Model, class_index: int) -> None:
        if not 0 <= class_index < model.num_classes:
            raise IndexError(
                f"class_index {class_index} out of range for {model.num_classes} classes"
            )
        self.class_index = class_index
        self.num_hashes = model.num_hashes
        self._filters = model.bloom_filters[class_index]
        self._rows = np.arange(model.num_filters)[:, np.newaxis]

    def activations(self, addresses) -> np.ndarray:
        """A filter activates iff every one of its hashed bits is set."""

        addresses = _check_addresses(addresses, self._rows.shape[0], self.num_hashes)
        return self._filters[self._rows, addresses].all(axis=1)

    def vote(self, addresses) -> int:
        return int(np.count_nonzero(self.activations(addresses)))


class WnnClassifier:
    """Run the full encode, permute, hash and vote pipeline for one model.

    Instances hold no per-call state and may be shared between threads.
    """

    def __init__(self, model: Model) -> None:
        self.model = model
        self.permuter = Permuter(model)
        self.hasher = TupleHasher(model)
        self._rows = np.arange(model.num_filters)[:, np.newaxis]

    def discriminator(self, class_index: int) -> Discriminator:
        return Discriminator(self.model, class_index)

    def addresses(self, image) -> np.ndarray:
        bits = encode(self.model, image)
        return self.hasher.addresses(self.permuter.apply(bits))

    def votes(self, image) -> np.ndarray:
        addresses = self.addresses(image)
        # [C, F, H] gather across every class at once.
        hits = self.model.bloom_filters[:, self._rows, addresses]
        return np.count_nonzero(hits.all(axis=2), axis=1).astype(np.int64)

    def classify(self, image) -> Prediction:
        votes = self.votes(image)
        # argmax returns the first maximum, so ties go to the lowest index.
        label = int(np.argmax(votes))
        logger.debug("Predicted class %d with votes %s", label, votes.tolist())
        return Prediction(label=label, votes=votes)

    def classify_batch(self, images: Iterable) -> List[Prediction]:
        return [self.classify(image) for image in images]


def classify(model: Model, image) -> Prediction:
    """Classify ``image`` with ``model``; equivalent to ``WnnClassifier(model).classify``."""

    return WnnClassifier(model).classify(image)


__all__ = ["Discriminator", "Prediction", "WnnClassifier", "classify"]
