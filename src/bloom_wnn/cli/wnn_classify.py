"""Classify image files with a persisted Bloom-filter model.

The model is loaded and validated once, then every image given on the
command line is decoded and classified independently. Results are printed as
a table (default) or JSON. With ``--labels-from-parent`` each image's parent
directory name is taken as its true class index (the ``<label>/<image>``
layout of the usual MNIST-style exports) and the summary reports accuracy.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from bloom_wnn.inference.wnn import WnnClassifier
from bloom_wnn.inference.wnn_common import WnnError
from bloom_wnn.tools.image_source import load_image
from bloom_wnn.tools.model_store import load_model

PROG = "bloom-wnn-classify"
VERBOSE_ENV = "BLOOM_WNN_VERBOSE"

logger = logging.getLogger(__name__)


class LabelError(ValueError):
    """Raised when an expected label cannot be derived from an image path."""


@dataclass
class ImageResult:
    path: Path
    label: int
    votes: List[int]
    margin: int
    expected: Optional[int] = None

    @property
    def correct(self) -> Optional[bool]:
        if self.expected is None:
            return None
        return self.expected == self.label

    def to_dict(self) -> Dict[str, object]:
        return {
            "path": str(self.path),
            "label": self.label,
            "votes": list(self.votes),
            "margin": self.margin,
            "expected": self.expected,
        }


@dataclass
class ClassificationSummary:
    model_path: Path
    geometry: Dict[str, int]
    results: List[ImageResult] = field(default_factory=list)

    @property
    def labelled(self) -> List[ImageResult]:
        return [result for result in self.results if result.expected is not None]

    @property
    def accuracy(self) -> Optional[float]:
        labelled = self.labelled
        if not labelled:
            return None
        return sum(1 for result in labelled if result.correct) / len(labelled)

    def to_dict(self) -> Dict[str, object]:
        return {
            "model": str(self.model_path),
            "geometry": dict(self.geometry),
            "results": [result.to_dict() for result in self.results],
            "accuracy": self.accuracy,
        }


def format_summary(summary: ClassificationSummary) -> str:
    """Return a human-friendly table of classification results."""

    geometry = summary.geometry
    lines = [f"Model : {summary.model_path}"]
    lines.append(
        f"Shape : {geometry['num_classes']} classes, {geometry['num_filters']} filters, "
        f"{geometry['filter_size']} entries, {geometry['num_hashes']} hashes"
    )
    lines.append("")
    if not summary.results:
        lines.append("  <no images classified>")
        return "\n".join(lines)

    path_width = max(len("Image"), *(len(str(result.path)) for result in summary.results))
    header = f"  {'Image'.ljust(path_width)}  Label  Votes  Margin  Expected"
    lines.append(header)
    lines.append("  " + "-" * (len(header) - 2))
    for result in summary.results:
        expected = "-" if result.expected is None else str(result.expected)
        lines.append(
            f"  {str(result.path).ljust(path_width)}  {result.label:>5}  "
            f"{result.votes[result.label]:>5}  {result.margin:>6}  {expected:>8}"
        )

    accuracy = summary.accuracy
    if accuracy is not None:
        correct = sum(1 for result in summary.labelled if result.correct)
        lines.append("")
        lines.append(f"Accuracy: {correct}/{len(summary.labelled)} ({accuracy:.2%})")
    return "\n".join(lines)


def render_summary(summary: ClassificationSummary, *, format: str = "table") -> str:
    normalized = format.lower()
    if normalized == "table":
        return format_summary(summary)
    if normalized == "json":
        return json.dumps(summary.to_dict(), indent=2, sort_keys=True)
    raise ValueError(f"Unsupported summary format: {format}")


def label_from_parent(path: Path) -> int:
    name = path.parent.name
    try:
        label = int(name)
    except ValueError as exc:
        raise LabelError(f"Cannot derive a class label from directory {name!r} of {path}") from exc
    if label < 0:
        raise LabelError(f"Class label from directory {name!r} of {path} is negative")
    return label


def classify_files(
    model_path: Path,
    images: Iterable[Path],
    *,
    labels_from_parent: bool = False,
) -> ClassificationSummary:
    model = load_model(model_path)
    classifier = WnnClassifier(model)
    summary = ClassificationSummary(model_path=model_path, geometry=model.geometry())

    for image_path in images:
        expected = label_from_parent(image_path) if labels_from_parent else None
        prediction = classifier.classify(load_image(image_path))
        logger.info("%s -> class %d (margin %d)", image_path, prediction.label, prediction.margin)
        summary.results.append(
            ImageResult(
                path=image_path,
                label=prediction.label,
                votes=prediction.votes.tolist(),
                margin=prediction.margin,
                expected=expected,
            )
        )
    return summary


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=PROG,
        description="Classify images with a Bloom-filter weightless neural network",
    )
    parser.add_argument(
        "images",
        nargs="+",
        type=Path,
        help="Image files to classify",
    )
    parser.add_argument(
        "--model",
        type=Path,
        required=True,
        help="Model file (.h5/.hdf5 or .safetensors)",
    )
    parser.add_argument(
        "--labels-from-parent",
        action="store_true",
        help="Treat each image's parent directory name as its class and report accuracy",
    )
    parser.add_argument(
        "--format",
        choices=("table", "json"),
        default="table",
        help="Format to use when rendering the results",
    )
    parser.add_argument(
        "--output",
        type=Path,
        help="Optional path to also write the rendered results to",
    )
    parser.add_argument(
        "--verbose",
        dest="verbose",
        action="store_true",
        default=None,
        help=f"Enable verbose logging (can also set {VERBOSE_ENV}=1)",
    )
    parser.add_argument(
        "--quiet",
        dest="verbose",
        action="store_false",
        help="Disable verbose logging",
    )
    return parser


def _parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    args = _build_parser().parse_args(list(argv) if argv is not None else None)
    args.model = args.model.expanduser()
    args.images = [path.expanduser() for path in args.images]
    if args.output is not None:
        args.output = args.output.expanduser()
    if args.verbose is None:
        env_value = os.environ.get(VERBOSE_ENV)
        args.verbose = env_value is not None and env_value.lower() not in {"", "0", "false", "no"}
    return args


def main(argv: Optional[Iterable[str]] = None) -> int:
    args = _parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.INFO)

    try:
        summary = classify_files(
            args.model,
            args.images,
            labels_from_parent=args.labels_from_parent,
        )
    except (WnnError, LabelError, OSError) as exc:
        print(f"{PROG}: {exc}", file=sys.stderr)
        return 1

    rendered = render_summary(summary, format=args.format)
    if args.output is not None:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        text = rendered if rendered.endswith("\n") else rendered + "\n"
        args.output.write_text(text, encoding="utf-8")
    print(rendered)
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
