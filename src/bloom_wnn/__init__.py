"""Inference engine for Bloom-filter weightless neural network classifiers."""

from __future__ import annotations

import importlib
from types import ModuleType
from typing import TYPE_CHECKING

__version__ = "0.1.0"

__all__ = ["cli", "inference", "tools"]


def __getattr__(name: str) -> ModuleType:
    """Lazily import subpackages so the CLI does not pull in every loader."""

    if name in __all__:
        module = importlib.import_module(f"{__name__}.{name}")
        globals()[name] = module
        return module
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


if TYPE_CHECKING:  # pragma: no cover - imported for static analyzers
    from . import cli, inference, tools  # noqa: F401
