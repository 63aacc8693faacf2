"""Command line interfaces for bloom-wnn."""

from .wnn_classify import main as classify_main

__all__ = ["classify_main"]
