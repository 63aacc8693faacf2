"""Loaders for persisted models and input images."""

__all__ = ["image_source", "model_store"]
