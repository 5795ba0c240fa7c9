"""Additive sharing, ReLU boolean circuits, network builders and inference scoring for private inference."""

__version__ = "0.1.0"
__all__ = ["additive_share", "gc", "networks", "inference"]