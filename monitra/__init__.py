"""Monitra: self-learning product price extraction."""

__version__ = "1.0.0"
