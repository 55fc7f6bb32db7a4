"""Command-line interface for ImproVe."""

from .main import cli

__all__ = ["cli"]
