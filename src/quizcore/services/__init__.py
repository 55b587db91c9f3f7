"""Command-line entry points."""

from . import cli

__all__ = ["cli"]
