"""Exceptions raised by :mod:`dd_sketch`."""
from __future__ import annotations


class DDSketchError(Exception):
    """Base class for every error raised by the package."""


class InvalidArgumentError(DDSketchError, ValueError):
    """An argument is outside the domain the sketch accepts.

    Raised for relative accuracies outside ``(0, 1)``, non-positive or
    non-finite weights, non-finite values and invalid bin limits.
    """


class InvalidSketchMergeError(DDSketchError, ValueError):
    """Two sketches cannot be combined because their key mappings differ."""


__all__ = ["DDSketchError", "InvalidArgumentError", "InvalidSketchMergeError"]
