# Key mappings for DDSketch
# A key mapping turns a positive float into an integer bucket key and back,
# with a relative-accuracy guarantee:
#   for min_possible < v < max_possible:  |value(key(v)) - v| / v < alpha
# Three strategies trade CPU for memory optimality:
#   - LogarithmicMapping            exact log, fewest buckets
#   - LinearlyInterpolatedMapping   frexp + linear interpolation of log2
#   - CubicallyInterpolatedMapping  frexp + cubic interpolation of log2

from __future__ import annotations
import enum
import math
import sys
from abc import ABC, abstractmethod
from typing import Type, Union

from .exceptions import InvalidArgumentError


class Interpolation(enum.IntEnum):
    """Interpolation kinds of the reference wire format.

    ``QUADRATIC`` is part of the enumeration but has no mapping behind it.
    """

    NONE = 0
    LINEAR = 1
    QUADRATIC = 2
    CUBIC = 3


class KeyMapping(ABC):
    """
    Map positive values to integer keys under a relative-accuracy contract.

    Args:
      relative_accuracy: the accuracy guarantee, alpha in the paper (0 < alpha < 1).
      offset: shift applied to every key. Keys are truncated towards zero, so
        ``key(1.0) == int(offset)``: 2.7 gives 2 and -2.7 gives -2, not the
        rounded 3 and -3.

    Attributes:
      gamma: base of the exponential buckets, (1 + alpha) / (1 - alpha).
      min_possible: smallest value distinguishable from 0.
      max_possible: largest value the mapping can handle.

    Instances are immutable once built.
    """

    interpolation: Interpolation = Interpolation.NONE

    __slots__ = ("_relative_accuracy", "_offset", "_gamma", "_multiplier", "_min_possible", "_max_possible")

    def __init__(self, relative_accuracy: float, offset: float = 0.0):
        if not (0.0 < relative_accuracy < 1.0):
            raise InvalidArgumentError("relative accuracy must be between 0 and 1")
        self._relative_accuracy = float(relative_accuracy)
        self._offset = float(offset)
        self._set_gamma(1 + 2 * relative_accuracy / (1 - relative_accuracy))

    @classmethod
    def from_gamma_offset(cls, gamma: float, offset: float = 0.0) -> "KeyMapping":
        """Build a mapping from the (gamma, offset) pair stored on the wire.

        The wire ``gamma`` is kept bit for bit, so the result compares equal to
        (and produces the same keys as) the mapping that was serialized.
        """
        mapping = cls((gamma - 1.0) / (gamma + 1.0), offset=offset)
        mapping._set_gamma(float(gamma))
        return mapping

    # ------------------------------ Read accessors ------------------------------
    @property
    def relative_accuracy(self) -> float:
        return self._relative_accuracy

    @property
    def offset(self) -> float:
        return self._offset

    @property
    def gamma(self) -> float:
        return self._gamma

    @property
    def min_possible(self) -> float:
        return self._min_possible

    @property
    def max_possible(self) -> float:
        return self._max_possible

    # ------------------------------- Public API --------------------------------
    def key(self, value: float) -> int:
        """Return the key of the bucket holding ``value`` (``value > 0``)."""
        return int(math.ceil(self._log_gamma(value)) + self._offset)

    def value(self, key: int) -> float:
        """Return the representative value of the bucket ``key``.

        The ``2 / (1 + gamma)`` factor centres the value inside the bucket's
        error band instead of returning the bucket's upper bound.
        """
        return self._pow_gamma(key - self._offset) * (2.0 / (1 + self._gamma))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, KeyMapping):
            return NotImplemented
        return type(self) is type(other) and self._gamma == other._gamma and self._offset == other._offset

    def __hash__(self) -> int:
        return hash((type(self).__name__, self._gamma, self._offset))

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(relative_accuracy={self._relative_accuracy!r}, "
            f"offset={self._offset!r})"
        )

    # ------------------------------- Internals ---------------------------------
    def _set_gamma(self, gamma: float) -> None:
        """Derive every other parameter from ``gamma`` alone."""
        self._gamma = gamma
        # gamma - 1 is exact for gamma <= 2
        self._multiplier = self._scale_multiplier(1 / math.log1p(gamma - 1))
        self._min_possible = sys.float_info.min * gamma
        self._max_possible = sys.float_info.max / gamma

    def _scale_multiplier(self, multiplier: float) -> float:
        return multiplier

    @abstractmethod
    def _log_gamma(self, value: float) -> float:
        """Return (an approximation of) the logarithm of ``value`` base gamma."""

    @abstractmethod
    def _pow_gamma(self, value: float) -> float:
        """Return (an approximation of) gamma to the power ``value``."""


class LogarithmicMapping(KeyMapping):
    """Memory-optimal mapping: uses the true logarithm, so for a given accuracy
    it needs the fewest keys to cover a range of values, at the cost of one
    ``log`` per sample.
    """

    interpolation = Interpolation.NONE

    __slots__ = ()

    def _scale_multiplier(self, multiplier: float) -> float:
        return multiplier * math.log(2)

    def _log_gamma(self, value: float) -> float:
        return math.log2(value) * self._multiplier

    def _pow_gamma(self, value: float) -> float:
        return 2 ** (value / self._multiplier)


class LinearlyInterpolatedMapping(KeyMapping):
    """Fast approximation of :class:`LogarithmicMapping`.

    The integer part of ``log2`` is read from the float's exponent and the
    logarithm is linearly interpolated between consecutive powers of two.
    """

    interpolation = Interpolation.LINEAR

    __slots__ = ()

    @staticmethod
    def _log2_approx(value: float) -> float:
        # frexp: value = m * 2**e with m in [0.5, 1); rewrite as (s + 1) * 2**(e - 1)
        mantissa, exponent = math.frexp(value)
        significand = 2 * mantissa - 1
        return significand + (exponent - 1)

    @staticmethod
    def _exp2_approx(value: float) -> float:
        exponent = math.floor(value) + 1
        mantissa = (value - exponent + 2) / 2.0
        return math.ldexp(mantissa, exponent)

    def _log_gamma(self, value: float) -> float:
        return self._log2_approx(value) * self._multiplier

    def _pow_gamma(self, value: float) -> float:
        return self._exp2_approx(value / self._multiplier)


def _cbrt(x: float) -> float:
    y = abs(x) ** (1.0 / 3.0)
    return -y if x < 0 else y


class CubicallyInterpolatedMapping(KeyMapping):
    """Approximation of :class:`LogarithmicMapping` using a cubic polynomial
    between consecutive powers of two.

    Closer to memory-optimal than linear interpolation and still cheaper than
    an exact logarithm. The inverse solves the cubic with Cardano's formula.
    """

    interpolation = Interpolation.CUBIC

    # Coefficients of the interpolating polynomial on the significand s in [0, 1).
    A: float = 6.0 / 35.0
    B: float = -3.0 / 5.0
    C: float = 10.0 / 7.0

    __slots__ = ()

    def _scale_multiplier(self, multiplier: float) -> float:
        return multiplier / self.C

    def _cubic_log2_approx(self, value: float) -> float:
        mantissa, exponent = math.frexp(value)
        s = 2 * mantissa - 1
        return ((self.A * s + self.B) * s + self.C) * s + (exponent - 1)

    def _cubic_exp2_approx(self, value: float) -> float:
        A, B, C = self.A, self.B, self.C
        exponent = math.floor(value)
        delta_0 = B * B - 3 * A * C
        delta_1 = 2 * B * B * B - 9 * A * B * C - 27 * A * A * (value - exponent)
        cardano = _cbrt((delta_1 - (delta_1 * delta_1 - 4 * delta_0 * delta_0 * delta_0) ** 0.5) / 2)
        significand_plus_one = -(B + cardano + delta_0 / cardano) / (3 * A) + 1
        mantissa = significand_plus_one / 2
        return math.ldexp(mantissa, exponent + 1)

    def _log_gamma(self, value: float) -> float:
        return self._cubic_log2_approx(value) * self._multiplier

    def _pow_gamma(self, value: float) -> float:
        return self._cubic_exp2_approx(value / self._multiplier)


_MAPPINGS_BY_INTERPOLATION = {
    Interpolation.NONE: LogarithmicMapping,
    Interpolation.LINEAR: LinearlyInterpolatedMapping,
    Interpolation.CUBIC: CubicallyInterpolatedMapping,
}


def mapping_class_for(interpolation: Union[Interpolation, int, str]) -> Type[KeyMapping]:
    """Resolve an interpolation (member, number or name) to its mapping class."""
    try:
        if isinstance(interpolation, str):
            kind = Interpolation[interpolation.upper()]
        else:
            kind = Interpolation(interpolation)
    except (KeyError, ValueError):
        raise InvalidArgumentError(f"unknown interpolation: {interpolation!r}") from None
    if kind not in _MAPPINGS_BY_INTERPOLATION:
        raise InvalidArgumentError(f"{kind.name} interpolation is not implemented")
    return _MAPPINGS_BY_INTERPOLATION[kind]


def mapping_from_interpolation(
    interpolation: Union[Interpolation, int, str],
    relative_accuracy: float,
    offset: float = 0.0,
) -> KeyMapping:
    return mapping_class_for(interpolation)(relative_accuracy, offset=offset)


__all__ = [
    "Interpolation",
    "KeyMapping",
    "LogarithmicMapping",
    "LinearlyInterpolatedMapping",
    "CubicallyInterpolatedMapping",
    "mapping_class_for",
    "mapping_from_interpolation",
]
