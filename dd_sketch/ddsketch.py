# DDSketch: relative-error streaming quantile sketch (Python)
# - Positive values go to ``store``, negative values (by magnitude) to
#   ``negative_store``, values too close to 0 to ``zero_count``
# - Exact summary stats (count, sum, min, max) alongside bucketed quantiles
# - Mergeable across sketches sharing the same key mapping
# Python 3.9+

from __future__ import annotations
import math
from typing import Iterable, List, Optional

from .exceptions import InvalidArgumentError, InvalidSketchMergeError
from .mapping import KeyMapping, LogarithmicMapping
from .store import CollapsingHighestDenseStore, CollapsingLowestDenseStore, DenseStore, Store

# ------------------------------ Tunable constants ------------------------------
DEFAULT_REL_ACC: float = 0.01   # "alpha" in the paper
DEFAULT_BIN_LIMIT: int = 2048   # per-store cap of the collapsing variants


class BaseDDSketch:
    """
    Quantile sketch with relative-error guarantees, composed from a key mapping
    and two stores.

    With a relative accuracy of 1%, if the true quantile value is 100 the
    estimate lies in [99, 101]; if it is 1000 the estimate lies in [990, 1010].

    Values are mapped to bins by ``mapping`` and the sketch only counts the
    weight of each bin. Memory grows with the range covered by the data rather
    than with the number of values: at 2% accuracy, about 275 bins cover
    durations from 1 millisecond to 1 minute. Collapsing stores put a hard cap
    on the number of bins.

    Paper:
      - Masson, Rim, Lee. "DDSketch: A fast and fully-mergeable quantile sketch
        with relative-error guarantees." VLDB 2019.

    Args:
      mapping: maps values to bin keys.
      store: bins for positive values.
      negative_store: bins for the magnitudes of negative values.
      zero_count: weight of values too close to zero to be mapped.

    Public API:
      add(val, weight=1.0), extend(vals), get_quantile_value(q),
      get_quantile_values(qs), merge(other), copy(other), mergeable(other),
      count, zero_count, sum, min, max, avg, num_values
    """

    __slots__ = ("mapping", "store", "negative_store", "zero_count", "count", "min", "max", "_sum")

    def __init__(
        self,
        mapping: KeyMapping,
        store: Store,
        negative_store: Store,
        zero_count: float = 0.0,
    ):
        self.mapping = mapping
        self.store = store
        self.negative_store = negative_store
        self.zero_count = float(zero_count)

        self.count = self.negative_store.count + self.zero_count + self.store.count
        self.min = float("+inf")
        self.max = float("-inf")
        self._sum = 0.0

    def __repr__(self) -> str:
        return (
            f"{self.name}(store={self.store!r}, negative_store={self.negative_store!r}, "
            f"zero_count={self.zero_count}, count={self.count}, sum={self._sum}, "
            f"min={self.min}, max={self.max})"
        )

    # ------------------------------ Read accessors ------------------------------
    @property
    def name(self) -> str:
        return "DDSketch"

    @property
    def relative_accuracy(self) -> float:
        return self.mapping.relative_accuracy

    @property
    def num_values(self) -> float:
        """Total weight added to the sketch."""
        return self.count

    @property
    def sum(self) -> float:
        """Exact weighted sum of the values added to the sketch."""
        return self._sum

    @property
    def avg(self) -> float:
        """Exact weighted mean; ``nan`` while the sketch is empty."""
        if self.count == 0:
            return math.nan
        return self._sum / self.count

    # ------------------------------- Public API --------------------------------
    def add(self, val: float, weight: float = 1.0) -> None:
        """Ingest ``val`` with a positive ``weight``."""
        if math.isnan(val) or math.isinf(val):
            raise InvalidArgumentError("value must be finite")
        if math.isnan(weight) or math.isinf(weight):
            raise InvalidArgumentError("weight must be finite")
        if weight <= 0.0:
            raise InvalidArgumentError("weight must be positive")

        if val > self.mapping.min_possible:
            self.store.add(self.mapping.key(val), weight)
        elif val < -self.mapping.min_possible:
            self.negative_store.add(self.mapping.key(-val), weight)
        else:
            self.zero_count += weight

        self.count += weight
        self._sum += val * weight
        if val < self.min:
            self.min = val
        if val > self.max:
            self.max = val

    def extend(self, vals: Iterable[float]) -> None:
        for val in vals:
            self.add(val)

    def get_quantile_value(self, quantile: float) -> Optional[float]:
        """Return the approximate value at ``quantile``.

        Returns ``None`` when ``quantile`` is outside [0, 1] or the sketch is
        empty.
        """
        if quantile < 0 or quantile > 1 or self.count == 0:
            return None

        rank = quantile * (self.count - 1)
        if rank < self.negative_store.count:
            # negative values are stored by magnitude, so rank from the top
            reversed_rank = self.negative_store.count - rank - 1
            key = self.negative_store.key_at_rank(reversed_rank, lower=False)
            return -self.mapping.value(key)
        if rank < self.zero_count + self.negative_store.count:
            return 0.0
        key = self.store.key_at_rank(rank - self.zero_count - self.negative_store.count)
        return self.mapping.value(key)

    def get_quantile_values(self, quantiles: Iterable[float]) -> List[Optional[float]]:
        return [self.get_quantile_value(q) for q in quantiles]

    def mergeable(self, other: "BaseDDSketch") -> bool:
        """Two sketches can be merged only if their mappings produce the same keys."""
        return self.mapping == other.mapping

    def merge(self, sketch: "BaseDDSketch") -> None:
        """Fold ``sketch`` into this one; ``sketch`` is not modified.

        Afterwards this sketch encodes the values added to both sketches.
        """
        self._check_compatible(sketch)

        if sketch.count == 0:
            return
        if self.count == 0:
            self.copy(sketch)
            return

        self.store.merge(sketch.store)
        self.negative_store.merge(sketch.negative_store)
        self.zero_count += sketch.zero_count

        self.count += sketch.count
        self._sum += sketch.sum
        if sketch.min < self.min:
            self.min = sketch.min
        if sketch.max > self.max:
            self.max = sketch.max

    def copy(self, sketch: "BaseDDSketch") -> None:
        """Overwrite this sketch with a deep copy of ``sketch``."""
        self._check_compatible(sketch)
        self.store.copy(sketch.store)
        self.negative_store.copy(sketch.negative_store)
        self.zero_count = sketch.zero_count
        self.min = sketch.min
        self.max = sketch.max
        self.count = sketch.count
        self._sum = sketch.sum

    # ------------------------------- Internals ---------------------------------
    def _check_compatible(self, sketch: "BaseDDSketch") -> None:
        if not isinstance(sketch, BaseDDSketch):
            raise TypeError(f"expected a DDSketch, got {type(sketch).__name__}")
        if not self.mergeable(sketch):
            raise InvalidSketchMergeError(
                "Cannot merge two sketches with different relative accuracy"
            )

    def _restore_summary(self, count: float, total: float, minimum: float, maximum: float) -> None:
        """Set the exact summary stats; used when rebuilding a sketch from bytes."""
        self.count = count
        self._sum = total
        self.min = minimum
        self.max = maximum


class DDSketch(BaseDDSketch):
    """DDSketch with a logarithmic mapping and unbounded dense stores.

    Memory-optimal for a given accuracy. The number of bins stays reasonable
    unless the data has tails heavier than any subexponential distribution.
    """

    __slots__ = ()

    def __init__(self, relative_accuracy: Optional[float] = None):
        if relative_accuracy is None:
            relative_accuracy = DEFAULT_REL_ACC
        super().__init__(
            mapping=LogarithmicMapping(relative_accuracy),
            store=DenseStore(),
            negative_store=DenseStore(),
        )


class LogCollapsingLowestDenseDDSketch(BaseDDSketch):
    """DDSketch with at most ``bin_limit`` bins per store.

    Once the limit is reached the lowest bins are collapsed, so accuracy is
    lost on the lowest quantiles. With the default limit this is unlikely
    unless the data has tails heavier than any subexponential distribution.
    """

    __slots__ = ()

    def __init__(self, relative_accuracy: Optional[float] = None, bin_limit: Optional[int] = None):
        if relative_accuracy is None:
            relative_accuracy = DEFAULT_REL_ACC
        if bin_limit is None:
            bin_limit = DEFAULT_BIN_LIMIT
        super().__init__(
            mapping=LogarithmicMapping(relative_accuracy),
            store=CollapsingLowestDenseStore(bin_limit),
            negative_store=CollapsingLowestDenseStore(bin_limit),
        )


class LogCollapsingHighestDenseDDSketch(BaseDDSketch):
    """DDSketch with at most ``bin_limit`` bins per store.

    Once the limit is reached the highest bins are collapsed, so accuracy is
    lost on the highest quantiles.
    """

    __slots__ = ()

    def __init__(self, relative_accuracy: Optional[float] = None, bin_limit: Optional[int] = None):
        if relative_accuracy is None:
            relative_accuracy = DEFAULT_REL_ACC
        if bin_limit is None:
            bin_limit = DEFAULT_BIN_LIMIT
        super().__init__(
            mapping=LogarithmicMapping(relative_accuracy),
            store=CollapsingHighestDenseStore(bin_limit),
            negative_store=CollapsingHighestDenseStore(bin_limit),
        )


__all__ = [
    "DEFAULT_REL_ACC",
    "DEFAULT_BIN_LIMIT",
    "BaseDDSketch",
    "DDSketch",
    "LogCollapsingLowestDenseDDSketch",
    "LogCollapsingHighestDenseDDSketch",
]
