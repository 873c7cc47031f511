# Bin stores for DDSketch
# A store maps integer keys to weights. Dense stores keep one counter per key
# in a contiguous list addressed by ``index = key - offset``:
#   - DenseStore                   unbounded; grows by whole chunks and recentres
#   - CollapsingLowestDenseStore   at most ``bin_limit`` bins; folds the lowest keys
#   - CollapsingHighestDenseStore  at most ``bin_limit`` bins; folds the highest keys
# Every variant moves its contents through the single ``shift_bins`` primitive
# and conserves ``count == sum(bins)`` through growth, collapse and merge.

from __future__ import annotations
import logging
import math
from abc import ABC, abstractmethod
from typing import Iterator, List, Optional, Tuple, Union

from .exceptions import InvalidArgumentError

logger = logging.getLogger(__name__)

# Stores start empty and grow in chunks of this many bins.
CHUNK_SIZE: int = 128

Key = Union[int, float]  # float only for the +/-inf sentinels of an empty store


class Store(ABC):
    """
    Interface shared by every store.

    Attributes:
      count: sum of the weights of all bins.
      min_key: lowest key seen so far (``+inf`` while empty).
      max_key: highest key seen so far (``-inf`` while empty).
    """

    __slots__ = ("count", "min_key", "max_key")

    def __init__(self) -> None:
        self.count: float = 0.0
        self.min_key: Key = float("+inf")
        self.max_key: Key = float("-inf")

    def is_empty(self) -> bool:
        return self.count == 0

    @abstractmethod
    def copy(self, store: "Store") -> None:
        """Overwrite this store with a copy of ``store``."""

    @abstractmethod
    def length(self) -> int:
        """Number of allocated bins."""

    @abstractmethod
    def add(self, key: int, weight: float = 1.0) -> None:
        """Add ``weight`` to the bin of ``key``, growing the range if needed."""

    @abstractmethod
    def key_at_rank(self, rank: float, lower: bool = True) -> Key:
        """Return the key holding the value at ``rank``.

        With non-empty bins ``[1, 1]`` for keys ``a < b``:

          lower=True:   a for rank in [0, 1),  b for rank in [1, 2)
          lower=False:  a for rank in (-1, 0], b for rank in (0, 1]
        """

    @abstractmethod
    def merge(self, store: "Store") -> None:
        """Fold ``store`` into this one; ``store`` is left untouched."""


class DenseStore(Store):
    """
    Store keeping a counter for every key between ``min_key`` and ``max_key``.

    Args:
      chunk_size: number of bins the list grows by.

    Attributes:
      offset: key stored at index 0, i.e. ``bins[i]`` is the weight of key ``i + offset``.
      bins: the counters; the length is always a multiple of ``chunk_size``.
    """

    __slots__ = ("chunk_size", "offset", "bins")

    def __init__(self, chunk_size: int = CHUNK_SIZE):
        super().__init__()
        if chunk_size <= 0:
            raise InvalidArgumentError("chunk_size must be > 0")
        self.chunk_size = int(chunk_size)
        self.offset = 0
        self.bins: List[float] = []

    def __repr__(self) -> str:
        pairs = ", ".join(f"{key}: {weight}" for key, weight in self.keys())
        return (
            f"{type(self).__name__}({{{pairs}}}, min_key={self.min_key}, "
            f"max_key={self.max_key}, offset={self.offset})"
        )

    # ------------------------------- Public API --------------------------------
    def copy(self, store: "DenseStore") -> None:
        self.bins = store.bins[:]
        self.count = store.count
        self.min_key = store.min_key
        self.max_key = store.max_key
        self.offset = store.offset

    def length(self) -> int:
        return len(self.bins)

    def keys(self) -> Iterator[Tuple[int, float]]:
        """Yield ``(key, weight)`` for every non-empty bin, in key order."""
        for i, weight in enumerate(self.bins):
            if weight:
                yield i + self.offset, weight

    def add(self, key: int, weight: float = 1.0) -> None:
        idx = self._get_index(key)
        self.bins[idx] += weight
        self.count += weight

    def key_at_rank(self, rank: float, lower: bool = True) -> Key:
        running = 0.0
        for i, weight in enumerate(self.bins):
            running += weight
            if (lower and running > rank) or (not lower and running >= rank + 1):
                return i + self.offset
        return self.max_key

    def merge(self, store: "DenseStore") -> None:
        if store.count == 0:
            return
        if self.count == 0:
            self.copy(store)
            return

        if store.min_key < self.min_key or store.max_key > self.max_key:
            self._extend_range(store.min_key, store.max_key)

        for key in range(int(store.min_key), int(store.max_key) + 1):
            self.bins[key - self.offset] += store.bins[key - store.offset]
        self.count += store.count

    def shift_bins(self, shift: int) -> None:
        """Move the contents by ``shift`` slots without changing their keys.

        A positive shift moves the contents towards higher indices (the last
        ``shift`` slots are dropped), a negative one towards index 0. The list
        length is unchanged and ``offset`` absorbs the move.
        """
        if shift > 0:
            self.bins = [0.0] * shift + self.bins[:-shift]
        elif shift < 0:
            self.bins = self.bins[-shift:] + [0.0] * -shift
        self.offset -= shift

    # ------------------------------- Internals ---------------------------------
    def _get_index(self, key: int) -> int:
        """Index of ``key`` in ``bins``, extending the range if necessary."""
        if key < self.min_key or key > self.max_key:
            self._extend_range(key)
        return key - self.offset

    def _get_new_length(self, new_min_key: int, new_max_key: int) -> int:
        desired_length = new_max_key - new_min_key + 1
        return self.chunk_size * math.ceil(desired_length / self.chunk_size)

    def _extend_range(self, key: int, second_key: Optional[int] = None) -> None:
        """Make room for ``key`` (and ``second_key``), then call ``_adjust``."""
        if second_key is None:
            second_key = key
        new_min_key = int(min(key, second_key, self.min_key))
        new_max_key = int(max(key, second_key, self.max_key))

        if self.length() == 0:
            self.bins = [0.0] * self._get_new_length(new_min_key, new_max_key)
            self.offset = new_min_key
            self._adjust(new_min_key, new_max_key)
        elif new_min_key >= self.offset and new_max_key < self.offset + self.length():
            # already inside the allocated window
            self.min_key = new_min_key
            self.max_key = new_max_key
        else:
            new_length = self._get_new_length(new_min_key, new_max_key)
            if new_length > self.length():
                self.bins.extend([0.0] * (new_length - self.length()))
            self._adjust(new_min_key, new_max_key)

    def _adjust(self, new_min_key: int, new_max_key: int) -> None:
        """Recentre the bins on the new range; the list is never resized here."""
        self._center_bins(new_min_key, new_max_key)
        self.min_key = new_min_key
        self.max_key = new_max_key

    def _center_bins(self, new_min_key: int, new_max_key: int) -> None:
        middle_key = new_min_key + (new_max_key - new_min_key + 1) // 2
        self.shift_bins(self.offset + self.length() // 2 - middle_key)


class _CollapsingDenseStore(DenseStore):
    """Dense store whose list never grows beyond ``bin_limit`` bins."""

    __slots__ = ("bin_limit", "is_collapsed")

    def __init__(self, bin_limit: int, chunk_size: int = CHUNK_SIZE):
        super().__init__(chunk_size=chunk_size)
        if bin_limit is None or int(bin_limit) <= 0:
            raise InvalidArgumentError("bin_limit must be a positive integer")
        self.bin_limit = int(bin_limit)
        self.is_collapsed = False

    def __repr__(self) -> str:
        pairs = ", ".join(f"{key}: {weight}" for key, weight in self.keys())
        return (
            f"{type(self).__name__}({{{pairs}}}, min_key={self.min_key}, "
            f"max_key={self.max_key}, offset={self.offset}, "
            f"bin_limit={self.bin_limit}, is_collapsed={self.is_collapsed})"
        )

    def copy(self, store: "DenseStore") -> None:
        """Overwrite this store with the contents of ``store``.

        ``bin_limit`` is never taken from ``store``: when ``store`` holds more
        bins than this store allows, its extreme keys are collapsed on the way in.
        """
        if store.length() <= self.bin_limit:
            super().copy(store)
            self.is_collapsed = getattr(store, "is_collapsed", False)
            return
        self.bins = []
        self.offset = 0
        self.count = 0.0
        self.min_key = float("+inf")
        self.max_key = float("-inf")
        self.is_collapsed = False
        self.merge(store)

    def _get_new_length(self, new_min_key: int, new_max_key: int) -> int:
        return min(super()._get_new_length(new_min_key, new_max_key), self.bin_limit)

    def _mark_collapsed(self) -> None:
        if not self.is_collapsed:
            logger.debug(
                "%s reached bin_limit=%d; extreme bins are now collapsed",
                type(self).__name__,
                self.bin_limit,
            )
        self.is_collapsed = True


class CollapsingLowestDenseStore(_CollapsingDenseStore):
    """
    Bounded dense store that folds the lowest keys into its lowest bin once the
    key range needs more than ``bin_limit`` bins. Relative accuracy is then lost
    on the lowest quantiles only.

    Args:
      bin_limit: maximum number of bins.
      chunk_size: number of bins the list grows by.
    """

    __slots__ = ()

    def _get_index(self, key: int) -> int:
        if key < self.min_key:
            if self.is_collapsed:
                return self.min_key - self.offset
            self._extend_range(key)
            if self.is_collapsed:
                return self.min_key - self.offset
        elif key > self.max_key:
            self._extend_range(key)
        return key - self.offset

    def _adjust(self, new_min_key: int, new_max_key: int) -> None:
        if new_max_key - new_min_key + 1 <= self.length():
            super()._adjust(new_min_key, new_max_key)
            return

        # Too wide: keep the top ``length`` keys and fold everything below.
        new_min_key = new_max_key - self.length() + 1
        if new_min_key >= self.max_key:
            # every existing key falls below the window
            self.offset = new_min_key
            self.min_key = new_min_key
            self.bins = [0.0] * self.length()
            self.bins[0] = self.count
        else:
            shift = self.offset - new_min_key
            if shift < 0:
                start = int(self.min_key) - self.offset
                end = new_min_key - self.offset
                collapsed = sum(self.bins[start:end])
                self.bins[start:end] = [0.0] * (end - start)
                self.bins[end] += collapsed
            self.min_key = new_min_key
            self.shift_bins(shift)
        self.max_key = new_max_key
        self._mark_collapsed()

    def merge(self, store: "DenseStore") -> None:
        if store.count == 0:
            return
        if self.count == 0 and store.length() <= self.bin_limit:
            self.copy(store)
            return

        if store.min_key < self.min_key or store.max_key > self.max_key:
            self._extend_range(store.min_key, store.max_key)

        # Weight of ``store`` below our window goes to our lowest bin.
        collapse_start = int(store.min_key) - store.offset
        collapse_end = int(min(self.min_key, store.max_key + 1)) - store.offset
        if collapse_end > collapse_start:
            self.bins[int(self.min_key) - self.offset] += sum(store.bins[collapse_start:collapse_end])
        else:
            collapse_end = collapse_start

        for key in range(collapse_end + store.offset, int(store.max_key) + 1):
            self.bins[key - self.offset] += store.bins[key - store.offset]
        self.count += store.count


class CollapsingHighestDenseStore(_CollapsingDenseStore):
    """
    Bounded dense store that folds the highest keys into its highest bin once
    the key range needs more than ``bin_limit`` bins. Relative accuracy is then
    lost on the highest quantiles only.

    Args:
      bin_limit: maximum number of bins.
      chunk_size: number of bins the list grows by.
    """

    __slots__ = ()

    def _get_index(self, key: int) -> int:
        if key > self.max_key:
            if self.is_collapsed:
                return self.max_key - self.offset
            self._extend_range(key)
            if self.is_collapsed:
                return self.max_key - self.offset
        elif key < self.min_key:
            self._extend_range(key)
        return key - self.offset

    def _adjust(self, new_min_key: int, new_max_key: int) -> None:
        if new_max_key - new_min_key + 1 <= self.length():
            super()._adjust(new_min_key, new_max_key)
            return

        # Too wide: keep the bottom ``length`` keys and fold everything above.
        new_max_key = new_min_key + self.length() - 1
        if new_max_key <= self.min_key:
            # every existing key falls above the window
            self.offset = new_min_key
            self.max_key = new_max_key
            self.bins = [0.0] * self.length()
            self.bins[-1] = self.count
        else:
            shift = self.offset - new_min_key
            if shift > 0:
                start = new_max_key - self.offset + 1
                end = int(self.max_key) - self.offset + 1
                collapsed = sum(self.bins[start:end])
                self.bins[start:end] = [0.0] * (end - start)
                self.bins[start - 1] += collapsed
            self.max_key = new_max_key
            self.shift_bins(shift)
        self.min_key = new_min_key
        self._mark_collapsed()

    def merge(self, store: "DenseStore") -> None:
        if store.count == 0:
            return
        if self.count == 0 and store.length() <= self.bin_limit:
            self.copy(store)
            return

        if store.min_key < self.min_key or store.max_key > self.max_key:
            self._extend_range(store.min_key, store.max_key)

        # Weight of ``store`` above our window goes to our highest bin.
        collapse_end = int(store.max_key) - store.offset + 1
        collapse_start = int(max(self.max_key + 1, store.min_key)) - store.offset
        if collapse_end > collapse_start:
            self.bins[int(self.max_key) - self.offset] += sum(store.bins[collapse_start:collapse_end])
        else:
            collapse_start = collapse_end

        for key in range(int(store.min_key), collapse_start + store.offset):
            self.bins[key - self.offset] += store.bins[key - store.offset]
        self.count += store.count


__all__ = [
    "CHUNK_SIZE",
    "Store",
    "DenseStore",
    "CollapsingLowestDenseStore",
    "CollapsingHighestDenseStore",
]
