"""dd_sketch package public API."""
from ._metadata import __version__
from .ddsketch import (
    DEFAULT_BIN_LIMIT,
    DEFAULT_REL_ACC,
    BaseDDSketch,
    DDSketch,
    LogCollapsingHighestDenseDDSketch,
    LogCollapsingLowestDenseDDSketch,
)
from .exceptions import DDSketchError, InvalidArgumentError, InvalidSketchMergeError
from .mapping import (
    CubicallyInterpolatedMapping,
    Interpolation,
    KeyMapping,
    LinearlyInterpolatedMapping,
    LogarithmicMapping,
)
from .store import CollapsingHighestDenseStore, CollapsingLowestDenseStore, DenseStore, Store

__all__ = [
    "BaseDDSketch",
    "DDSketch",
    "LogCollapsingLowestDenseDDSketch",
    "LogCollapsingHighestDenseDDSketch",
    "DEFAULT_REL_ACC",
    "DEFAULT_BIN_LIMIT",
    "KeyMapping",
    "LogarithmicMapping",
    "LinearlyInterpolatedMapping",
    "CubicallyInterpolatedMapping",
    "Interpolation",
    "Store",
    "DenseStore",
    "CollapsingLowestDenseStore",
    "CollapsingHighestDenseStore",
    "DDSketchError",
    "InvalidArgumentError",
    "InvalidSketchMergeError",
    "__version__",
]
