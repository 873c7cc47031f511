"""Pytest configuration shared by the :mod:`dd_sketch` test-suite."""
from __future__ import annotations

import random
import sys
from pathlib import Path
from typing import Callable, List

import pytest

# Tests live inside the package; when they run from a checkout that was not
# installed, put the repository root on ``sys.path`` so ``import dd_sketch``
# resolves to this tree.
ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from dd_sketch import DDSketch, LogCollapsingHighestDenseDDSketch, LogCollapsingLowestDenseDDSketch  # noqa: E402

SKETCH_FACTORIES: List[Callable[..., object]] = [
    DDSketch,
    lambda relative_accuracy=None: LogCollapsingLowestDenseDDSketch(relative_accuracy, bin_limit=1024),
    lambda relative_accuracy=None: LogCollapsingHighestDenseDDSketch(relative_accuracy, bin_limit=1024),
]
SKETCH_IDS = ["dense", "collapsing-lowest", "collapsing-highest"]


@pytest.fixture(params=SKETCH_FACTORIES, ids=SKETCH_IDS)
def sketch_factory(request: pytest.FixtureRequest) -> Callable[..., object]:
    """Each sketch variant, built with a bin limit large enough never to collapse."""
    return request.param


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)
