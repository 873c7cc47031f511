from __future__ import annotations

from pathlib import Path

import pytest

BENCH_OUT = Path("bench_out/pytest")


def pytest_configure(config: pytest.Config) -> None:
    # pytest-benchmark does not create the parent of --benchmark-json itself.
    BENCH_OUT.mkdir(parents=True, exist_ok=True)


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if config.getoption("-m"):
        return
    skip_marker = pytest.mark.skip(reason="DDSketch benchmarks only run with -m benchmark")
    for item in items:
        if "benchmark" in item.keywords:
            item.add_marker(skip_marker)
