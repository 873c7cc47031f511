#!/usr/bin/env python3
"""Benchmark runner for the local dd_sketch implementation."""

from __future__ import annotations

import argparse
import hashlib
import math
import time
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Sequence

import numpy as np
import pandas as pd

from dd_sketch import (
    BaseDDSketch,
    DDSketch,
    LogCollapsingHighestDenseDDSketch,
    LogCollapsingLowestDenseDDSketch,
)

SKETCH_KINDS: Dict[str, Callable[[float], BaseDDSketch]] = {
    "dense": DDSketch,
    "collapsing-lowest": LogCollapsingLowestDenseDDSketch,
    "collapsing-highest": LogCollapsingHighestDenseDDSketch,
}


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--outdir", default="bench_out", help="Directory for benchmark CSV outputs")
    parser.add_argument("--seed", type=int, default=42, help="Base RNG seed for reproducibility")
    parser.add_argument("--Ns", nargs="+", default=["1e5", "1e6"], help="Population sizes to benchmark")
    parser.add_argument(
        "--accuracies", nargs="+", default=["0.005", "0.01", "0.05"], help="Relative accuracies to benchmark"
    )
    parser.add_argument(
        "--kinds", nargs="+", default=sorted(SKETCH_KINDS), help="Sketch variants to benchmark"
    )
    parser.add_argument(
        "--distributions",
        nargs="+",
        default=["uniform", "normal", "exponential", "lognormal", "pareto", "bimodal"],
        help="Synthetic data distributions to sample",
    )
    parser.add_argument(
        "--qs",
        nargs="+",
        default=["0.01", "0.05", "0.1", "0.25", "0.5", "0.75", "0.9", "0.95", "0.99"],
        help="Quantiles to evaluate",
    )
    parser.add_argument("--shards", type=int, default=8, help="Number of shards for the merge benchmark")
    return parser.parse_args()


def _to_int_list(values: Iterable[str]) -> List[int]:
    return [int(float(v)) for v in values]


def _to_float_list(values: Iterable[str]) -> List[float]:
    return [float(v) for v in values]


def _hash_seed(seed: int, *parts: object) -> int:
    material = "::".join(str(p) for p in (seed,) + parts)
    digest = hashlib.sha256(material.encode("utf-8")).hexdigest()
    return int(digest[:16], 16)


def _bimodal(rng: np.random.Generator, size: int) -> np.ndarray:
    left = size // 2
    data = np.concatenate([rng.normal(-2.0, 1.0, left), rng.normal(2.0, 0.5, size - left)])
    rng.shuffle(data)
    return data


DATA_GENERATORS: Dict[str, Callable[[np.random.Generator, int], np.ndarray]] = {
    "uniform": lambda rng, size: rng.uniform(0.0, 1.0, size),
    "normal": lambda rng, size: rng.normal(0.0, 1.0, size),
    "exponential": lambda rng, size: rng.exponential(scale=1.0, size=size),
    "lognormal": lambda rng, size: rng.lognormal(0.0, 2.0, size),
    "pareto": lambda rng, size: rng.pareto(a=1.5, size=size),
    "bimodal": _bimodal,
}


def _validate(names: Sequence[str], known: Iterable[str], what: str) -> None:
    unknown = sorted(set(names) - set(known))
    if unknown:
        raise ValueError(f"Unknown {what} requested: {', '.join(unknown)}")


def _relative_error(estimate: float, exact: float) -> float:
    if exact == 0:
        return abs(estimate)
    return abs(estimate - exact) / abs(exact)


def main() -> None:
    args = _parse_args()

    Ns = _to_int_list(args.Ns)
    accuracies = _to_float_list(args.accuracies)
    qs = _to_float_list(args.qs)
    _validate(args.distributions, DATA_GENERATORS, "distributions")
    _validate(args.kinds, SKETCH_KINDS, "sketch kinds")

    outdir = Path(args.outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    accuracy_records: List[Dict[str, object]] = []
    throughput_records: List[Dict[str, object]] = []
    latency_records: List[Dict[str, object]] = []
    merge_records: List[Dict[str, object]] = []

    for dist in args.distributions:
        for N in Ns:
            data_rng = np.random.default_rng(_hash_seed(args.seed, dist, N))
            data = DATA_GENERATORS[dist](data_rng, N).astype(float, copy=False)
            ordered = np.sort(data)
            # the sketch answers with the lower order statistic, not an interpolation
            exact_map = {q: float(ordered[int(q * (N - 1))]) for q in qs}

            for kind in args.kinds:
                for alpha in accuracies:
                    base = {"distribution": dist, "N": int(N), "kind": kind, "relative_accuracy": alpha}

                    sketch = SKETCH_KINDS[kind](alpha)
                    start = time.perf_counter()
                    for value in data:
                        sketch.add(float(value))
                    update_elapsed = time.perf_counter() - start
                    updates_per_sec = (N / update_elapsed) if update_elapsed > 0 else math.inf
                    throughput_records.append(
                        dict(
                            base,
                            update_time_s=update_elapsed,
                            updates_per_sec=updates_per_sec,
                            bins=sketch.store.length() + sketch.negative_store.length(),
                        )
                    )

                    for q in qs:
                        q_start = time.perf_counter()
                        approx = sketch.get_quantile_value(q)
                        q_elapsed = time.perf_counter() - q_start
                        latency_records.append(dict(base, q=q, latency_us=q_elapsed * 1e6))
                        accuracy_records.append(
                            dict(
                                base,
                                mode="single",
                                q=q,
                                estimate=approx,
                                exact=exact_map[q],
                                rel_error=_relative_error(approx, exact_map[q]),
                            )
                        )

                    shard_sketches = []
                    for shard in np.array_split(data, args.shards):
                        shard_sketch = SKETCH_KINDS[kind](alpha)
                        for value in shard:
                            shard_sketch.add(float(value))
                        shard_sketches.append(shard_sketch)

                    merge_target = SKETCH_KINDS[kind](alpha)
                    merge_start = time.perf_counter()
                    for shard_sketch in shard_sketches:
                        merge_target.merge(shard_sketch)
                    merge_elapsed = time.perf_counter() - merge_start
                    merge_records.append(dict(base, shards=int(args.shards), merge_time_s=merge_elapsed))

                    for q in qs:
                        approx = merge_target.get_quantile_value(q)
                        accuracy_records.append(
                            dict(
                                base,
                                mode="merged",
                                q=q,
                                estimate=approx,
                                exact=exact_map[q],
                                rel_error=_relative_error(approx, exact_map[q]),
                            )
                        )

    accuracy_path = outdir / "accuracy.csv"
    throughput_path = outdir / "update_throughput.csv"
    latency_path = outdir / "query_latency.csv"
    merge_path = outdir / "merge.csv"

    pd.DataFrame.from_records(accuracy_records).to_csv(accuracy_path, index=False)
    pd.DataFrame.from_records(throughput_records).to_csv(throughput_path, index=False)
    pd.DataFrame.from_records(latency_records).to_csv(latency_path, index=False)
    pd.DataFrame.from_records(merge_records).to_csv(merge_path, index=False)

    print("Benchmark artifacts written to:")
    for path in (accuracy_path, throughput_path, latency_path, merge_path):
        print(f"  {path}")


if __name__ == "__main__":
    main()
