#!/usr/bin/env python3
"""Gate the CSVs written by ``benchmarks/bench_ddsketch.py``.

Each gate reduces one column per sketch kind and compares it with a bound.
The report is printed as a table; any failing row makes the exit status non-zero.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import NamedTuple

import pandas as pd


class Gate(NamedTuple):
    name: str
    csv: str
    column: str
    reduce: str  # pandas aggregation: "max", "min" or "p95"
    bound: float
    upper: bool  # True: observed must stay <= bound


# Every estimate must honour the relative-accuracy guarantee, up to float noise.
# Shared CI runners manage a few tens of thousands of pure-Python adds per second.
GATES = (
    Gate("error / accuracy", "accuracy.csv", "error_ratio", "max", 1.0 + 1e-9, True),
    Gate("updates per sec", "update_throughput.csv", "updates_per_sec", "min", 20_000, False),
    Gate("query latency p95 (us)", "query_latency.csv", "latency_us", "p95", 1_000.0, True),
    Gate("merge time (s)", "merge.csv", "merge_time_s", "max", 0.5, True),
)


def _read(outdir: Path, name: str) -> pd.DataFrame:
    path = outdir / name
    if not path.exists():
        raise SystemExit(f"missing benchmark output: {path}")
    df = pd.read_csv(path)
    if name == "accuracy.csv" and not df.empty:
        df["error_ratio"] = df["rel_error"] / df["relative_accuracy"]
    return df


def evaluate(outdir: Path) -> pd.DataFrame:
    """One row per (gate, sketch kind) with the observed value and a verdict."""
    rows = []
    for gate in GATES:
        df = _read(outdir, gate.csv)
        if df.empty:
            continue
        column = df.groupby("kind")[gate.column]
        observed = column.quantile(0.95) if gate.reduce == "p95" else column.agg(gate.reduce)
        for kind, value in observed.items():
            ok = value <= gate.bound if gate.upper else value >= gate.bound
            rows.append(
                {
                    "gate": gate.name,
                    "kind": kind,
                    "bound": ("<= " if gate.upper else ">= ") + f"{gate.bound:g}",
                    "observed": round(float(value), 6),
                    "status": "PASS" if ok else "FAIL",
                }
            )
    return pd.DataFrame(rows, columns=["gate", "kind", "bound", "observed", "status"])


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("outdir", nargs="?", default="bench_out", help="Directory holding the benchmark CSVs")
    parser.add_argument("--report", default=None, help="Also write the table as CSV to this file")
    args = parser.parse_args()

    report = evaluate(Path(args.outdir))
    print(report.to_string(index=False))
    if args.report:
        report.to_csv(args.report, index=False)

    if (report["status"] == "FAIL").any():
        raise SystemExit("Benchmark regression detected.")


if __name__ == "__main__":
    main()
