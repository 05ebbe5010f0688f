"""Fail CI when per-package line coverage drops below its floor.

Reads the JSON report written by ``coverage json`` and compares the
weighted line coverage of each package prefix against ``THRESHOLDS``.
"""

from __future__ import annotations

import argparse
import json
from dataclasses import dataclass
from pathlib import Path

THRESHOLDS = {
    "subway_tracker/core": 95.0,
    "subway_tracker/services": 90.0,
    "subway_tracker/routers": 85.0,
    "subway_tracker/middleware": 85.0,
    "subway_client": 85.0,
}


@dataclass(frozen=True)
class PackageCoverage:
    prefix: str
    percentage: float
    file_count: int


def _matches(file_path: str, prefix: str) -> bool:
    return file_path.replace("\\", "/").startswith(prefix)


def measure(report: dict, prefix: str) -> PackageCoverage:
    """Weighted statement coverage over every file under ``prefix``."""
    summaries = [
        payload["summary"]
        for file_path, payload in report.get("files", {}).items()
        if _matches(file_path, prefix)
    ]
    statements = sum(int(summary["num_statements"]) for summary in summaries)
    covered = sum(int(summary["covered_lines"]) for summary in summaries)
    if not summaries:
        percentage = 0.0
    elif statements == 0:
        percentage = 100.0
    else:
        percentage = covered / statements * 100.0
    return PackageCoverage(prefix=prefix, percentage=percentage, file_count=len(summaries))


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("report", type=Path, help="coverage JSON report")
    args = parser.parse_args(argv)

    if not args.report.exists():
        print(f"Coverage report not found: {args.report}")
        return 2
    report = json.loads(args.report.read_text(encoding="utf-8"))

    failures: list[str] = []
    for prefix, threshold in THRESHOLDS.items():
        result = measure(report, prefix)
        print(f"{prefix}: {result.percentage:.2f}% (files={result.file_count}, min={threshold}%)")
        if result.file_count == 0:
            failures.append(f"{prefix}: no files matched")
        elif result.percentage < threshold:
            failures.append(f"{prefix}: {result.percentage:.2f}% < {threshold:.2f}%")

    if failures:
        print("\nCoverage threshold failures:")
        print("\n".join(f"- {failure}" for failure in failures))
        return 1
    print("\nCoverage thresholds satisfied.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
