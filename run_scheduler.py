"""Load config and data directory, run the allocator and write the run report."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
import warnings

from scheduler.report import (
    assignments_frame,
    summarize_run,
    unfilled_frame,
    workload_summary,
    write_run_report,
)
from scheduler.runner import ScheduleBuildError, run_from_sources


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Assign users to shifts from a config file and a data directory."
    )
    parser.add_argument(
        "--config",
        default="config.yaml",
        help="Path to the YAML config file (default: config.yaml).",
    )
    parser.add_argument(
        "--data-dir",
        default="data",
        help="Directory with the input CSV/YAML files (default: data).",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for tie-breaking; overrides scheduler.seed in the config.",
    )
    parser.add_argument(
        "--include-busy",
        action="store_true",
        help="Also fill remaining demand with users who did not declare availability.",
    )
    parser.add_argument(
        "--out-dir",
        default=".",
        help="Where to write assignments.csv, unfilled.csv, workload.csv and schedule_report.txt.",
    )
    parser.add_argument("--verbose", action="store_true", help="Log allocator progress.")
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    else:
        # Missing optional files are expected in small setups.
        warnings.filterwarnings(
            "ignore",
            message=r"template_roles\.csv not found",
            category=UserWarning,
        )

    try:
        result, ctx, data = run_from_sources(
            args.config,
            args.data_dir,
            seed=args.seed,
            include_busy_users=True if args.include_busy else None,
        )
    except ScheduleBuildError as exc:
        print(f"Error: {exc}")
        return 1

    out_dir = Path(args.out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    workload = workload_summary(result, data.shifts, ctx)
    summary = summarize_run(result, data.shifts, workload)

    print("Shifts:", summary.shifts)
    print("Assignments:", summary.assignments)
    print("Unfilled slots:", summary.unfilled_slots)
    print("Users below weekly minimum:", summary.users_below_minimum)
    for message in result.warnings:
        print("WARNING:", message)

    assignments_frame(result, data.shifts, data.users).to_csv(
        out_dir / "assignments.csv", index=False
    )
    unfilled_frame(result, data.shifts, ctx).to_csv(out_dir / "unfilled.csv", index=False)
    workload.to_csv(out_dir / "workload.csv", index=False)
    report_path = write_run_report(result, data.shifts, ctx, out_dir / "schedule_report.txt")
    print(f"Run report saved to: {report_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
