"""Tables and plain-text report for a scheduler run."""

from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import pandas as pd

from .allocator import week_key
from .constraints import NormalizedContext
from .models import ScheduleRunResult, Shift, User
from .timeslots import duration_hours


ASSIGNMENT_COLUMNS = [
    "shift_id",
    "date",
    "label",
    "start",
    "end",
    "user_id",
    "user_name",
    "role",
]
UNFILLED_COLUMNS = [
    "shift_id",
    "date",
    "label",
    "start",
    "end",
    "role",
    "gender",
    "remaining",
    "mandatory",
]
WORKLOAD_COLUMNS = [
    "user_id",
    "week",
    "shifts",
    "hours",
    "min_shifts_per_week",
    "max_shifts_per_week",
    "min_hours_per_week",
    "max_hours_per_week",
    "below_min_shifts",
    "below_min_hours",
]


@dataclass(frozen=True)
class RunSummary:
    shifts: int
    assignments: int
    unfilled_slots: int
    warnings: int
    users_below_minimum: int


def _week_label(key: tuple[int, int]) -> str:
    return f"{key[0]}-W{key[1]:02d}"


def assignments_frame(
    result: ScheduleRunResult,
    shifts: Sequence[Shift],
    users: Sequence[User] = (),
) -> pd.DataFrame:
    """One row per assignment, enriched with shift and user details."""

    shifts_by_id = {s.shift_id: s for s in shifts}
    names = {u.user_id: u.display_name for u in users}
    rows = []
    for item in result.assignments:
        shift = shifts_by_id.get(item.shift_id)
        rows.append(
            {
                "shift_id": item.shift_id,
                "date": shift.date.isoformat() if shift else "",
                "label": shift.label if shift else "",
                "start": shift.time_slot.start if shift else "",
                "end": shift.time_slot.end if shift else "",
                "user_id": item.user_id,
                "user_name": names.get(item.user_id, item.user_id),
                "role": item.role,
            }
        )
    return pd.DataFrame(rows, columns=ASSIGNMENT_COLUMNS)


def unfilled_frame(
    result: ScheduleRunResult,
    shifts: Sequence[Shift],
    ctx: NormalizedContext | None = None,
) -> pd.DataFrame:
    shifts_by_id = {s.shift_id: s for s in shifts}
    rows = []
    for item in result.unfilled:
        shift = shifts_by_id.get(item.shift_id)
        rows.append(
            {
                "shift_id": item.shift_id,
                "date": shift.date.isoformat() if shift else "",
                "label": shift.label if shift else "",
                "start": shift.time_slot.start if shift else "",
                "end": shift.time_slot.end if shift else "",
                "role": item.role,
                "gender": item.gender or "",
                "remaining": int(item.remaining),
                "mandatory": bool(ctx.is_mandatory(item.shift_id, item.role)) if ctx else False,
            }
        )
    return pd.DataFrame(rows, columns=UNFILLED_COLUMNS)


def workload_summary(
    result: ScheduleRunResult,
    shifts: Sequence[Shift],
    ctx: NormalizedContext,
) -> pd.DataFrame:
    """Weekly load per user against the normalized caps.

    Minimums are never enforced by the allocator; the ``below_min_*``
    columns only flag them.
    """

    shifts_by_id = {s.shift_id: s for s in shifts}
    weeks = sorted({week_key(s.date) for s in shifts})

    work = pd.DataFrame(
        [
            {
                "user_id": item.user_id,
                "week": _week_label(week_key(shifts_by_id[item.shift_id].date)),
                "hours": duration_hours(shifts_by_id[item.shift_id].time_slot),
            }
            for item in result.assignments
            if item.shift_id in shifts_by_id
        ],
        columns=["user_id", "week", "hours"],
    )
    if work.empty:
        totals = pd.DataFrame(columns=["user_id", "week", "shifts", "hours"])
    else:
        totals = (
            work.groupby(["user_id", "week"], as_index=False)
            .agg(shifts=("hours", "size"), hours=("hours", "sum"))
        )

    base = pd.DataFrame(
        [
            {
                "user_id": user_id,
                "week": _week_label(week),
                "min_shifts_per_week": caps.min_shifts_per_week,
                "max_shifts_per_week": caps.max_shifts_per_week,
                "min_hours_per_week": caps.min_hours_per_week,
                "max_hours_per_week": caps.max_hours_per_week,
            }
            for user_id, caps in ctx.caps_by_user.items()
            for week in weeks
        ],
        columns=[
            "user_id",
            "week",
            "min_shifts_per_week",
            "max_shifts_per_week",
            "min_hours_per_week",
            "max_hours_per_week",
        ],
    )

    out = base.merge(totals, on=["user_id", "week"], how="outer")
    out[["shifts", "hours"]] = out[["shifts", "hours"]].fillna(0)
    out["shifts"] = out["shifts"].astype(int)
    out["hours"] = out["hours"].astype(float)
    for col, default in (
        ("min_shifts_per_week", 0.0),
        ("max_shifts_per_week", math.inf),
        ("min_hours_per_week", 0.0),
        ("max_hours_per_week", math.inf),
    ):
        out[col] = out[col].fillna(default)
    out["below_min_shifts"] = (out["shifts"] < out["min_shifts_per_week"]).astype(bool)
    out["below_min_hours"] = (out["hours"] < out["min_hours_per_week"]).astype(bool)

    return out[WORKLOAD_COLUMNS].sort_values(["user_id", "week"]).reset_index(drop=True)


def summarize_run(
    result: ScheduleRunResult,
    shifts: Sequence[Shift],
    workload: pd.DataFrame,
) -> RunSummary:
    below = workload.loc[workload["below_min_shifts"] | workload["below_min_hours"], "user_id"]
    return RunSummary(
        shifts=len(shifts),
        assignments=len(result.assignments),
        unfilled_slots=sum(int(item.remaining) for item in result.unfilled),
        warnings=len(result.warnings),
        users_below_minimum=int(below.nunique()),
    )


def write_run_report(
    result: ScheduleRunResult,
    shifts: Sequence[Shift],
    ctx: NormalizedContext,
    path: Path | str,
) -> Path:
    """Write a plain-text summary of the run to ``path``."""

    target_path = Path(path)
    workload = workload_summary(result, shifts, ctx)
    summary = summarize_run(result, shifts, workload)
    shifts_by_id = {s.shift_id: s for s in shifts}

    lines: list[str] = [
        "Schedule run report",
        f"Shifts: {summary.shifts}",
        f"Assignments: {summary.assignments}",
        f"Unfilled slots: {summary.unfilled_slots}",
        f"Warnings: {summary.warnings}",
        "",
        "Warnings:",
    ]
    if not result.warnings:
        lines.append("(none)")
    else:
        lines.extend(f"- {message}" for message in result.warnings)

    lines.append("")
    lines.append("Unfilled demand:")
    if not result.unfilled:
        lines.append("(none)")
    for item in result.unfilled:
        shift = shifts_by_id.get(item.shift_id)
        where = (
            f"{shift.label} {shift.date.isoformat()} {shift.time_slot.label()}"
            if shift
            else item.shift_id
        )
        gender = f" [{item.gender}]" if item.gender else ""
        lines.append(f"- {where}: {item.role}{gender} x{item.remaining}")

    lines.append("")
    lines.append(f"Users below weekly minimum (advisory): {summary.users_below_minimum}")
    below = workload.loc[workload["below_min_shifts"] | workload["below_min_hours"]]
    for row in below.itertuples(index=False):
        lines.append(
            f"- {row.user_id} {row.week}: shifts={row.shifts} (min {row.min_shifts_per_week:g}), "
            f"hours={row.hours:.2f} (min {row.min_hours_per_week:g})"
        )

    target_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return target_path


__all__ = [
    "RunSummary",
    "assignments_frame",
    "summarize_run",
    "unfilled_frame",
    "workload_summary",
    "write_run_report",
]
