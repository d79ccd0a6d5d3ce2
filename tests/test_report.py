from __future__ import annotations

import math
from pathlib import Path

from scheduler.constraints import normalize_constraints
from scheduler.models import Assignment, ScheduleRunResult, ShiftStaffing, UnfilledDemand, WorkloadLimit
from scheduler.report import (
    assignments_frame,
    summarize_run,
    unfilled_frame,
    workload_summary,
    write_run_report,
)

from factories import BARISTA, WAITER, _make_shift, _make_user, _week


def _fixture():
    monday, tuesday = _week(days=2)
    shifts = [
        _make_shift("s1", monday, "06:00", "12:00", template_id="T1"),
        _make_shift("s2", tuesday, "12:00", "17:00", template_id="T2", label="Ca chiều"),
    ]
    users = [_make_user("u1"), _make_user("u2")]
    conditions = [
        WorkloadLimit(scope="global", max_shifts_per_week=5),
        WorkloadLimit(scope="user", user_id="u2", min_shifts_per_week=2, min_hours_per_week=6),
        ShiftStaffing(template_id="T2", role=BARISTA, count=1, mandatory=True),
    ]
    ctx = normalize_constraints(conditions, shifts, users)
    result = ScheduleRunResult(
        assignments=(
            Assignment("s1", "u1", WAITER),
            Assignment("s2", "u1", WAITER),
            Assignment("s2", "u2", WAITER),
        ),
        unfilled=(UnfilledDemand("s2", BARISTA, 1),),
        warnings=("shortfall",),
    )
    return shifts, users, ctx, result


def test_assignments_frame() -> None:
    shifts, users, _, result = _fixture()
    df = assignments_frame(result, shifts, users)

    assert list(df["user_name"]) == ["U1", "U1", "U2"]
    assert df.loc[0, "date"] == "2025-01-06"
    assert df.loc[1, "start"] == "12:00"


def test_unfilled_frame_marks_mandatory() -> None:
    shifts, _, ctx, result = _fixture()
    df = unfilled_frame(result, shifts, ctx)

    assert df.to_dict("records") == [
        {
            "shift_id": "s2",
            "date": "2025-01-07",
            "label": "Ca chiều",
            "start": "12:00",
            "end": "17:00",
            "role": BARISTA,
            "gender": "",
            "remaining": 1,
            "mandatory": True,
        }
    ]


def test_workload_summary_flags_minimums() -> None:
    shifts, _, ctx, result = _fixture()
    df = workload_summary(result, shifts, ctx).set_index("user_id")

    assert df.loc["u1", "week"] == "2025-W02"
    assert df.loc["u1", "shifts"] == 2
    assert df.loc["u1", "hours"] == 11.0
    assert not df.loc["u1", "below_min_shifts"]
    assert df.loc["u2", "shifts"] == 1
    assert df.loc["u2", "hours"] == 5.0
    assert df.loc["u2", "below_min_shifts"]
    assert df.loc["u2", "below_min_hours"]
    assert df.loc["u2", "max_shifts_per_week"] == 5


def test_workload_summary_without_assignments() -> None:
    shifts, _, ctx, _ = _fixture()
    empty = ScheduleRunResult(assignments=(), unfilled=(), warnings=())
    df = workload_summary(empty, shifts, ctx)

    assert set(df["user_id"]) == {"u1", "u2"}
    assert (df["shifts"] == 0).all()
    assert math.isinf(df.loc[df["user_id"] == "u1", "max_hours_per_week"].iloc[0])


def test_summary_and_text_report(tmp_path: Path) -> None:
    shifts, _, ctx, result = _fixture()
    summary = summarize_run(result, shifts, workload_summary(result, shifts, ctx))

    assert (summary.shifts, summary.assignments, summary.unfilled_slots, summary.warnings) == (2, 3, 1, 1)
    assert summary.users_below_minimum == 1

    path = write_run_report(result, shifts, ctx, tmp_path / "report.txt")
    text = path.read_text(encoding="utf-8")
    assert text.startswith("Schedule run report")
    assert "- shortfall" in text
    assert f"- Ca chiều 2025-01-07 12:00-17:00: {BARISTA} x1" in text
    assert "Users below weekly minimum (advisory): 1" in text
