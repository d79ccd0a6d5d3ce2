from __future__ import annotations

import dataclasses
import math

import pytest

from scheduler.constraints import DEFAULT_CAPS, MANDATORY_PRIORITY_BOOST, normalize_constraints
from scheduler.models import (
    AvailabilityStrictness,
    DailyShiftLimit,
    ShiftStaffing,
    StaffExclusion,
    StaffPriority,
    StaffShiftLink,
    WorkloadLimit,
)

from factories import BARISTA, MONDAY, WAITER, _make_shift, _make_user, _week


def _two_day_template() -> list:
    days = _week(days=2)
    return [
        _make_shift("s1", days[0], template_id="T1"),
        _make_shift("s2", days[1], template_id="T1"),
        _make_shift("s3", days[0], "12:00", "17:00", template_id="T2"),
    ]


def test_caps_overlay_field_by_field() -> None:
    users = [_make_user("u1"), _make_user("u2")]
    conditions = [
        WorkloadLimit(scope="global", max_shifts_per_week=5, max_hours_per_week=40),
        DailyShiftLimit(max_per_day=2),
        WorkloadLimit(scope="user", user_id="u1", max_shifts_per_week=3, min_hours_per_week=10),
        DailyShiftLimit(user_id="u2", max_per_day=1),
    ]

    ctx = normalize_constraints(conditions, _two_day_template(), users)

    u1 = ctx.caps_for("u1")
    assert (u1.max_shifts_per_week, u1.max_hours_per_week, u1.max_per_day) == (3, 40, 2)
    assert u1.min_hours_per_week == 10
    u2 = ctx.caps_for("u2")
    assert (u2.max_shifts_per_week, u2.max_hours_per_week, u2.max_per_day) == (5, 40, 1)


def test_caps_for_unknown_user_default_to_unbounded() -> None:
    ctx = normalize_constraints([], [], [_make_user("u1")])
    assert ctx.caps_for("ghost") == DEFAULT_CAPS
    assert ctx.caps_for("u1").max_shifts_per_week == math.inf


def test_per_user_cap_for_user_outside_list_gets_entry() -> None:
    ctx = normalize_constraints(
        [WorkloadLimit(scope="user", user_id="ghost", max_shifts_per_week=1)], [], []
    )
    assert ctx.caps_by_user["ghost"].max_shifts_per_week == 1
    assert ctx.caps_by_user["ghost"].max_hours_per_week == math.inf


def test_duplicate_global_conditions_last_one_wins() -> None:
    conditions = [
        WorkloadLimit(scope="global", max_shifts_per_week=5),
        WorkloadLimit(scope="global", max_shifts_per_week=2),
        AvailabilityStrictness(strict=True),
        AvailabilityStrictness(strict=False),
    ]
    ctx = normalize_constraints(conditions, [], [_make_user("u1")])
    assert ctx.caps_for("u1").max_shifts_per_week == 2
    assert ctx.strict_availability is False


def test_disabled_conditions_are_ignored() -> None:
    conditions = [
        WorkloadLimit(scope="global", max_shifts_per_week=1, enabled=False),
        StaffShiftLink(user_id="u1", template_id="T1", link="ban", enabled=False),
        AvailabilityStrictness(strict=True, enabled=False),
    ]
    ctx = normalize_constraints(conditions, _two_day_template(), [_make_user("u1")])
    assert ctx.caps_for("u1") == DEFAULT_CAPS
    assert not ctx.banned_pairs
    assert ctx.strict_availability is False


def test_staffing_expands_to_every_template_instance() -> None:
    conditions = [
        ShiftStaffing(template_id="T1", role=BARISTA, count=2, mandatory=True),
        ShiftStaffing(template_id="T2", role=WAITER, count=-3),
        ShiftStaffing(template_id="missing", role=WAITER, count=4, mandatory=True),
    ]
    ctx = normalize_constraints(conditions, _two_day_template(), [])

    assert dict(ctx.max_by_shift_role["s1"]) == {BARISTA: 2}
    assert dict(ctx.max_by_shift_role["s2"]) == {BARISTA: 2}
    assert dict(ctx.max_by_shift_role["s3"]) == {WAITER: 0}
    assert ctx.mandatory_demand == frozenset({("s1", BARISTA), ("s2", BARISTA)})
    assert ctx.is_mandatory("s1", BARISTA)
    assert not ctx.is_mandatory("s3", WAITER)


def test_links_split_into_forced_and_banned() -> None:
    conditions = [
        StaffShiftLink(user_id="u2", template_id="T2", link="force"),
        StaffShiftLink(user_id="u1", template_id="T1", link="force"),
        StaffShiftLink(user_id="u3", template_id="T1", link="ban"),
    ]
    ctx = normalize_constraints(conditions, _two_day_template(), [])

    assert ctx.forced_assignments == (("u2", "s3"), ("u1", "s1"), ("u1", "s2"))
    assert ctx.banned_pairs == frozenset({("u3", "s1"), ("u3", "s2")})


def test_priorities_with_mandatory_boost() -> None:
    conditions = [
        StaffPriority(user_id="u1", template_id="T1", weight=3),
        StaffPriority(user_id="u2", template_id="T1", weight=1, mandatory=True),
        StaffPriority(user_id="u3", template_id=None, weight=50),
    ]
    ctx = normalize_constraints(conditions, _two_day_template(), [])

    assert ctx.priorities_by_shift["s1"]["u1"] == 3
    assert ctx.priorities_by_shift["s2"]["u2"] == 1 + MANDATORY_PRIORITY_BOOST
    assert all("u3" not in by_user for by_user in ctx.priorities_by_shift.values())


def test_exclusions_are_unordered_pairs() -> None:
    conditions = [
        StaffExclusion(user_id="u1", blocked_user_ids=("u2", "u1")),
        StaffExclusion(user_id="u3", blocked_user_ids=("u4",), template_id="T2"),
    ]
    ctx = normalize_constraints(conditions, _two_day_template(), [])

    assert ctx.incompatible_global == frozenset({frozenset({"u1", "u2"})})
    assert ctx.is_pair_blocked("u2", "u1", "s1")
    assert ctx.is_pair_blocked("u4", "u3", "s3")
    assert not ctx.is_pair_blocked("u3", "u4", "s1")
    assert not ctx.is_pair_blocked("u1", "u1", "s1")


def test_normalization_is_pure_and_repeatable() -> None:
    shifts = _two_day_template()
    users = [_make_user("u1"), _make_user("u2", BARISTA)]
    conditions = [
        WorkloadLimit(scope="global", max_shifts_per_week=4),
        ShiftStaffing(template_id="T1", role=BARISTA, count=1, mandatory=True),
        StaffShiftLink(user_id="u1", template_id="T1"),
        StaffPriority(user_id="u2", template_id="T2", weight=2),
        StaffExclusion(user_id="u1", blocked_user_ids=("u2",), template_id="T1"),
    ]
    snapshot = (list(shifts), list(users), list(conditions))

    first = normalize_constraints(conditions, shifts, users)
    second = normalize_constraints(conditions, shifts, users)

    assert first == second
    assert (shifts, users, conditions) == snapshot


def test_context_is_read_only() -> None:
    ctx = normalize_constraints(
        [ShiftStaffing(template_id="T1", role=WAITER, count=1)],
        [_make_shift("s1", MONDAY, template_id="T1")],
        [_make_user("u1")],
    )
    with pytest.raises(TypeError):
        ctx.max_by_shift_role["s1"][WAITER] = 5  # type: ignore[index]
    with pytest.raises(TypeError):
        ctx.caps_by_user["u1"] = DEFAULT_CAPS  # type: ignore[index]
    with pytest.raises(dataclasses.FrozenInstanceError):
        ctx.strict_availability = True  # type: ignore[misc]
