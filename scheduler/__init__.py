"""Auto-scheduling of employees onto shifts.

``schedule`` is the single entry point: it normalizes the conditions and
runs the allocator on the result. The computation is synchronous and keeps
no state between calls.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from .allocator import allocate, format_shortfall_warning
from .constraints import NormalizedContext, UserCaps, normalize_constraints
from .models import (
    ANY_ROLE,
    Assignment,
    AssignedUser,
    Availability,
    AvailabilityStrictness,
    DailyShiftLimit,
    RoleRequirement,
    ScheduleCondition,
    ScheduleOptions,
    ScheduleRunResult,
    Shift,
    ShiftStaffing,
    StaffExclusion,
    StaffPriority,
    StaffShiftLink,
    TimeSlot,
    UnfilledDemand,
    User,
    WorkloadLimit,
)


def schedule(
    shifts: Sequence[Shift],
    users: Sequence[User],
    availability: Sequence[Availability],
    constraints: Sequence[ScheduleCondition],
    options: ScheduleOptions | Mapping[str, Any] | None = None,
) -> ScheduleRunResult:
    ctx = normalize_constraints(constraints, shifts, users)
    return allocate(shifts, users, availability, ctx, options)


__all__ = [
    "ANY_ROLE",
    "Assignment",
    "AssignedUser",
    "Availability",
    "AvailabilityStrictness",
    "DailyShiftLimit",
    "NormalizedContext",
    "RoleRequirement",
    "ScheduleCondition",
    "ScheduleOptions",
    "ScheduleRunResult",
    "Shift",
    "ShiftStaffing",
    "StaffExclusion",
    "StaffPriority",
    "StaffShiftLink",
    "TimeSlot",
    "UnfilledDemand",
    "User",
    "UserCaps",
    "WorkloadLimit",
    "allocate",
    "format_shortfall_warning",
    "normalize_constraints",
    "schedule",
]
