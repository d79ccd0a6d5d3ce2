"""Value types shared by the normalizer, the allocator and the loader."""

from __future__ import annotations

import random
import warnings
from dataclasses import dataclass, field, fields
from datetime import date
from typing import Any, Iterable, Literal, Mapping, Union


ANY_ROLE = "Bất kỳ"


@dataclass(frozen=True)
class TimeSlot:
    start: str
    end: str

    def label(self) -> str:
        return f"{self.start}-{self.end}"


@dataclass(frozen=True)
class RoleRequirement:
    """Template-declared headcount for a role, optionally restricted to a gender."""

    role: str
    count: int
    gender: str | None = None


@dataclass(frozen=True)
class AssignedUser:
    user_id: str
    user_name: str
    role: str
    demand_role: str
    gender_slot: str | None = None


@dataclass(frozen=True)
class Shift:
    shift_id: str
    date: date
    label: str
    role: str
    time_slot: TimeSlot
    min_users: int = 0
    required_roles: tuple[RoleRequirement, ...] = ()
    template_id: str | None = None
    assigned_users: tuple[AssignedUser, ...] = ()


@dataclass(frozen=True)
class User:
    user_id: str
    display_name: str
    role: str
    secondary_roles: tuple[str, ...] = ()
    gender: str | None = None
    is_test_account: bool = False


@dataclass(frozen=True)
class Availability:
    user_id: str
    date: date
    available_slots: tuple[TimeSlot, ...] = ()


# Conditions -----------------------------------------------------------------


@dataclass(frozen=True)
class WorkloadLimit:
    condition_id: str = ""
    enabled: bool = True
    scope: Literal["global", "user"] = "global"
    user_id: str | None = None
    min_shifts_per_week: int | None = None
    max_shifts_per_week: int | None = None
    min_hours_per_week: float | None = None
    max_hours_per_week: float | None = None


@dataclass(frozen=True)
class DailyShiftLimit:
    condition_id: str = ""
    enabled: bool = True
    user_id: str | None = None
    max_per_day: int | None = None


@dataclass(frozen=True)
class ShiftStaffing:
    condition_id: str = ""
    enabled: bool = True
    template_id: str = ""
    role: str = ANY_ROLE
    count: int = 1
    mandatory: bool = False


@dataclass(frozen=True)
class StaffPriority:
    condition_id: str = ""
    enabled: bool = True
    user_id: str = ""
    template_id: str | None = None
    weight: float = 0
    mandatory: bool = False


@dataclass(frozen=True)
class StaffShiftLink:
    condition_id: str = ""
    enabled: bool = True
    user_id: str = ""
    template_id: str = ""
    link: Literal["force", "ban"] = "force"


@dataclass(frozen=True)
class StaffExclusion:
    condition_id: str = ""
    enabled: bool = True
    user_id: str = ""
    blocked_user_ids: tuple[str, ...] = ()
    template_id: str | None = None


@dataclass(frozen=True)
class AvailabilityStrictness:
    condition_id: str = ""
    enabled: bool = True
    strict: bool = False


ScheduleCondition = Union[
    WorkloadLimit,
    DailyShiftLimit,
    ShiftStaffing,
    StaffPriority,
    StaffShiftLink,
    StaffExclusion,
    AvailabilityStrictness,
]

CONDITION_TYPES: dict[str, type] = {
    "WorkloadLimit": WorkloadLimit,
    "DailyShiftLimit": DailyShiftLimit,
    "ShiftStaffing": ShiftStaffing,
    "StaffPriority": StaffPriority,
    "StaffShiftLink": StaffShiftLink,
    "StaffExclusion": StaffExclusion,
    "AvailabilityStrictness": AvailabilityStrictness,
}


# Options and results --------------------------------------------------------


_OPTION_ALIASES = {
    "includeBusyUsers": "include_busy_users",
    "busyExclusionIds": "busy_exclusion_ids",
}


@dataclass(frozen=True)
class ScheduleOptions:
    """Run options for :func:`scheduler.allocate`.

    ``rng`` is the source of randomness used to break score ties; pass a
    seeded ``random.Random`` to make a run reproducible. When it is ``None``
    every run draws a fresh unseeded generator, so two runs over the same
    input may place tied candidates differently.
    """

    include_busy_users: bool = False
    busy_exclusion_ids: frozenset[str] = frozenset()
    enforce_frame_continuity: bool = True
    enforce_night_rest: bool = True
    rng: random.Random | None = field(default=None, compare=False)

    @classmethod
    def coerce(cls, options: "ScheduleOptions | Mapping[str, Any] | None") -> "ScheduleOptions":
        if options is None:
            return cls()
        if isinstance(options, ScheduleOptions):
            return options
        values = {_OPTION_ALIASES.get(str(k), str(k)): v for k, v in dict(options).items()}
        accepted = {f.name for f in fields(cls)} | {"seed"}
        unknown = sorted(set(values) - accepted)
        if unknown:
            warnings.warn(
                f"schedule options: ignoring unknown keys {unknown}; accepted keys are {sorted(accepted)}",
                UserWarning,
                stacklevel=2,
            )
            values = {k: v for k, v in values.items() if k in accepted}
        if "seed" in values:
            seed = values.pop("seed")
            if values.get("rng") is None and seed is not None:
                values["rng"] = random.Random(seed)
        exclusions: Iterable[str] = values.get("busy_exclusion_ids") or ()
        values["busy_exclusion_ids"] = frozenset(str(x) for x in exclusions)
        return cls(**values)


@dataclass(frozen=True)
class Assignment:
    shift_id: str
    user_id: str
    role: str


@dataclass(frozen=True)
class UnfilledDemand:
    shift_id: str
    role: str
    remaining: int
    gender: str | None = None


@dataclass(frozen=True)
class ScheduleRunResult:
    assignments: tuple[Assignment, ...]
    unfilled: tuple[UnfilledDemand, ...]
    warnings: tuple[str, ...]


__all__ = [
    "ANY_ROLE",
    "Assignment",
    "AssignedUser",
    "Availability",
    "AvailabilityStrictness",
    "CONDITION_TYPES",
    "DailyShiftLimit",
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
    "WorkloadLimit",
]
