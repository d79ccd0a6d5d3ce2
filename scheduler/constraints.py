"""Condition normalization into lookup tables for the allocator.

The normalizer turns the heterogeneous condition list into a read-only
:class:`NormalizedContext`. It is a pure function: the same inputs always
produce an equal context and nothing passed in is mutated.

Duplicate global conditions (two enabled global ``WorkloadLimit``, two
global ``DailyShiftLimit`` or two ``AvailabilityStrictness``) resolve to the
last one in list order.
"""

from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Iterable, Mapping, Sequence

from .models import (
    AvailabilityStrictness,
    DailyShiftLimit,
    ScheduleCondition,
    Shift,
    ShiftStaffing,
    StaffExclusion,
    StaffPriority,
    StaffShiftLink,
    User,
    WorkloadLimit,
)


MANDATORY_PRIORITY_BOOST = 100


@dataclass(frozen=True)
class UserCaps:
    min_shifts_per_week: float = 0
    max_shifts_per_week: float = math.inf
    min_hours_per_week: float = 0
    max_hours_per_week: float = math.inf
    max_per_day: float = math.inf


DEFAULT_CAPS = UserCaps()


@dataclass(frozen=True)
class NormalizedContext:
    """Lookup tables derived from the conditions.

    ``banned_pairs`` holds ``(user_id, shift_id)`` tuples,
    ``mandatory_demand`` holds ``(shift_id, role)`` tuples and the
    incompatibility sets hold unordered ``frozenset({user_a, user_b})`` pairs.
    """

    max_by_shift_role: Mapping[str, Mapping[str, int]]
    priorities_by_shift: Mapping[str, Mapping[str, float]]
    forced_assignments: tuple[tuple[str, str], ...]
    banned_pairs: frozenset[tuple[str, str]]
    caps_by_user: Mapping[str, UserCaps]
    mandatory_demand: frozenset[tuple[str, str]]
    strict_availability: bool
    incompatible_global: frozenset[frozenset[str]] = frozenset()
    incompatible_by_shift: Mapping[str, frozenset[frozenset[str]]] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def caps_for(self, user_id: str) -> UserCaps:
        return self.caps_by_user.get(user_id, DEFAULT_CAPS)

    def is_pair_blocked(self, user_a: str, user_b: str, shift_id: str) -> bool:
        pair = frozenset((user_a, user_b))
        if pair in self.incompatible_global:
            return True
        return pair in self.incompatible_by_shift.get(shift_id, frozenset())

    def is_mandatory(self, shift_id: str, role: str) -> bool:
        return (shift_id, role) in self.mandatory_demand


def _overlay_workload(caps: UserCaps, limit: WorkloadLimit) -> UserCaps:
    updates = {
        name: value
        for name, value in (
            ("min_shifts_per_week", limit.min_shifts_per_week),
            ("max_shifts_per_week", limit.max_shifts_per_week),
            ("min_hours_per_week", limit.min_hours_per_week),
            ("max_hours_per_week", limit.max_hours_per_week),
        )
        if value is not None
    }
    return replace(caps, **updates) if updates else caps


def _overlay_daily(caps: UserCaps, limit: DailyShiftLimit) -> UserCaps:
    if limit.max_per_day is None:
        return caps
    return replace(caps, max_per_day=limit.max_per_day)


def _shifts_by_template(shifts: Iterable[Shift]) -> dict[str, list[str]]:
    index: dict[str, list[str]] = defaultdict(list)
    for shift in shifts:
        if shift.template_id:
            index[shift.template_id].append(shift.shift_id)
    return index


def _freeze_nested(table: Mapping[str, Mapping[str, object]]) -> Mapping[str, Mapping[str, object]]:
    return MappingProxyType({key: MappingProxyType(dict(inner)) for key, inner in table.items()})


def normalize_constraints(
    constraints: Sequence[ScheduleCondition],
    shifts: Sequence[Shift],
    users: Sequence[User],
) -> NormalizedContext:
    """Build the :class:`NormalizedContext` for one allocation run."""

    enabled = [c for c in constraints if c.enabled]

    global_workload: WorkloadLimit | None = None
    global_daily: DailyShiftLimit | None = None
    strictness: AvailabilityStrictness | None = None
    for condition in enabled:
        if isinstance(condition, WorkloadLimit) and condition.scope == "global":
            global_workload = condition
        elif isinstance(condition, DailyShiftLimit) and not condition.user_id:
            global_daily = condition
        elif isinstance(condition, AvailabilityStrictness):
            strictness = condition

    base_caps = DEFAULT_CAPS
    if global_workload is not None:
        base_caps = _overlay_workload(base_caps, global_workload)
    if global_daily is not None:
        base_caps = _overlay_daily(base_caps, global_daily)

    caps_by_user: dict[str, UserCaps] = {user.user_id: base_caps for user in users}
    for condition in enabled:
        if isinstance(condition, WorkloadLimit) and condition.scope == "user" and condition.user_id:
            current = caps_by_user.get(condition.user_id, DEFAULT_CAPS)
            caps_by_user[condition.user_id] = _overlay_workload(current, condition)
        elif isinstance(condition, DailyShiftLimit) and condition.user_id:
            current = caps_by_user.get(condition.user_id, DEFAULT_CAPS)
            caps_by_user[condition.user_id] = _overlay_daily(current, condition)

    template_index = _shifts_by_template(shifts)

    max_by_shift_role: dict[str, dict[str, int]] = defaultdict(dict)
    priorities_by_shift: dict[str, dict[str, float]] = defaultdict(dict)
    forced: list[tuple[str, str]] = []
    banned: set[tuple[str, str]] = set()
    mandatory: set[tuple[str, str]] = set()
    incompatible_global: set[frozenset[str]] = set()
    incompatible_by_shift: dict[str, set[frozenset[str]]] = defaultdict(set)

    for condition in enabled:
        if isinstance(condition, ShiftStaffing):
            for shift_id in template_index.get(condition.template_id, ()):
                max_by_shift_role[shift_id][condition.role] = max(0, int(condition.count))
                if condition.mandatory:
                    mandatory.add((shift_id, condition.role))
        elif isinstance(condition, StaffShiftLink):
            for shift_id in template_index.get(condition.template_id, ()):
                if condition.link == "force":
                    forced.append((condition.user_id, shift_id))
                else:
                    banned.add((condition.user_id, shift_id))
        elif isinstance(condition, StaffPriority):
            if not condition.template_id:
                continue
            weight = condition.weight or 0
            if condition.mandatory:
                weight += MANDATORY_PRIORITY_BOOST
            for shift_id in template_index.get(condition.template_id, ()):
                priorities_by_shift[shift_id][condition.user_id] = weight
        elif isinstance(condition, StaffExclusion):
            pairs = {
                frozenset((condition.user_id, other))
                for other in condition.blocked_user_ids
                if other and other != condition.user_id
            }
            if not condition.template_id:
                incompatible_global.update(pairs)
                continue
            for shift_id in template_index.get(condition.template_id, ()):
                incompatible_by_shift[shift_id].update(pairs)

    return NormalizedContext(
        max_by_shift_role=_freeze_nested(max_by_shift_role),
        priorities_by_shift=_freeze_nested(priorities_by_shift),
        forced_assignments=tuple(forced),
        banned_pairs=frozenset(banned),
        caps_by_user=MappingProxyType(caps_by_user),
        mandatory_demand=frozenset(mandatory),
        strict_availability=bool(strictness.strict) if strictness is not None else False,
        incompatible_global=frozenset(incompatible_global),
        incompatible_by_shift=MappingProxyType(
            {shift_id: frozenset(pairs) for shift_id, pairs in incompatible_by_shift.items()}
        ),
    )


__all__ = [
    "DEFAULT_CAPS",
    "MANDATORY_PRIORITY_BOOST",
    "NormalizedContext",
    "UserCaps",
    "normalize_constraints",
]
