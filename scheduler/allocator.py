"""Greedy multi-phase allocation of users to shifts.

Phases run in a fixed order and each one only adds to what the previous
ones left unfilled:

1. forced assignments from ``StaffShiftLink(force)`` conditions;
2. fill by primary role, available users only;
3. backfill by secondary role, available users only;
4. optional busy-user fallback that ignores availability;
5. reporting of residual demand and mandatory shortfalls.

Every placement goes through :meth:`_Allocation.add_assignment` so the
workload counters and the continuity bookkeeping stay consistent.
"""

from __future__ import annotations

import logging
import math
import random
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Iterable, Mapping, Sequence

from .constraints import NormalizedContext
from .models import (
    ANY_ROLE,
    Assignment,
    AssignedUser,
    Availability,
    ScheduleOptions,
    ScheduleRunResult,
    Shift,
    UnfilledDemand,
    User,
)
from .timeslots import (
    Frame,
    breaks_frame_continuity,
    breaks_night_rest,
    classify_frame,
    duration_hours,
    is_user_available,
    overlaps,
)


logger = logging.getLogger(__name__)

WARNING_TEMPLATE = (
    "Thiếu nhân sự bắt buộc cho ca {label} ({date} {start}-{end}): "
    "còn thiếu {remaining} người vai trò {role}."
)

RoleMatcher = Callable[[User, str], bool]
WeekKey = tuple[int, int]


def week_key(day: date) -> WeekKey:
    iso = day.isocalendar()
    return (iso[0], iso[1])


def primary_role_matches(user: User, role: str) -> bool:
    return role == ANY_ROLE or user.role == role


def secondary_role_matches(user: User, role: str) -> bool:
    return role == ANY_ROLE or role in user.secondary_roles


@dataclass
class WorkingShift:
    """Per-run copy of a :class:`Shift` whose assignment list only grows."""

    shift: Shift
    duration: float
    frame: Frame | None
    assigned: list[AssignedUser] = field(default_factory=list)

    @property
    def shift_id(self) -> str:
        return self.shift.shift_id

    @property
    def date(self) -> date:
        return self.shift.date

    def has_user(self, user_id: str) -> bool:
        return any(entry.user_id == user_id for entry in self.assigned)

    def filled(self, role: str, gender: str | None) -> int:
        return sum(
            1
            for entry in self.assigned
            if entry.demand_role == role and entry.gender_slot == gender
        )


@dataclass(frozen=True)
class RoleTarget:
    role: str
    count: int
    gender: str | None = None


@dataclass
class AllocationCounters:
    week_shifts: dict[tuple[str, WeekKey], int] = field(default_factory=lambda: defaultdict(int))
    week_hours: dict[tuple[str, WeekKey], float] = field(default_factory=lambda: defaultdict(float))
    daily_shifts: dict[tuple[date, str], int] = field(default_factory=lambda: defaultdict(int))
    frames: dict[str, dict[date, set[Frame]]] = field(
        default_factory=lambda: defaultdict(lambda: defaultdict(set))
    )

    def record(self, user_id: str, shift: WorkingShift) -> None:
        key = (user_id, week_key(shift.date))
        self.week_shifts[key] += 1
        self.week_hours[key] += shift.duration
        self.daily_shifts[(shift.date, user_id)] += 1
        if shift.frame is not None:
            self.frames[user_id][shift.date].add(shift.frame)

    def week_count(self, user_id: str, day: date) -> int:
        return self.week_shifts.get((user_id, week_key(day)), 0)


def roles_to_fill(shift: Shift, ctx: NormalizedContext) -> list[str]:
    """Shift role first, then template roles, then staffing-condition roles."""
    roles: list[str] = [shift.role]
    roles.extend(req.role for req in shift.required_roles)
    roles.extend(ctx.max_by_shift_role.get(shift.shift_id, {}).keys())
    seen: set[str] = set()
    ordered: list[str] = []
    for role in roles:
        if role and role not in seen:
            seen.add(role)
            ordered.append(role)
    return ordered


def resolve_targets(shift: Shift, role: str, ctx: NormalizedContext) -> list[RoleTarget]:
    """Headcount targets for ``role`` on ``shift``.

    Gendered template requirements are separate targets, additive to the
    genderless one. The genderless target comes from the template's
    genderless requirement, then from a ``ShiftStaffing`` condition, then
    from ``min_users`` when ``role`` is the shift's own role. When the role
    only has gendered requirements the genderless target is skipped.
    """
    genderless = [req for req in shift.required_roles if req.role == role and not req.gender]
    gendered: dict[str, int] = {}
    for req in shift.required_roles:
        if req.role == role and req.gender:
            gendered[req.gender] = gendered.get(req.gender, 0) + max(0, int(req.count))

    staffing = ctx.max_by_shift_role.get(shift.shift_id, {})
    base: int | None
    if genderless:
        base = sum(max(0, int(req.count)) for req in genderless)
    elif role in staffing:
        base = staffing[role]
    elif gendered:
        base = None
    elif role == shift.role:
        base = max(0, int(shift.min_users or 0))
    else:
        base = 0

    targets: list[RoleTarget] = []
    if base is not None:
        targets.append(RoleTarget(role=role, count=base))
    targets.extend(RoleTarget(role=role, count=count, gender=g) for g, count in gendered.items())
    return targets


class _Allocation:
    """Mutable state of a single :func:`allocate` call."""

    def __init__(
        self,
        shifts: Sequence[Shift],
        users: Sequence[User],
        availability: Sequence[Availability],
        ctx: NormalizedContext,
        options: ScheduleOptions,
    ) -> None:
        self.ctx = ctx
        self.options = options
        self.rng = options.rng if options.rng is not None else random.Random()
        self.users = sorted((u for u in users if not u.is_test_account), key=lambda u: u.user_id)
        self.users_by_id = {u.user_id: u for u in self.users}

        self.shifts: list[WorkingShift] = [
            WorkingShift(
                shift=s,
                duration=duration_hours(s.time_slot),
                frame=classify_frame(s.time_slot),
            )
            for s in shifts
        ]
        self.shifts_by_id = {ws.shift_id: ws for ws in self.shifts}
        self.shifts_by_date: dict[date, list[WorkingShift]] = defaultdict(list)
        for ws in self.shifts:
            self.shifts_by_date[ws.date].append(ws)

        self.availability_by_date: dict[date, list[Availability]] = defaultdict(list)
        for record in availability:
            self.availability_by_date[record.date].append(record)

        self.counters = AllocationCounters()
        self.warnings: list[str] = []
        self.unfilled: list[UnfilledDemand] = []

    # -- checks ---------------------------------------------------------------

    def can_assign(self, user_id: str, day: date, duration: float) -> bool:
        caps = self.ctx.caps_for(user_id)
        key = (user_id, week_key(day))
        if self.counters.week_shifts.get(key, 0) + 1 > caps.max_shifts_per_week:
            return False
        if self.counters.week_hours.get(key, 0.0) + duration > caps.max_hours_per_week:
            return False
        if self.counters.daily_shifts.get((day, user_id), 0) + 1 > caps.max_per_day:
            return False
        return True

    def is_available(self, user_id: str, ws: WorkingShift) -> bool:
        return is_user_available(user_id, ws.shift.time_slot, self.availability_by_date.get(ws.date, ()))

    def has_time_conflict(self, user_id: str, ws: WorkingShift) -> bool:
        for other in self.shifts_by_date.get(ws.date, ()):
            if other is ws or not other.has_user(user_id):
                continue
            if overlaps(other.shift.time_slot, ws.shift.time_slot):
                return True
        return False

    def is_pair_blocked(self, user_id: str, ws: WorkingShift) -> bool:
        return any(
            self.ctx.is_pair_blocked(entry.user_id, user_id, ws.shift_id) for entry in ws.assigned
        )

    def breaks_continuity(self, user_id: str, ws: WorkingShift) -> bool:
        frames_by_date = self.counters.frames.get(user_id, {})
        if self.options.enforce_frame_continuity and breaks_frame_continuity(
            frames_by_date.get(ws.date, set()), ws.frame
        ):
            return True
        if self.options.enforce_night_rest and breaks_night_rest(frames_by_date, ws.date, ws.frame):
            return True
        return False

    def rejection_reason(self, user: User, ws: WorkingShift, *, ignore_availability: bool) -> str | None:
        uid = user.user_id
        if (uid, ws.shift_id) in self.ctx.banned_pairs:
            return "banned"
        if ws.has_user(uid):
            return "already_assigned"
        if ignore_availability:
            if uid in self.options.busy_exclusion_ids:
                return "busy_excluded"
        elif not self.is_available(uid, ws):
            return "unavailable"
        if not self.can_assign(uid, ws.date, ws.duration):
            return "caps"
        if self.has_time_conflict(uid, ws):
            return "time_conflict"
        if self.is_pair_blocked(uid, ws):
            return "pair_blocked"
        if self.breaks_continuity(uid, ws):
            return "continuity"
        return None

    # -- mutation -------------------------------------------------------------

    def add_assignment(
        self, ws: WorkingShift, user_id: str, demand_role: str, gender_slot: str | None = None
    ) -> None:
        user = self.users_by_id.get(user_id)
        resolved = demand_role
        if demand_role == ANY_ROLE and user is not None:
            resolved = user.role
        self.counters.record(user_id, ws)
        ws.assigned.append(
            AssignedUser(
                user_id=user_id,
                user_name=user.display_name if user is not None else user_id,
                role=resolved,
                demand_role=demand_role,
                gender_slot=gender_slot,
            )
        )

    # -- phases ---------------------------------------------------------------

    def apply_forced(self) -> None:
        for user_id, shift_id in self.ctx.forced_assignments:
            ws = self.shifts_by_id.get(shift_id)
            if ws is None:
                logger.warning("forced assignment: shift %s not found (user %s)", shift_id, user_id)
                self.warnings.append(f"FORCE_MISSING_SHIFT: {shift_id}")
                continue
            user = self.users_by_id.get(user_id)
            if user is None:
                logger.info("forced assignment skipped: user %s not eligible", user_id)
                continue
            if ws.has_user(user_id):
                continue
            if not self.is_available(user_id, ws) and self.ctx.strict_availability:
                logger.info("forced assignment skipped: %s unavailable for %s", user_id, shift_id)
                continue
            if self.has_time_conflict(user_id, ws) or self.is_pair_blocked(user_id, ws):
                logger.info("forced assignment skipped: %s conflicts on %s", user_id, shift_id)
                continue
            if self.breaks_continuity(user_id, ws):
                logger.info("forced assignment skipped: %s breaks frame rules on %s", user_id, shift_id)
                continue
            self.add_assignment(ws, user_id, user.role, self._forced_gender_slot(ws, user))

    def _forced_gender_slot(self, ws: WorkingShift, user: User) -> str | None:
        if not user.gender:
            return None
        targets = resolve_targets(ws.shift, user.role, self.ctx)
        if any(t.gender is None for t in targets):
            return None
        if any(t.gender == user.gender for t in targets):
            return user.gender
        return None

    def fill(
        self,
        ws: WorkingShift,
        target: RoleTarget,
        matcher: RoleMatcher,
        *,
        ignore_availability: bool = False,
    ) -> int:
        """Fill ``target`` on ``ws`` and return the residual demand."""
        remaining = max(0, target.count - ws.filled(target.role, target.gender))
        if remaining <= 0:
            return 0

        priorities: Mapping[str, float] = self.ctx.priorities_by_shift.get(ws.shift_id, {})
        candidates = [
            u
            for u in self.users
            if matcher(u, target.role) and (target.gender is None or u.gender == target.gender)
        ]
        self.rng.shuffle(candidates)

        scored: list[tuple[float, User]] = []
        for user in candidates:
            reason = self.rejection_reason(user, ws, ignore_availability=ignore_availability)
            if reason is not None:
                logger.debug("%s rejected for %s/%s: %s", user.user_id, ws.shift_id, target.role, reason)
                scored.append((-math.inf, user))
                continue
            fairness = -self.counters.week_count(user.user_id, ws.date)
            scored.append((priorities.get(user.user_id, 0) + fairness, user))
        scored.sort(key=lambda item: -item[0])

        for score, user in scored:
            if remaining <= 0:
                break
            if score == -math.inf:
                continue
            # An earlier pick in this loop may be incompatible with this candidate.
            if self.is_pair_blocked(user.user_id, ws):
                continue
            self.add_assignment(ws, user.user_id, target.role, target.gender)
            remaining -= 1
        return remaining

    def fill_pass(self, matchers: Iterable[RoleMatcher], *, ignore_availability: bool) -> None:
        matchers = tuple(matchers)
        for ws in self.shifts:
            for role in roles_to_fill(ws.shift, self.ctx):
                for target in resolve_targets(ws.shift, role, self.ctx):
                    for matcher in matchers:
                        self.fill(ws, target, matcher, ignore_availability=ignore_availability)

    def report(self) -> None:
        for ws in self.shifts:
            shift = ws.shift
            for role in roles_to_fill(shift, self.ctx):
                mandatory = self.ctx.is_mandatory(shift.shift_id, role)
                for target in resolve_targets(shift, role, self.ctx):
                    remaining = target.count - ws.filled(target.role, target.gender)
                    if remaining <= 0:
                        continue
                    self.unfilled.append(
                        UnfilledDemand(
                            shift_id=shift.shift_id,
                            role=role,
                            remaining=remaining,
                            gender=target.gender,
                        )
                    )
                    if mandatory:
                        self.warnings.append(format_shortfall_warning(shift, role, remaining, target.gender))

    def run(self) -> ScheduleRunResult:
        logger.info(
            "allocate: %d shifts, %d eligible users, %d forced assignments",
            len(self.shifts),
            len(self.users),
            len(self.ctx.forced_assignments),
        )
        self.apply_forced()
        self.fill_pass((primary_role_matches,), ignore_availability=False)
        self.fill_pass((secondary_role_matches,), ignore_availability=False)
        if self.options.include_busy_users:
            self.fill_pass((primary_role_matches, secondary_role_matches), ignore_availability=True)
        self.report()

        assignments = tuple(
            Assignment(shift_id=ws.shift_id, user_id=entry.user_id, role=entry.role)
            for ws in self.shifts
            for entry in ws.assigned
        )
        logger.info(
            "allocate: %d assignments, %d unfilled demands, %d warnings",
            len(assignments),
            len(self.unfilled),
            len(self.warnings),
        )
        return ScheduleRunResult(
            assignments=assignments,
            unfilled=tuple(self.unfilled),
            warnings=tuple(self.warnings),
        )


def format_shortfall_warning(shift: Shift, role: str, remaining: int, gender: str | None = None) -> str:
    message = WARNING_TEMPLATE.format(
        label=shift.label,
        date=shift.date.strftime("%d/%m/%Y"),
        start=shift.time_slot.start,
        end=shift.time_slot.end,
        remaining=remaining,
        role=role,
    )
    if gender:
        message += f" ({gender})"
    return message


def allocate(
    shifts: Sequence[Shift],
    users: Sequence[User],
    availability: Sequence[Availability],
    ctx: NormalizedContext,
    options: ScheduleOptions | Mapping[str, object] | None = None,
) -> ScheduleRunResult:
    """Run the allocation phases and return the flattened result.

    Pre-existing ``assigned_users`` on the input shifts are ignored; the
    schedule is rebuilt from scratch. Ties between equally scored candidates
    are broken by ``options.rng``.
    """
    return _Allocation(shifts, users, availability, ctx, ScheduleOptions.coerce(options)).run()


__all__ = [
    "AllocationCounters",
    "RoleTarget",
    "WARNING_TEMPLATE",
    "WorkingShift",
    "allocate",
    "format_shortfall_warning",
    "primary_role_matches",
    "resolve_targets",
    "roles_to_fill",
    "secondary_role_matches",
    "week_key",
]
