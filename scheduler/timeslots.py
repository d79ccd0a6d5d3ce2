"""Helpers for ``HH:MM`` time slots: durations, overlaps and daily frames."""

from __future__ import annotations

from datetime import date, timedelta
from enum import IntEnum
from typing import AbstractSet, Iterable, Mapping

from .models import Availability, TimeSlot


class Frame(IntEnum):
    """Daily time windows, ordered morning < afternoon < evening."""

    F1 = 1
    F2 = 2
    F3 = 3


# Half-open windows [start, end) in hours.
FRAME_WINDOWS: tuple[tuple[Frame, float, float], ...] = (
    (Frame.F1, 6.0, 12.0),
    (Frame.F2, 12.0, 17.0),
    (Frame.F3, 17.0, 22.5),
)


def parse_time(value: str) -> float:
    """``"08:30"`` -> ``8.5``."""
    hours, minutes = str(value).strip().split(":")
    return int(hours) + int(minutes) / 60


def duration_hours(slot: TimeSlot) -> float:
    start = parse_time(slot.start)
    end = parse_time(slot.end)
    if end <= start:
        return 0.0
    return end - start


def overlaps(a: TimeSlot, b: TimeSlot) -> bool:
    return parse_time(a.start) < parse_time(b.end) and parse_time(b.start) < parse_time(a.end)


def slot_contains(outer: TimeSlot, inner: TimeSlot) -> bool:
    return parse_time(outer.start) <= parse_time(inner.start) and parse_time(outer.end) >= parse_time(inner.end)


def is_user_available(
    user_id: str,
    shift_slot: TimeSlot,
    day_availability: Iterable[Availability],
) -> bool:
    """True when one of the user's declared slots covers the whole shift.

    A user with no availability record for the day is unavailable.
    """
    for record in day_availability:
        if record.user_id != user_id:
            continue
        return any(slot_contains(slot, shift_slot) for slot in record.available_slots)
    return False


def classify_frame(slot: TimeSlot) -> Frame | None:
    """Frame containing the midpoint of ``slot``; ``None`` when outside all windows."""
    start = parse_time(slot.start)
    end = parse_time(slot.end)
    if end <= start:
        return None
    midpoint = (start + end) / 2
    for frame, window_start, window_end in FRAME_WINDOWS:
        if window_start <= midpoint < window_end:
            return frame
    return None


def is_contiguous(frames: Iterable[Frame]) -> bool:
    ordered = sorted(set(int(f) for f in frames))
    if not ordered:
        return True
    return ordered[-1] - ordered[0] == len(ordered) - 1


def breaks_frame_continuity(worked: AbstractSet[Frame], candidate: Frame | None) -> bool:
    if candidate is None or not worked:
        return False
    return not is_contiguous(set(worked) | {candidate})


def breaks_night_rest(
    frames_by_date: Mapping[date, AbstractSet[Frame]],
    day: date,
    candidate: Frame | None,
) -> bool:
    """Evening on D-1 forbids morning on D; morning on D+1 forbids evening on D."""
    if candidate == Frame.F1:
        return Frame.F3 in frames_by_date.get(day - timedelta(days=1), ())
    if candidate == Frame.F3:
        return Frame.F1 in frames_by_date.get(day + timedelta(days=1), ())
    return False


__all__ = [
    "FRAME_WINDOWS",
    "Frame",
    "breaks_frame_continuity",
    "breaks_night_rest",
    "classify_frame",
    "duration_hours",
    "is_contiguous",
    "is_user_available",
    "overlaps",
    "parse_time",
    "slot_contains",
]
