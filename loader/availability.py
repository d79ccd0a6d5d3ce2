from __future__ import annotations

import logging
import os
import warnings
from datetime import date

import pandas as pd

from scheduler.models import Availability, TimeSlot

from .utils import LoaderError, _check_hhmm, _ensure_cols, _parse_dates


logger = logging.getLogger(__name__)

AVAILABILITY_COLUMNS = ["user_id", "date", "start", "end"]


def load_availability(
    path: str,
    users_df: pd.DataFrame,
    start_date: date,
    end_date: date,
) -> pd.DataFrame:
    """Load declared availability slots, one row per user, date and slot."""

    if not os.path.exists(path):
        warnings.warn(
            "availability.csv not found: every user is treated as unavailable",
            UserWarning,
            stacklevel=2,
        )
        return pd.DataFrame(columns=AVAILABILITY_COLUMNS)

    df = pd.read_csv(path, dtype=str).fillna("")
    _ensure_cols(df, set(AVAILABILITY_COLUMNS), "availability.csv")
    for col in AVAILABILITY_COLUMNS:
        df[col] = df[col].astype(str).str.strip()

    df["row"] = df.index + 2
    _check_hhmm(df, ["start", "end"], "availability.csv", "row")
    df["date"] = _parse_dates(df, "date", "availability.csv")

    known = set(users_df["user_id"])
    unknown = sorted(set(df["user_id"]) - known)
    if unknown:
        raise LoaderError(f"availability.csv: unknown user_id {unknown[:5]}")

    in_horizon = (df["date"] >= start_date) & (df["date"] <= end_date)
    df = df.loc[in_horizon, AVAILABILITY_COLUMNS].drop_duplicates()
    logger.info("availability.csv: %d slots in horizon", len(df))
    return df.sort_values(["user_id", "date", "start"]).reset_index(drop=True)


def build_availability(availability_df: pd.DataFrame) -> tuple[Availability, ...]:
    """Group slot rows into one :class:`Availability` per user and date."""
    if availability_df.empty:
        return ()
    return tuple(
        Availability(
            user_id=user_id,
            date=day,
            available_slots=tuple(
                TimeSlot(start, end) for start, end in zip(group["start"], group["end"])
            ),
        )
        for (user_id, day), group in availability_df.groupby(["user_id", "date"], sort=True)
    )
