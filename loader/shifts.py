from __future__ import annotations

import logging
import os
import warnings
from collections import defaultdict
from datetime import date

import pandas as pd

from scheduler.models import RoleRequirement, Shift, TimeSlot

from .utils import LoaderError, _check_hhmm, _ensure_cols, _parse_dates


logger = logging.getLogger(__name__)

SHIFT_COLUMNS = [
    "shift_id",
    "date",
    "label",
    "role",
    "start",
    "end",
    "min_users",
    "template_id",
]
TEMPLATE_ROLE_COLUMNS = ["template_id", "role", "count", "gender"]


def load_shifts(path: str, start_date: date, end_date: date) -> pd.DataFrame:
    """Load ``shifts.csv`` keeping only the shifts inside the horizon."""

    df = pd.read_csv(path, dtype=str).fillna("")
    _ensure_cols(df, {"shift_id", "date", "label", "role", "start", "end"}, "shifts.csv")
    for col in ("min_users", "template_id"):
        if col not in df.columns:
            df[col] = ""
    for col in SHIFT_COLUMNS:
        df[col] = df[col].astype(str).str.strip()

    if df["shift_id"].eq("").any():
        rows = (df.index[df["shift_id"].eq("")] + 2).tolist()[:5]
        raise LoaderError(f"shifts.csv: empty shift_id at rows {rows}")
    dup = df.loc[df["shift_id"].duplicated(), "shift_id"].unique().tolist()
    if dup:
        raise LoaderError(f"shifts.csv: duplicate shift_id: {dup}")
    no_role = df.loc[df["role"].eq(""), "shift_id"].tolist()
    if no_role:
        raise LoaderError(f"shifts.csv: missing role for shifts {no_role[:5]}")

    _check_hhmm(df, ["start", "end"], "shifts.csv", "shift_id")
    df["date"] = _parse_dates(df, "date", "shifts.csv")

    min_users = pd.to_numeric(df["min_users"].replace("", "0"), errors="coerce")
    bad = df.loc[
        min_users.isna() | (min_users < 0) | (min_users % 1 != 0), "shift_id"
    ].tolist()
    if bad:
        raise LoaderError(f"shifts.csv: min_users must be a non-negative integer for {bad[:5]}")
    df["min_users"] = min_users.astype(int)

    in_horizon = (df["date"] >= start_date) & (df["date"] <= end_date)
    dropped = int((~in_horizon).sum())
    if dropped:
        logger.info("shifts.csv: %d shifts outside the horizon ignored", dropped)
    df = df.loc[in_horizon, SHIFT_COLUMNS].sort_values(["date", "start", "shift_id"])

    logger.info("shifts.csv: %d shifts in horizon", len(df))
    return df.reset_index(drop=True)


def load_template_roles(path: str) -> pd.DataFrame:
    """Load the optional ``template_roles.csv`` (per-template role requirements)."""

    if not os.path.exists(path):
        warnings.warn(
            "template_roles.csv not found: loaded 0 template role requirements",
            UserWarning,
            stacklevel=2,
        )
        return pd.DataFrame(columns=TEMPLATE_ROLE_COLUMNS)

    df = pd.read_csv(path, dtype=str).fillna("")
    _ensure_cols(df, {"template_id", "role", "count"}, "template_roles.csv")
    if "gender" not in df.columns:
        df["gender"] = ""
    for col in TEMPLATE_ROLE_COLUMNS:
        df[col] = df[col].astype(str).str.strip()

    missing = df["template_id"].eq("") | df["role"].eq("")
    if missing.any():
        rows = (df.index[missing] + 2).tolist()[:5]
        raise LoaderError(f"template_roles.csv: template_id and role are required (rows {rows})")

    count = pd.to_numeric(df["count"], errors="coerce")
    bad = count.isna() | (count < 0) | (count % 1 != 0)
    if bad.any():
        rows = (df.index[bad] + 2).tolist()[:5]
        raise LoaderError(f"template_roles.csv: count must be a non-negative integer (rows {rows})")
    df["count"] = count.astype(int)

    return df.loc[:, TEMPLATE_ROLE_COLUMNS].reset_index(drop=True)


def build_shifts(shifts_df: pd.DataFrame, template_roles_df: pd.DataFrame) -> tuple[Shift, ...]:
    requirements: dict[str, list[RoleRequirement]] = defaultdict(list)
    for rec in template_roles_df.to_dict("records"):
        requirements[rec["template_id"]].append(
            RoleRequirement(role=rec["role"], count=int(rec["count"]), gender=rec["gender"] or None)
        )

    unknown = sorted(set(requirements) - set(shifts_df["template_id"]))
    if unknown:
        logger.info("template_roles.csv: templates without shifts in horizon: %s", unknown)

    return tuple(
        Shift(
            shift_id=row.shift_id,
            date=row.date,
            label=row.label or row.shift_id,
            role=row.role,
            time_slot=TimeSlot(row.start, row.end),
            min_users=int(row.min_users),
            required_roles=tuple(requirements.get(row.template_id, ())),
            template_id=row.template_id or None,
        )
        for row in shifts_df.itertuples(index=False)
    )
