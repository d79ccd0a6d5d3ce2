from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Set

import pandas as pd


HHMM = re.compile(r"^(?:[01]\d|2[0-3]):[0-5]\d$")
_TRUE_VALUES = {"1", "true", "yes", "y", "x"}
_FALSE_VALUES = {"", "0", "false", "no", "n"}


class LoaderError(Exception):
    """Input data could not be loaded."""


def _parse_date(s: str) -> date:
    """Parse an ISO (YYYY-MM-DD) string into a date."""
    return datetime.strptime(str(s).strip(), "%Y-%m-%d").date()


def _ensure_cols(df: pd.DataFrame, required: Set[str], label: str) -> None:
    """Raise when the DataFrame lacks any of the required columns."""
    missing = required - set(df.columns)
    if missing:
        raise LoaderError(f"{label}: missing columns {sorted(missing)}")


def _split_list(value: Any) -> tuple[str, ...]:
    """``"a|b, c"`` -> ``("a", "b", "c")``; lists are accepted as they are."""
    if value is None:
        return ()
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [str(x).strip() for x in value]
    else:
        items = [x.strip() for x in str(value).replace(",", "|").split("|")]
    seen = set()
    deduped: list[str] = []
    for item in items:
        if item and item not in seen:
            seen.add(item)
            deduped.append(item)
    return tuple(deduped)


def _parse_bool(value: Any, label: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise LoaderError(f"{label}: invalid boolean value {value!r}")


def _check_hhmm(df: pd.DataFrame, cols: list[str], label: str, key: str) -> None:
    """Raise when any of ``cols`` is not a valid ``HH:MM`` time."""
    for col in cols:
        bad = df.loc[~df[col].str.match(HHMM.pattern), key].tolist()
        if bad:
            raise LoaderError(f"{label}: invalid {col} (expected HH:MM) for {bad[:5]}")


def _parse_dates(df: pd.DataFrame, col: str, label: str) -> pd.Series:
    parsed = pd.to_datetime(df[col], format="%Y-%m-%d", errors="coerce")
    if parsed.isna().any():
        bad = df.loc[parsed.isna(), col].tolist()[:5]
        raise LoaderError(f"{label}: invalid dates in column {col}: {bad}")
    return parsed.dt.date
