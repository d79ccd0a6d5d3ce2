from __future__ import annotations

import logging

import pandas as pd

from scheduler.models import User

from .utils import LoaderError, _ensure_cols, _parse_bool, _split_list


logger = logging.getLogger(__name__)

USER_COLUMNS = [
    "user_id",
    "display_name",
    "role",
    "secondary_roles",
    "gender",
    "is_test_account",
]


def load_users(path: str) -> pd.DataFrame:
    """Load ``users.csv`` and validate ids and roles."""

    df = pd.read_csv(path, dtype=str).fillna("")
    _ensure_cols(df, {"user_id", "display_name", "role"}, "users.csv")
    for col in ("secondary_roles", "gender", "is_test_account"):
        if col not in df.columns:
            df[col] = ""
    for col in USER_COLUMNS:
        df[col] = df[col].astype(str).str.strip()

    if df["user_id"].eq("").any():
        rows = (df.index[df["user_id"].eq("")] + 2).tolist()[:5]
        raise LoaderError(f"users.csv: empty user_id at rows {rows}")
    dup = df.loc[df["user_id"].duplicated(), "user_id"].unique().tolist()
    if dup:
        raise LoaderError(f"users.csv: duplicate user_id: {dup}")
    no_role = df.loc[df["role"].eq(""), "user_id"].tolist()
    if no_role:
        raise LoaderError(f"users.csv: missing role for users {no_role[:5]}")

    df["display_name"] = df["display_name"].where(df["display_name"].ne(""), df["user_id"])
    df["is_test_account"] = [
        _parse_bool(v, f"users.csv: is_test_account of {uid}")
        for uid, v in zip(df["user_id"], df["is_test_account"])
    ]

    logger.info("users.csv: %d users (%d test accounts)", len(df), int(df["is_test_account"].sum()))
    return df.loc[:, USER_COLUMNS].reset_index(drop=True)


def build_users(users_df: pd.DataFrame) -> tuple[User, ...]:
    return tuple(
        User(
            user_id=row.user_id,
            display_name=row.display_name,
            role=row.role,
            secondary_roles=tuple(r for r in _split_list(row.secondary_roles) if r != row.role),
            gender=row.gender or None,
            is_test_account=bool(row.is_test_account),
        )
        for row in users_df.itertuples(index=False)
    )
