from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

import pandas as pd

from scheduler.models import Availability, ScheduleCondition, ScheduleOptions, Shift, User

from .availability import build_availability, load_availability
from .conditions import load_conditions, parse_condition
from .config import load_config, scheduler_options
from .shifts import build_shifts, load_shifts, load_template_roles
from .users import build_users, load_users
from .utils import LoaderError, _parse_date


@dataclass
class LoadedData:
    cfg: dict
    users_df: pd.DataFrame
    shifts_df: pd.DataFrame
    template_roles_df: pd.DataFrame
    availability_df: pd.DataFrame
    users: tuple[User, ...]
    shifts: tuple[Shift, ...]
    availability: tuple[Availability, ...]
    conditions: tuple[ScheduleCondition, ...]
    options: dict[str, Any]

    def schedule_options(self, **overrides: Any) -> ScheduleOptions:
        return ScheduleOptions.coerce({**self.options, **overrides})


def load_all(config_path: str, data_dir: str) -> LoadedData:
    cfg = load_config(config_path)
    start_date = _parse_date(cfg["horizon"]["start_date"])
    end_date = _parse_date(cfg["horizon"]["end_date"])

    users_df = load_users(os.path.join(data_dir, "users.csv"))
    shifts_df = load_shifts(os.path.join(data_dir, "shifts.csv"), start_date, end_date)
    if shifts_df.empty:
        raise LoaderError(
            f"shifts.csv: no shifts between {start_date} and {end_date}"
        )
    template_roles_df = load_template_roles(os.path.join(data_dir, "template_roles.csv"))
    availability_df = load_availability(
        os.path.join(data_dir, "availability.csv"),
        users_df,
        start_date,
        end_date,
    )
    conditions = load_conditions(os.path.join(data_dir, "conditions.yaml"))

    return LoadedData(
        cfg=cfg,
        users_df=users_df,
        shifts_df=shifts_df,
        template_roles_df=template_roles_df,
        availability_df=availability_df,
        users=build_users(users_df),
        shifts=build_shifts(shifts_df, template_roles_df),
        availability=build_availability(availability_df),
        conditions=conditions,
        options=scheduler_options(cfg),
    )


__all__ = [
    "LoaderError",
    "LoadedData",
    "build_availability",
    "build_shifts",
    "build_users",
    "load_all",
    "load_availability",
    "load_conditions",
    "load_config",
    "load_shifts",
    "load_template_roles",
    "load_users",
    "parse_condition",
]
