from __future__ import annotations

import logging
from typing import Any, Tuple

import yaml

from loader import LoadedData, LoaderError, load_all

from .allocator import allocate
from .constraints import NormalizedContext, normalize_constraints
from .models import ScheduleRunResult


logger = logging.getLogger(__name__)


class ScheduleBuildError(Exception):
    """The inputs of a scheduling run could not be loaded."""


def run_from_sources(
    cfg_path: str,
    data_dir: str,
    **overrides: Any,
) -> Tuple[ScheduleRunResult, NormalizedContext, LoadedData]:
    """Load config and data directory, then run the allocator on them.

    ``overrides`` replace entries of the config ``scheduler`` section
    (e.g. ``seed=7`` or ``include_busy_users=True``).
    """
    try:
        data = load_all(cfg_path, data_dir)
    except (LoaderError, OSError, ValueError, yaml.YAMLError) as exc:
        raise ScheduleBuildError(str(exc)) from exc

    options = data.schedule_options(**{k: v for k, v in overrides.items() if v is not None})
    ctx = normalize_constraints(data.conditions, data.shifts, data.users)
    logger.info(
        "running allocator: %d shifts, %d users, %d conditions",
        len(data.shifts),
        len(data.users),
        len(data.conditions),
    )
    result = allocate(data.shifts, data.users, data.availability, ctx, options)
    return result, ctx, data


__all__ = [
    "ScheduleBuildError",
    "run_from_sources",
]
