from __future__ import annotations

from typing import Any

import yaml

from .utils import LoaderError, _parse_date


SCHEDULER_DEFAULTS: dict[str, Any] = {
    "include_busy_users": False,
    "busy_exclusion_ids": [],
    "enforce_frame_continuity": True,
    "enforce_night_rest": True,
    "seed": None,
}

_BOOL_KEYS = ("include_busy_users", "enforce_frame_continuity", "enforce_night_rest")


def load_config(path: str) -> dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        cfg = yaml.safe_load(f) or {}
    if not isinstance(cfg, dict):
        raise LoaderError("config: the top level must be a mapping")

    try:
        start = _parse_date(cfg["horizon"]["start_date"])
        end = _parse_date(cfg["horizon"]["end_date"])
    except (KeyError, TypeError, ValueError) as exc:
        raise LoaderError(
            f"config: horizon/start_date,end_date missing or invalid: {exc}"
        ) from exc
    if end < start:
        raise LoaderError(
            f"config: horizon.end_date ({end}) precedes horizon.start_date ({start})"
        )

    section = cfg.get("scheduler")
    if section is None:
        section = {}
        cfg["scheduler"] = section
    if not isinstance(section, dict):
        raise LoaderError("config: scheduler must be a mapping")

    for key, default in SCHEDULER_DEFAULTS.items():
        section.setdefault(key, list(default) if isinstance(default, list) else default)

    for key in _BOOL_KEYS:
        if not isinstance(section[key], bool):
            raise LoaderError(f"config: scheduler.{key} must be true or false")

    exclusions = section["busy_exclusion_ids"]
    if exclusions is None:
        exclusions = []
    if not isinstance(exclusions, (list, tuple)):
        raise LoaderError("config: scheduler.busy_exclusion_ids must be a list of user ids")
    section["busy_exclusion_ids"] = [str(x).strip() for x in exclusions if str(x).strip()]

    seed = section["seed"]
    if seed is not None and (isinstance(seed, bool) or not isinstance(seed, int)):
        raise LoaderError("config: scheduler.seed must be an integer or null")

    return cfg


def scheduler_options(cfg: dict[str, Any]) -> dict[str, Any]:
    """The ``scheduler`` section as a mapping accepted by ``ScheduleOptions.coerce``."""
    section = cfg.get("scheduler", {}) or {}
    return {key: section.get(key, default) for key, default in SCHEDULER_DEFAULTS.items()}
