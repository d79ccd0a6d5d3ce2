from __future__ import annotations

import dataclasses
import logging
import os
import re
import warnings
from typing import Any

import yaml

from scheduler.models import CONDITION_TYPES, ScheduleCondition

from .utils import LoaderError, _parse_bool, _split_list


logger = logging.getLogger(__name__)

_CAMEL = re.compile(r"(?<!^)(?=[A-Z])")
_KEY_ALIASES = {"id": "condition_id"}
_BOOL_FIELDS = {"enabled", "mandatory", "strict"}
_INT_FIELDS = {"count", "min_shifts_per_week", "max_shifts_per_week", "max_per_day"}
_FLOAT_FIELDS = {"min_hours_per_week", "max_hours_per_week", "weight"}
_STR_FIELDS = {"condition_id", "user_id", "template_id", "role", "scope", "link"}
_NEEDS_USER = {"StaffPriority", "StaffShiftLink", "StaffExclusion"}
_NEEDS_TEMPLATE = {"ShiftStaffing", "StaffShiftLink"}


def _snake(key: str) -> str:
    key = str(key).strip()
    return _KEY_ALIASES.get(key, _CAMEL.sub("_", key).lower())


def _coerce_field(name: str, value: Any, label: str) -> Any:
    if value is None:
        return None
    if name in _BOOL_FIELDS:
        return _parse_bool(value, f"{label}: {name}")
    if name in _INT_FIELDS or name in _FLOAT_FIELDS:
        if isinstance(value, bool):
            raise LoaderError(f"{label}: {name} must be a number, got {value!r}")
        try:
            number = float(value)
        except (TypeError, ValueError) as exc:
            raise LoaderError(f"{label}: {name} must be a number, got {value!r}") from exc
        if name in _INT_FIELDS:
            if not number.is_integer():
                raise LoaderError(f"{label}: {name} must be an integer, got {value!r}")
            return int(number)
        return number
    if name == "blocked_user_ids":
        return _split_list(value)
    if name in _STR_FIELDS:
        return str(value).strip()
    return value


def parse_condition(raw: Any, position: int) -> ScheduleCondition:
    """Build one condition dataclass from a YAML mapping."""

    label = f"conditions.yaml: condition #{position}"
    if not isinstance(raw, dict):
        raise LoaderError(f"{label}: expected a mapping, got {type(raw).__name__}")

    values = {_snake(k): v for k, v in raw.items()}
    kind = str(values.pop("type", "")).strip()
    cls = CONDITION_TYPES.get(kind)
    if cls is None:
        raise LoaderError(
            f"{label}: unknown type {kind!r} (expected one of {sorted(CONDITION_TYPES)})"
        )

    fields = {f.name for f in dataclasses.fields(cls)}
    unknown = sorted(set(values) - fields)
    if unknown:
        raise LoaderError(f"{label} ({kind}): unknown fields {unknown}")

    defaults = {f.name: f.default for f in dataclasses.fields(cls)}
    kwargs: dict[str, Any] = {}
    for name, value in values.items():
        coerced = _coerce_field(name, value, f"{label} ({kind})")
        if coerced is None and defaults[name] is not None:
            continue
        kwargs[name] = coerced

    if kind == "WorkloadLimit" and kwargs.get("scope", "global") not in {"global", "user"}:
        raise LoaderError(f"{label} ({kind}): scope must be 'global' or 'user'")
    if kind == "StaffShiftLink" and kwargs.get("link", "force") not in {"force", "ban"}:
        raise LoaderError(f"{label} ({kind}): link must be 'force' or 'ban'")
    if kind in _NEEDS_USER and not kwargs.get("user_id"):
        raise LoaderError(f"{label} ({kind}): user_id is required")
    if kind in _NEEDS_TEMPLATE and not kwargs.get("template_id"):
        raise LoaderError(f"{label} ({kind}): template_id is required")

    return cls(**kwargs)


def load_conditions(path: str) -> tuple[ScheduleCondition, ...]:
    """Load the ``conditions:`` list of ``conditions.yaml``, in file order."""

    if not os.path.exists(path):
        warnings.warn(
            "conditions.yaml not found: loaded 0 conditions",
            UserWarning,
            stacklevel=2,
        )
        return ()

    with open(path, "r", encoding="utf-8") as f:
        doc = yaml.safe_load(f) or {}
    if isinstance(doc, list):
        items = doc
    elif isinstance(doc, dict):
        items = doc.get("conditions") or []
    else:
        raise LoaderError("conditions.yaml: expected a mapping with a 'conditions' list")
    if not isinstance(items, list):
        raise LoaderError("conditions.yaml: 'conditions' must be a list")

    conditions = tuple(parse_condition(raw, i) for i, raw in enumerate(items, start=1))
    disabled = sum(1 for c in conditions if not c.enabled)
    logger.info("conditions.yaml: %d conditions (%d disabled)", len(conditions), disabled)
    return conditions
