from __future__ import annotations

import re
from typing import Any, Dict, Optional

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def stripe_to_dict(obj: Any) -> Dict[str, Any]:
    """Convert Stripe objects to plain dicts for safer access."""
    if obj is None:
        return {}
    if isinstance(obj, dict) and not hasattr(obj, "to_dict"):
        return obj

    to_dict_recursive = getattr(obj, "to_dict_recursive", None)
    if callable(to_dict_recursive):
        result = to_dict_recursive()
        if isinstance(result, dict):
            return result

    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        result = to_dict()
        if isinstance(result, dict):
            return result

    try:
        return dict(obj)
    except (TypeError, ValueError):
        return {}


def coerce_stripe_id(value: Any) -> Optional[str]:
    """Reduce an id-or-expanded-object reference to its plain string id."""
    if not value:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        potential_id = value.get("id")
        return potential_id if isinstance(potential_id, str) and potential_id else None
    potential_id = getattr(value, "id", None)
    if isinstance(potential_id, str) and potential_id:
        return potential_id
    return None


def to_int(value: Any) -> Optional[int]:
    """Best-effort conversion to int with graceful failure.

    Strings yield their leading integer, so "50.0" and "50 credits" give 50.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        return int(match.group(1)) if match else None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
