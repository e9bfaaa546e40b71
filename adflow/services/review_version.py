import math
from typing import Any, Mapping

# Keys looked up on mapping-shaped values, highest priority first.
REVIEW_VERSION_KEYS = ("reviewVersion", "reviewType", "type", "version", "value", "label")

REVIEW_TYPE_LABELS = {
    "1": "Legacy",
    "2": "2.0",
    "3": "Brief",
}

_MAX_DEPTH = 8


def _normalize_text(text: str) -> str:
    normalized = text.strip().lower()
    if normalized == "1" or "legacy" in normalized:
        return "1"
    if normalized == "2" or "2.0" in normalized or "v2" in normalized:
        return "2"
    if (
        normalized == "3"
        or "3.0" in normalized
        or "v3" in normalized
        or "brief" in normalized
    ):
        return "3"
    return "1"


def _normalize(value: Any, depth: int) -> str:
    if value is None or depth > _MAX_DEPTH:
        return "1"

    # bool is an int subclass; treat it as unrecognised
    if isinstance(value, bool):
        return "1"

    if isinstance(value, (int, float)):
        if isinstance(value, float):
            if math.isnan(value) or math.isinf(value):
                return "1"
            if value.is_integer():
                value = int(value)
        return _normalize_text(str(value))

    if isinstance(value, Mapping):
        for key in REVIEW_VERSION_KEYS:
            if key in value:
                return _normalize(value[key], depth + 1)
        return "1"

    try:
        return _normalize_text(str(value))
    except Exception:
        return "1"


def normalize_review_version(value: Any) -> str:
    """
    Coerce a stored review type into ``'1'`` (legacy), ``'2'`` or ``'3'`` (brief).

    Accepts None, numbers, strings and mappings that carry the real value under
    one of ``REVIEW_VERSION_KEYS``. Never raises.
    """
    return _normalize(value, 0)


def review_type_label(value: Any) -> str:
    return REVIEW_TYPE_LABELS[normalize_review_version(value)]
