"""
Normalization helpers for free-text and enum-like client input.
"""
from typing import Any, Optional, Type, TypeVar
from enum import Enum

from civicpulse.core.constants import IncidentConstants, IncidentStatus, Severity

E = TypeVar("E", bound=Enum)


def clamp_text(value: Any, max_len: int) -> str:
    """Trim ``value`` and cut it to ``max_len`` characters; non-strings become ''."""
    if not isinstance(value, str):
        return ""
    trimmed = value.strip()
    return trimmed[:max_len]


def coerce_enum(value: Any, enum_cls: Type[E], max_len: int) -> Optional[E]:
    """Case-insensitive lookup of ``value`` in ``enum_cls``; None when it does not match."""
    if isinstance(value, enum_cls):
        return value
    candidate = clamp_text(value, max_len).lower()
    try:
        return enum_cls(candidate)
    except ValueError:
        return None


def normalize_type(value: Any) -> str:
    text = clamp_text(value, IncidentConstants.MAX_TYPE_LENGTH)
    if not text:
        return IncidentConstants.DEFAULT_TYPE
    return text.lower()


def normalize_severity(value: Any) -> Severity:
    severity = coerce_enum(value, Severity, IncidentConstants.MAX_SEVERITY_LENGTH)
    return severity or IncidentConstants.DEFAULT_SEVERITY


def normalize_status(value: Any) -> IncidentStatus:
    status = coerce_enum(value, IncidentStatus, IncidentConstants.MAX_STATUS_LENGTH)
    return status or IncidentConstants.DEFAULT_STATUS
