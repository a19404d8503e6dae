"""Reusable validation helpers for payloads and catalog values.

Everything here raises ValidationFailed so callers get consistent 400 semantics.
"""
from __future__ import annotations
import logging
from typing import Any, Mapping, Optional

from permit_hub.errors import ValidationFailed
from permit_hub.models.permit_type import ApprovalStep

logger = logging.getLogger(__name__)


def require_keys(data: Mapping[str, Any], *keys: str):
    """Raise for the first key that is absent, None or an empty string."""
    for key in keys:
        val = data.get(key)
        if val is None or (isinstance(val, str) and not val.strip()):
            raise ValidationFailed(f'{key} required', field=key)


def coerce_int(value: Any, field_name: str) -> Optional[int]:
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationFailed(f'{field_name} must be int', field=field_name)


def coerce_bool(value: Any, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ('true', 'false', '1', '0'):
        return value.strip().lower() in ('true', '1')
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise ValidationFailed(f'{field_name} must be boolean', field=field_name)


def normalize_approval_mode(value: Optional[str]) -> str:
    """Map any value to 'single' or 'all'.

    Only a case-insensitive 'all' selects unanimous approval; every other value,
    including None, is the single-approver mode.
    """
    mode = (value or ApprovalStep.MODE_SINGLE).strip().lower()
    if mode == ApprovalStep.MODE_ALL:
        return ApprovalStep.MODE_ALL
    if mode != ApprovalStep.MODE_SINGLE:
        logger.warning('unknown approval mode %r treated as %s', value, ApprovalStep.MODE_SINGLE)
    return ApprovalStep.MODE_SINGLE


def first_missing_required(field_definitions, payload: Mapping[str, Any]):
    """Return the first required FieldDefinition (display order) absent or null in payload."""
    for field in sorted(field_definitions, key=lambda f: (f.display_order, f.id or 0)):
        if field.is_required and payload.get(field.field_key) is None:
            return field
    return None


def invalid_choice(field_definitions, payload: Mapping[str, Any]):
    """Return the first select/checkbox field whose value is outside its option list."""
    for field in sorted(field_definitions, key=lambda f: (f.display_order, f.id or 0)):
        if field.field_type not in ('select', 'checkbox') or not field.options:
            continue
        value = payload.get(field.field_key)
        if value is None:
            continue
        values = value if isinstance(value, list) else [value]
        if any(v not in field.options for v in values):
            return field
    return None


__all__ = [
    'require_keys', 'coerce_int', 'coerce_bool',
    'normalize_approval_mode', 'first_missing_required', 'invalid_choice',
]
