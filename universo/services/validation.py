# universo/services/validation.py
from typing import Any, Dict, Iterable, Optional

from universo.services.exceptions import ValidationError


def require_name(value: Any, field: str = "name", max_length: int = 255) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"'{field}' is required and must be a non-empty string.")
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"'{field}' must be at most {max_length} characters.")
    return value


def optional_text(value: Any, field: str = "description", max_length: int = 10000) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"'{field}' must be a string.")
    if len(value) > max_length:
        raise ValidationError(f"'{field}' must be at most {max_length} characters.")
    return value


def require_object(value: Any, field: str = "config") -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise ValidationError(f"'{field}' must be a JSON object.")
    return value


def reject_unknown(fields: Dict[str, Any], allowed: Iterable[str]):
    unknown = sorted(set(fields) - set(allowed))
    if unknown:
        raise ValidationError(f"Unknown field(s): {', '.join(unknown)}.")
    if not fields:
        raise ValidationError("No fields to update.")
