from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from werkzeug.utils import secure_filename

_TRUE = {"true", "1", "yes", "y", "on"}
_FALSE = {"false", "0", "no", "n", "off"}


def clean_str(v: Any) -> str | None:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def parse_date(v: Any) -> date | None:
    """Parse YYYY-MM-DD (or an ISO datetime, truncated to its date)."""
    if v is None or isinstance(v, date) and not isinstance(v, datetime):
        return v
    if isinstance(v, datetime):
        return v.date()
    s = str(v).strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s[:10])
    except ValueError:
        raise ValueError("expected a YYYY-MM-DD date") from None


def parse_datetime(v: Any) -> datetime | None:
    if v is None or isinstance(v, datetime):
        return v
    s = str(v).strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1]
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        raise ValueError("expected an ISO 8601 datetime") from None
    return dt.replace(tzinfo=None)


def parse_int(v: Any) -> int | None:
    if v is None:
        return None
    if isinstance(v, bool):
        raise ValueError("expected a whole number")
    if isinstance(v, int):
        return v
    s = str(v).strip()
    if not s:
        return None
    try:
        f = float(s)
    except ValueError:
        raise ValueError("expected a whole number") from None
    if f != int(f):
        raise ValueError("expected a whole number")
    return int(f)


def parse_decimal(v: Any) -> Decimal | None:
    if v is None or isinstance(v, bool):
        return None
    s = str(v).strip().replace(",", "").lstrip("$")
    if not s:
        return None
    try:
        d = Decimal(s)
    except InvalidOperation:
        raise ValueError("expected a number") from None
    if not d.is_finite():
        raise ValueError("expected a number")
    return d.quantize(Decimal("0.01"))


def parse_float(v: Any) -> float | None:
    if v is None or isinstance(v, bool):
        return None
    s = str(v).strip()
    if not s:
        return None
    try:
        f = float(s)
    except ValueError:
        raise ValueError("expected a number") from None
    if f != f or f in (float("inf"), float("-inf")):
        raise ValueError("expected a number")
    return f


def parse_bool(v: Any) -> bool | None:
    if v is None or isinstance(v, bool):
        return v
    if isinstance(v, (int, float)):
        return bool(v)
    s = str(v).strip().lower()
    if not s:
        return None
    if s in _TRUE:
        return True
    if s in _FALSE:
        return False
    raise ValueError("expected true or false")


def parse_list(v: Any) -> list[str] | None:
    """Accept a JSON list or a comma-separated string."""
    if v is None:
        return None
    if isinstance(v, str):
        items: Iterable[Any] = v.split(",")
    elif isinstance(v, (list, tuple)):
        items = v
    else:
        raise ValueError("expected a list")
    return [str(i).strip() for i in items if str(i).strip()]


_PARSERS = {
    "str": clean_str,
    "date": parse_date,
    "datetime": parse_datetime,
    "int": parse_int,
    "decimal": parse_decimal,
    "float": parse_float,
    "bool": parse_bool,
    "list": parse_list,
}


def field_errors(payload: Mapping[str, Any], spec: Mapping[str, str]) -> list[str]:
    """Type-check every field of `spec` present in the payload."""
    errors = []
    for name, kind in spec.items():
        if name not in payload:
            continue
        try:
            _PARSERS[kind](payload.get(name))
        except (ValueError, TypeError) as e:
            errors.append(f"Invalid {name}: {e}.")
    return errors


def enum_errors(payload: Mapping[str, Any], enums: Mapping[str, Iterable[str]]) -> list[str]:
    errors = []
    for name, allowed in enums.items():
        raw = payload.get(name)
        if raw is None or raw == "":
            continue
        allowed = tuple(allowed)
        if str(raw).strip() not in allowed:
            errors.append(f"Invalid {name}. Must be one of: {', '.join(allowed)}")
    return errors


def required_errors(payload: Mapping[str, Any], labels: Mapping[str, str]) -> list[str]:
    return [f"{label} is required." for name, label in labels.items() if clean_str(payload.get(name)) is None]


def parse_fields(payload: Mapping[str, Any], spec: Mapping[str, str], *, drop_none: bool = False) -> dict[str, Any]:
    """Coerce the fields of `spec` present in the payload. Call field_errors first."""
    out: dict[str, Any] = {}
    for name, kind in spec.items():
        if name not in payload:
            continue
        value = _PARSERS[kind](payload.get(name))
        if value is None and drop_none:
            continue
        out[name] = value
    return out


def _change_value(v: Any) -> Any:
    if isinstance(v, (date, datetime)):
        return v.isoformat()
    if isinstance(v, Decimal):
        return str(v)
    return v


def apply_updates(obj: Any, values: Mapping[str, Any]) -> dict[str, dict[str, Any]]:
    """Assign values onto obj and return per-field {"old", "new"} changes."""
    changes: dict[str, dict[str, Any]] = {}
    columns = obj.__table__.columns
    for name, new in values.items():
        # null never clears a NOT NULL column
        if new is None and name in columns and not columns[name].nullable:
            continue
        old = getattr(obj, name)
        if old != new:
            changes[name] = {"old": _change_value(old), "new": _change_value(new)}
            setattr(obj, name, new)
    return changes


def json_value(v: Any) -> Any:
    if isinstance(v, Decimal):
        return float(v)
    if isinstance(v, (date, datetime)):
        return v.isoformat()
    return v


def model_to_dict(obj: Any, *, exclude: Iterable[str] = ()) -> dict[str, Any]:
    skip = set(exclude)
    return {c.key: json_value(getattr(obj, c.key)) for c in obj.__table__.columns if c.key not in skip}


def generate_number(prefix: str, now: datetime | None = None) -> str:
    """Human-facing record number, e.g. LS-20260101-1a2b3c4d."""
    now = now or datetime.utcnow()
    return f"{prefix}-{now:%Y%m%d}-{uuid.uuid4().hex[:8]}"


def sanitize_upload_filename(filename: str | None) -> str:
    return secure_filename(filename or "") or "document.bin"


def pct(part: float, whole: float) -> float:
    """Percent rounded to one decimal; 0 when whole is 0."""
    if not whole:
        return 0.0
    return round(part / whole * 100, 1)
