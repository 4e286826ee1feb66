# gymmawy/utils/validation.py
from __future__ import annotations
import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from flask import request

from ..errors import ValidationError

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)[a-zA-Z\d@$!%*?&]{8,}$")
PASSWORD_RULE = ("Password must be at least 8 characters and contain an uppercase letter, "
                 "a lowercase letter and a number")

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object", field="body")
    return data


def require_fields(data: dict, *fields):
    problems = []
    for f in fields:
        v = data.get(f)
        if v is None or (isinstance(v, str) and not v.strip()):
            problems.append({"field": f, "message": f"{f} is required"})
    if problems:
        raise ValidationError("Validation failed", details=problems)


def clean_email(value, field="email") -> str:
    email = (value or "").strip().lower()
    if not EMAIL_RE.match(email):
        raise ValidationError("Invalid email address", field=field)
    return email


def check_password(value, field="password") -> str:
    if not isinstance(value, str) or not PASSWORD_RE.match(value):
        raise ValidationError(PASSWORD_RULE, field=field)
    return value


def clean_str(value, field, required=False, max_len=255):
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{field} is required", field=field)
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", field=field)
    value = value.strip()
    if len(value) > max_len:
        raise ValidationError(f"{field} must be at most {max_len} characters", field=field)
    return value


def parse_int(value, field, minimum=None, maximum=None, default=None) -> int | None:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", field=field)
    try:
        n = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", field=field)
    if minimum is not None and n < minimum:
        raise ValidationError(f"{field} must be >= {minimum}", field=field)
    if maximum is not None and n > maximum:
        raise ValidationError(f"{field} must be <= {maximum}", field=field)
    return n


def parse_decimal(value, field, minimum=None, required=True) -> Decimal | None:
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required", field=field)
        return None
    try:
        d = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number", field=field)
    if not d.is_finite():
        raise ValidationError(f"{field} must be a number", field=field)
    if minimum is not None and d < Decimal(str(minimum)):
        raise ValidationError(f"{field} must be >= {minimum}", field=field)
    return d


def parse_bool(value, default=None):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def parse_choice(value, field, choices, default=None):
    if value is None or value == "":
        return default
    v = str(value).strip().upper()
    if v not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(sorted(choices))}", field=field)
    return v


def parse_iso8601(s: str | None):
    if not s:
        return None
    s = s.strip()
    # support trailing 'Z' (UTC)
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo:
        return dt.astimezone(timezone.utc).replace(tzinfo=None)  # store naive UTC
    return dt


def pagination_args():
    page = parse_int(request.args.get("page"), "page", minimum=1, default=1)
    page_size = parse_int(request.args.get("pageSize"), "pageSize",
                          minimum=1, maximum=MAX_PAGE_SIZE, default=DEFAULT_PAGE_SIZE)
    return page, page_size


def clean_bilingual(value, field, required=False):
    """Accept ``"text"`` or ``{"en": .., "ar": ..}``; always store the dict form."""
    if isinstance(value, dict):
        out = {k: str(v).strip() for k, v in value.items() if k in ("en", "ar") and v}
        if required and not out:
            raise ValidationError(f"{field} is required", field=field)
        return out or None
    text = clean_str(value, field, required=required)
    return {"en": text, "ar": text} if text else None
