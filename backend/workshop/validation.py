from __future__ import annotations

from decimal import Decimal
from typing import Any

from workshop.errors import ValidationError
from workshop.money import to_money
from workshop.time_utils import parse_range_bound


# Maximum monetary amount a single field may carry (Numeric(15, 2))
MAX_AMOUNT = Decimal("9999999999999.99")

DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 100


def require_object(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def parse_int(
    value: Any,
    field: str,
    *,
    required: bool = False,
    default: int | None = None,
    minimum: int | None = None,
) -> int | None:
    """
    Strict integer coercion: rejects bools, floats, decimals and scientific
    notation. Digit strings are accepted (query string values).
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{field} is required")
        return default

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    return result


def parse_money(
    value: Any,
    field: str,
    *,
    required: bool = False,
    default: Decimal | None = None,
    allow_negative: bool = False,
) -> Decimal | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{field} is required")
        return default

    if isinstance(value, bool) or not isinstance(value, (int, float, str, Decimal)):
        raise ValidationError(f"{field} must be a number")
    try:
        amount = to_money(value)
    except ValueError:
        raise ValidationError(f"{field} must be a number")

    if not allow_negative and amount < 0:
        raise ValidationError(f"{field} must be >= 0")
    if abs(amount) > MAX_AMOUNT:
        raise ValidationError(f"{field} exceeds the maximum amount")
    return amount


def parse_str(
    value: Any,
    field: str,
    *,
    required: bool = False,
    max_length: int | None = None,
) -> str | None:
    if value is None:
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if not isinstance(value, (str, int, float)) or isinstance(value, bool):
        raise ValidationError(f"{field} must be a string")
    text = str(value).strip()
    if not text:
        if required:
            raise ValidationError(f"{field} cannot be blank")
        return None
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text


def parse_date_bound(value: Any, field: str, *, end_of_day: bool = False):
    if value is None:
        return None
    try:
        return parse_range_bound(str(value), end_of_day=end_of_day)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date or datetime")


def parse_pagination(args) -> tuple[int, int]:
    page = parse_int(args.get("page"), "page", default=1, minimum=1)
    limit = parse_int(args.get("limit"), "limit", default=DEFAULT_PAGE_LIMIT, minimum=1)
    return page, min(limit, MAX_PAGE_LIMIT)


def page_meta(total: int, page: int, limit: int) -> dict:
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": (total + limit - 1) // limit if limit else 0,
    }
