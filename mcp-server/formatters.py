from __future__ import annotations

import math
from dataclasses import asdict, is_dataclass
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit
from uuid import UUID

# Public projections per record kind. Anything not listed never leaves the server.
ALLOWED_FIELDS: dict[str, tuple[str, ...]] = {
    "brand": ("id", "name", "slug", "logo_url", "description", "website_url"),
    "product": ("id", "name", "slug", "description", "image_url", "base_price", "currency"),
    "product_detail": (
        "id",
        "brand_id",
        "name",
        "slug",
        "description",
        "long_description",
        "image_url",
        "images",
        "base_price",
        "currency",
        "checkout_url",
    ),
    "variant": ("id", "name", "sku", "price", "currency", "stock_status", "attributes"),
}

STOCK_STATUSES = ("in_stock", "out_of_stock", "preorder")


def sanitize(kind: str, record: Any) -> dict[str, Any]:
    """Project a raw record onto the allow-list for `kind`.

    Invariants:
    - only allow-listed keys are copied, values are copied unchanged
    - keys missing from the input stay missing (no defaults)
    - unknown kinds and non-mapping records give `{}`
    - sanitize(kind, sanitize(kind, r)) == sanitize(kind, r)
    """

    fields = ALLOWED_FIELDS.get(kind)
    if not fields or not isinstance(record, Mapping):
        return {}
    return {field: record[field] for field in fields if field in record}


def sanitize_many(kind: str, records: Any) -> list[dict[str, Any]]:
    if not isinstance(records, (list, tuple)):
        return []
    return [sanitize(kind, record) for record in records if isinstance(record, Mapping)]


def _plain_number(value: Decimal) -> int | float:
    if value.is_finite() and value == value.to_integral_value():
        return int(value)
    return float(value)


def plain_value(value: Any) -> Any:
    """Converts driver values into JSON-ready Python values."""

    if value is None or isinstance(value, (bool, int, float, str)):
        return value

    if isinstance(value, Decimal):
        return _plain_number(value)

    if isinstance(value, UUID):
        return str(value)

    if isinstance(value, (datetime, date, time)):
        return value.isoformat()

    if is_dataclass(value) and not isinstance(value, type):
        return plain_value(asdict(value))

    if isinstance(value, Mapping):
        return {str(key): plain_value(item) for key, item in value.items()}

    if isinstance(value, (list, tuple, set)):
        return [plain_value(item) for item in value]

    return value


def plain_record(row: Any) -> dict[str, Any]:
    if row is None:
        return {}
    return {str(key): plain_value(value) for key, value in dict(row).items()}


def to_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, str):
        stripped = value.strip().replace(",", "")
        if not stripped:
            return None
        try:
            return float(Decimal(stripped))
        except InvalidOperation:
            return None
    return None


def format_price(value: Any, currency: str | None = None) -> str | None:
    """Human price for response text. Returns None when there is no usable price."""

    amount = to_number(value)
    if amount is None or not math.isfinite(amount):
        return None
    code = (currency or "VND").strip().upper() or "VND"
    if code == "VND":
        # vi-VN style: dot thousands separator, no minor units.
        return f"{int(round(amount)):,}".replace(",", ".") + " ₫"
    return f"{amount:,.2f} {code}"


def count_label(count: int, noun: str, plural: str | None = None) -> str:
    if count == 1:
        return f"1 {noun}"
    return f"{count} {plural or noun + 's'}"


def checkout_url_with_params(raw_url: Any, params: Any) -> Any:
    """Merge affiliate params into a checkout URL's query string.

    Existing keys are overwritten. Anything that is not an absolute
    http(s) URL is returned as-is.
    """

    if not isinstance(raw_url, str) or not isinstance(params, Mapping) or not params:
        return raw_url

    text = raw_url.strip()
    lowered = text.lower()
    if not (lowered.startswith("http://") or lowered.startswith("https://")):
        return raw_url

    parts = urlsplit(text)
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    for key, value in params.items():
        if value is None:
            continue
        query[str(key)] = str(value)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


__all__ = [
    "ALLOWED_FIELDS",
    "STOCK_STATUSES",
    "sanitize",
    "sanitize_many",
    "plain_value",
    "plain_record",
    "to_number",
    "format_price",
    "count_label",
    "checkout_url_with_params",
]
