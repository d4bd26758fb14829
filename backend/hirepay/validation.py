from __future__ import annotations

from typing import Any

from .errors import ValidationError


# Maximum amount: 9,999,999.99 in major units (999,999,999 minor units)
# This prevents database overflow issues and nonsensical amounts
MAX_AMOUNT_CENTS = 999_999_999


def coerce_int(value: Any, field: str, *, minimum: int | None = None, maximum: int | None = None) -> int:
    """
    Strict integer coercion for client input.

    Accepts ints and plain digit strings. Rejects bools, floats, decimals and
    scientific notation so "12.5" or 1e3 never silently become amounts.
    """
    if value is None:
        raise ValidationError(f"{field} is required")

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")

    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
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
        raise ValidationError(f"{field} must be at least {minimum}")
    if maximum is not None and result > maximum:
        raise ValidationError(f"{field} must be at most {maximum}")
    return result


def coerce_optional_int(value: Any, field: str, *, minimum: int | None = None, default: int | None = None) -> int | None:
    if value is None or value == "":
        return default
    return coerce_int(value, field, minimum=minimum)


def coerce_amount_cents(value: Any, field: str = "amount_cents", *, allow_zero: bool = False) -> int:
    return coerce_int(value, field, minimum=0 if allow_zero else 1, maximum=MAX_AMOUNT_CENTS)


def parse_items(raw: Any) -> list[dict]:
    """
    Normalize a list of {"product_id", "quantity"} lines.

    Raises ValidationError for an empty list or any quantity below 1.
    """
    if not isinstance(raw, list) or not raw:
        raise ValidationError("At least one item is required")

    items = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ValidationError(f"items[{index}] must be an object")
        items.append({
            "product_id": coerce_int(entry.get("product_id"), f"items[{index}].product_id", minimum=1),
            "quantity": coerce_int(entry.get("quantity"), f"items[{index}].quantity", minimum=1),
        })
    return items
