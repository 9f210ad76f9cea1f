from __future__ import annotations
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from catalog_admin.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Integer, Numeric, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Maximum price: 9,999,999,999.99 fits NUMERIC(12,2)
MAX_PRICE = Decimal("9999999999.99")

CENT = Decimal("0.01")

# INTEGER columns are 32-bit signed on PostgreSQL
INT_MAX = 2**31 - 1

# Largest value NUMERIC(14,2) can hold (sale totals)
MAX_TOTAL_PRICE = Decimal("999999999999.99")


class ValidationError(ValueError):
    """400-level input problem."""


class NotFoundError(LookupError):
    """404-level missing entity (product, category)."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate category name, referenced row)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - extra_fields: non-column keys the route consumes itself (e.g. initial_quantity)
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    extra_fields: set[str] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(name: str, value: Any) -> int:
    """Strict integer coercion: ints and plain digit strings only, within INTEGER range."""
    return _check_int_range(name, _coerce_int(name, value))


def _check_int_range(name: str, value: int) -> int:
    if not -INT_MAX <= value <= INT_MAX:
        raise ValidationError(f"{name} is out of range (max {INT_MAX})")
    return value


def _coerce_int(name: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{name} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{name} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{name} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{name} must be an integer")
    # Reject floats explicitly
    if isinstance(value, float):
        raise ValidationError(f"{name} must be an integer, not a decimal")
    raise ValidationError(f"{name} must be an integer")


def coerce_money(name: str, value: Any) -> Decimal:
    """Numbers or numeric strings -> Decimal rounded half-up to cents."""
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number")
    if isinstance(value, (int, float, Decimal)):
        raw = str(value)
    elif isinstance(value, str) and value.strip():
        raw = value.strip()
    else:
        raise ValidationError(f"{name} must be a number")

    try:
        amount = Decimal(raw)
    except InvalidOperation:
        raise ValidationError(f"{name} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{name} must be a finite number")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    # Money
    if isinstance(coltype, Numeric):
        return coerce_money(col.key, value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        if not isinstance(value, str):
            raise ValidationError(f"{col.key} must be a string")
        return value.strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields. Keys listed in
    policy.extra_fields are passed through untouched for the caller.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    extra = policy.extra_fields or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) is None)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k in extra:
            continue
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        if k in extra:
            patch[k] = raw
            continue

        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if "price" in patch and patch["price"] is not None:
        price = patch["price"]
        if price < 0:
            raise ValidationError("Price must be a non-negative number.")
        if price > MAX_PRICE:
            raise ValidationError(f"price cannot exceed {MAX_PRICE}")

    if "initial_quantity" in patch:
        raw = patch["initial_quantity"]
        try:
            qty = coerce_int("initial_quantity", raw) if raw is not None else None
        except ValidationError:
            qty = None
        if qty is None or qty < 0:
            raise ValidationError("initial_quantity is required and must be a non-negative integer.")
        patch["initial_quantity"] = qty


def enforce_rules_inventory_set(payload: dict) -> int:
    """PUT /api/inventory/<id> body: new_quantity >= 0."""
    raw = (payload or {}).get("new_quantity")
    try:
        qty = coerce_int("new_quantity", raw) if raw is not None else None
    except ValidationError:
        qty = None
    if qty is None or qty < 0:
        raise ValidationError("new_quantity is required and must be a non-negative integer.")
    return qty


def enforce_rules_sale(patch: dict) -> None:
    # SALE requires a positive quantity; total_price is always computed server-side
    if patch.get("quantity") is None or patch["quantity"] <= 0:
        raise ValidationError("quantity must be a positive integer.")


def parse_optional_id(name: str, value: str | None) -> int | None:
    """Query-string id filters: absent -> None, otherwise strict int."""
    if value is None or value == "":
        return None
    try:
        return coerce_int(name, value)
    except ValidationError:
        raise ValidationError(f"Invalid {name}.")
