from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from sqlalchemy import Boolean, Date, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from closet.errors import InvalidAmount, InvalidQuantity, ValidationError
from closet.money import reais_to_cents
from closet.time_utils import parse_iso_date, parse_iso_datetime


# Maximum price: R$9.999.999,99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999

# Integer columns are 32-bit on Postgres
MAX_INT = 2_147_483_647


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_int(key: str, value: Any) -> int:
    result = _parse_int(key, value)
    if abs(result) > MAX_INT:
        raise ValidationError(f"{key} is out of range")
    return result


def _parse_int(key: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return _coerce_int(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        return bool(value)

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

    if isinstance(coltype, Date):
        try:
            parsed = parse_iso_date(value)
        except ValueError:
            raise ValidationError(f"{col.key} must be a date (YYYY-MM-DD)")
        if parsed is None:
            raise ValidationError(f"{col.key} must be a date (YYYY-MM-DD)")
        return parsed

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

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
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

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
    for field in ("price_cents", "cost_price_cents"):
        value = patch.get(field)
        if value is None:
            continue
        if value < 0:
            raise ValidationError(f"{field} must be >= 0")
        if value > MAX_PRICE_CENTS:
            raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS}")

    if "stock" in patch:
        if patch["stock"] is None or patch["stock"] < 0:
            raise ValidationError("stock must be >= 0")


# =============================================================================
# LEDGER INPUTS
# =============================================================================

def require_quantity(value: Any, field: str = "quantity") -> int:
    """Positive integer unit count."""
    try:
        qty = _coerce_int(field, value)
    except ValidationError as exc:
        raise InvalidQuantity(str(exc), details={"field": field})
    if qty <= 0:
        raise InvalidQuantity(f"{field} must be > 0", details={"field": field, "value": qty})
    return qty


def _check_money_ceiling(cents: int, field: str) -> None:
    if cents > MAX_PRICE_CENTS:
        raise InvalidAmount(
            f"{field} cannot exceed {MAX_PRICE_CENTS} cents",
            details={"field": field, "value_cents": cents, "max_cents": MAX_PRICE_CENTS},
        )


def require_positive_cents(value: Any, field: str = "amount_cents") -> int:
    try:
        cents = _coerce_int(field, value)
    except ValidationError as exc:
        raise InvalidAmount(str(exc), details={"field": field})
    if cents <= 0:
        raise InvalidAmount(f"{field} must be > 0", details={"field": field, "value": cents})
    _check_money_ceiling(cents, field)
    return cents


def amount_from_payload(data: dict, field: str = "amount", *, required: bool = True, allow_zero: bool = False) -> int | None:
    """
    Read a money amount from a request body.

    `<field>_cents` (integer cents) wins over `<field>` (reais, e.g. "100.50").
    """
    cents_key = f"{field}_cents"
    if data.get(cents_key) is not None:
        try:
            cents = _coerce_int(cents_key, data[cents_key])
        except ValidationError as exc:
            raise InvalidAmount(str(exc), details={"field": cents_key})
    elif data.get(field) is not None:
        try:
            cents = reais_to_cents(data[field])
        except ValueError as exc:
            raise InvalidAmount(str(exc), details={"field": field})
    elif required:
        raise InvalidAmount(f"{field} or {cents_key} is required", details={"field": field})
    else:
        return None

    if cents < 0 or (cents == 0 and not allow_zero):
        raise InvalidAmount(
            f"{field} must be {'>= 0' if allow_zero else '> 0'}",
            details={"field": field, "value_cents": cents},
        )
    _check_money_ceiling(cents, field)
    return cents


def date_from_payload(data: dict, field: str) -> date | None:
    try:
        return parse_iso_date(data.get(field))
    except ValueError:
        raise ValidationError(f"{field} must be a date (YYYY-MM-DD)", details={"field": field})


def optional_int(data: dict, field: str) -> int | None:
    if data.get(field) is None:
        return None
    return _coerce_int(field, data[field])


@dataclass(frozen=True)
class LineItemInput:
    """
    The one accepted shape for a sale line item.

    Price and cost are frozen from the product at sale time unless
    unit_price_cents is given (e.g. a negotiated price).
    """
    product_id: int
    quantity: int
    unit_price_cents: int | None = None
    size: str | None = None
    color: str | None = None


LINE_ITEM_FIELDS = {"product_id", "quantity", "unit_price_cents", "unit_price", "size", "color"}


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_line_item(raw: Any, index: int = 0) -> LineItemInput:
    if isinstance(raw, LineItemInput):
        return raw
    if not isinstance(raw, dict):
        raise ValidationError(f"items[{index}] must be an object")

    unknown = sorted(set(raw) - LINE_ITEM_FIELDS)
    if unknown:
        raise ValidationError(f"items[{index}]: field not allowed: {', '.join(unknown)}")

    if raw.get("product_id") is None:
        raise ValidationError(f"items[{index}].product_id is required")
    product_id = _coerce_int(f"items[{index}].product_id", raw["product_id"])
    quantity = require_quantity(raw.get("quantity"), f"items[{index}].quantity")

    unit_price_cents = amount_from_payload(raw, "unit_price", required=False, allow_zero=True)

    return LineItemInput(
        product_id=product_id,
        quantity=quantity,
        unit_price_cents=unit_price_cents,
        size=_optional_text(raw.get("size")),
        color=_optional_text(raw.get("color")),
    )


def parse_line_items(raw_items: Any) -> list[LineItemInput]:
    if raw_items is None:
        raw_items = []
    if not isinstance(raw_items, (list, tuple)):
        raise ValidationError("items must be a list")
    if not raw_items:
        raise ValidationError("A sale needs at least one item")
    return [parse_line_item(raw, i) for i, raw in enumerate(raw_items)]


@dataclass(frozen=True)
class VariantInput:
    """A color/size combination with its opening stock."""
    color: str = ""
    size: str = ""
    stock: int = 0


VARIANT_FIELDS = {"color", "size", "stock"}


def parse_variant(raw: Any, index: int = 0) -> VariantInput:
    if not isinstance(raw, dict):
        raise ValidationError(f"variants[{index}] must be an object")

    unknown = sorted(set(raw) - VARIANT_FIELDS)
    if unknown:
        raise ValidationError(f"variants[{index}]: field not allowed: {', '.join(unknown)}")

    stock = 0
    if raw.get("stock") is not None:
        stock = _coerce_int(f"variants[{index}].stock", raw["stock"])
        if stock < 0:
            raise InvalidQuantity(
                f"variants[{index}].stock must be >= 0",
                details={"field": f"variants[{index}].stock", "value": stock},
            )

    return VariantInput(
        color=_optional_text(raw.get("color")) or "",
        size=_optional_text(raw.get("size")) or "",
        stock=stock,
    )


def parse_variants(raw_items: Any) -> list[VariantInput]:
    if raw_items is None:
        return []
    if not isinstance(raw_items, (list, tuple)):
        raise ValidationError("variants must be a list")
    return [parse_variant(raw, i) for i, raw in enumerate(raw_items)]
