from __future__ import annotations
from datetime import datetime
from digistock.time_utils import parse_iso_datetime

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime

from .errors import ValidationError
from .models import (
    DURATION_TYPES,
    PAYMENT_METHODS,
    PAYMENT_STATUSES,
    PAYMENT_TYPES,
    PRODUCT_CATEGORIES,
)


# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

MAX_QUANTITY = 1_000_000


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer for catalog patches:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(key: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    # Reject floats explicitly
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def _coerce_datetime(key: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            dt = parse_iso_datetime(value)
        except ValueError:
            raise ValidationError(f"{key} must be an ISO-8601 datetime")
        if dt is None:
            raise ValidationError(f"{key} must be an ISO-8601 datetime")
        return dt
    raise ValidationError(f"{key} must be a datetime")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        return _coerce_datetime(col.key, value)

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model,
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

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
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


def _check_price(key: str, value: int | None) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{key} must be an integer")
    if value < 0:
        raise ValidationError(f"{key} must be >= 0")
    if value > MAX_PRICE_CENTS:
        raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS}")


def _check_choice(key: str, value: str | None, choices: tuple[str, ...]) -> None:
    if value is not None and value not in choices:
        raise ValidationError(f"{key} must be one of: {', '.join(choices)}")


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    for key in ("suggested_sell_price_cents", "platform_buying_price_cents"):
        _check_price(key, patch.get(key))
    _check_choice("category", patch.get("category"), PRODUCT_CATEGORIES)
    _check_choice("duration_type", patch.get("duration_type"), DURATION_TYPES)
    if patch.get("min_stock_alert") is not None and patch["min_stock_alert"] < 0:
        raise ValidationError("min_stock_alert must be >= 0")


def enforce_rules_platform(patch: dict) -> None:
    _check_price("low_balance_threshold_cents", patch.get("low_balance_threshold_cents"))


# =============================================================================
# OPERATION REQUESTS
# =============================================================================
#
# One frozen dataclass per ledger operation. Construction validates the
# request, so a service receiving one never sees malformed input. from_payload
# builds them from decoded JSON at the API boundary.


def _payload_dict(payload: Any, allowed: set[str]) -> dict:
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = sorted(k for k in payload if k not in allowed)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}")
    return payload


def _required(payload: dict, *keys: str) -> None:
    missing = [k for k in keys if payload.get(k) is None]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def _opt_int(payload: dict, key: str) -> int | None:
    value = payload.get(key)
    return None if value is None else coerce_int(key, value)


def _opt_str(payload: dict, key: str, max_length: int = 255) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    value = str(value).strip()
    if len(value) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return value or None


def _opt_datetime(payload: dict, key: str) -> datetime | None:
    value = payload.get(key)
    return None if value is None else _coerce_datetime(key, value)


@dataclass(frozen=True)
class RecordSaleRequest:
    product_id: str
    quantity: int
    unit_price_cents: int
    platform_id: str | None = None
    platform_buying_price_cents: int | None = None
    payment_method: str = "cash"
    payment_status: str = "paid"
    paid_amount_cents: int | None = None
    payment_type: str = "one-time"
    subscription_duration_months: int | None = None
    sale_date: datetime | None = None
    customer_name: str | None = None
    customer_phone: str | None = None
    notes: str | None = None

    FIELDS = frozenset({
        "product_id", "quantity", "unit_price_cents", "platform_id",
        "platform_buying_price_cents", "payment_method", "payment_status",
        "paid_amount_cents", "payment_type", "subscription_duration_months",
        "sale_date", "customer_name", "customer_phone", "notes",
    })

    def __post_init__(self):
        if not self.product_id:
            raise ValidationError("product_id is required")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int) or self.quantity <= 0:
            raise ValidationError("quantity must be a positive integer")
        if self.quantity > MAX_QUANTITY:
            raise ValidationError(f"quantity cannot exceed {MAX_QUANTITY}")
        if self.unit_price_cents is None:
            raise ValidationError("unit_price_cents is required")
        _check_price("unit_price_cents", self.unit_price_cents)
        _check_price("platform_buying_price_cents", self.platform_buying_price_cents)
        _check_choice("payment_method", self.payment_method, PAYMENT_METHODS)
        _check_choice("payment_status", self.payment_status, PAYMENT_STATUSES)
        _check_choice("payment_type", self.payment_type, PAYMENT_TYPES)

        duration = self.subscription_duration_months
        if self.payment_type == "recurring":
            if isinstance(duration, bool) or not isinstance(duration, int) or duration < 1:
                raise ValidationError(
                    "subscription_duration_months must be a positive integer for recurring sales"
                )
        elif duration is not None:
            raise ValidationError("subscription_duration_months only applies to recurring sales")

        total = self.total_price_cents
        if self.payment_status == "partial":
            paid = self.paid_amount_cents
            if paid is None:
                raise ValidationError("paid_amount_cents is required for a partial payment")
            if not 0 < paid < total:
                raise ValidationError("paid_amount_cents must be between 0 and the total price for a partial payment")
        elif self.paid_amount_cents is not None:
            raise ValidationError("paid_amount_cents only applies when payment_status is partial")

    @property
    def total_price_cents(self) -> int:
        return self.quantity * self.unit_price_cents

    @classmethod
    def from_payload(cls, payload: Any) -> "RecordSaleRequest":
        payload = _payload_dict(payload, cls.FIELDS)
        _required(payload, "product_id", "quantity", "unit_price_cents")
        kwargs = {
            "product_id": str(payload["product_id"]).strip(),
            "quantity": coerce_int("quantity", payload["quantity"]),
            "unit_price_cents": coerce_int("unit_price_cents", payload["unit_price_cents"]),
            "platform_id": _opt_str(payload, "platform_id", 64),
            "platform_buying_price_cents": _opt_int(payload, "platform_buying_price_cents"),
            "paid_amount_cents": _opt_int(payload, "paid_amount_cents"),
            "subscription_duration_months": _opt_int(payload, "subscription_duration_months"),
            "sale_date": _opt_datetime(payload, "sale_date"),
            "customer_name": _opt_str(payload, "customer_name"),
            "customer_phone": _opt_str(payload, "customer_phone", 64),
            "notes": _opt_str(payload, "notes", 2000),
        }
        for key in ("payment_method", "payment_status", "payment_type"):
            if payload.get(key) is not None:
                kwargs[key] = str(payload[key]).strip()
        return cls(**kwargs)


@dataclass(frozen=True)
class RecordPurchaseRequest:
    product_id: str
    quantity: int
    unit_cost_cents: int
    supplier: str | None = None
    purchase_date: datetime | None = None
    payment_method: str = "cash"
    payment_status: str = "paid"
    invoice_number: str | None = None
    notes: str | None = None

    FIELDS = frozenset({
        "product_id", "quantity", "unit_cost_cents", "supplier", "purchase_date",
        "payment_method", "payment_status", "invoice_number", "notes",
    })

    def __post_init__(self):
        if not self.product_id:
            raise ValidationError("product_id is required")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int) or self.quantity <= 0:
            raise ValidationError("quantity must be a positive integer")
        if self.quantity > MAX_QUANTITY:
            raise ValidationError(f"quantity cannot exceed {MAX_QUANTITY}")
        if self.unit_cost_cents is None:
            raise ValidationError("unit_cost_cents is required")
        _check_price("unit_cost_cents", self.unit_cost_cents)
        _check_choice("payment_method", self.payment_method, PAYMENT_METHODS)
        _check_choice("payment_status", self.payment_status, PAYMENT_STATUSES)

    @property
    def total_cost_cents(self) -> int:
        return self.quantity * self.unit_cost_cents

    @classmethod
    def from_payload(cls, payload: Any) -> "RecordPurchaseRequest":
        payload = _payload_dict(payload, cls.FIELDS)
        _required(payload, "product_id", "quantity", "unit_cost_cents")
        kwargs = {
            "product_id": str(payload["product_id"]).strip(),
            "quantity": coerce_int("quantity", payload["quantity"]),
            "unit_cost_cents": coerce_int("unit_cost_cents", payload["unit_cost_cents"]),
            "supplier": _opt_str(payload, "supplier"),
            "purchase_date": _opt_datetime(payload, "purchase_date"),
            "invoice_number": _opt_str(payload, "invoice_number", 64),
            "notes": _opt_str(payload, "notes", 2000),
        }
        for key in ("payment_method", "payment_status"):
            if payload.get(key) is not None:
                kwargs[key] = str(payload[key]).strip()
        return cls(**kwargs)


# Fields fixed by the ledger once a sale or purchase exists
SALE_LEDGER_FIELDS = frozenset({
    "product_id", "platform_id", "quantity", "unit_price_cents", "total_price_cents",
    "platform_buying_price_cents", "profit_cents", "payment_status", "paid_amount_cents",
    "remaining_amount_cents", "payment_history", "payment_type", "subscription_duration_months",
    "subscription_start_date", "subscription_end_date", "status",
})
PURCHASE_LEDGER_FIELDS = frozenset({
    "product_id", "quantity", "unit_cost_cents", "total_cost_cents", "purchase_date",
})


@dataclass(frozen=True)
class UpdateSaleRequest:
    """Edit of a recorded sale's descriptive fields."""
    changes: dict = field(default_factory=dict)

    EDITABLE = frozenset({"customer_name", "customer_phone", "payment_method", "notes", "sale_date"})

    def __post_init__(self):
        for key in self.changes:
            if key in SALE_LEDGER_FIELDS:
                raise ValidationError(
                    f"{key} cannot be edited on a recorded sale; void it and record a new sale"
                )
            if key not in self.EDITABLE:
                raise ValidationError(f"Field not allowed: {key}")
        _check_choice("payment_method", self.changes.get("payment_method"), PAYMENT_METHODS)
        if "payment_method" in self.changes and self.changes["payment_method"] is None:
            raise ValidationError("payment_method cannot be null")
        if "sale_date" in self.changes and self.changes["sale_date"] is None:
            raise ValidationError("sale_date cannot be null")

    @classmethod
    def from_payload(cls, payload: Any) -> "UpdateSaleRequest":
        if not isinstance(payload, dict):
            raise ValidationError("Invalid JSON payload")
        changes = dict(payload)
        for key in ("customer_name", "notes"):
            if key in changes:
                changes[key] = _opt_str(changes, key, 2000 if key == "notes" else 255)
        if "customer_phone" in changes:
            changes["customer_phone"] = _opt_str(changes, "customer_phone", 64)
        if changes.get("sale_date") is not None:
            changes["sale_date"] = _coerce_datetime("sale_date", changes["sale_date"])
        return cls(changes=changes)


@dataclass(frozen=True)
class UpdatePurchaseRequest:
    """Edit of a recorded purchase's supplier, invoice and payment fields."""
    changes: dict = field(default_factory=dict)

    EDITABLE = frozenset({"supplier", "invoice_number", "payment_method", "payment_status", "notes"})

    def __post_init__(self):
        for key in self.changes:
            if key in PURCHASE_LEDGER_FIELDS:
                raise ValidationError(f"{key} cannot be edited on a recorded purchase")
            if key not in self.EDITABLE:
                raise ValidationError(f"Field not allowed: {key}")
        for key, choices in (("payment_method", PAYMENT_METHODS), ("payment_status", PAYMENT_STATUSES)):
            if key in self.changes:
                if self.changes[key] is None:
                    raise ValidationError(f"{key} cannot be null")
                _check_choice(key, self.changes[key], choices)

    @classmethod
    def from_payload(cls, payload: Any) -> "UpdatePurchaseRequest":
        if not isinstance(payload, dict):
            raise ValidationError("Invalid JSON payload")
        changes = dict(payload)
        for key, limit in (("supplier", 255), ("invoice_number", 64), ("notes", 2000)):
            if key in changes:
                changes[key] = _opt_str(changes, key, limit)
        return cls(changes=changes)


@dataclass(frozen=True)
class RecordPaymentRequest:
    amount_cents: int
    paid_at: datetime | None = None
    method: str | None = None
    notes: str | None = None

    FIELDS = frozenset({"amount_cents", "paid_at", "method", "notes"})

    def __post_init__(self):
        if isinstance(self.amount_cents, bool) or not isinstance(self.amount_cents, int):
            raise ValidationError("amount_cents must be an integer")
        _check_choice("method", self.method, PAYMENT_METHODS)

    @classmethod
    def from_payload(cls, payload: Any) -> "RecordPaymentRequest":
        payload = _payload_dict(payload, cls.FIELDS)
        _required(payload, "amount_cents")
        return cls(
            amount_cents=coerce_int("amount_cents", payload["amount_cents"]),
            paid_at=_opt_datetime(payload, "paid_at"),
            method=_opt_str(payload, "method", 16),
            notes=_opt_str(payload, "notes"),
        )


@dataclass(frozen=True)
class CreditChangeRequest:
    """Top-up (add) or manual adjustment of a platform's credit."""
    amount_cents: int
    description: str | None = None
    reference: str | None = None
    created_by: str = "system"

    FIELDS = frozenset({"amount_cents", "description", "reason", "reference", "created_by"})

    def __post_init__(self):
        if isinstance(self.amount_cents, bool) or not isinstance(self.amount_cents, int):
            raise ValidationError("amount_cents must be an integer")
        if self.amount_cents == 0:
            raise ValidationError("amount_cents cannot be zero")

    @classmethod
    def from_payload(cls, payload: Any) -> "CreditChangeRequest":
        payload = _payload_dict(payload, cls.FIELDS)
        _required(payload, "amount_cents")
        return cls(
            amount_cents=coerce_int("amount_cents", payload["amount_cents"]),
            description=_opt_str(payload, "description") or _opt_str(payload, "reason"),
            reference=_opt_str(payload, "reference", 64),
            created_by=_opt_str(payload, "created_by", 64) or "system",
        )
