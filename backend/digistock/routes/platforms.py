# Overview: Flask API routes for platforms and their prepaid credit.

from flask import Blueprint, jsonify, request

from ..errors import LedgerError, ValidationError
from ..models import Platform
from ..services import catalog_service, credit_service
from ..time_utils import parse_iso_datetime
from ..validation import (
    CreditChangeRequest,
    ModelValidationPolicy,
    coerce_int,
    enforce_rules_platform,
    validate_payload,
)
from . import error_response, internal_error

PLATFORM_POLICY = ModelValidationPolicy(
    writable_fields=set(catalog_service.PLATFORM_MUTABLE_FIELDS),
    required_on_create={"name"},
)

platforms_bp = Blueprint("platforms", __name__, url_prefix="/api/platforms")


# =============================================================================
# PLATFORM CATALOG
# =============================================================================

@platforms_bp.get("")
def list_platforms():
    active_only = request.args.get("active_only", "false").lower() == "true"
    platforms = catalog_service.list_platforms(active_only=active_only)
    return jsonify({"items": [p.to_dict() for p in platforms]}), 200


@platforms_bp.post("")
def create_platform_route():
    """
    Create a platform.

    Request body: platform fields plus an optional initial_credit_cents,
    booked as the platform's first credit_added movement.
    """
    payload = dict(request.get_json(silent=True) or {})
    try:
        initial_credit = payload.pop("initial_credit_cents", None)
        initial_credit = 0 if initial_credit is None else coerce_int("initial_credit_cents", initial_credit)
        patch = validate_payload(model=Platform, payload=payload, policy=PLATFORM_POLICY, partial=False)
        enforce_rules_platform(patch)
        platform = catalog_service.create_platform(patch=patch, initial_credit_cents=initial_credit)
        return jsonify(platform.to_dict()), 201
    except LedgerError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to create platform")


@platforms_bp.get("/low-balance")
def low_balance_route():
    return jsonify({"items": credit_service.platforms_with_low_balance()}), 200


@platforms_bp.get("/<platform_id>")
def get_platform_route(platform_id: str):
    try:
        return jsonify(catalog_service.get_platform(platform_id).to_dict()), 200
    except LedgerError as exc:
        return error_response(exc)


@platforms_bp.patch("/<platform_id>")
def update_platform_route(platform_id: str):
    payload = request.get_json(silent=True) or {}
    try:
        if "credit_balance_cents" in payload:
            raise ValidationError("credit_balance_cents is maintained by the ledger and cannot be set directly")
        patch = validate_payload(model=Platform, payload=payload, policy=PLATFORM_POLICY, partial=True)
        enforce_rules_platform(patch)
        platform = catalog_service.update_platform(platform_id, patch=patch)
        return jsonify(platform.to_dict()), 200
    except LedgerError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to update platform")


# =============================================================================
# CREDIT LEDGER
# =============================================================================

@platforms_bp.get("/<platform_id>/balance")
def balance_route(platform_id: str):
    try:
        return jsonify(credit_service.get_balance(platform_id)), 200
    except LedgerError as exc:
        return error_response(exc)


@platforms_bp.post("/<platform_id>/credits")
def add_credit_route(platform_id: str):
    """
    Top up platform credit.

    Request body:
    {
        "amount_cents": 50000,
        "description": "bank transfer",   (optional)
        "reference": "TRX-123",           (optional)
        "created_by": "admin"             (optional)
    }
    """
    try:
        req = CreditChangeRequest.from_payload(request.get_json(silent=True))
        movement = credit_service.add_platform_credit(
            platform_id,
            req.amount_cents,
            description=req.description,
            reference=req.reference,
            created_by=req.created_by,
        )
        return jsonify({
            "movement": movement.to_dict(),
            "balance": credit_service.get_balance(platform_id),
        }), 201
    except LedgerError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to add platform credit")


@platforms_bp.post("/<platform_id>/adjustments")
def adjust_credit_route(platform_id: str):
    """Manual correction; amount_cents may be negative. reason is required."""
    try:
        req = CreditChangeRequest.from_payload(request.get_json(silent=True))
        movement = credit_service.adjust_platform_credit(
            platform_id,
            req.amount_cents,
            reason=req.description or "",
            created_by=req.created_by,
        )
        return jsonify({
            "movement": movement.to_dict(),
            "balance": credit_service.get_balance(platform_id),
        }), 201
    except LedgerError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to adjust platform credit")


@platforms_bp.get("/<platform_id>/movements")
def credit_movements_route(platform_id: str):
    """
    Query params:
    - type: credit_added | credit_deducted | sale_deduction | sale_refund
    - reference: e.g. a sale id
    - start, end: ISO-8601 bounds (inclusive)
    - limit (default 100), offset (default 0)
    """
    try:
        try:
            start = parse_iso_datetime(request.args.get("start"))
            end = parse_iso_datetime(request.args.get("end"))
        except ValueError:
            raise ValidationError("start and end must be ISO-8601 datetimes")
        movements = credit_service.list_credit_movements(
            platform_id,
            movement_type=request.args.get("type"),
            reference=request.args.get("reference"),
            start=start,
            end=end,
            limit=request.args.get("limit", 100, type=int),
            offset=request.args.get("offset", 0, type=int),
        )
        return jsonify({"items": [m.to_dict() for m in movements]}), 200
    except LedgerError as exc:
        return error_response(exc)
