# Overview: Flask API routes for digital products; parses input and returns JSON responses.

"""
Product catalog routes.

Stock is read-only here: it moves only through purchases and sales.
"""
from flask import Blueprint, jsonify, request

from ..errors import LedgerError, ValidationError
from ..models import DigitalProduct
from ..services import catalog_service, stock_service
from ..validation import ModelValidationPolicy, enforce_rules_product, validate_payload
from . import error_response, internal_error

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=set(catalog_service.PRODUCT_MUTABLE_FIELDS),
    required_on_create={"name"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    Query params:
    - active_only: true/false (default false)
    - platform_id: only products sourced from this platform
    """
    active_only = request.args.get("active_only", "false").lower() == "true"
    platform_id = request.args.get("platform_id")
    products = catalog_service.list_products(active_only=active_only, platform_id=platform_id)
    return jsonify({"items": [p.to_dict() for p in products]}), 200


@products_bp.post("")
def create_product_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=DigitalProduct, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        product = catalog_service.create_product(patch=patch)
        return jsonify(product.to_dict()), 201
    except LedgerError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to create product")


@products_bp.get("/low-stock")
def low_stock_route():
    products = stock_service.low_stock_products()
    return jsonify({"items": [p.to_dict() for p in products]}), 200


@products_bp.get("/<product_id>")
def get_product_route(product_id: str):
    try:
        return jsonify(catalog_service.get_product(product_id).to_dict()), 200
    except LedgerError as exc:
        return error_response(exc)


@products_bp.patch("/<product_id>")
def update_product_route(product_id: str):
    payload = request.get_json(silent=True) or {}
    try:
        owned = sorted(catalog_service.LEDGER_OWNED_FIELDS & set(payload))
        if owned:
            raise ValidationError(f"{owned[0]} is maintained by the ledger and cannot be set directly")
        patch = validate_payload(model=DigitalProduct, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        product = catalog_service.update_product(product_id, patch=patch)
        return jsonify(product.to_dict()), 200
    except LedgerError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to update product")


@products_bp.get("/<product_id>/stock")
def stock_summary_route(product_id: str):
    try:
        return jsonify(stock_service.get_stock_summary(product_id)), 200
    except LedgerError as exc:
        return error_response(exc)


@products_bp.get("/<product_id>/movements")
def movements_route(product_id: str):
    """
    Stock movement trail, newest first.

    Query params:
    - type: purchase | sale | sale_void
    - limit: max rows (default 200)
    """
    movement_type = request.args.get("type")
    limit = request.args.get("limit", 200, type=int)
    try:
        movements = stock_service.list_movements(product_id, movement_type=movement_type, limit=limit)
        return jsonify({"items": [m.to_dict() for m in movements]}), 200
    except LedgerError as exc:
        return error_response(exc)
