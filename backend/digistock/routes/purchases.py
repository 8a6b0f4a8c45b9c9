# Overview: Flask API routes for stock purchases.

from flask import Blueprint, jsonify, request

from ..errors import LedgerError
from ..services import purchase_service
from ..validation import RecordPurchaseRequest, UpdatePurchaseRequest
from . import error_response, internal_error


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.post("")
def record_purchase_route():
    """
    Request body:
    {
        "product_id": "prod-...",
        "quantity": 10,
        "unit_cost_cents": 1200,
        "supplier": "...", "invoice_number": "...",   (optional)
        "payment_method": "transfer", "payment_status": "paid",
        "purchase_date": "2025-01-15T00:00:00Z"       (optional)
    }
    """
    try:
        req = RecordPurchaseRequest.from_payload(request.get_json(silent=True))
        purchase = purchase_service.record_purchase(req)
        return jsonify(purchase.to_dict()), 201
    except LedgerError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to record purchase")


@purchases_bp.get("")
def list_purchases_route():
    purchases = purchase_service.list_purchases(
        product_id=request.args.get("product_id"),
        limit=request.args.get("limit", 100, type=int),
    )
    return jsonify({"items": [p.to_dict() for p in purchases]}), 200


@purchases_bp.get("/<purchase_id>")
def get_purchase_route(purchase_id: str):
    try:
        return jsonify(purchase_service.get_purchase(purchase_id).to_dict()), 200
    except LedgerError as exc:
        return error_response(exc)


@purchases_bp.patch("/<purchase_id>")
def update_purchase_route(purchase_id: str):
    try:
        req = UpdatePurchaseRequest.from_payload(request.get_json(silent=True))
        purchase = purchase_service.update_purchase(purchase_id, req)
        return jsonify(purchase.to_dict()), 200
    except LedgerError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to update purchase")
